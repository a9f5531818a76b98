"""Object storage types shared by the S3 client and the bucket manager."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol


class BucketAccess(Enum):
    """What this principal can do with a bucket name."""

    GRANTED = "granted"  # Exists and is usable
    DENIED = "denied"  # Exists but belongs to someone else
    ABSENT = "absent"  # Does not exist


@dataclass(frozen=True)
class ObjectSummary:
    """One entry of a bucket listing."""

    key: str
    size: int
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None


ListingSnapshot = list[ObjectSummary]


class ObjectStorage(Protocol):
    """Operations the harness needs from an object store."""

    async def bucket_exists(self, bucket: str) -> BucketAccess: ...

    async def create_bucket(self, bucket: str) -> None: ...

    async def delete_bucket_recursive(self, bucket: str) -> None: ...

    async def list_objects(
        self, bucket: str, prefix: Optional[str] = None
    ) -> ListingSnapshot: ...

    async def get_object(self, bucket: str, key: str) -> bytes: ...

    async def put_object(self, bucket: str, key: str, data: bytes) -> None: ...


__all__ = [
    "BucketAccess",
    "ObjectSummary",
    "ListingSnapshot",
    "ObjectStorage",
]
