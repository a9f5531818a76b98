"""Object storage access for the backup harness."""

from backup_harness.storage.s3 import S3StorageClient, wrap_client_error
from backup_harness.storage.types import (
    BucketAccess,
    ListingSnapshot,
    ObjectStorage,
    ObjectSummary,
)

__all__ = [
    "S3StorageClient",
    "wrap_client_error",
    "BucketAccess",
    "ListingSnapshot",
    "ObjectStorage",
    "ObjectSummary",
]
