"""
Record models shared by the generator, codec and messaging layers.

DomainRecord is the reduced form of a Kafka consumer record that the backup
pipeline writes to object storage. Key and value are carried as base64 text
so they survive JSON serialization byte-for-byte.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.errors.exceptions import InvalidEncodingError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str, field_name: str = "value") -> bytes:
    """Strictly decode base64 text.

    Raises:
        InvalidEncodingError: If text contains non-alphabet characters or
            has invalid padding
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidEncodingError(
            f"{field_name} is not valid base64: {text[:50]!r}",
            cause=e,
            context={"field": field_name},
        ) from e


class DomainRecord(BaseModel):
    """A single record as consumed from Kafka and written to a backup.

    Attributes:
        topic: Source topic
        partition: Source partition
        offset: Offset within the partition
        key: Base64 encoded key, None for key-less records
        value: Base64 encoded value
        timestamp: Record timestamp (UTC), None if the broker supplied none

    Example:
        >>> record = DomainRecord.from_bytes("orders", 0, 42, b"k1", b"v1")
        >>> record.key
        'azE='
    """

    topic: str = Field(..., min_length=1, description="Source topic")
    partition: int = Field(..., ge=0, description="Source partition")
    offset: int = Field(..., ge=0, description="Offset within the partition")
    key: Optional[str] = Field(default=None, description="Base64 encoded key")
    value: str = Field(..., description="Base64 encoded value")
    timestamp: Optional[datetime] = Field(
        default=None, description="Record timestamp (UTC)"
    )

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive datetimes are treated as UTC.

        Sub-millisecond precision is truncated, since backups store epoch
        milliseconds.
        """
        if v is None:
            return v
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.replace(microsecond=v.microsecond - v.microsecond % 1000)

    @classmethod
    def from_bytes(
        cls,
        topic: str,
        partition: int,
        offset: int,
        key: Optional[bytes],
        value: bytes,
        timestamp: Optional[datetime] = None,
    ) -> "DomainRecord":
        """Build a record from raw key/value bytes."""
        return cls(
            topic=topic,
            partition=partition,
            offset=offset,
            key=b64encode(key) if key is not None else None,
            value=b64encode(value),
            timestamp=timestamp,
        )

    @property
    def key_bytes(self) -> Optional[bytes]:
        if self.key is None:
            return None
        return b64decode(self.key, "key")

    @property
    def value_bytes(self) -> bytes:
        return b64decode(self.value, "value")

    @property
    def timestamp_ms(self) -> Optional[int]:
        if self.timestamp is None:
            return None
        return (self.timestamp - EPOCH) // timedelta(milliseconds=1)


@dataclass(frozen=True)
class ProducerRecord:
    """Record in the shape a Kafka producer sends it."""

    topic: str
    key: Optional[bytes]
    value: bytes
    timestamp_ms: Optional[int] = None


__all__ = [
    "DomainRecord",
    "ProducerRecord",
    "b64encode",
    "b64decode",
]
