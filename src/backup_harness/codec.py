"""
JSON codec for backup objects.

A backup object is one JSON array. Each entry is either a record object or
null; nulls mark sentinel/padding positions and are kept so decode is the
structural inverse of encode. Record timestamps are written as epoch
milliseconds.

    [{"topic":"t","partition":0,"offset":0,"key":"azE=","value":"djE=","timestamp":1700000000000},null]
"""

import json
import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import ValidationError

from backup_harness.models import EPOCH, DomainRecord
from core.errors.exceptions import InvalidEncodingError, MalformedPayloadError

# Compression/format suffixes a backup object key may carry after the timestamp
_KEY_SUFFIX = re.compile(r"(\.json)?(\.gz|\.zst|\.snappy)?$")


def _record_to_dict(record: DomainRecord) -> dict[str, Any]:
    return {
        "topic": record.topic,
        "partition": record.partition,
        "offset": record.offset,
        "key": record.key,
        "value": record.value,
        "timestamp": record.timestamp_ms,
    }


def _dict_to_record(entry: dict[str, Any], index: int) -> DomainRecord:
    data = dict(entry)
    timestamp = data.get("timestamp")
    if timestamp is not None:
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise MalformedPayloadError(
                f"Entry {index}: timestamp must be epoch milliseconds, got {timestamp!r}",
                context={"index": index},
            )
        try:
            data["timestamp"] = EPOCH + timedelta(milliseconds=timestamp)
        except OverflowError as e:
            raise MalformedPayloadError(
                f"Entry {index}: timestamp out of range: {timestamp}",
                cause=e,
                context={"index": index},
            ) from e

    try:
        record = DomainRecord.model_validate(data)
    except ValidationError as e:
        raise MalformedPayloadError(
            f"Entry {index} is not a valid record: {e.error_count()} validation error(s)",
            cause=e,
            context={"index": index},
        ) from e

    try:
        record.key_bytes
        record.value_bytes
    except InvalidEncodingError as e:
        raise MalformedPayloadError(
            f"Entry {index}: {e.message}",
            cause=e,
            context={"index": index, "field": e.context.get("field")},
        ) from e
    return record


def encode(records: Iterable[Optional[DomainRecord]]) -> bytes:
    """Serialize records as one compact JSON array (None entries become null)."""
    payload = [
        _record_to_dict(record) if record is not None else None
        for record in records
    ]
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def decode(payload: bytes) -> list[Optional[DomainRecord]]:
    """
    Parse a backup object back into records.

    Returns:
        One entry per array element, None for null elements

    Raises:
        MalformedPayloadError: If the payload is not a JSON array of record
            objects and nulls, or a key/value is not valid base64. No partial
            result is returned.
    """
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Payload is not valid JSON: {e}", cause=e) from e

    if not isinstance(data, list):
        raise MalformedPayloadError(
            f"Payload must be a JSON array, got {type(data).__name__}"
        )

    records: list[Optional[DomainRecord]] = []
    for index, entry in enumerate(data):
        if entry is None:
            records.append(None)
        elif isinstance(entry, dict):
            records.append(_dict_to_record(entry, index))
        else:
            raise MalformedPayloadError(
                f"Entry {index} must be an object or null, got {type(entry).__name__}",
                context={"index": index},
            )
    return records


def present(records: Iterable[Optional[DomainRecord]]) -> list[DomainRecord]:
    """Drop sentinel (None) entries."""
    return [record for record in records if record is not None]


def key_to_datetime(object_key: str) -> datetime:
    """
    Parse the timestamp a backup object is named after.

    Accepts keys like `2024-01-01T00:00:00Z.json` or
    `backups/2024-01-01T00:00:00.123+00:00.json`.

    Raises:
        MalformedPayloadError: If the key does not carry an ISO-8601 timestamp
    """
    name = object_key.rsplit("/", 1)[-1]
    stem = _KEY_SUFFIX.sub("", name, count=1)
    if stem.endswith("Z"):
        stem = stem[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(stem)
    except ValueError as e:
        raise MalformedPayloadError(
            f"Object key is not a timestamp: {object_key}",
            cause=e,
            context={"object_key": object_key},
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_keys_chronologically(keys: Sequence[str]) -> list[str]:
    return sorted(keys, key=key_to_datetime)


__all__ = [
    "encode",
    "decode",
    "present",
    "key_to_datetime",
    "sort_keys_chronologically",
]
