"""
Synthetic data generators for backup pipeline tests.

Produces keyed Kafka-like records spread over a time period and S3-valid
bucket names. Uses deterministic seeding for reproducibility when needed.
"""

import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from backup_harness.models import DomainRecord

# Sentinel timestamps land this far past the end of the generated period
SENTINEL_GAP = timedelta(days=1)

MIN_BUCKET_NAME_LENGTH = 3
MAX_BUCKET_NAME_LENGTH = 63

_ALNUM = string.ascii_lowercase + string.digits
_LABEL_CHARS = _ALNUM + "-"


@dataclass
class GeneratedData:
    """Generated records and the time period they span.

    When `has_sentinel` is set the last record is a sentinel whose timestamp
    lies past `period_end`; it only exists to close the final backup slice.
    """

    records: list[DomainRecord]
    period_start: datetime
    period_end: datetime
    has_sentinel: bool = False
    keys: list[bytes] = field(default_factory=list)

    @property
    def period(self) -> timedelta:
        return self.period_end - self.period_start

    def without_sentinel(self) -> list[DomainRecord]:
        if self.has_sentinel:
            return self.records[:-1]
        return list(self.records)


def _now_millis() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def _random_token(rng: random.Random, length: int) -> str:
    return "".join(rng.choices(_ALNUM, k=length))


def generate_records(
    count: int,
    distinct_keys: int,
    topic: str = "backup-harness",
    partitions: int = 1,
    pad_timestamps_millis: tuple[int, int] = (0, 0),
    trailing_sentinel: bool = False,
    seed: Optional[int] = None,
    start: Optional[datetime] = None,
) -> GeneratedData:
    """
    Generate `count` keyed records with increasing timestamps.

    Keys come from a pool of `distinct_keys` keys and every key is used at
    least once when count >= distinct_keys. A key always maps to the same
    partition, offsets increase per partition, and consecutive timestamps are
    separated by a padding drawn from `pad_timestamps_millis` (inclusive).

    Args:
        count: Number of records (sentinel not included)
        distinct_keys: Size of the key pool
        topic: Topic written into every record
        partitions: Number of partitions keys are spread over
        pad_timestamps_millis: Inclusive (min, max) gap between timestamps
        trailing_sentinel: Append one record timestamped past the period end
        seed: Seed for reproducible output
        start: Timestamp of the first record (default: now, millisecond precision)

    Raises:
        ValueError: On negative counts, an empty key pool, or an invalid
            padding range
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    if distinct_keys < 1:
        raise ValueError(f"distinct_keys must be >= 1, got {distinct_keys}")
    if partitions < 1:
        raise ValueError(f"partitions must be >= 1, got {partitions}")
    pad_min, pad_max = pad_timestamps_millis
    if pad_min < 0 or pad_min > pad_max:
        raise ValueError(
            f"pad_timestamps_millis must satisfy 0 <= min <= max, got {pad_timestamps_millis}"
        )

    rng = random.Random(seed)
    start = start or _now_millis()
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)

    keys = [f"key-{i}-{_random_token(rng, 8)}".encode() for i in range(distinct_keys)]

    # Cover every key once (shuffled), then draw the rest freely
    key_indexes = list(range(min(count, distinct_keys)))
    rng.shuffle(key_indexes)
    key_indexes += [rng.randrange(distinct_keys) for _ in range(count - len(key_indexes))]

    offsets = [0] * partitions
    records: list[DomainRecord] = []
    timestamp = start

    for position, key_index in enumerate(key_indexes):
        if position > 0:
            timestamp += timedelta(milliseconds=rng.randint(pad_min, pad_max))
        partition = key_index % partitions
        records.append(
            DomainRecord.from_bytes(
                topic=topic,
                partition=partition,
                offset=offsets[partition],
                key=keys[key_index],
                value=f"value-{position}-{_random_token(rng, 16)}".encode(),
                timestamp=timestamp,
            )
        )
        offsets[partition] += 1

    period_end = timestamp

    if trailing_sentinel:
        records.append(
            DomainRecord.from_bytes(
                topic=topic,
                partition=0,
                offset=offsets[0],
                key=None,
                value=b"sentinel",
                timestamp=period_end + SENTINEL_GAP,
            )
        )

    return GeneratedData(
        records=records,
        period_start=start,
        period_end=period_end,
        has_sentinel=trailing_sentinel,
        keys=keys,
    )


def _label(rng: random.Random, length: int) -> str:
    """One DNS label: starts with a letter, ends with a letter or digit."""
    if length == 1:
        return rng.choice(string.ascii_lowercase)
    middle = "".join(rng.choices(_LABEL_CHARS, k=length - 2))
    return rng.choice(string.ascii_lowercase) + middle + rng.choice(_ALNUM)


def bucket_name(
    prefix: Optional[str] = None,
    use_virtual_dot_host: bool = False,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Generate a random S3-valid bucket name.

    Names are lowercase, 3-63 characters and start and end with a letter or
    digit. Dot-separated labels are only produced with `use_virtual_dot_host`
    since dotted names need a matching TLS certificate on real services.

    Raises:
        ValueError: If the prefix leaves no room for a random suffix
    """
    rng = rng or random.Random()
    prefix = prefix or ""

    budget = MAX_BUCKET_NAME_LENGTH - len(prefix)
    if budget < 1:
        raise ValueError(f"Bucket prefix too long: {prefix!r}")

    min_length = max(1, MIN_BUCKET_NAME_LENGTH - len(prefix))
    length = rng.randint(min_length, max(min_length, min(budget, 24)))

    if use_virtual_dot_host and length >= 3:
        # Split into 2-3 labels joined by dots, each at least one character
        label_count = rng.randint(2, min(3, (length + 1) // 2))
        remaining = length - (label_count - 1)
        sizes = []
        for i in range(label_count - 1):
            size = rng.randint(1, remaining - (label_count - 1 - i))
            sizes.append(size)
            remaining -= size
        sizes.append(remaining)
        suffix = ".".join(_label(rng, size) for size in sizes)
    else:
        suffix = _label(rng, length)

    return prefix + suffix


__all__ = [
    "GeneratedData",
    "generate_records",
    "bucket_name",
    "SENTINEL_GAP",
]
