"""
Throttled emission of generated records.

emit() spreads a finite record list over a time span so a consumer under test
sees a steady stream instead of one burst:

    rate = max(1, count // duration_ms) records per millisecond

Inputs too small to reach one record per millisecond still go out at one per
millisecond; the rate never drops below that floor.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from datetime import timedelta
from typing import Any, Optional, Union

from backup_harness.models import DomainRecord, ProducerRecord
from core.logging.utilities import log_with_context
from core.resilience.rate_limiter import RateLimiter, RateLimiterConfig

logger = logging.getLogger(__name__)

Duration = Union[timedelta, float, int]


def _duration_millis(duration: Duration) -> int:
    if isinstance(duration, timedelta):
        seconds = duration.total_seconds()
    else:
        seconds = float(duration)
    if seconds <= 0:
        raise ValueError(f"duration must be positive, got {duration!r}")
    # Sub-millisecond spans are treated as one millisecond
    return max(1, int(seconds * 1000))


def records_per_millisecond(count: int, duration: Duration) -> int:
    return max(1, count // _duration_millis(duration))


class ThrottledSource:
    """
    Lazy, finite, restartable async iterable over records.

    Every `async for` starts from the first record with a fresh rate limiter,
    so separate iterations do not share pacing state. A single iteration is
    meant for a single consumer.
    """

    def __init__(
        self,
        records: Iterable[DomainRecord],
        duration: Duration,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._records = list(records)
        self.duration_ms = _duration_millis(duration)
        self.rate = records_per_millisecond(len(self._records), duration)
        self._sleep = sleep
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def _limiter(self) -> RateLimiter:
        return RateLimiter(
            RateLimiterConfig(
                calls_per_second=self.rate * 1000,
                burst_capacity=self.rate,
                name="throttled_source",
            ),
            clock=self._clock,
            sleep=self._sleep,
        )

    async def __aiter__(self) -> AsyncIterator[DomainRecord]:
        limiter = self._limiter()
        log_with_context(
            logger,
            logging.DEBUG,
            "Emitting throttled records",
            records=len(self._records),
            records_per_ms=self.rate,
            stream_duration_ms=self.duration_ms,
        )
        for record in self._records:
            await limiter.acquire()
            yield record


def emit(
    records: Iterable[DomainRecord],
    duration: Duration,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> ThrottledSource:
    """
    Pace records so the whole sequence takes roughly `duration`.

    Args:
        records: Records to emit, in order
        duration: Target span as a timedelta or seconds
        sleep: Awaitable sleep used while pacing
        clock: Monotonic clock used while pacing

    Raises:
        ValueError: If duration is not positive
    """
    return ThrottledSource(records, duration, sleep=sleep, clock=clock)


def to_producer_records(
    records: Iterable[DomainRecord],
    topic: Optional[str] = None,
) -> list[ProducerRecord]:
    """
    Convert records to producer records, decoding key/value to raw bytes.

    Args:
        records: Records to convert
        topic: Send to this topic instead of each record's own topic

    Raises:
        InvalidEncodingError: If a key or value is not valid base64
    """
    return [
        ProducerRecord(
            topic=topic or record.topic,
            key=record.key_bytes,
            value=record.value_bytes,
            timestamp_ms=record.timestamp_ms,
        )
        for record in records
    ]


__all__ = [
    "ThrottledSource",
    "emit",
    "to_producer_records",
    "records_per_millisecond",
]
