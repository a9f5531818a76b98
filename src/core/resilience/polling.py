"""
Fixed-delay polling for eventually consistent reads.

Object storage listings may lag behind completed writes (multipart uploads in
particular), so a single read is not enough to verify what a pipeline wrote.
`wait_until` repeats a read until a caller-supplied transform reports the
result as ready:

- transform returns Ready(value): polling stops, value is returned
- transform returns NotYetReady(reason): wait `delay`, read again
- read raises a transient error: treated as not ready
- transform raises, or read raises a non-transient error: propagates

Attempts are strictly sequential and the delay is fixed (no backoff, no
jitter).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sized
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from core.errors.exceptions import PollingExhaustedError, is_transient_error
from core.logging.utilities import log_with_context

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


@dataclass(frozen=True)
class Ready(Generic[T]):
    """The observed state is final; carries the extracted value."""

    value: T


@dataclass(frozen=True)
class NotYetReady:
    """The observed state has not converged yet."""

    reason: Any

    def __str__(self) -> str:
        return str(self.reason)


PollResult = Union[Ready[T], NotYetReady]

DEFAULT_ATTEMPTS = 10
DEFAULT_DELAY = 1.0


def _log_not_ready(
    operation: str,
    attempt: int,
    attempts: int,
    delay: float,
    reason: Any,
) -> None:
    log_with_context(
        logger,
        logging.DEBUG,
        f"{operation} not ready, will poll again",
        operation=operation,
        attempt=attempt,
        max_attempts=attempts,
        delay_seconds=delay,
        reason=str(reason)[:200],
    )


async def wait_until(
    list_fn: Callable[[], Awaitable[S]],
    transform: Callable[[S], PollResult],
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    operation: str = "wait_until",
) -> T:
    """
    Poll `list_fn` until `transform` reports Ready, at most `attempts` times.

    Args:
        list_fn: Coroutine factory performing one read (e.g. a bucket listing)
        transform: Maps one read to Ready(value) or NotYetReady(reason)
        attempts: Total number of reads before giving up
        delay: Seconds to wait between reads
        sleep: Awaitable sleep used between reads
        operation: Name used in log records

    Returns:
        The value carried by the first Ready result

    Raises:
        PollingExhaustedError: If every attempt was not ready
        ValueError: If attempts < 1 or delay < 0
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")
    if delay < 0:
        raise ValueError(f"delay must be non-negative, got {delay}")

    last_reason: Any = None

    for attempt in range(1, attempts + 1):
        try:
            snapshot = await list_fn()
        except Exception as e:
            if not is_transient_error(e):
                raise
            last_reason = f"read failed: {e}"
        else:
            result = transform(snapshot)
            if isinstance(result, Ready):
                if attempt > 1:
                    log_with_context(
                        logger,
                        logging.INFO,
                        f"{operation} ready after {attempt} attempts",
                        operation=operation,
                        attempt=attempt,
                        max_attempts=attempts,
                    )
                return result.value
            if not isinstance(result, NotYetReady):
                raise TypeError(
                    f"transform must return Ready or NotYetReady, got {type(result).__name__}"
                )
            last_reason = result.reason

        if attempt < attempts:
            _log_not_ready(operation, attempt, attempts, delay, last_reason)
            await sleep(delay)

    log_with_context(
        logger,
        logging.WARNING,
        f"{operation} exhausted all attempts",
        operation=operation,
        max_attempts=attempts,
        reason=str(last_reason)[:200],
    )
    raise PollingExhaustedError(last_reason, attempts)


def expect_count(
    expected: int,
    describe: Callable[[Any], str] = str,
) -> Callable[[Sized], PollResult]:
    """
    Build a transform that is ready once the snapshot has `expected` entries.

    Usage:
        objects = await wait_until(
            lambda: storage.list_objects(bucket),
            expect_count(3, describe=lambda o: o.key),
        )
    """

    def transform(snapshot: Sized) -> PollResult:
        if len(snapshot) == expected:
            return Ready(snapshot)
        current = ",".join(describe(item) for item in snapshot)
        return NotYetReady(
            f"expected {expected} entries, found {len(snapshot)}: [{current}]"
        )

    return transform


__all__ = [
    "Ready",
    "NotYetReady",
    "PollResult",
    "wait_until",
    "expect_count",
    "DEFAULT_ATTEMPTS",
    "DEFAULT_DELAY",
]
