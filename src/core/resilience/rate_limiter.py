"""
Token bucket rate limiter.

Paces a single producer so it never exceeds a configured throughput while
still allowing a bounded burst.

How Token Bucket Works:
- Bucket holds N tokens (burst capacity)
- Tokens refill at R tokens/second (rate)
- Each acquire consumes 1 token
- If no tokens available, acquire waits

Usage:
    limiter = RateLimiter(calls_per_second=1000, burst_capacity=1)

    for item in items:
        await limiter.acquire()
        await send(item)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter behavior."""

    # Maximum acquisitions per second
    calls_per_second: float = 10.0

    # Maximum burst capacity (tokens that can accumulate)
    # If None, defaults to calls_per_second (allows 1 second of burst)
    burst_capacity: Optional[float] = None

    # Name for logging
    name: str = "rate_limiter"

    def __post_init__(self):
        self.calls_per_second = float(self.calls_per_second)
        if self.calls_per_second <= 0:
            raise ValueError(
                f"calls_per_second must be positive, got {self.calls_per_second}"
            )
        if self.burst_capacity is not None:
            self.burst_capacity = float(self.burst_capacity)
            if self.burst_capacity < 1:
                raise ValueError(
                    f"burst_capacity must be at least 1, got {self.burst_capacity}"
                )


class RateLimiter:
    """
    Token bucket rate limiter for async operations.

    Attributes:
        config: Configuration for rate limiting behavior
        _tokens: Current token count (protected by _lock)
        _last_update: Last time tokens were refilled
        _lock: Asyncio lock serializing acquisitions
    """

    def __init__(
        self,
        config: Optional[RateLimiterConfig] = None,
        calls_per_second: Optional[float] = None,
        burst_capacity: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            config: Full configuration object (preferred)
            calls_per_second: Shorthand for config.calls_per_second
            burst_capacity: Shorthand for config.burst_capacity
            clock: Monotonic clock returning seconds
            sleep: Awaitable sleep used while waiting for tokens
        """
        if config is None:
            config = RateLimiterConfig(
                calls_per_second=calls_per_second or 10.0,
                burst_capacity=burst_capacity,
            )

        self.config = config
        self._rate = config.calls_per_second
        self._burst_capacity = config.burst_capacity or config.calls_per_second
        self._tokens = self._burst_capacity  # Start with full bucket
        self._clock = clock
        self._sleep = sleep
        self._last_update = clock()
        self._lock = asyncio.Lock()

        logger.debug(
            "Rate limiter '%s' initialized (%s/s, burst %s)",
            config.name,
            self._rate,
            self._burst_capacity,
        )

    async def acquire(self, tokens: float = 1.0) -> None:
        """
        Acquire tokens from the bucket (waiting if necessary).

        Args:
            tokens: Number of tokens to acquire (default 1.0)

        Raises:
            ValueError: If tokens requested exceeds burst capacity
        """
        if tokens > self._burst_capacity:
            raise ValueError(
                f"Requested tokens ({tokens}) exceeds burst capacity ({self._burst_capacity})"
            )

        async with self._lock:
            # Refill tokens based on elapsed time
            now = self._clock()
            elapsed = now - self._last_update
            self._tokens = min(self._burst_capacity, self._tokens + elapsed * self._rate)
            self._last_update = now

            if self._tokens < tokens:
                deficit = tokens - self._tokens
                wait_time = deficit / self._rate

                await self._sleep(wait_time)

                # After waiting, we have exactly the tokens we need
                self._tokens = 0
                self._last_update = self._clock()
            else:
                self._tokens -= tokens


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
]
