"""
Resilience patterns module.

Components:
    - wait_until: Fixed-delay polling for eventually consistent reads
    - Ready / NotYetReady: Tagged results returned by poll transforms
    - RateLimiter: Token bucket rate limiting
"""

from .polling import (
    DEFAULT_ATTEMPTS,
    DEFAULT_DELAY,
    NotYetReady,
    PollResult,
    Ready,
    expect_count,
    wait_until,
)
from .rate_limiter import (
    RateLimiter,
    RateLimiterConfig,
)

__all__ = [
    # Polling
    "wait_until",
    "expect_count",
    "Ready",
    "NotYetReady",
    "PollResult",
    "DEFAULT_ATTEMPTS",
    "DEFAULT_DELAY",
    # Rate Limiter
    "RateLimiter",
    "RateLimiterConfig",
]
