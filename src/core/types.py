"""
Core types used across modules.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    The consistency poller and the bucket cleanup path use this to decide
    whether a failure is absorbed (retried or logged) or propagated.

    Categories:
        TRANSIENT: Temporary failures expected to resolve on their own
                   (e.g., network timeouts, 429/503 responses, eventual consistency)
        AUTH: Authentication failures (e.g., 401, expired credentials)
        PERMANENT: Structural or logic errors that won't succeed on retry
                   (e.g., malformed payloads, bucket owned by another principal)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
