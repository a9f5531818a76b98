"""
Unified exception hierarchy for the backup harness.

Provides typed exceptions with retry classification so that transient
conditions (eventual consistency, throttling) can be absorbed while
structural errors fail the test immediately.
"""

from core.types import ErrorCategory


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Base categories
# =============================================================================


class TransientError(HarnessError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class PermanentError(HarnessError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Invalid harness configuration."""

    pass


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(HarnessError):
    """
    Error from an object storage call.

    The category is assigned per instance from the HTTP status of the
    failed request, so a single class covers both 5xx and 4xx failures.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: int | None = None,
        error_code: str | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.category = category
        self.status_code = status_code
        self.error_code = error_code


class StorageTransientError(StorageError, TransientError):
    """Storage call failed with a condition expected to clear on its own."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TRANSIENT,
            status_code=status_code,
            error_code=error_code,
            cause=cause,
            context=context,
        )


# =============================================================================
# Harness Domain Errors
# =============================================================================


class BucketConflictError(PermanentError):
    """Bucket already exists but this principal cannot use it."""

    def __init__(self, bucket: str, cause: Exception | None = None):
        super().__init__(
            f"Unable to create bucket: {bucket} since it already exists "
            f"however permissions are inadequate",
            cause,
            {"bucket": bucket},
        )
        self.bucket = bucket


class PollingExhaustedError(PermanentError, AssertionError):
    """
    Expected storage state never materialized within the attempt budget.

    Also an AssertionError so test runners report it as a failed expectation
    rather than an error in the test itself.
    """

    def __init__(self, last_reason: object, attempts: int):
        super().__init__(
            f"Storage state not ready after {attempts} attempts: {last_reason}",
            context={"attempts": attempts},
        )
        self.last_reason = last_reason
        self.attempts = attempts


class MalformedPayloadError(PermanentError):
    """Stored object is not a structurally valid record array."""

    pass


class InvalidEncodingError(PermanentError):
    """Record key or value is not valid base64."""

    pass


class CleanupTimeoutError(PermanentError):
    """Bucket cleanup did not finish in time; cloud resources may have leaked."""

    def __init__(self, timeout: float, buckets: list[str]):
        super().__init__(
            f"Bucket cleanup exceeded {timeout}s, buckets possibly leaked: "
            f"{', '.join(buckets) or '<none>'}",
            context={"timeout": timeout, "buckets": list(buckets)},
        )
        self.timeout = timeout
        self.buckets = list(buckets)


# =============================================================================
# Error Classification Utilities
# =============================================================================

TRANSIENT_ERROR_MARKERS = frozenset(
    {
        "429",
        "500",
        "503",
        "502",
        "504",
        "timeout",
        "timed out",
        "connection",
        "throttl",
        "slowdown",
        "slow down",
        "rate limit",
        "temporarily unavailable",
        "service unavailable",
        "internalerror",
    }
)


def is_transient_error(exc: Exception) -> bool:
    """
    Check if exception is transient (retriable).

    Returns True if this is a transient error that may succeed on retry.
    """
    if isinstance(exc, HarnessError):
        return exc.category == ErrorCategory.TRANSIENT

    return classify_exception(exc) == ErrorCategory.TRANSIENT


def classify_http_status(status_code: int | None) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if status_code is None:
        return ErrorCategory.UNKNOWN

    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    if isinstance(exc, HarnessError):
        return exc.category

    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    if any(m in exc_type or m in exc_str for m in TRANSIENT_ERROR_MARKERS):
        return ErrorCategory.TRANSIENT

    if "401" in exc_str or "unauthorized" in exc_str or "expiredtoken" in exc_str:
        return ErrorCategory.AUTH

    # Permission errors (not auth - actual permissions)
    if "403" in exc_str or "forbidden" in exc_str or "access denied" in exc_str:
        return ErrorCategory.PERMANENT

    if "404" in exc_str or "not found" in exc_str or "nosuch" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN
