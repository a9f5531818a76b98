"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- HarnessError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    BucketConflictError,
    CleanupTimeoutError,
    ConfigurationError,
    ErrorCategory,
    HarnessError,
    InvalidEncodingError,
    MalformedPayloadError,
    PermanentError,
    PollingExhaustedError,
    StorageError,
    StorageTransientError,
    TransientError,
    classify_exception,
    classify_http_status,
    is_transient_error,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "HarnessError",
    "TransientError",
    "PermanentError",
    "ConfigurationError",
    # Storage
    "StorageError",
    "StorageTransientError",
    # Harness domain
    "BucketConflictError",
    "PollingExhaustedError",
    "MalformedPayloadError",
    "InvalidEncodingError",
    "CleanupTimeoutError",
    # Classification utilities
    "is_transient_error",
    "classify_http_status",
    "classify_exception",
]
