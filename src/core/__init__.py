"""
Core library: Reusable, infrastructure-agnostic components.

Shared by the backup harness and its tests. Nothing in here knows about
buckets, Kafka topics, or backup records.

Modules:
    resilience  - Consistency poller, token bucket rate limiting
    logging     - Structured JSON logging with context propagation
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization helpers

Design Principles:
    - No dependencies on a specific storage backend
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
