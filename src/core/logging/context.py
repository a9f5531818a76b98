"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_suite: ContextVar[str] = ContextVar("suite", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_bucket: ContextVar[str] = ContextVar("bucket", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    suite: Optional[str] = None,
    stage: Optional[str] = None,
    bucket: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if suite is not None:
        _suite.set(suite)
    if stage is not None:
        _stage_name.set(stage)
    if bucket is not None:
        _bucket.set(bucket)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "suite": _suite.get(),
        "stage": _stage_name.get(),
        "bucket": _bucket.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _suite.set("")
    _stage_name.set("")
    _bucket.set("")
    _trace_id.set("")
