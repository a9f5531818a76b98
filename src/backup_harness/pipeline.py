"""The backup pipeline under test, as the harness sees it."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BackupPipeline(Protocol):
    """
    A pipeline that consumes a record source and writes backups to a bucket.

    The harness only starts it and observes its output through bucket
    listings; how it slices and names objects is its own business.
    """

    async def run(self) -> Any: ...


__all__ = ["BackupPipeline"]
