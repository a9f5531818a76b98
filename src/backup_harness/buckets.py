"""
Bucket lifecycle management for backup tests.

Creates test buckets in a known-clean state, tracks the ones this harness
created, and deletes them at suite shutdown.

Creation by access state:
    DENIED  -> BucketConflictError, nothing is touched
    GRANTED -> delete everything (multipart remnants included), recreate
    ABSENT  -> create

Cleanup never deletes a bucket this principal cannot use, and a failure on
one bucket never stops cleanup of the others. Only an overall timeout fails
shutdown, since it means cloud resources may have leaked.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from backup_harness.storage.types import BucketAccess, ObjectStorage
from core.errors.exceptions import BucketConflictError, CleanupTimeoutError
from core.logging.context_managers import log_operation
from core.logging.utilities import log_exception, log_with_context

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLEANUP_TIMEOUT = 600.0


class CleanupRegistry:
    """
    Thread-safe, insertion-ordered set of bucket names awaiting deletion.

    Append-only until drain(). Safe to share between concurrently running
    tests, whether they run as tasks or in threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._buckets: dict[str, None] = {}

    def add(self, bucket: str) -> bool:
        """Register a bucket. Returns False if it was already registered."""
        with self._lock:
            if bucket in self._buckets:
                return False
            self._buckets[bucket] = None
            return True

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._buckets)

    def drain(self) -> list[str]:
        """Remove and return every registered bucket, in registration order."""
        with self._lock:
            buckets = list(self._buckets)
            self._buckets.clear()
            return buckets

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def __contains__(self, bucket: object) -> bool:
        with self._lock:
            return bucket in self._buckets


class BucketLifecycleManager:
    """
    Creates buckets for tests and cleans them up at shutdown.

    Usage:
        manager = BucketLifecycleManager(storage, CleanupRegistry(), initial_delay=5.0)
        await manager.create_bucket("guardian-abc")
        ...
        await manager.shutdown()
    """

    def __init__(
        self,
        storage: ObjectStorage,
        registry: Optional[CleanupRegistry] = None,
        cleanup_enabled: bool = True,
        initial_delay: float = 0.0,
        max_cleanup_timeout: float = DEFAULT_MAX_CLEANUP_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            storage: Object storage client
            registry: Shared cleanup registry (a private one when None)
            cleanup_enabled: Track created buckets and delete them at shutdown
            initial_delay: Seconds to wait at shutdown before deleting, so
                the last eventually consistent writes can settle
            max_cleanup_timeout: Bound in seconds for all of shutdown,
                initial delay included
            sleep: Awaitable sleep used for the initial delay
        """
        if initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {initial_delay}")
        if max_cleanup_timeout <= 0:
            raise ValueError(f"max_cleanup_timeout must be > 0, got {max_cleanup_timeout}")

        self.storage = storage
        self.registry = registry if registry is not None else CleanupRegistry()
        self.cleanup_enabled = cleanup_enabled
        self.initial_delay = initial_delay
        self.max_cleanup_timeout = max_cleanup_timeout
        self._sleep = sleep
        self._in_flight: Optional[dict[str, None]] = None

    async def create_bucket(self, bucket: str) -> None:
        """
        Create `bucket`, emptying and recreating it if it already exists.

        Raises:
            BucketConflictError: If the bucket exists but is not usable by
                this principal
        """
        with log_operation(logger, "create_bucket", bucket=bucket) as op:
            access = await self.storage.bucket_exists(bucket)
            op.add_context(access=access.value)

            if access is BucketAccess.DENIED:
                raise BucketConflictError(bucket)

            if access is BucketAccess.GRANTED:
                log_with_context(
                    logger,
                    logging.INFO,
                    "Bucket already exists, recreating it empty",
                    bucket=bucket,
                )
                await self.storage.delete_bucket_recursive(bucket)

            await self.storage.create_bucket(bucket)

        if self.cleanup_enabled and self.registry.add(bucket):
            log_with_context(
                logger,
                logging.DEBUG,
                "Bucket registered for cleanup",
                bucket=bucket,
            )

    async def clean_bucket(self, bucket: str) -> None:
        """Delete one tracked bucket. Errors are logged, never raised."""
        try:
            access = await self.storage.bucket_exists(bucket)

            if access is BucketAccess.DENIED:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Not cleaning bucket since permissions are inadequate",
                    bucket=bucket,
                    access=access.value,
                )
            elif access is BucketAccess.GRANTED:
                log_with_context(logger, logging.INFO, "Cleaning bucket", bucket=bucket)
                await self.storage.delete_bucket_recursive(bucket)
            else:
                log_with_context(
                    logger,
                    logging.INFO,
                    "Not cleaning bucket since it doesn't exist",
                    bucket=bucket,
                    access=access.value,
                )
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to clean bucket",
                level=logging.WARNING,
                bucket=bucket,
            )

        if self._in_flight is not None:
            self._in_flight.pop(bucket, None)

    async def _cleanup(self) -> None:
        if self.initial_delay > 0:
            log_with_context(
                logger,
                logging.INFO,
                "Waiting before bucket cleanup",
                initial_delay_seconds=self.initial_delay,
            )
            await self._sleep(self.initial_delay)

        buckets = self.registry.drain()
        self._in_flight = dict.fromkeys(buckets)
        log_with_context(
            logger,
            logging.INFO,
            "Cleaning up buckets",
            buckets=buckets,
        )
        await asyncio.gather(*(self.clean_bucket(bucket) for bucket in buckets))

    def _pending(self) -> list[str]:
        if self._in_flight is not None:
            return list(self._in_flight)
        return self.registry.snapshot()

    async def shutdown(self) -> None:
        """
        Delete every tracked bucket.

        Returns immediately when cleanup is disabled.

        Raises:
            CleanupTimeoutError: If the initial delay plus all deletions do
                not finish within max_cleanup_timeout
        """
        if not self.cleanup_enabled:
            logger.debug("Bucket cleanup disabled, skipping")
            return

        self._in_flight = None
        try:
            await asyncio.wait_for(self._cleanup(), timeout=self.max_cleanup_timeout)
        except asyncio.TimeoutError as e:
            pending = self._pending()
            log_with_context(
                logger,
                logging.ERROR,
                "Bucket cleanup timed out",
                timeout_seconds=self.max_cleanup_timeout,
                buckets=pending,
            )
            raise CleanupTimeoutError(self.max_cleanup_timeout, pending) from e
        finally:
            self._in_flight = None


__all__ = [
    "CleanupRegistry",
    "BucketLifecycleManager",
    "DEFAULT_MAX_CLEANUP_TIMEOUT",
]
