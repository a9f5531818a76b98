"""
Harness facade for backup pipeline tests.

Wires bucket lifecycle, consistency polling, throttled emission and the
record codec together behind the handful of calls a test needs:

    harness = BackupHarness(config)
    bucket = harness.new_bucket_name()
    await harness.create_bucket(bucket)
    ...start the pipeline under test...
    await harness.wait_for_download(bucket, expect_count(3))
    records = await harness.download_records(bucket)
    ...
    await harness.after_all()
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import Executor
from typing import Any, Optional

from backup_harness import codec
from backup_harness.buckets import BucketLifecycleManager, CleanupRegistry
from backup_harness.config import HarnessConfig
from backup_harness.generators import bucket_name
from backup_harness.models import DomainRecord, ProducerRecord
from backup_harness.storage.s3 import S3StorageClient
from backup_harness.storage.types import ListingSnapshot, ObjectStorage
from backup_harness.throttle import Duration, ThrottledSource, emit, to_producer_records
from core.logging.context_managers import LogContext, log_operation
from core.resilience.polling import PollResult, wait_until

logger = logging.getLogger(__name__)


class BackupHarness:
    """
    Entry point for test authors.

    One instance per test suite. Buckets created through it are deleted by
    after_all() when cleanup is enabled in the config.
    """

    def __init__(
        self,
        config: HarnessConfig,
        storage: Optional[ObjectStorage] = None,
        registry: Optional[CleanupRegistry] = None,
        executor: Optional[Executor] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            config: Harness configuration
            storage: Object storage client (an S3StorageClient built from
                config when None)
            registry: Cleanup registry shared with other suites (private
                when None)
            executor: Executor for blocking storage calls
            sleep: Awaitable sleep for polling, pacing and cleanup delays
            rng: Random source for bucket names
        """
        self.config = config
        self._owns_storage = storage is None
        self.storage = storage if storage is not None else S3StorageClient(config, executor=executor)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._finished = False
        self.buckets = BucketLifecycleManager(
            self.storage,
            registry,
            cleanup_enabled=config.cleanup_enabled,
            initial_delay=config.cleanup_initial_delay or 0.0,
            max_cleanup_timeout=config.max_cleanup_timeout,
            sleep=sleep,
        )

    async def __aenter__(self) -> "BackupHarness":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.after_all()
        return False

    def new_bucket_name(self) -> str:
        return bucket_name(
            self.config.bucket_prefix,
            self.config.use_virtual_dot_host,
            self._rng,
        )

    async def create_bucket(self, bucket: str) -> None:
        """Create a clean bucket and track it for cleanup."""
        with LogContext(bucket=bucket):
            await self.buckets.create_bucket(bucket)

    async def wait_for_download(
        self,
        bucket: str,
        transform: Callable[[ListingSnapshot], PollResult],
        attempts: Optional[int] = None,
        delay: Optional[float] = None,
        prefix: Optional[str] = None,
    ) -> Any:
        """
        Poll the bucket listing until `transform` reports Ready.

        Defaults to config.poll_attempts and config.poll_delay.

        Raises:
            PollingExhaustedError: If the listing never became ready
        """
        with LogContext(bucket=bucket):
            return await wait_until(
                lambda: self.storage.list_objects(bucket, prefix),
                transform,
                attempts=attempts if attempts is not None else self.config.poll_attempts,
                delay=delay if delay is not None else self.config.poll_delay,
                sleep=self._sleep,
                operation="wait_for_download",
            )

    async def download_records(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        keys: Optional[Iterable[str]] = None,
    ) -> list[DomainRecord]:
        """
        Download and decode every backup object in chronological order.

        Object keys are sorted by the timestamp they are named after, objects
        are fetched concurrently, and sentinel (null) entries are dropped.

        Args:
            bucket: Bucket to read
            prefix: Only objects under this prefix
            keys: Object keys to read instead of listing the bucket

        Raises:
            MalformedPayloadError: If a key is not a timestamp or an object
                is not a valid record array
        """
        with LogContext(bucket=bucket), log_operation(
            logger, "download_records", bucket=bucket, prefix=prefix
        ) as op:
            if keys is None:
                keys = [summary.key for summary in await self.storage.list_objects(bucket, prefix)]
            ordered = codec.sort_keys_chronologically(list(keys))

            payloads = await asyncio.gather(
                *(self.storage.get_object(bucket, key) for key in ordered)
            )
            records = [
                record
                for payload in payloads
                for record in codec.present(codec.decode(payload))
            ]
            op.add_context(objects=len(ordered), records=len(records))
            return records

    def records_to_json(self, records: Iterable[Optional[DomainRecord]]) -> bytes:
        return codec.encode(records)

    def emit(self, records: Iterable[DomainRecord], duration: Duration) -> ThrottledSource:
        return emit(records, duration, sleep=self._sleep)

    def to_producer_records(
        self,
        records: Iterable[DomainRecord],
        topic: Optional[str] = None,
    ) -> list[ProducerRecord]:
        return to_producer_records(records, topic=topic)

    async def after_all(self) -> None:
        """
        Delete tracked buckets. Runs once; later calls are no-ops.

        A storage client the harness built itself is closed afterwards.
        """
        if self._finished:
            return
        self._finished = True
        try:
            await self.buckets.shutdown()
        finally:
            if self._owns_storage:
                await self.storage.close()


__all__ = ["BackupHarness"]
