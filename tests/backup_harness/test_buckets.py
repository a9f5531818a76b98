"""
Tests for bucket lifecycle management.

Test Coverage:
    - CleanupRegistry ordering, idempotency and thread safety
    - create_bucket per access state (absent, granted, denied)
    - clean_bucket never raising
    - shutdown: disabled, initial delay, concurrency, timeout
"""

import asyncio
import threading
from unittest.mock import AsyncMock, call

import pytest

from backup_harness.buckets import BucketLifecycleManager, CleanupRegistry
from backup_harness.storage.types import BucketAccess
from core.errors.exceptions import BucketConflictError, CleanupTimeoutError, StorageError


@pytest.fixture
def storage():
    """Object storage mock where every bucket is absent."""
    mock = AsyncMock()
    mock.bucket_exists.return_value = BucketAccess.ABSENT
    return mock


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


# =========================================================================
# CleanupRegistry
# =========================================================================


class TestCleanupRegistry:
    def test_add_and_snapshot_keep_order(self):
        registry = CleanupRegistry()
        for name in ["c", "a", "b"]:
            registry.add(name)

        assert registry.snapshot() == ["c", "a", "b"]
        assert len(registry) == 3
        assert "a" in registry

    def test_add_is_idempotent(self):
        registry = CleanupRegistry()

        assert registry.add("a") is True
        assert registry.add("a") is False
        assert registry.snapshot() == ["a"]

    def test_drain_empties(self):
        registry = CleanupRegistry()
        registry.add("a")
        registry.add("b")

        assert registry.drain() == ["a", "b"]
        assert len(registry) == 0
        assert registry.drain() == []

    def test_snapshot_is_a_copy(self):
        registry = CleanupRegistry()
        registry.add("a")
        registry.snapshot().append("b")

        assert registry.snapshot() == ["a"]

    def test_concurrent_adds_from_threads(self):
        registry = CleanupRegistry()

        def worker(offset):
            for i in range(200):
                registry.add(f"bucket-{(offset + i) % 300}")

        threads = [threading.Thread(target=worker, args=(n * 100,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 300
        assert len(set(registry.snapshot())) == 300


# =========================================================================
# create_bucket
# =========================================================================


class TestCreateBucket:
    @pytest.mark.asyncio
    async def test_absent_bucket_is_created(self, storage):
        manager = BucketLifecycleManager(storage)

        await manager.create_bucket("guardian-a")

        storage.create_bucket.assert_awaited_once_with("guardian-a")
        storage.delete_bucket_recursive.assert_not_awaited()
        assert "guardian-a" in manager.registry

    @pytest.mark.asyncio
    async def test_granted_bucket_is_recreated_empty(self, storage):
        storage.bucket_exists.return_value = BucketAccess.GRANTED
        manager = BucketLifecycleManager(storage)

        await manager.create_bucket("guardian-a")

        assert storage.mock_calls[1:] == [
            call.delete_bucket_recursive("guardian-a"),
            call.create_bucket("guardian-a"),
        ]

    @pytest.mark.asyncio
    async def test_denied_bucket_raises_conflict(self, storage):
        storage.bucket_exists.return_value = BucketAccess.DENIED
        manager = BucketLifecycleManager(storage)

        with pytest.raises(BucketConflictError) as exc_info:
            await manager.create_bucket("guardian-a")

        assert exc_info.value.bucket == "guardian-a"
        assert "permissions are inadequate" in str(exc_info.value)
        storage.create_bucket.assert_not_awaited()
        storage.delete_bucket_recursive.assert_not_awaited()
        assert len(manager.registry) == 0

    @pytest.mark.asyncio
    async def test_not_registered_when_cleanup_disabled(self, storage):
        manager = BucketLifecycleManager(storage, cleanup_enabled=False)

        await manager.create_bucket("guardian-a")

        assert len(manager.registry) == 0

    @pytest.mark.asyncio
    async def test_storage_error_propagates_without_registration(self, storage):
        storage.create_bucket.side_effect = StorageError("boom")
        manager = BucketLifecycleManager(storage)

        with pytest.raises(StorageError):
            await manager.create_bucket("guardian-a")

        assert len(manager.registry) == 0

    @pytest.mark.asyncio
    async def test_shared_registry(self, storage):
        registry = CleanupRegistry()
        first = BucketLifecycleManager(storage, registry)
        second = BucketLifecycleManager(storage, registry)

        await first.create_bucket("guardian-a")
        await second.create_bucket("guardian-b")
        await second.create_bucket("guardian-a")

        assert registry.snapshot() == ["guardian-a", "guardian-b"]


# =========================================================================
# clean_bucket
# =========================================================================


class TestCleanBucket:
    @pytest.mark.asyncio
    async def test_granted_bucket_is_deleted(self, storage):
        storage.bucket_exists.return_value = BucketAccess.GRANTED
        manager = BucketLifecycleManager(storage)

        await manager.clean_bucket("guardian-a")

        storage.delete_bucket_recursive.assert_awaited_once_with("guardian-a")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("access", [BucketAccess.DENIED, BucketAccess.ABSENT])
    async def test_other_states_are_left_alone(self, storage, access):
        storage.bucket_exists.return_value = access
        manager = BucketLifecycleManager(storage)

        await manager.clean_bucket("guardian-a")

        storage.delete_bucket_recursive.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_errors_are_logged_not_raised(self, storage, caplog):
        storage.bucket_exists.return_value = BucketAccess.GRANTED
        storage.delete_bucket_recursive.side_effect = StorageError("delete failed")
        manager = BucketLifecycleManager(storage)

        await manager.clean_bucket("guardian-a")

        assert "Failed to clean bucket" in caplog.text

    @pytest.mark.asyncio
    async def test_existence_check_error_is_logged(self, storage):
        storage.bucket_exists.side_effect = StorageError("head failed")
        manager = BucketLifecycleManager(storage)

        await manager.clean_bucket("guardian-a")

        storage.delete_bucket_recursive.assert_not_awaited()


# =========================================================================
# shutdown
# =========================================================================


class TestShutdown:
    def test_rejects_invalid_settings(self, storage):
        with pytest.raises(ValueError):
            BucketLifecycleManager(storage, initial_delay=-1)
        with pytest.raises(ValueError):
            BucketLifecycleManager(storage, max_cleanup_timeout=0)

    @pytest.mark.asyncio
    async def test_disabled_returns_immediately(self, storage):
        sleep = RecordingSleep()
        manager = BucketLifecycleManager(
            storage, cleanup_enabled=False, initial_delay=5, sleep=sleep
        )
        manager.registry.add("guardian-a")

        await manager.shutdown()

        assert sleep.delays == []
        storage.bucket_exists.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_waits_initial_delay_then_deletes(self, storage):
        storage.bucket_exists.return_value = BucketAccess.GRANTED
        sleep = RecordingSleep()
        manager = BucketLifecycleManager(storage, initial_delay=5, sleep=sleep)
        await manager.create_bucket("guardian-a")
        await manager.create_bucket("guardian-b")
        storage.reset_mock()

        await manager.shutdown()

        assert sleep.delays == [5]
        assert storage.delete_bucket_recursive.await_args_list == [
            call("guardian-a"),
            call("guardian-b"),
        ]
        assert len(manager.registry) == 0

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self, storage):
        sleep = RecordingSleep()
        manager = BucketLifecycleManager(storage, initial_delay=0, sleep=sleep)
        manager.registry.add("guardian-a")

        await manager.shutdown()

        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_deletes_concurrently(self, storage):
        storage.bucket_exists.return_value = BucketAccess.GRANTED
        running = 0
        peak = 0

        async def delete(bucket):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        storage.delete_bucket_recursive.side_effect = delete
        manager = BucketLifecycleManager(storage)
        for name in ["a", "b", "c"]:
            manager.registry.add(f"guardian-{name}")

        await manager.shutdown()

        assert peak == 3

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self, storage):
        storage.bucket_exists.return_value = BucketAccess.GRANTED

        async def delete(bucket):
            if bucket == "guardian-a":
                raise StorageError("delete failed")

        storage.delete_bucket_recursive.side_effect = delete
        manager = BucketLifecycleManager(storage)
        manager.registry.add("guardian-a")
        manager.registry.add("guardian-b")

        await manager.shutdown()

        assert storage.delete_bucket_recursive.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_reports_unfinished_buckets(self, storage):
        storage.bucket_exists.return_value = BucketAccess.GRANTED
        never = asyncio.Event()

        async def delete(bucket):
            if bucket == "guardian-slow":
                await never.wait()

        storage.delete_bucket_recursive.side_effect = delete
        manager = BucketLifecycleManager(storage, max_cleanup_timeout=0.05)
        manager.registry.add("guardian-fast")
        manager.registry.add("guardian-slow")

        with pytest.raises(CleanupTimeoutError) as exc_info:
            await manager.shutdown()

        assert exc_info.value.buckets == ["guardian-slow"]
        assert exc_info.value.timeout == 0.05
        assert "guardian-slow" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_during_initial_delay_reports_all_buckets(self, storage):
        manager = BucketLifecycleManager(storage, initial_delay=10, max_cleanup_timeout=0.05)
        manager.registry.add("guardian-a")
        manager.registry.add("guardian-b")

        with pytest.raises(CleanupTimeoutError) as exc_info:
            await manager.shutdown()

        assert exc_info.value.buckets == ["guardian-a", "guardian-b"]
        storage.bucket_exists.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nothing_registered(self, storage):
        manager = BucketLifecycleManager(storage)

        await manager.shutdown()

        storage.bucket_exists.assert_not_awaited()
