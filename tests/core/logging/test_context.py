"""Tests for core.logging.context module."""

import asyncio

import pytest

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)


class TestLogContext:
    def setup_method(self):
        clear_log_context()

    def teardown_method(self):
        clear_log_context()

    def test_defaults_are_empty(self):
        ctx = get_log_context()
        assert ctx == {"suite": "", "stage": "", "bucket": "", "trace_id": ""}

    def test_set_all_fields(self):
        set_log_context(suite="s3-backup", stage="cleanup", bucket="b1", trace_id="t1")
        ctx = get_log_context()
        assert ctx["suite"] == "s3-backup"
        assert ctx["stage"] == "cleanup"
        assert ctx["bucket"] == "b1"
        assert ctx["trace_id"] == "t1"

    def test_none_leaves_field_unchanged(self):
        set_log_context(bucket="b1")
        set_log_context(suite="s")
        assert get_log_context()["bucket"] == "b1"

    def test_clear(self):
        set_log_context(suite="s", bucket="b")
        clear_log_context()
        assert get_log_context()["suite"] == ""
        assert get_log_context()["bucket"] == ""

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        """Concurrent tests tag their own bucket without leaking into each other."""

        async def tag(bucket):
            set_log_context(bucket=bucket)
            await asyncio.sleep(0)
            return get_log_context()["bucket"]

        results = await asyncio.gather(tag("a"), tag("b"))

        assert results == ["a", "b"]
        assert get_log_context()["bucket"] == ""
