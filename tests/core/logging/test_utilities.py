"""Tests for logging utility functions."""

import logging
from unittest.mock import MagicMock

from core.errors.exceptions import BucketConflictError
from core.logging.utilities import (
    _RESERVED_LOG_KEYS,
    log_exception,
    log_with_context,
)


class TestLogWithContext:

    def test_logs_message_at_given_level(self):
        logger = MagicMock()
        log_with_context(logger, logging.INFO, "test message")

        logger.log.assert_called_once_with(
            logging.INFO, "test message", exc_info=None, extra={}
        )

    def test_passes_extra_fields(self):
        logger = MagicMock()
        log_with_context(logger, logging.DEBUG, "Listed bucket", bucket="b", objects=3)

        logger.log.assert_called_once_with(
            logging.DEBUG, "Listed bucket", exc_info=None, extra={"bucket": "b", "objects": 3}
        )

    def test_filters_reserved_keys(self):
        logger = MagicMock()
        log_with_context(logger, logging.INFO, "msg", name="clash", module="clash", bucket="b")

        extra = logger.log.call_args[1]["extra"]
        assert extra == {"bucket": "b"}
        assert "name" in _RESERVED_LOG_KEYS

    def test_exc_info_passed_through(self):
        logger = MagicMock()
        log_with_context(logger, logging.ERROR, "msg", exc_info=True)

        assert logger.log.call_args[1]["exc_info"] is True


class TestLogException:

    def test_includes_traceback_by_default(self):
        logger = MagicMock()
        exc = ValueError("bad")
        log_exception(logger, exc, "Failed")

        args, kwargs = logger.log.call_args
        assert args == (logging.ERROR, "Failed")
        assert kwargs["exc_info"] is exc
        assert kwargs["extra"]["error_message"] == "bad"

    def test_extracts_category_from_harness_errors(self):
        logger = MagicMock()
        log_exception(logger, BucketConflictError("b"), "Conflict", bucket="b")

        extra = logger.log.call_args[1]["extra"]
        assert extra["error_category"] == "permanent"
        assert extra["bucket"] == "b"

    def test_truncates_long_messages(self):
        logger = MagicMock()
        log_exception(logger, RuntimeError("x" * 1000), "Failed", include_traceback=False)

        extra = logger.log.call_args[1]["extra"]
        assert len(extra["error_message"]) == 503
        assert "exc_info" not in logger.log.call_args[1]

    def test_custom_level(self):
        logger = MagicMock()
        log_exception(logger, RuntimeError("x"), "Cleanup failed", level=logging.WARNING)

        assert logger.log.call_args[0][0] == logging.WARNING
