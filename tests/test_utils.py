"""Tests for logging setup and retry_with_backoff."""

import json
import logging
from unittest.mock import MagicMock

import pytest
from rich.logging import RichHandler

from stepwright.utils import StructuredFormatter, retry_with_backoff, setup_logging


class TestRetryWithBackoff:
    def test_first_try(self):
        func = MagicMock(return_value="ok")
        assert retry_with_backoff(func) == "ok"
        func.assert_called_once()

    def test_retries_then_succeeds(self):
        sleeps = []
        func = MagicMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
        result = retry_with_backoff(func, max_attempts=3, backoff_seconds=1, sleep=sleeps.append)
        assert result == "ok"
        assert sleeps == [1, 2]

    def test_exhausted(self):
        func = MagicMock(side_effect=ConnectionError("down"))
        log = MagicMock()
        with pytest.raises(ConnectionError, match="down"):
            retry_with_backoff(func, max_attempts=3, logger=log, sleep=lambda s: None)
        assert func.call_count == 3
        assert log.warning.call_count == 2
        log.error.assert_called_once()

    def test_non_retryable_raised_immediately(self):
        func = MagicMock(side_effect=ValueError("bad"))
        with pytest.raises(ValueError):
            retry_with_backoff(
                func,
                max_attempts=5,
                retryable=lambda e: not isinstance(e, ValueError),
                sleep=lambda s: None,
            )
        func.assert_called_once()

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            retry_with_backoff(lambda: None, max_attempts=0)


class TestStructuredFormatter:
    def test_includes_extras(self):
        record = logging.LogRecord("stepwright.test", logging.INFO, __file__, 1, "hello %s", ("x",), None)
        record.run_id = "01RUN"
        record.step_index = 2
        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "hello x"
        assert data["level"] == "INFO"
        assert data["run_id"] == "01RUN"
        assert data["step_index"] == 2
        assert "event" not in data


class TestSetupLogging:
    def test_structured_file_logging(self, tmp_path):
        log_file = tmp_path / "logs" / "stepwright.log"
        logger = setup_logging(log_file=log_file, log_level="DEBUG", console_output=False)
        logger.info("run started", extra={"run_id": "01RUN"})
        for handler in logger.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["run_id"] == "01RUN"
        assert logger.level == logging.DEBUG

    def test_pretty_console_uses_rich(self):
        logger = setup_logging(log_format="pretty")
        assert any(isinstance(h, RichHandler) for h in logger.handlers)

    def test_handlers_replaced(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1
