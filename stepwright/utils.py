"""
Logging and retry helpers shared across stepwright.

- setup_logging(): configure the "stepwright" logger (JSON lines or rich console)
- StructuredFormatter: JSON log records carrying run/step context
- retry_with_backoff(): exponential backoff for flaky writes
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from rich.console import Console
from rich.logging import RichHandler


# Shared console for CLI output
console = Console()

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _file_handler(log_file: Path, log_format: str) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    if log_format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    return handler


def _console_handler(log_format: str) -> logging.Handler:
    if log_format == "pretty":
        return RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_time=False)
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(
    log_file: Optional[Path] = None,
    log_level: str = "INFO",
    log_format: str = "structured",
    console_output: bool = True,
) -> logging.Logger:
    """
    Configure the "stepwright" logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        log_file: Also write records to this file
        log_level: Level name (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" for JSON lines, "pretty" for rich console output
        console_output: Emit records on stderr

    Returns:
        The configured logger
    """
    logger = logging.getLogger("stepwright")
    logger.setLevel(getattr(logging, log_level.upper()))
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    if log_file is not None:
        logger.addHandler(_file_handler(log_file, log_format))
    if console_output:
        logger.addHandler(_console_handler(log_format))

    return logger


class StructuredFormatter(logging.Formatter):
    """Render each record as one JSON object."""

    EXTRA_FIELDS = ("run_id", "job_id", "step_index", "event", "metadata")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in self.EXTRA_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def retry_with_backoff(
    func: Callable[[], Any],
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    backoff_multiplier: float = 2.0,
    logger: Optional[logging.Logger] = None,
    retryable: Optional[Callable[[Exception], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Call `func` until it succeeds, sleeping longer after each failure.

    Args:
        func: Zero-argument callable
        max_attempts: Total number of calls allowed
        backoff_seconds: Delay after the first failure
        backoff_multiplier: Growth factor for each later delay
        logger: Receives a warning per retry and an error when giving up
        retryable: Decides whether an error may be retried (every error is
            retried when omitted)
        sleep: Delay function, replaceable in tests

    Returns:
        Whatever `func` returns

    Raises:
        Exception: The error from the final attempt, or the first error
            that is not retryable
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    delay = backoff_seconds
    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except Exception as e:
            if retryable is not None and not retryable(e):
                raise
            if attempt == max_attempts:
                if logger:
                    logger.error(f"Giving up after {max_attempts} attempts: {e}")
                raise
            if logger:
                logger.warning(f"Attempt {attempt}/{max_attempts} failed: {e}; retrying in {delay:g}s")
            sleep(delay)
            delay *= backoff_multiplier
