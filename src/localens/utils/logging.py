"""Logging configuration for LocaLens.

Provides centralized logging setup with Rich console formatting
and optional file logging.

Example:
    >>> from localens.utils.logging import setup_logging, LogContext
    >>> setup_logging(level="DEBUG")
    >>> with LogContext("Analyzing street.jpg"):
    ...     result = analyze_image(image, api_key)
    ... # Logs: "Analyzing street.jpg completed in 12.40s"
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Package logger name
PACKAGE_NAME = "localens"

# Noisy third-party loggers to filter
NOISY_LOGGERS = [
    "google_genai",
    "google.auth",
    "urllib3",
    "httpx",
    "httpcore",
    "PIL",
    "keyring",
]

# Log format for file handler
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Console for Rich handler
_console = Console(stderr=True)


def setup_logging(
    level: str = "WARNING",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure logging for the localens package.

    Sets up a Rich console handler on stderr and optionally a file handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file.
        quiet_third_party: If True, suppress noisy third-party loggers.
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger(PACKAGE_NAME)
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers = []

    console_handler = RichHandler(
        console=_console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=numeric_level == logging.DEBUG,
        markup=False,
    )
    console_handler.setLevel(numeric_level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if quiet_third_party:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.propagate = False
    root_logger.debug(f"Logging configured: level={level}, file={log_file}")


class LogContext:
    """Context manager for timing and logging operations.

    Attributes:
        message: Description of the operation.
        level: Log level for messages.
        logger: Logger instance to use.
        elapsed: Elapsed time in seconds (after exit).
    """

    def __init__(
        self,
        message: str,
        level: int = logging.INFO,
        logger: logging.Logger | None = None,
    ) -> None:
        self.message = message
        self.level = level
        self.logger = logger or logging.getLogger(PACKAGE_NAME)
        self.elapsed: float = 0.0
        self._start_time: float = 0.0

    def __enter__(self) -> "LogContext":
        self._start_time = time.perf_counter()
        self.logger.log(self.level, f"{self.message}...")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.elapsed = time.perf_counter() - self._start_time

        if exc_type is not None:
            self.logger.error(f"{self.message} failed after {self.elapsed:.2f}s: {exc_val}")
        else:
            self.logger.log(self.level, f"{self.message} completed in {self.elapsed:.2f}s")
