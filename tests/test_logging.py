"""Tests for localens.utils.logging."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from localens.utils.logging import PACKAGE_NAME, LogContext, setup_logging


class TestSetupLogging:
    def test_console_handler_only(self):
        setup_logging(level="DEBUG")

        logger = logging.getLogger(PACKAGE_NAME)
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)

    def test_repeated_setup_does_not_duplicate(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger(PACKAGE_NAME).handlers) == 1

    def test_file_handler(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "localens.log"

        setup_logging(level="INFO", log_file=log_file)
        logger = logging.getLogger(PACKAGE_NAME)
        logger.info("written to file")
        for handler in logger.handlers:
            handler.flush()

        assert "written to file" in log_file.read_text(encoding="utf-8")
        for handler in logger.handlers:
            handler.close()

    def test_unknown_level_defaults_to_warning(self):
        setup_logging(level="chatty")
        assert logging.getLogger(PACKAGE_NAME).level == logging.WARNING

    def test_noisy_loggers_quieted(self):
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        setup_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestLogContext:
    @pytest.fixture
    def logger(self) -> logging.Logger:
        logger = logging.getLogger("localens.test_context")
        logger.propagate = True
        return logger

    def test_success(self, logger, caplog):
        with caplog.at_level(logging.INFO, logger=logger.name):
            with LogContext("Analysis of street.png", logger=logger) as ctx:
                pass

        assert ctx.elapsed >= 0
        assert "Analysis of street.png..." in caplog.text
        assert "Analysis of street.png completed in" in caplog.text

    def test_failure_is_logged_and_reraised(self, logger, caplog):
        with caplog.at_level(logging.INFO, logger=logger.name):
            with pytest.raises(RuntimeError):
                with LogContext("Analysis of street.png", logger=logger):
                    raise RuntimeError("boom")

        assert "failed after" in caplog.text
        assert "boom" in caplog.text
