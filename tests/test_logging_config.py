# tests/test_logging_config.py

"""Tests for the per-run logging configuration."""

import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from shopsavvy.config.logging_config import setup_logging
from shopsavvy.config.settings import Settings


class TestLoggingConfig(unittest.TestCase):
    """Verify logging setup behaviour."""

    def setUp(self) -> None:
        """Clean up the shopsavvy logger and redirect logs/."""
        self._root_logger = logging.getLogger("shopsavvy")
        self._close_handlers()
        self._tmp = tempfile.TemporaryDirectory()
        logs_dir = Path(self._tmp.name) / "logs"
        patcher = patch.object(Settings, "LOGS_DIR", logs_dir)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._close_handlers()
        self._tmp.cleanup()

    def _close_handlers(self) -> None:
        for handler in list(self._root_logger.handlers):
            handler.close()
        self._root_logger.handlers.clear()

    def test_setup_creates_log_file(self) -> None:
        """setup_logging returns a path that exists on disk."""
        log_path = setup_logging()
        self.assertTrue(log_path.exists())

    def test_log_file_naming_convention(self) -> None:
        """Log file name matches run_YYYYMMDD_HHMMSS.log format."""
        log_path = setup_logging()
        self.assertRegex(log_path.name, r"^run_\d{8}_\d{6}\.log$")

    def test_file_handler_level_debug(self) -> None:
        setup_logging()
        file_handlers = [
            h
            for h in self._root_logger.handlers
            if isinstance(h, logging.FileHandler)
        ]
        self.assertEqual(len(file_handlers), 1)
        self.assertEqual(file_handlers[0].level, logging.DEBUG)

    def test_console_handler_level_warning(self) -> None:
        setup_logging()
        stream_handlers = [
            h
            for h in self._root_logger.handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]
        self.assertEqual(len(stream_handlers), 1)
        self.assertEqual(stream_handlers[0].level, logging.WARNING)

    def test_repeated_calls_no_duplicate_handlers(self) -> None:
        """Calling setup_logging twice does not duplicate handlers."""
        setup_logging()
        count_before = len(self._root_logger.handlers)
        setup_logging()
        self.assertEqual(count_before, len(self._root_logger.handlers))

    def test_source_loggers_propagate_to_file(self) -> None:
        """Adapter loggers are children of the project logger."""
        log_path = setup_logging()
        logging.getLogger("shopsavvy.lazada").info("[lazada] hello")
        for handler in self._root_logger.handlers:
            handler.flush()
        self.assertIn("[lazada] hello", log_path.read_text(encoding="utf-8"))

    def test_noisy_libraries_silenced(self) -> None:
        setup_logging()
        self.assertEqual(
            logging.getLogger("playwright").level, logging.WARNING
        )


if __name__ == "__main__":
    unittest.main()
