"""
Tests for yield_tracker.logger.
"""

import logging
import os
import shutil
import tempfile
import unittest
from logging.handlers import RotatingFileHandler

from yield_tracker.config import TrackerSettings
from yield_tracker.logger import service_log_file, setup_logger, setup_service_logger


class TestLogger(unittest.TestCase):
    """Tests for the logging helpers."""

    def setUp(self):
        self.log_dir = tempfile.mkdtemp()
        self.log_file = os.path.join(self.log_dir, "test.log")

        # Remember handlers so tests do not leak configuration
        self.saved_handlers = {}
        for name in list(logging.root.manager.loggerDict.keys()) + ["yield_tracker"]:
            logger = logging.getLogger(name)
            self.saved_handlers[name] = (logger.handlers.copy(), logger.level)

    def tearDown(self):
        for name, (handlers, level) in self.saved_handlers.items():
            logger = logging.getLogger(name)
            for handler in logger.handlers:
                if handler not in handlers:
                    handler.close()
            logger.handlers = handlers
            logger.setLevel(level)
        shutil.rmtree(self.log_dir, ignore_errors=True)

    def test_setup_logger_file_only(self):
        logger = setup_logger("test_file_only", log_file=self.log_file, console=False)

        self.assertEqual(len(logger.handlers), 1)
        self.assertIsInstance(logger.handlers[0], RotatingFileHandler)

        logger.info("Test message to file")
        logger.handlers[0].flush()
        with open(self.log_file) as f:
            self.assertIn("Test message to file", f.read())

    def test_setup_logger_console_only(self):
        logger = setup_logger("test_console_only", log_file=None, console=True)

        self.assertEqual(len(logger.handlers), 1)
        self.assertIsInstance(logger.handlers[0], logging.StreamHandler)

    def test_setup_logger_both(self):
        logger = setup_logger("test_both", log_file=self.log_file, console=True)

        handler_types = [type(h) for h in logger.handlers]
        self.assertEqual(len(handler_types), 2)
        self.assertIn(RotatingFileHandler, handler_types)
        self.assertIn(logging.StreamHandler, handler_types)

    def test_setup_logger_is_idempotent(self):
        setup_logger("test_twice")
        logger = setup_logger("test_twice")

        self.assertEqual(len(logger.handlers), 1)

    def test_setup_logger_level(self):
        self.assertEqual(setup_logger("test_level_string", log_level="ERROR").level, logging.ERROR)
        self.assertEqual(setup_logger("test_level_const", log_level=logging.DEBUG).level, logging.DEBUG)
        self.assertEqual(setup_logger("test_level_bogus", log_level="LOUD").level, logging.INFO)

    def test_setup_service_logger(self):
        settings = TrackerSettings(
            log_level="DEBUG",
            log_file=self.log_file,
            console_logs=False,
            log_format="%(levelname)s - %(message)s",
        )

        logger = setup_service_logger(settings)

        self.assertEqual(logger.name, "yield_tracker")
        self.assertEqual(logger.level, logging.DEBUG)

        logging.getLogger("yield_tracker.indexer").debug("child message")
        logger.handlers[0].flush()
        with open(self.log_file) as f:
            self.assertIn("DEBUG - child message", f.read())

    def test_setup_service_logger_log_dir(self):
        settings = TrackerSettings(log_dir=os.path.join(self.log_dir, "logs"), console_logs=False)

        logger = setup_service_logger(settings, service_name="api")
        logger.info("Test service logger with log_dir")
        logger.handlers[0].flush()

        expected_log_file = os.path.join(self.log_dir, "logs", "api.log")
        with open(expected_log_file) as f:
            self.assertIn("Test service logger with log_dir", f.read())

    def test_service_log_file(self):
        self.assertIsNone(service_log_file(TrackerSettings(), "indexer"))
        self.assertEqual(
            service_log_file(TrackerSettings(log_dir="logs"), "indexer"),
            os.path.join("logs", "indexer.log"),
        )
        self.assertEqual(
            service_log_file(TrackerSettings(log_dir="logs", log_file="/var/log/yt.log"), "api"),
            "/var/log/yt.log",
        )


if __name__ == "__main__":
    unittest.main()
