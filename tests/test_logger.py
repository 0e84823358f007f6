import logging
import os
import tempfile
import unittest
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import patch

from genstudio import logger as logger_module


class TestLibraryLogger(unittest.TestCase):
    def setUp(self):
        self.logger = logging.getLogger(logger_module.LOGGER_NAME)
        self.saved_handlers = self.logger.handlers[:]
        self.saved_level = self.logger.level
        self.logger.handlers = []
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        for handler in self.logger.handlers:
            handler.close()
        self.logger.handlers = self.saved_handlers
        self.logger.setLevel(self.saved_level)
        self.tmp.cleanup()

    def test_file_handler_writes_under_log_dir(self):
        log_dir = Path(self.tmp.name) / "nested"
        with patch.dict(os.environ, {"GENSTUDIO_LOG_TO_FILE": "true", "GENSTUDIO_LOG_DIR": str(log_dir)}):
            logger = logger_module.init_library_logger(verbose=True)

        self.assertEqual(logger.level, logging.DEBUG)
        self.assertTrue(any(isinstance(h, RotatingFileHandler) for h in logger.handlers))
        self.assertTrue((log_dir / logger_module.LOG_FILE_NAME).exists())

    def test_environment_overrides_caller(self):
        with patch.dict(os.environ, {"GENSTUDIO_LOG_TO_FILE": "no", "GENSTUDIO_LOG_LEVEL": "WARNING"}):
            logger = logger_module.init_library_logger(verbose=True, log_to_file=True)

        self.assertEqual(logger.level, logging.WARNING)
        self.assertEqual(len(logger.handlers), 1)

    def test_handlers_are_attached_once(self):
        logger_module.setup_logger("INFO")
        logger_module.setup_logger("DEBUG")
        self.assertEqual(len(self.logger.handlers), 1)
        self.assertEqual(self.logger.level, logging.INFO)


if __name__ == "__main__":
    unittest.main()
