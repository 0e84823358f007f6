"""
Logging for genstudio.

Console output is message-only so CLI status lines stay readable; the
optional rotating file under ``GENSTUDIO_LOG_DIR`` (default ``logs/``)
gets timestamps and levels. ``GENSTUDIO_LOG_LEVEL`` and
``GENSTUDIO_LOG_TO_FILE`` override what the caller asked for.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "genstudio"
LOG_FILE_NAME = "genstudio.log"

_library_logger: Optional[logging.Logger] = None


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def setup_logger(level: str, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Attach console and, when ``log_dir`` is given, file handlers.

    Handlers are only attached once per process.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(numeric_level)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILE_NAME
        # 10MB per file, 5 backups
        file_handler = RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)
        logger.debug(f"Logging to: {log_file}")

    return logger


def init_library_logger(verbose: bool = False, log_to_file: bool = True) -> logging.Logger:
    """
    Initialize the library-wide logger.

    Args:
        verbose: DEBUG on the console instead of INFO
        log_to_file: Also write to the rotating log file

    Returns:
        Configured logger
    """
    global _library_logger

    level = os.getenv("GENSTUDIO_LOG_LEVEL") or ("DEBUG" if verbose else "INFO")
    log_dir = None
    if _env_flag("GENSTUDIO_LOG_TO_FILE", log_to_file):
        log_dir = Path(os.getenv("GENSTUDIO_LOG_DIR", "logs"))

    _library_logger = setup_logger(level, log_dir)
    return _library_logger


def get_library_logger() -> logging.Logger:
    """Get the library-wide logger, initializing it on first use."""
    global _library_logger

    if _library_logger is None:
        _library_logger = init_library_logger()
    return _library_logger
