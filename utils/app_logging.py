"""Logging configuration for the pin session tools."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def _resolve_level(level_name: Optional[str]) -> int:
    name = (level_name or os.environ.get("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(level: Optional[str] = None,
                  log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Level name; falls back to $LOG_LEVEL, then INFO
        log_file: Optional path for a rotating log file (10MB x 3)

    Returns:
        The root logger
    """
    log_level = _resolve_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(log_level)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=3)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def set_log_level(level_name: str):
    """Change the log level at runtime."""
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        logging.getLogger(__name__).warning(f"Invalid log level: {level_name}")
        return
    logging.getLogger().setLevel(level)
