"""
Logging setup for Tidings.

The terminal belongs to the user, so diagnostics go to a rotating file
in the data directory. Set TIDINGS_DEBUG=1 for debug-level output.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from tidings.config import get_log_path

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"


def setup_logging(log_path: Path | None = None, debug: bool | None = None) -> logging.Logger:
    """
    Configure the `tidings` logger.

    Safe to call more than once; handlers are only attached the first time.
    """
    logger = logging.getLogger("tidings")
    if debug is None:
        debug = bool(os.environ.get("TIDINGS_DEBUG"))
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    if logger.handlers:
        return logger

    log_path = log_path or get_log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(log_path, maxBytes=1_024_000, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
