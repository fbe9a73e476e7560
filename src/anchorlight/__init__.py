"""anchorlight - relocate and re-highlight text passages in HTML documents.

Captures a selected passage with enough context to find it again after the
page reloads or its markup shifts, and marks it without corrupting the tree.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from anchorlight.config import get_settings

__version__ = "0.1.0"


def _setup_logging() -> None:
    """Configure logging to both console and rotating file."""
    app_config = get_settings().app
    log_dir = app_config.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"anchorlight.{os.getpid()}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # File handler - detailed logging with rotation (10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_formatter)

    # Console handler - less verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(app_config.log_level.upper())
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.info("Logging configured. Log file: %s", log_file.absolute())
