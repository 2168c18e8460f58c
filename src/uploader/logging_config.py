"""
Logging setup for the upload service.

- app.log: everything at LOG_LEVEL and above
- error.log: ERROR and above only
Both files rotate at 10MB with 5 backups.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from uploader.settings import LOG_DIR, LOG_LEVEL

_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5


def setup_logging(log_dir: str | None = None, level: str | None = None) -> logging.Logger:
    directory = Path(log_dir or LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level or LOG_LEVEL)
    root_logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s [%(name)s:%(lineno)d] - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s - %(message)s",
        datefmt="%H:%M:%S",
    )

    app_log_file = directory / "app.log"
    file_handler = RotatingFileHandler(
        app_log_file, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(file_handler)

    error_log_file = directory / "error.log"
    error_handler = RotatingFileHandler(
        error_log_file, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(error_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    # request lines and connection pool chatter
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {app_log_file}, {error_log_file}")
    return logger
