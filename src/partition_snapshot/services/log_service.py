from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "partition_snapshot"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_path: Path,
    *,
    debug: bool = False,
    verbose: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    keep_archives: int = 5,
) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    file_error: OSError | None = None
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=int(max_bytes),
            backupCount=int(keep_archives),
            encoding="utf-8",
        )
    except OSError as e:
        file_error = e
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if verbose or file_error is not None:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file_error is not None:
        logger.warning("Cannot open log file %s (%s); logging to stderr", log_path, file_error)
    return logger


__all__ = ["setup_logging", "LOGGER_NAME"]
