"""Optional log file for the page cache."""

import logging
import os
from logging import getLogger

LOGGER_NAME = "fastapi_pagecache"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

logger = getLogger(__name__)


def configure_log_file(path: str | os.PathLike, level: int = logging.DEBUG) -> logging.Handler:
    """Send the package's log records to ``path``.

    Calling this again with the same path reuses the existing handler.
    """
    path = os.path.abspath(path)
    package_logger = getLogger(LOGGER_NAME)

    for handler in package_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == path:
            return handler

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    package_logger.addHandler(handler)
    if package_logger.level == logging.NOTSET or package_logger.level > level:
        package_logger.setLevel(level)

    logger.info("Logging page cache activity to <%s>", path)
    return handler
