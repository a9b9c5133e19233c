from __future__ import annotations

import logging
import sys
from typing import TextIO

from .config import LoggingSettings

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "borg_timemachine"


def configure_logging(
    settings: LoggingSettings | None,
    *,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Send package logs to the console and, when configured, to the log file.

    Calling this again replaces the handlers installed by the previous call.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(formatter)
    package_logger.addHandler(console)

    log_file = settings.log_file if settings else None
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as exc:
            package_logger.warning("Cannot open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)
    return package_logger
