"""
Logging setup for applications embedding orchlink.
"""
import logging
import sys
from typing import Union

LOGGER_NAME = "orchlink"
LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Attach a console handler to the package logger.
    Calling it again only updates the level.

    Args:
        level: Logging level name or number.

    Returns:
        The package logger.
    """
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(level)

    if not any(getattr(h, "_orchlink", False) for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._orchlink = True
        package_logger.addHandler(handler)

    return package_logger
