# SPDX-License-Identifier: MIT

"""Application-wide logging configuration."""

import logging
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler

from trackmirror import configuration

_LOGGER_INITIALIZED = False

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"
DEFAULT_LOG_LEVEL = logging.INFO


def _build_handlers() -> list[logging.Handler]:
    configuration.LOG_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        configuration.LOG_PATH,
        maxBytes=5_000_000,
        backupCount=5,
        encoding="utf-8",
        delay=True,
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # Only problems reach the terminal; everything else goes to the file
    console_handler = RichHandler(
        console=Console(stderr=True), show_path=False, rich_tracebacks=True
    )
    console_handler.setLevel(logging.WARNING)
    return [file_handler, console_handler]


def configure_logging(
    level: int | str = DEFAULT_LOG_LEVEL,
    extra_handlers: Optional[Iterable[logging.Handler]] = None,
) -> logging.Logger:
    """Configure the shared application logger and return it."""
    global _LOGGER_INITIALIZED
    logger = logging.getLogger("trackmirror")
    if _LOGGER_INITIALIZED:
        if level:
            logger.setLevel(level)
        return logger

    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handlers = _build_handlers()
    if extra_handlers:
        handlers.extend(extra_handlers)

    for handler in handlers:
        logger.addHandler(handler)

    logging.captureWarnings(True)

    _LOGGER_INITIALIZED = True
    logger.info(
        "Logging initialized", extra={"event": "logging_configured", "level": level}
    )
    return logger


def reset_logging() -> None:
    """Close the application handlers so logging can be configured again."""
    global _LOGGER_INITIALIZED
    logger = logging.getLogger("trackmirror")
    for handler in list(logger.handlers):
        try:
            handler.close()
        finally:
            logger.removeHandler(handler)
    _LOGGER_INITIALIZED = False
