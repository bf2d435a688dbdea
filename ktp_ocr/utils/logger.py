"""Centralized logging setup for the KTP OCR service.

Configures the root logger once, aligns uvicorn's loggers with it and
routes unhandled asyncio task failures into the log instead of letting
them surface as fatal errors.
"""

import asyncio
import logging
import sys
from typing import Any

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a standard format.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    for name in _UVICORN_LOGGERS:
        logging.getLogger(name).setLevel(numeric_level)

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)


def install_loop_exception_logger(loop: asyncio.AbstractEventLoop) -> None:
    """Log exceptions nobody retrieved from tasks running on ``loop``.

    Args:
        loop: Event loop to install the handler on.
    """
    logger = get_logger("ktp_ocr.loop")

    def _handle(_: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        if exc is not None:
            logger.error("%s: %r", message, exc, exc_info=exc)
        else:
            logger.error("%s", message)

    loop.set_exception_handler(_handle)
