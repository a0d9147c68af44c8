"""Logging setup built on rich."""

import logging
from typing import Optional

from rich.logging import RichHandler

_ROOT_NAMESPACE = "forgestats"


def setup_logger(name: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """
    Configure logging with a rich handler.

    The handler is installed on the package root logger so every module
    logger created with get_logger() shares it.

    Args:
        name: Logger name to return (defaults to the package root)
        level: Log level name, e.g. "DEBUG"

    Returns:
        Configured logger
    """
    root = logging.getLogger(_ROOT_NAMESPACE)
    root.setLevel(level.upper())

    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        root.addHandler(handler)

    logger = logging.getLogger(name or _ROOT_NAMESPACE)
    logger.setLevel(level.upper())
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
