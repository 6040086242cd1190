"""Minimal logging utilities for Rivulet.

Provides a simple get_logger function that wraps the standard library logging.

Example:
    >>> from rivulet.utils.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.debug("pass complete")
"""

from __future__ import annotations

import logging


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given name.

    Returns a standard library logger with the "rivulet." prefix.

    Args:
        name: Logger name (typically __name__)

    Returns:
        logging.Logger instance

    Example:
        >>> logger = get_logger("mymodule")
        >>> logger.name
        'rivulet.mymodule'
    """
    if not (name == "rivulet" or name.startswith("rivulet.")):
        name = f"rivulet.{name}"
    return logging.getLogger(name)
