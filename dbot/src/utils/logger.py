"""
D-BOT - Logging
================
Named loggers for the retrieval, dialogue and API layers, all sharing one
pipe-delimited stdout format so a single request can be followed by its
stage tags (``[RETRIEVE]``, ``[MERGE]``, ``[CHAT]`` …).

Level resolution, first match wins:
  1. explicit ``level`` argument
  2. ``settings.LOG_LEVEL`` (e.g. ``"INFO"`` to quiet dev without prod)
  3. ``settings.ENV``: ``dev`` → DEBUG, ``prod`` → WARNING

Usage:
    from dbot.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[CHAT] Something happened")
"""

import logging
import sys

from dbot.config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ENV_LEVELS = {"dev": logging.DEBUG, "prod": logging.WARNING}


def resolve_level(level: int | str | None = None) -> int:
    """Numeric level for an explicit override, the LOG_LEVEL setting, or ENV."""
    chosen = level if level is not None else settings.LOG_LEVEL
    if chosen is None:
        return _ENV_LEVELS.get(settings.ENV, logging.INFO)
    if isinstance(chosen, int):
        return chosen
    numeric = logging.getLevelName(chosen.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {chosen!r}")
    return numeric


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Return the logger *name* with D-BOT's stdout handler attached once.

    Repeated calls reuse the existing handler; the level is only applied
    on first configuration.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = resolve_level(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(resolved)

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
