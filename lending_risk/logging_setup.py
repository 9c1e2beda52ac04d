"""Logging configuration."""
from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_NOISY_LOGGERS = ("aiohttp", "backoff")


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger; unknown level names fall back to INFO."""
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logging.basicConfig(level=resolved, handlers=[handler], force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
