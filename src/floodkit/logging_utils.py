"""Logging configuration for applications embedding floodkit."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | int = "INFO") -> None:
    """Configure the root logger once.

    ``logging.basicConfig`` is a no-op when handlers already exist.

    Args:
        level: Level name (e.g. ``"DEBUG"``) or numeric level.
    """
    numeric_level = level if isinstance(level, int) else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    logging.getLogger("floodkit").setLevel(numeric_level)
