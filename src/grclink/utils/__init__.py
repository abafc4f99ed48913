"""Utility exports for the grclink package."""

from .logger import Logger, get_logger, set_level
from .now import Now

__all__ = [
    "Logger",
    "Now",
    "get_logger",
    "set_level",
]
