"""Utility modules for MySight."""

from .config import Config
from .logger import setup_logging

__all__ = ["Config", "setup_logging"]
