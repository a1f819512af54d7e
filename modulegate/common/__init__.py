"""Common utilities for modulegate."""

from .logger import configure_logging, get_logger, setup_logger
from .units import load_unit

__all__ = ["configure_logging", "get_logger", "load_unit", "setup_logger"]
