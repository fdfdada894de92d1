"""Logging and timing helpers."""

from .log import setup_logging
from .tracing import Timer

__all__ = ["Timer", "setup_logging"]
