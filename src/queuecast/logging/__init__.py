"""Logging utilities for Queuecast."""

from queuecast.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
