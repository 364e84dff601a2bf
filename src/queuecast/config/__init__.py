"""Configuration for Queuecast."""

from queuecast.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
