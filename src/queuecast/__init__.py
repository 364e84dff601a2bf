"""Queuecast - sequential media queue streaming to a live output sink."""

__version__ = "0.1.0"
