"""Local video library for Queuecast."""

from queuecast.library.videos import LocalLibrary, LocalVideo

__all__ = ["LocalLibrary", "LocalVideo"]
