"""Media sources: reference resolution and remote pre-fetch."""

from queuecast.sources.fetcher import Fetcher
from queuecast.sources.media import MediaSource, PrefetchingSource
from queuecast.sources.resolver import PassthroughResolver, Resolver, is_remote

__all__ = [
    "Fetcher",
    "MediaSource",
    "PrefetchingSource",
    "PassthroughResolver",
    "Resolver",
    "is_remote",
]
