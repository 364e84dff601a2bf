"""Resolution plus optional pre-download of remote queue items."""

from abc import ABC, abstractmethod
from typing import Optional

from queuecast.exceptions import ItemFetchError
from queuecast.logging.config import get_logger
from queuecast.sources.fetcher import Fetcher
from queuecast.sources.resolver import PassthroughResolver, Resolver

logger = get_logger(__name__)


class MediaSource(ABC):
    """Turns a remote reference into something the transmitter can play."""

    @abstractmethod
    async def resolve_or_download(self, reference: str) -> str:
        """
        Args:
            reference: Remote reference from the queue

        Returns:
            Local path or playable URL

        Raises:
            ItemFetchError: If the item cannot be made playable
        """

    async def close(self) -> None:
        """Release any resources held by the source."""


class PrefetchingSource(MediaSource):
    """
    Resolves references and, when prefetching is enabled, downloads the
    resolved media so playback reads from local disk.
    """

    def __init__(
        self,
        fetcher: Optional[Fetcher],
        resolver: Optional[Resolver] = None,
        prefetch: bool = True,
    ):
        if prefetch and fetcher is None:
            raise ValueError("Prefetching requires a fetcher")
        self.fetcher = fetcher
        self.resolver = resolver or PassthroughResolver()
        self.prefetch = prefetch

    async def resolve_or_download(self, reference: str) -> str:
        try:
            playable = await self.resolver.resolve(reference)
        except ItemFetchError:
            raise
        except Exception as e:
            raise ItemFetchError(reference, f"resolution failed: {e}") from e

        if not playable:
            raise ItemFetchError(reference, "resolver returned no playable URL")

        if not self.prefetch:
            return playable

        logger.info(f"Pre-fetching {reference}")
        return await self.fetcher.fetch(playable)

    async def close(self) -> None:
        if self.fetcher is not None:
            await self.fetcher.close()
