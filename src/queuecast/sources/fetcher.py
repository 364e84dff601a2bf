"""
Downloads remote media into local storage so the transmitter can read it
from disk instead of the network.
"""

import asyncio
import hashlib
import os
import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import aiofiles
import aiohttp

from queuecast.exceptions import ItemFetchError
from queuecast.logging.config import get_logger

logger = get_logger(__name__)

DEFAULT_SUFFIX = ".mp4"
CHUNK_SIZE = 262144  # 256 KB

_UNSAFE_CHARS = re.compile(r"[^\w.-]+")


def filename_for(url: str) -> str:
    """
    Build a stable local filename for a URL.

    The URL's basename is kept for readability, the hash keeps two URLs
    with the same basename apart.
    """
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:10]
    basename = unquote(os.path.basename(urlparse(url).path))
    stem, suffix = os.path.splitext(basename)
    stem = _UNSAFE_CHARS.sub("_", stem).strip("_")[:60] or "video"
    if not suffix or len(suffix) > 5 or _UNSAFE_CHARS.search(suffix[1:]):
        suffix = DEFAULT_SUFFIX
    return f"{stem}_{digest}{suffix.lower()}"


class Fetcher:
    """Remote file downloader with retries and an on-disk cache."""

    def __init__(
        self,
        download_dir: Path,
        max_attempts: int = 3,
        base_delay: float = 1.5,
    ):
        """
        Initialize fetcher.

        Args:
            download_dir: Directory downloads are written to
            max_attempts: Attempts per download before giving up
            base_delay: Initial retry delay, doubled after every failure
        """
        self.download_dir = Path(download_dir)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"Accept-Encoding": "gzip, deflate"},
            )
            logger.debug("Created download session")
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("Download session closed")
        self._session = None

    async def fetch(self, url: str, destination_dir: Optional[Path] = None) -> str:
        """
        Download a URL unless it is already cached.

        Args:
            url: Remote URL
            destination_dir: Override for the download directory

        Returns:
            Local path of the downloaded file

        Raises:
            ItemFetchError: If every attempt fails
        """
        target_dir = Path(destination_dir) if destination_dir else self.download_dir
        destination = target_dir / filename_for(url)

        if await asyncio.to_thread(destination.is_file):
            logger.info(f"Using cached download for {url}: {destination}")
            return str(destination)

        await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                size = await self._download(url, partial)
                await asyncio.to_thread(os.replace, partial, destination)
                logger.info(f"Downloaded {url} -> {destination} ({size} bytes)")
                return str(destination)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                last_error = e
                logger.warning(
                    f"Download attempt {attempt}/{self.max_attempts} for {url} failed: {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        await asyncio.to_thread(partial.unlink, missing_ok=True)
        raise ItemFetchError(url, str(last_error))

    async def _download(self, url: str, partial: Path) -> int:
        session = await self._get_session()
        written = 0
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)
                    written += len(chunk)
        return written
