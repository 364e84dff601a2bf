"""Reference classification and resolution."""

import re
from abc import ABC, abstractmethod
from typing import Pattern, Union

from queuecast.logging.config import get_logger

logger = get_logger(__name__)

DEFAULT_REMOTE_PATTERN = r"^https?://"


def is_remote(reference: str, pattern: Union[str, Pattern[str]] = DEFAULT_REMOTE_PATTERN) -> bool:
    """
    Check whether a reference points at a remote resource.

    Args:
        reference: URL or local path
        pattern: Regex (or compiled pattern) recognising remote schemes

    Returns:
        True if the reference matches the remote pattern
    """
    if isinstance(pattern, str):
        pattern = re.compile(pattern, re.IGNORECASE)
    return pattern.search(reference.strip()) is not None


class Resolver(ABC):
    """Turns a reference into a directly playable location."""

    @abstractmethod
    async def resolve(self, reference: str) -> str:
        """
        Resolve a reference.

        Args:
            reference: URL as given by the operator

        Returns:
            Directly playable URL

        Raises:
            ItemFetchError: If the reference cannot be resolved
        """


class PassthroughResolver(Resolver):
    """Resolver for references that are already direct media URLs."""

    async def resolve(self, reference: str) -> str:
        resolved = reference.strip()
        logger.debug(f"Passthrough resolve: {resolved}")
        return resolved
