"""Output session acquisition."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from queuecast.exceptions import SessionAcquisitionError
from queuecast.logging.config import get_logger

logger = get_logger(__name__)


@dataclass
class OutputSession:
    """An acquired output channel."""

    destination: str
    joined: bool = True
    transmitting: bool = False

    def set_transmitting(self, active: bool) -> None:
        """Toggle the 'actively transmitting' indicator."""
        if self.transmitting != active:
            logger.debug(f"Session {self.destination}: transmitting={active}")
        self.transmitting = active


class SessionProvider(ABC):
    """Acquires and releases output sessions."""

    @abstractmethod
    async def acquire(self) -> OutputSession:
        """
        Acquire an output session.

        Raises:
            SessionAcquisitionError: If the destination cannot be joined
        """

    @abstractmethod
    async def release(self, session: OutputSession) -> None:
        """Release a previously acquired session."""


class SinkSessionProvider(SessionProvider):
    """Session provider for a single configured output URL."""

    def __init__(self, output_url: str):
        """
        Args:
            output_url: Where transmissions are published
        """
        self.output_url = output_url

    async def acquire(self) -> OutputSession:
        if not self.output_url:
            raise SessionAcquisitionError("No output_url configured")

        logger.info(f"Joining output {self.output_url}")
        return OutputSession(destination=self.output_url)

    async def release(self, session: OutputSession) -> None:
        session.set_transmitting(False)
        session.joined = False
        logger.info(f"Left output {session.destination}")
