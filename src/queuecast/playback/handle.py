"""Cancellable wrapper around a single transmission."""

import asyncio
from enum import Enum

from queuecast.exceptions import TransmissionFault
from queuecast.logging.config import get_logger
from queuecast.playback.session import OutputSession
from queuecast.playback.transmitters import Transmitter

logger = get_logger(__name__)


class PlaybackStatus(Enum):
    """Terminal status of a playback handle."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class PlaybackHandle:
    """
    Runs one transmission as its own task.

    A TransmissionFault settles the handle as SKIPPED so one bad item
    never ends the session. Any other error propagates from wait().
    """

    def __init__(self, transmitter: Transmitter, source: str, session: OutputSession):
        self.source = source
        self._cancel_requested = False
        self._task = asyncio.get_running_loop().create_task(
            transmitter.transmit(source, session)
        )

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """
        Request cancellation. Safe to call repeatedly or after completion.

        Returns:
            True if this call requested cancellation
        """
        if self._task.done() or self._cancel_requested:
            return False
        self._cancel_requested = True
        logger.info(f"Cancelling playback of {self.source}")
        self._task.cancel()
        return True

    async def wait(self) -> PlaybackStatus:
        """Wait for the transmission to settle and report how it ended."""
        # asyncio.wait never raises the inner task's outcome
        await asyncio.wait({self._task})

        # A transmitter may swallow the cancellation and return normally
        if self._task.cancelled() or self._cancel_requested:
            if not self._task.cancelled() and self._task.exception() is not None:
                logger.debug(f"Error while cancelling {self.source}: {self._task.exception()}")
            return PlaybackStatus.CANCELLED

        error = self._task.exception()
        if error is None:
            return PlaybackStatus.COMPLETED

        if not isinstance(error, TransmissionFault):
            raise error

        logger.warning(f"Skipping {self.source}: {error}")
        return PlaybackStatus.SKIPPED
