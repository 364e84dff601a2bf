"""Sequential playback of the queue into a single output session."""

import asyncio
import re
from enum import Enum
from typing import Iterable, List, Optional

from queuecast.config import Settings, get_settings
from queuecast.exceptions import ItemFetchError, SessionAcquisitionError
from queuecast.logging.config import get_logger
from queuecast.playback.events import EventType, Listener, PlaybackEvent
from queuecast.playback.handle import PlaybackHandle, PlaybackStatus
from queuecast.playback.session import OutputSession, SessionProvider, SinkSessionProvider
from queuecast.playback.transmitters import Transmitter, get_transmitter
from queuecast.queue.store import QueueItem, QueueStore
from queuecast.sources.fetcher import Fetcher
from queuecast.sources.media import MediaSource, PrefetchingSource
from queuecast.sources.resolver import DEFAULT_REMOTE_PATTERN, is_remote

logger = get_logger(__name__)


class PlayerState(Enum):
    """Orchestrator lifecycle state."""

    IDLE = "idle"
    JOINING = "joining"
    STREAMING = "streaming"
    COOLDOWN = "cooldown"
    DRAINING = "draining"


class PlaybackOrchestrator:
    """
    Plays queued references one at a time into one output session.

    Responsibilities:
    - Own the play queue and the loop-mode template
    - Run at most one consumption loop (single flight)
    - Resolve/pre-fetch remote items, skipping the ones that fail
    - Acquire the output session lazily and release it when the queue drains
    - Stop on request, cancelling the item in flight

    Every method must be called from the event loop that runs playback.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        transmitter: Transmitter,
        media_source: MediaSource,
        remote_pattern: str = DEFAULT_REMOTE_PATTERN,
        cooldown_seconds: float = 1.0,
        loop: bool = False,
    ):
        """
        Initialize playback orchestrator.

        Args:
            session_provider: Acquires/releases the output session
            transmitter: Streams one source into the session
            media_source: Resolves and pre-fetches remote references
            remote_pattern: Regex recognising remote references
            cooldown_seconds: Pause between items
            loop: Initial loop mode
        """
        self.session_provider = session_provider
        self.transmitter = transmitter
        self.media_source = media_source
        self.cooldown_seconds = cooldown_seconds
        self.loop_enabled = loop

        self.queue = QueueStore()
        self.state = PlayerState.IDLE

        self._remote = re.compile(remote_pattern, re.IGNORECASE)
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._restart_requested = False
        self._session: Optional[OutputSession] = None
        self._handle: Optional[PlaybackHandle] = None
        self._listeners: List[Listener] = []

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PlaybackOrchestrator":
        """Build an orchestrator wired to the configured collaborators."""
        settings = settings or get_settings()

        if settings.transmitter == "ffmpeg":
            transmitter = get_transmitter(
                "ffmpeg",
                ffmpeg_path=settings.ffmpeg_path,
                width=settings.width,
                height=settings.height,
                fps=settings.fps,
                bitrate_kbps=settings.bitrate_kbps,
                max_bitrate_kbps=settings.max_bitrate_kbps,
                video_codec=settings.video_codec,
                h26x_preset=settings.h26x_preset,
                hardware_accelerated_decoding=settings.hardware_accelerated_decoding,
            )
        else:
            transmitter = get_transmitter(settings.transmitter)

        fetcher = Fetcher(
            download_dir=settings.download_dir,
            max_attempts=settings.download_max_attempts,
            base_delay=settings.download_base_delay,
        )

        return cls(
            session_provider=SinkSessionProvider(settings.output_url),
            transmitter=transmitter,
            media_source=PrefetchingSource(fetcher, prefetch=settings.prefetch_remote),
            remote_pattern=settings.remote_pattern,
            cooldown_seconds=settings.cooldown_seconds,
            loop=settings.loop,
        )

    # Status

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def session(self) -> Optional[OutputSession]:
        return self._session

    def is_remote(self, reference: str) -> bool:
        return is_remote(reference, self._remote)

    # Queue surface

    def enqueue(self, reference: str) -> str:
        """Add a reference to the end of the queue and return its id."""
        uid = self.queue.enqueue(reference)
        logger.info(f"Queued [{uid}] {reference}")
        return uid

    def enqueue_batch(self, references: Iterable[str]) -> List[str]:
        uids = self.queue.enqueue_batch(references)
        logger.info(f"Queued {len(uids)} items")
        return uids

    def remove_by_id(self, uid: str) -> Optional[QueueItem]:
        """
        Remove an item from the queue and from future loop passes.

        Returns:
            The removed item, or None if no item has that id
        """
        removed = self.queue.remove_by_id(uid)
        if removed:
            logger.info(f"Removed [{uid}] {removed.reference}")
        else:
            logger.warning(f"Remove requested for unknown id {uid}")
        return removed

    def list(self) -> List[QueueItem]:
        """Pending items in play order."""
        return self.queue.snapshot()

    def set_loop(self, enabled: bool) -> None:
        """Enable or disable loop mode. Read when the queue runs dry."""
        self.loop_enabled = enabled
        logger.info(f"Loop mode {'enabled' if enabled else 'disabled'}")

    # Notifications

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self, event_type: EventType, item: Optional[QueueItem] = None, message: str = "") -> None:
        event = PlaybackEvent(type=event_type, item=item, message=message)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Listener failed on {event_type.value}: {e}", exc_info=True)

    def _set_state(self, state: PlayerState) -> None:
        if state is not self.state:
            logger.info(f"State transition: {self.state.value} -> {state.value}")
            self.state = state

    @property
    def _stopping(self) -> bool:
        return self._stop_event.is_set()

    # Lifecycle

    def start_if_idle(self) -> bool:
        """
        Start consuming the queue unless a run is already active.

        Returns immediately; the run continues as a background task.

        Returns:
            True if a new run was started
        """
        if self.is_running:
            # The active run may already be past its last queue check
            self._restart_requested = True
            return False

        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    async def wait_idle(self) -> None:
        """Wait until no run is active."""
        while self.is_running:
            await asyncio.wait({self._task})

    async def stop(self) -> None:
        """
        Stop playback, empty the queue and release the session.

        Calling it while idle only empties the queue.
        """
        running = self.is_running
        if running:
            logger.info("Stopping playback")
            self._stop_event.set()
            self._restart_requested = False

        if self._handle is not None:
            self._handle.cancel()

        self.queue.clear()

        if not running:
            return

        self._notify(EventType.STOPPED, message="Playback stopped")

        if asyncio.current_task() is not self._task:
            await asyncio.wait({self._task})

    async def close(self) -> None:
        """Stop playback and release media source resources."""
        await self.stop()
        await self.media_source.close()

    # Consumption loop

    async def _run(self) -> None:
        try:
            await self._consume()
        except SessionAcquisitionError as e:
            logger.error(f"Could not acquire output session: {e}")
            self._notify(EventType.FAILED, message=f"Could not join output: {e}")
        except Exception as e:
            logger.error(f"Playback loop failed: {e}", exc_info=True)
            self._notify(EventType.FAILED, message=f"Playback failed: {e}")
        finally:
            await self._drain()

        if self._restart_requested:
            self._restart_requested = False
            if len(self.queue):
                logger.debug("Items queued while draining, restarting")
                self._task = asyncio.get_running_loop().create_task(self._run())

    async def _consume(self) -> None:
        while True:
            if not len(self.queue):
                if self._stopping:
                    return
                if self.loop_enabled and self.queue.has_template:
                    logger.info("Queue finished, looping")
                    self.queue.refill_from_template()
                else:
                    logger.info("Queue is empty")
                    self._notify(EventType.QUEUE_EMPTY, message="The queue is empty")
                    return

            if self._stopping:
                return

            item = self.queue.dequeue_front()
            source = await self._prepare(item)

            if self._stopping:
                return

            if source is not None:
                if self._session is None:
                    await self._acquire_session()
                    if self._stopping:
                        return

                await self._play(item, source)

                if self._stopping:
                    return

            await self._cooldown()

    async def _prepare(self, item: QueueItem) -> Optional[str]:
        """Return a playable source for an item, or None to skip it."""
        if not self.is_remote(item.source):
            return item.source

        try:
            item.resolved = await self.media_source.resolve_or_download(item.reference)
        except ItemFetchError as e:
            logger.error(f"Skipping [{item.id}]: {e}")
            self._notify(EventType.ITEM_SKIPPED, item=item, message=str(e))
            return None

        return item.source

    async def _acquire_session(self) -> None:
        self._set_state(PlayerState.JOINING)
        try:
            self._session = await self.session_provider.acquire()
        except SessionAcquisitionError:
            raise
        except Exception as e:
            raise SessionAcquisitionError(str(e)) from e
        logger.info(f"Output session acquired: {self._session.destination}")

    async def _play(self, item: QueueItem, source: str) -> PlaybackStatus:
        session = self._session
        self._set_state(PlayerState.STREAMING)
        logger.info(f"Started playing [{item.id}]: {source}")
        self._notify(EventType.ITEM_STARTED, item=item, message=f"Playing: {item.reference}")

        session.set_transmitting(True)
        handle = PlaybackHandle(self.transmitter, source, session)
        self._handle = handle
        try:
            status = await handle.wait()
        finally:
            handle.cancel()
            self._handle = None
            session.set_transmitting(False)

        logger.info(f"Finished playing [{item.id}]: {status.value}")
        self._notify(EventType.ITEM_FINISHED, item=item, message=status.value)
        return status

    async def _cooldown(self) -> None:
        self._set_state(PlayerState.COOLDOWN)
        if self.cooldown_seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.cooldown_seconds)
        except asyncio.TimeoutError:
            pass

    async def _drain(self) -> None:
        self._set_state(PlayerState.DRAINING)

        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        session, self._session = self._session, None
        if session is not None:
            try:
                await self.session_provider.release(session)
            except Exception as e:
                logger.error(f"Failed to release output session: {e}", exc_info=True)

        self._stop_event.clear()
        self._set_state(PlayerState.IDLE)
