import asyncio
from unittest.mock import patch

import pytest

from queuecast.config.settings import Settings
from queuecast.exceptions import ItemFetchError, SessionAcquisitionError, TransmissionFault
from queuecast.playback.orchestrator import PlaybackOrchestrator
from queuecast.playback.session import OutputSession, SessionProvider
from queuecast.playback.transmitters import Transmitter
from queuecast.sources.media import MediaSource


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing at temporary directories."""
    settings = Settings(
        videos_dir=tmp_path / "videos",
        download_dir=tmp_path / "downloads",
        log_file=tmp_path / "logs" / "test.log",
        output_url="rtmp://live.example.com/app/secret-key",
        cooldown_seconds=0,
    )
    settings.ensure_directories()
    return settings


@pytest.fixture
def mock_settings(test_settings):
    """Patch get_settings where modules looked it up."""
    with patch("queuecast.cli.get_settings", return_value=test_settings), \
         patch("queuecast.library.videos.get_settings", return_value=test_settings):
        yield test_settings


class FakeSessionProvider(SessionProvider):
    """Records acquire/release calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.acquired = []
        self.released = []

    async def acquire(self) -> OutputSession:
        await asyncio.sleep(0)
        if self.fail:
            raise SessionAcquisitionError("destination unreachable")
        session = OutputSession(destination="fake://output")
        self.acquired.append(session)
        return session

    async def release(self, session: OutputSession) -> None:
        session.joined = False
        self.released.append(session)


class FakeTransmitter(Transmitter):
    """Records what was streamed; blocks on ``gate`` when one is given."""

    def __init__(self, gate: asyncio.Event = None, faults=()):
        self.gate = gate
        self.faults = set(faults)
        self.played = []
        self.transmitting_seen = []
        self.active = 0
        self.max_active = 0

    async def transmit(self, source: str, session: OutputSession) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.played.append(source)
            self.transmitting_seen.append(session.transmitting)
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if source in self.faults:
                raise TransmissionFault(f"provider rejected {source}")
        finally:
            self.active -= 1


class FakeMediaSource(MediaSource):
    """Pretends to download remote references into /cache."""

    def __init__(self, failures=(), gate: asyncio.Event = None):
        self.failures = set(failures)
        self.gate = gate
        self.calls = []
        self.closed = False

    async def resolve_or_download(self, reference: str) -> str:
        self.calls.append(reference)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if reference in self.failures:
            raise ItemFetchError(reference, "HTTP 404")
        return f"/cache/{reference.rsplit('/', 1)[-1]}.mp4"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def session_provider():
    return FakeSessionProvider()


@pytest.fixture
def transmitter():
    return FakeTransmitter()


@pytest.fixture
def media_source():
    return FakeMediaSource()


@pytest.fixture
def make_orchestrator(session_provider, transmitter, media_source):
    """Build an orchestrator around the fakes; keyword overrides allowed."""

    def _make(**kwargs):
        options = {
            "session_provider": session_provider,
            "transmitter": transmitter,
            "media_source": media_source,
            "cooldown_seconds": 0,
        }
        options.update(kwargs)
        orchestrator = PlaybackOrchestrator(**options)
        orchestrator.events = []
        orchestrator.add_listener(orchestrator.events.append)
        return orchestrator

    return _make
