"""Tests for the playback orchestrator."""

import asyncio

from conftest import FakeMediaSource, FakeSessionProvider, FakeTransmitter

from queuecast.config.settings import Settings
from queuecast.playback.events import EventType
from queuecast.playback.orchestrator import PlaybackOrchestrator, PlayerState
from queuecast.playback.session import SinkSessionProvider
from queuecast.playback.transmitters import FFmpegTransmitter, NullTransmitter
from queuecast.sources.media import PrefetchingSource


async def wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def event_types(orchestrator):
    return [event.type for event in orchestrator.events]


def test_local_then_remote_scenario(make_orchestrator, session_provider, transmitter, media_source):
    """A local item plays, then a remote item is fetched and plays."""
    orchestrator = make_orchestrator()

    async def scenario():
        orchestrator.enqueue_batch(["local.mp4", "http://x/video"])
        assert orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert len(session_provider.acquired) == 1
    assert session_provider.released == session_provider.acquired
    assert media_source.calls == ["http://x/video"]
    assert transmitter.played == ["local.mp4", "/cache/video.mp4"]
    assert orchestrator.state is PlayerState.IDLE
    assert orchestrator.session is None
    assert event_types(orchestrator) == [
        EventType.ITEM_STARTED,
        EventType.ITEM_FINISHED,
        EventType.ITEM_STARTED,
        EventType.ITEM_FINISHED,
        EventType.QUEUE_EMPTY,
    ]


def test_start_if_idle_is_single_flight(make_orchestrator, transmitter):
    orchestrator = make_orchestrator()

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4", "c.mp4"])
        assert orchestrator.start_if_idle()
        assert not orchestrator.start_if_idle()
        await asyncio.sleep(0)
        assert not orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4", "b.mp4", "c.mp4"]
    assert transmitter.max_active == 1


def test_stop_before_playback_never_acquires_session(make_orchestrator, session_provider, transmitter):
    orchestrator = make_orchestrator()

    async def scenario():
        orchestrator.enqueue("clip.mp4")
        orchestrator.start_if_idle()
        await orchestrator.stop()

    asyncio.run(scenario())

    assert session_provider.acquired == []
    assert transmitter.played == []
    assert orchestrator.state is PlayerState.IDLE
    assert orchestrator.list() == []
    assert event_types(orchestrator) == [EventType.STOPPED]


def test_stop_cancels_current_item(make_orchestrator, session_provider):
    transmitter = FakeTransmitter(gate=asyncio.Event())
    orchestrator = make_orchestrator(transmitter=transmitter)

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
        orchestrator.start_if_idle()
        await wait_until(lambda: transmitter.played)
        await orchestrator.stop()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4"]
    assert transmitter.active == 0
    finished = [e for e in orchestrator.events if e.type is EventType.ITEM_FINISHED]
    assert [e.message for e in finished] == ["cancelled"]
    assert len(session_provider.released) == 1
    assert orchestrator.list() == []
    assert orchestrator.queue.template_snapshot() == []
    assert orchestrator.state is PlayerState.IDLE


def test_stop_is_idempotent(make_orchestrator):
    orchestrator = make_orchestrator()

    async def scenario():
        orchestrator.enqueue("a.mp4")
        orchestrator.start_if_idle()
        await orchestrator.stop()
        first = (orchestrator.state, orchestrator.list(), orchestrator.queue.template_snapshot())
        await orchestrator.stop()
        second = (orchestrator.state, orchestrator.list(), orchestrator.queue.template_snapshot())
        return first, second

    first, second = asyncio.run(scenario())

    assert first == second == (PlayerState.IDLE, [], [])
    assert event_types(orchestrator).count(EventType.STOPPED) == 1


def test_stop_while_idle_is_harmless(make_orchestrator, session_provider):
    orchestrator = make_orchestrator()

    asyncio.run(orchestrator.stop())

    assert orchestrator.state is PlayerState.IDLE
    assert orchestrator.events == []
    assert session_provider.released == []


def test_stop_during_fetch_prevents_playback(make_orchestrator, session_provider, transmitter):
    media_source = FakeMediaSource(gate=asyncio.Event())
    orchestrator = make_orchestrator(media_source=media_source)

    async def scenario():
        orchestrator.enqueue("http://x/slow")
        orchestrator.start_if_idle()
        await wait_until(lambda: media_source.calls)
        stop_task = asyncio.create_task(orchestrator.stop())
        await asyncio.sleep(0)
        media_source.gate.set()
        await stop_task

    asyncio.run(scenario())

    assert transmitter.played == []
    assert session_provider.acquired == []
    assert orchestrator.state is PlayerState.IDLE


def test_fetch_failure_skips_item(make_orchestrator, session_provider, transmitter):
    media_source = FakeMediaSource(failures={"http://x/broken"})
    orchestrator = make_orchestrator(media_source=media_source)

    async def scenario():
        broken, good = orchestrator.enqueue_batch(["http://x/broken", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()
        return broken

    broken = asyncio.run(scenario())

    assert transmitter.played == ["b.mp4"]
    assert len(session_provider.acquired) == 1
    assert event_types(orchestrator)[0] is EventType.ITEM_SKIPPED
    assert event_types(orchestrator)[-1] is EventType.QUEUE_EMPTY
    # Skipped, not removed: a loop pass would try it again
    assert broken in [item.id for item in orchestrator.queue.template_snapshot()]


def test_loop_replays_fetched_paths(make_orchestrator, transmitter, media_source):
    orchestrator = make_orchestrator(loop=True)

    def stop_after_four(event):
        if event.type is EventType.ITEM_FINISHED and len(transmitter.played) == 4:
            asyncio.get_running_loop().create_task(orchestrator.stop())

    orchestrator.add_listener(stop_after_four)

    async def scenario():
        orchestrator.enqueue_batch(["http://x/a", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played[:4] == ["/cache/a.mp4", "b.mp4", "/cache/a.mp4", "b.mp4"]
    assert media_source.calls == ["http://x/a"]


def test_loop_disabled_mid_run_takes_effect_at_queue_end(make_orchestrator, transmitter):
    orchestrator = make_orchestrator(loop=True)

    def disable_loop(event):
        if event.type is EventType.ITEM_STARTED:
            orchestrator.set_loop(False)

    orchestrator.add_listener(disable_loop)

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4", "b.mp4"]
    assert not orchestrator.loop_enabled


def test_session_acquisition_failure_ends_run(make_orchestrator, transmitter):
    provider = FakeSessionProvider(fail=True)
    orchestrator = make_orchestrator(session_provider=provider)

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == []
    assert event_types(orchestrator) == [EventType.FAILED]
    assert orchestrator.state is PlayerState.IDLE
    assert [item.reference for item in orchestrator.list()] == ["b.mp4"]


def test_transmission_fault_skips_without_new_session(make_orchestrator, session_provider):
    transmitter = FakeTransmitter(faults={"a.mp4"})
    orchestrator = make_orchestrator(transmitter=transmitter)

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4", "b.mp4"]
    assert len(session_provider.acquired) == 1
    finished = [e.message for e in orchestrator.events if e.type is EventType.ITEM_FINISHED]
    assert finished == ["skipped", "completed"]


def test_transmitting_indicator_is_reset(make_orchestrator, session_provider, transmitter):
    orchestrator = make_orchestrator()

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.transmitting_seen == [True, True]
    session = session_provider.acquired[0]
    assert not session.transmitting
    assert not session.joined


def test_new_run_after_idle_acquires_new_session(make_orchestrator, session_provider, transmitter):
    orchestrator = make_orchestrator()

    async def scenario():
        orchestrator.enqueue("a.mp4")
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()
        orchestrator.enqueue("b.mp4")
        assert orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4", "b.mp4"]
    assert len(session_provider.acquired) == 2
    assert len(session_provider.released) == 2


def test_remove_unknown_id_leaves_queue_unchanged(make_orchestrator):
    orchestrator = make_orchestrator()
    orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
    before = orchestrator.list()

    assert orchestrator.remove_by_id("00000ZZZ") is None
    assert orchestrator.list() == before


def test_removed_item_is_not_replayed(make_orchestrator, transmitter):
    orchestrator = make_orchestrator(loop=True)

    def stop_after_three(event):
        if event.type is EventType.ITEM_FINISHED and len(transmitter.played) == 3:
            asyncio.get_running_loop().create_task(orchestrator.stop())

    orchestrator.add_listener(stop_after_three)

    async def scenario():
        uid_a, _, _ = orchestrator.enqueue_batch(["a.mp4", "b.mp4", "c.mp4"])
        orchestrator.remove_by_id(uid_a)
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played[:3] == ["b.mp4", "c.mp4", "b.mp4"]


def test_failing_listener_does_not_break_playback(make_orchestrator, transmitter):
    orchestrator = make_orchestrator()

    def broken_listener(event):
        raise RuntimeError("display offline")

    orchestrator.add_listener(broken_listener)

    async def scenario():
        orchestrator.enqueue("a.mp4")
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4"]
    assert event_types(orchestrator)[-1] is EventType.QUEUE_EMPTY


def test_from_settings_wires_collaborators(tmp_path):
    settings = Settings(
        videos_dir=tmp_path / "videos",
        download_dir=tmp_path / "downloads",
        log_file=tmp_path / "test.log",
        output_url="rtmp://example.com/live/key",
        cooldown_seconds=2.5,
        loop=True,
    )

    orchestrator = PlaybackOrchestrator.from_settings(settings)

    assert isinstance(orchestrator.session_provider, SinkSessionProvider)
    assert orchestrator.session_provider.output_url == "rtmp://example.com/live/key"
    assert isinstance(orchestrator.transmitter, FFmpegTransmitter)
    assert isinstance(orchestrator.media_source, PrefetchingSource)
    assert orchestrator.media_source.fetcher.download_dir == tmp_path / "downloads"
    assert orchestrator.cooldown_seconds == 2.5
    assert orchestrator.loop_enabled


def test_from_settings_null_transmitter(test_settings):
    settings = test_settings.model_copy(update={"transmitter": "null"})

    orchestrator = PlaybackOrchestrator.from_settings(settings)

    assert isinstance(orchestrator.transmitter, NullTransmitter)


def test_close_stops_and_closes_media_source(make_orchestrator, media_source):
    transmitter = FakeTransmitter(gate=asyncio.Event())
    orchestrator = make_orchestrator(transmitter=transmitter)

    async def scenario():
        orchestrator.enqueue("a.mp4")
        orchestrator.start_if_idle()
        await wait_until(lambda: transmitter.played)
        await orchestrator.close()

    asyncio.run(scenario())

    assert media_source.closed
    assert orchestrator.state is PlayerState.IDLE
    assert not orchestrator.is_running


class CrashingTransmitter(FakeTransmitter):
    async def transmit(self, source, session):
        await super().transmit(source, session)
        if source == "a.mp4":
            raise RuntimeError("encoder crashed")


def test_unexpected_transmitter_error_ends_run(make_orchestrator, session_provider):
    transmitter = CrashingTransmitter()
    orchestrator = make_orchestrator(transmitter=transmitter)

    async def scenario():
        orchestrator.enqueue_batch(["a.mp4", "b.mp4"])
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4"]
    assert event_types(orchestrator) == [EventType.ITEM_STARTED, EventType.FAILED]
    assert "encoder crashed" in orchestrator.events[-1].message
    assert session_provider.released == session_provider.acquired
    assert not session_provider.acquired[0].transmitting
    assert orchestrator.state is PlayerState.IDLE


def test_enqueue_on_queue_empty_starts_another_run(make_orchestrator, session_provider, transmitter):
    orchestrator = make_orchestrator()
    started = []

    def requeue_once(event):
        if event.type is EventType.QUEUE_EMPTY and not started:
            orchestrator.enqueue("b.mp4")
            started.append(orchestrator.start_if_idle())

    orchestrator.add_listener(requeue_once)

    async def scenario():
        orchestrator.enqueue("a.mp4")
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert started == [False]
    assert transmitter.played == ["a.mp4", "b.mp4"]
    assert orchestrator.list() == []
    assert len(session_provider.acquired) == 2


class SlowReleaseProvider(FakeSessionProvider):
    """Holds release open until ``gate`` is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def release(self, session):
        await self.gate.wait()
        await super().release(session)


def test_enqueue_while_draining_restarts(make_orchestrator, transmitter):
    provider = SlowReleaseProvider()
    orchestrator = make_orchestrator(session_provider=provider)

    async def scenario():
        orchestrator.enqueue("a.mp4")
        orchestrator.start_if_idle()
        await wait_until(lambda: orchestrator.state is PlayerState.DRAINING)
        orchestrator.enqueue("b.mp4")
        assert not orchestrator.start_if_idle()
        provider.gate.set()
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert transmitter.played == ["a.mp4", "b.mp4"]
    assert len(provider.acquired) == 2
    assert len(provider.released) == 2
    assert orchestrator.state is PlayerState.IDLE
