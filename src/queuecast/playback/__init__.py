"""Playback orchestration for Queuecast."""

from queuecast.playback.events import EventType, PlaybackEvent
from queuecast.playback.handle import PlaybackHandle, PlaybackStatus
from queuecast.playback.orchestrator import PlaybackOrchestrator, PlayerState
from queuecast.playback.session import OutputSession, SessionProvider, SinkSessionProvider
from queuecast.playback.transmitters import (
    FFmpegTransmitter,
    NullTransmitter,
    Transmitter,
    get_transmitter,
)

__all__ = [
    "EventType",
    "PlaybackEvent",
    "PlaybackHandle",
    "PlaybackStatus",
    "PlaybackOrchestrator",
    "PlayerState",
    "OutputSession",
    "SessionProvider",
    "SinkSessionProvider",
    "FFmpegTransmitter",
    "NullTransmitter",
    "Transmitter",
    "get_transmitter",
]
