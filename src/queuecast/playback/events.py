"""Notifications emitted by the playback orchestrator."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from queuecast.queue.store import QueueItem


class EventType(Enum):
    """Kinds of playback notifications."""

    ITEM_STARTED = "item_started"
    ITEM_FINISHED = "item_finished"
    ITEM_SKIPPED = "item_skipped"
    QUEUE_EMPTY = "queue_empty"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class PlaybackEvent:
    """A single state transition reported to listeners."""

    type: EventType
    item: Optional[QueueItem] = None
    message: str = ""
    created_at: datetime = field(default_factory=datetime.now)


Listener = Callable[[PlaybackEvent], None]
