"""In-memory play queue with a replay template for loop mode."""

import random
import string
from dataclasses import dataclass
from typing import Iterable, List, Optional

from queuecast.logging.config import get_logger

logger = get_logger(__name__)

UID_DIGITS = 5
UID_LETTERS = 3


def generate_uid() -> str:
    """
    Generate a short, human-typable queue id.

    Five digits followed by three upper-case letters, e.g. ``48213QXA``.
    """
    number = random.randint(10 ** (UID_DIGITS - 1), 10**UID_DIGITS - 1)
    letters = "".join(random.choices(string.ascii_uppercase, k=UID_LETTERS))
    return f"{number}{letters}"


@dataclass(eq=False)
class QueueItem:
    """A queued media reference."""

    id: str
    reference: str
    resolved: Optional[str] = None

    @property
    def source(self) -> str:
        """What should be played: the resolved location if known."""
        return self.resolved or self.reference

    def __repr__(self) -> str:
        if self.resolved:
            return f"<QueueItem(id={self.id}, reference={self.reference}, resolved={self.resolved})>"
        return f"<QueueItem(id={self.id}, reference={self.reference})>"


class QueueStore:
    """
    Ordered work queue plus the template used to replay it.

    ``pending`` is consumed front to back. ``template`` mirrors every
    enqueued item and is only shrunk by an explicit removal, so a loop pass
    can rebuild ``pending`` from it. Both sequences share item objects:
    a resolved path recorded during playback is visible on replay.
    """

    def __init__(self):
        self._pending: List[QueueItem] = []
        self._template: List[QueueItem] = []

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def has_template(self) -> bool:
        return bool(self._template)

    def _new_uid(self) -> str:
        taken = {item.id for item in self._template}
        uid = generate_uid()
        while uid in taken:
            logger.debug(f"Queue id collision on {uid}, regenerating")
            uid = generate_uid()
        return uid

    def enqueue(self, reference: str) -> str:
        """
        Append a reference to the queue.

        Args:
            reference: URL or local path

        Returns:
            The id of the new item
        """
        item = QueueItem(id=self._new_uid(), reference=reference)
        self._pending.append(item)
        self._template.append(item)
        logger.debug(f"Enqueued {item!r}")
        return item.id

    def enqueue_batch(self, references: Iterable[str]) -> List[str]:
        """Append several references, preserving order."""
        return [self.enqueue(reference) for reference in references]

    def dequeue_front(self) -> Optional[QueueItem]:
        """Pop the next pending item, or None if the queue is empty."""
        if not self._pending:
            return None
        return self._pending.pop(0)

    def remove_by_id(self, uid: str) -> Optional[QueueItem]:
        """
        Remove an item from both the pending queue and the template.

        Args:
            uid: Item id

        Returns:
            The removed item, or None if the id is unknown
        """
        removed = None

        for sequence in (self._pending, self._template):
            for index, item in enumerate(sequence):
                if item.id == uid:
                    removed = sequence.pop(index)
                    break

        if removed is None:
            logger.debug(f"No queue item with id {uid}")
        return removed

    def snapshot(self) -> List[QueueItem]:
        """Pending items in play order."""
        return list(self._pending)

    def template_snapshot(self) -> List[QueueItem]:
        """Every item that a loop pass would replay, in order."""
        return list(self._template)

    def refill_from_template(self) -> None:
        """Rebuild the pending queue from the template for another loop pass."""
        self._pending = list(self._template)
        logger.debug(f"Queue refilled with {len(self._pending)} items")

    def clear(self) -> None:
        self._pending.clear()
        self._template.clear()
