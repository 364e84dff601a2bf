"""Play queue for Queuecast."""

from queuecast.queue.store import QueueItem, QueueStore, generate_uid

__all__ = ["QueueItem", "QueueStore", "generate_uid"]
