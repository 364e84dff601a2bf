"""
Exceptions raised by Queuecast components.

Item-level errors (fetch, transmission) are recovered by the orchestrator by
skipping the item. Session-level errors end the current playback run.
"""


class QueueCastError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(QueueCastError):
    """Raised for invalid or incomplete configuration."""


class ItemFetchError(QueueCastError):
    """Raised when a queue item cannot be resolved or downloaded."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"Could not fetch {reference}: {reason}")
        self.reference = reference
        self.reason = reason


class SessionAcquisitionError(QueueCastError):
    """Raised when the output session cannot be acquired."""


class TransmissionFault(QueueCastError):
    """Raised by a transmitter when streaming a source fails."""
