"""Domain exception hierarchy."""

from __future__ import annotations


class ButlerError(Exception):
    """Base class for all errors raised by butler services."""


class InvalidInputError(ButlerError):
    """Malformed command arguments or move syntax.

    The message is meant to be shown to the user as-is.
    """


class PermissionDeniedError(ButlerError):
    """The sender is not allowed to perform the requested action."""


class GameAlreadyActiveError(ButlerError):
    """A game session is already running in the conversation."""

    def __init__(self, conversation_id: str, kind: str | None = None):
        self.conversation_id = conversation_id
        self.kind = kind
        label = f" ({kind})" if kind else ""
        super().__init__(
            f"A game{label} is already active in {conversation_id}"
        )


class PersistenceWriteError(ButlerError):
    """A write to the durable store failed after the in-memory change."""


class TransportError(ButlerError):
    """The messaging transport failed to deliver or fetch something."""


class MediaTooLargeError(ButlerError):
    """A media payload exceeds the configured vault size limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Media size {size} bytes exceeds limit of {limit} bytes")
