"""Pydantic domain models.

These models are returned by DAOs and used throughout the service layer.
SQLAlchemy ORM objects should never be exposed outside the DAO layer -
always convert to these models.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from butler.enums import (
    ArchiveCategory,
    GameKind,
    GameStatus,
    MediaCategory,
    MessageDirection,
    MessageKind,
)
from butler.models.base import JsonModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommandGrant(JsonModel):
    """Permission for a non-owner identity to run one command."""

    user_identity: str
    command: str
    granted_at: datetime


class GameSession(JsonModel):
    """An interactive game bound to a single conversation.

    `state` holds the kind-specific engine state as a plain mapping so the
    session can be persisted without knowing the engine's types.
    """

    conversation_id: str
    kind: GameKind
    players: list[str] = Field(default_factory=list)
    status: GameStatus = GameStatus.ACTIVE
    turn_index: int = 0
    state: dict[str, Any] = Field(default_factory=dict)
    started_by: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_running(self) -> bool:
        return self.status in (GameStatus.WAITING, GameStatus.ACTIVE)

    @property
    def current_player(self) -> str | None:
        if not self.players:
            return None
        return self.players[self.turn_index % len(self.players)]


class GameRecord(JsonModel):
    """A finished game kept in history."""

    id: int | None = None
    conversation_id: str
    kind: GameKind
    status: GameStatus
    players: list[str] = Field(default_factory=list)
    winner: str | None = None
    moves: int = 0
    started_at: datetime
    ended_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


class PlayerStats(JsonModel):
    """Aggregated per-identity game counters."""

    identity: str
    games_started: int = 0
    games_completed: int = 0
    games_won: int = 0
    games_lost: int = 0
    games_tied: int = 0
    by_kind: dict[str, int] = Field(default_factory=dict)


class MediaAttachment(JsonModel):
    """Media metadata reported by a transport for an inbound message.

    Attributes:
        file_id: Transport-specific handle used to download the bytes.
        mime_type: MIME type, when the transport provides one.
        file_name: Original filename, when the transport provides one.
        size: Declared size in bytes, if known before download.
    """

    file_id: str
    mime_type: str | None = None
    file_name: str | None = None
    size: int | None = None


class InboundMessage(JsonModel):
    """A normalized message event produced by a transport."""

    message_id: str
    conversation_id: str
    sender: str
    text: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    from_me: bool = False
    kind: MessageKind = MessageKind.TEXT
    media: MediaAttachment | None = None
    sender_name: str | None = None
    mentions: list[str] = Field(default_factory=list)
    reply_to_sender: str | None = None

    @property
    def has_media(self) -> bool:
        return self.media is not None


class ArchiveEntry(JsonModel):
    """One line of the append-only message archive."""

    message_id: str
    conversation_id: str
    sender_identity: str
    timestamp: datetime
    body_text: str = ""
    message_kind: MessageKind = MessageKind.TEXT
    has_media: bool = False
    media_ref: str | None = None
    direction: MessageDirection = MessageDirection.INBOUND
    category: ArchiveCategory = ArchiveCategory.INDIVIDUAL
    archived_at: datetime = Field(default_factory=utcnow)


class MediaReference(JsonModel):
    """A message that carried a given media object."""

    message_id: str
    conversation_id: str
    sender_identity: str | None = None
    added_at: datetime = Field(default_factory=utcnow)


class MediaObject(JsonModel):
    """Content-addressed media stored in the vault."""

    content_hash: str
    filename: str
    original_name: str | None = None
    category: MediaCategory
    mime_type: str
    size_bytes: int
    storage_path: str
    relative_path: str
    created_at: datetime
    references: list[MediaReference] = Field(default_factory=list)
