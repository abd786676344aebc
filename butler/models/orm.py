"""SQLAlchemy ORM models.

These models define the database schema. DAOs convert these to Pydantic
domain models before returning to services - SQLAlchemy objects should
never leak outside the DAO layer.
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from butler.database import Base


class BotSettingModel(Base):
    """Key/value bot settings (the owner identity lives here)."""

    __tablename__ = "bot_settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class CommandGrantModel(Base):
    """Command permission granted to a non-owner identity."""

    __tablename__ = "command_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_identity = Column(String, nullable=False, index=True)
    command = Column(String, nullable=False)
    granted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_identity", "command", name="uq_grant_user_command"),
    )


class GameSessionModel(Base):
    """Active game session, at most one per conversation."""

    __tablename__ = "game_sessions"

    conversation_id = Column(String, primary_key=True)
    kind = Column(String, nullable=False)
    status = Column(String, nullable=False)
    players = Column(Text, nullable=False)  # JSON-encoded list
    turn_index = Column(Integer, nullable=False, default=0)
    state = Column(Text, nullable=False)  # JSON-encoded engine state
    started_by = Column(String, nullable=True)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class GameHistoryModel(Base):
    """Finished game."""

    __tablename__ = "game_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    status = Column(String, nullable=False)
    players = Column(Text, nullable=False)  # JSON-encoded list
    winner = Column(String, nullable=True)
    moves = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_game_history_ended_at", "ended_at"),
        Index("idx_game_history_conversation", "conversation_id"),
    )


class PlayerStatsModel(Base):
    """Per-identity game counters."""

    __tablename__ = "player_stats"

    identity = Column(String, primary_key=True)
    games_started = Column(Integer, nullable=False, default=0)
    games_completed = Column(Integer, nullable=False, default=0)
    games_won = Column(Integer, nullable=False, default=0)
    games_lost = Column(Integer, nullable=False, default=0)
    games_tied = Column(Integer, nullable=False, default=0)
    by_kind = Column(Text, nullable=True)  # JSON-encoded dict
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class MediaObjectModel(Base):
    """Content-addressed media file metadata."""

    __tablename__ = "media_objects"

    content_hash = Column(String(64), primary_key=True)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=True)
    category = Column(String, nullable=False, index=True)
    mime_type = Column(String, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    storage_path = Column(String, nullable=False)
    relative_path = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    references = relationship(
        "MediaReferenceModel",
        back_populates="media",
        cascade="all, delete-orphan",
        order_by="MediaReferenceModel.id",
    )


class MediaReferenceModel(Base):
    """Back-reference from a media object to a message that carried it."""

    __tablename__ = "media_references"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content_hash = Column(
        String(64),
        ForeignKey("media_objects.content_hash", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message_id = Column(String, nullable=False)
    conversation_id = Column(String, nullable=False)
    sender_identity = Column(String, nullable=True)
    added_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    media = relationship("MediaObjectModel", back_populates="references")

    __table_args__ = (
        UniqueConstraint("content_hash", "message_id", name="uq_media_ref_message"),
    )
