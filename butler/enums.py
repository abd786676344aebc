"""StrEnum definitions for type-safe constants."""

from enum import StrEnum


class RoutingReason(StrEnum):
    """Why a message was (or was not) let through the router."""

    OWNER = "owner"
    GAME_PLAYER = "game_player"
    ALLOWED_COMMAND = "allowed_command"
    DENIED = "denied"


class GameKind(StrEnum):
    """Supported mini-game kinds."""

    TICTACTOE = "tictactoe"
    WORD_GUESS = "wordguess"


class GameStatus(StrEnum):
    """Game session lifecycle states."""

    WAITING = "waiting"
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    TIED = "tied"
    QUIT = "quit"
    TIMEOUT = "timeout"


class WordGuessMode(StrEnum):
    """Word guessing game variants."""

    CLASSIC = "classic"
    RACE = "race"


class ArchiveCategory(StrEnum):
    """Conversation categories used to lay out the archive on disk."""

    INDIVIDUAL = "individual"
    GROUPS = "groups"
    STATUS = "status"


class MediaCategory(StrEnum):
    """Media vault directories derived from MIME type."""

    IMAGES = "images"
    STICKERS = "stickers"
    VIDEOS = "videos"
    AUDIO = "audio"
    DOCUMENTS = "documents"


class MessageDirection(StrEnum):
    """Direction of an archived message relative to this agent."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageKind(StrEnum):
    """Coarse message content types reported by transports."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    STICKER = "sticker"
    DOCUMENT = "document"
    OTHER = "other"


class IndicatorKind(StrEnum):
    """Transient indicators a transport may show on a message or chat."""

    PROCESSING = "processing"
    CLEAR = "clear"
