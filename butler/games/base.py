"""Game engine contract shared by every game kind."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Generic, TypeVar

from pydantic import Field

from butler.enums import GameKind, GameStatus
from butler.models.base import JsonModel
from butler.models.domain import utcnow
from butler.security.identity import identities_equal

AI_PLAYER = "AI"
QUIT_WORDS = frozenset({"quit"})


def same_player(a: str | None, b: str | None) -> bool:
    """Identity equality that also matches non-numeric ids such as AI."""
    return a == b or identities_equal(a, b)


def display_name(player: str | None) -> str:
    if not player:
        return "nobody"
    if player == AI_PLAYER:
        return "🤖 AI"
    return player.split("@")[0]


def format_duration(started_at: datetime, now: datetime | None = None) -> str:
    elapsed = int(((now or utcnow()) - started_at).total_seconds())
    minutes, seconds = divmod(max(elapsed, 0), 60)
    return f"{minutes}m {seconds}s"


class EngineState(JsonModel):
    """Fields every kind-specific state carries."""

    players: list[str] = Field(default_factory=list)
    turn_index: int = 0
    moves: int = 0
    started_at: datetime = Field(default_factory=utcnow)

    @property
    def current_player(self) -> str | None:
        if not self.players:
            return None
        return self.players[self.turn_index % len(self.players)]


S = TypeVar("S", bound=EngineState)


@dataclass
class MoveResult(Generic[S]):
    """Outcome of applying one input to a game.

    Attributes:
        state: State after the move (unchanged when the move was rejected).
        reply: Text to send back to the conversation, if any.
        ended: Whether the session reached a terminal status.
        outcome: Terminal status when ended.
        winner: Winning player identity, when there is one.
        changed: False when the input was rejected and state is untouched.
    """

    state: S
    reply: str | None = None
    ended: bool = False
    outcome: GameStatus | None = None
    winner: str | None = None
    changed: bool = True

    @classmethod
    def rejected(cls, state: S, reply: str) -> "MoveResult[S]":
        return cls(state=state, reply=reply, changed=False)


class GameEngine(ABC, Generic[S]):
    """A game kind's pure state machine.

    Engines never touch the transport or the registry; the session manager
    persists states and schedules timers around them.
    """

    kind: ClassVar[GameKind]
    state_model: ClassVar[type[EngineState]]

    def load_state(self, data: dict) -> S:
        return self.state_model.model_validate(data)

    def status_of(self, state: S) -> GameStatus:
        """Session status for a non-terminal state."""
        return GameStatus.ACTIVE

    def turn_timed(self, state: S) -> bool:
        """True when the current player must move within the turn timeout."""
        return False

    @abstractmethod
    def start(self, conversation_id: str, players: list[str], **options) -> tuple[str, S]:
        """Create the initial state and the prompt announcing the game."""

    @abstractmethod
    def is_valid_input(self, raw: str, state: S) -> bool:
        """Cheap syntactic filter; chat noise returns False and is ignored."""

    @abstractmethod
    def apply_move(self, state: S, player: str, raw: str) -> MoveResult[S]:
        """Apply one player's input and return the resulting state and reply."""

    @abstractmethod
    def render_info(self, state: S) -> str:
        """Render current progress from state alone."""

    def pending_automatic_move(self, state: S) -> bool:
        """True when the next move belongs to a synthetic player."""
        return False

    def automatic_move(self, state: S) -> MoveResult[S]:
        raise NotImplementedError(f"{self.kind} has no automatic player")
