"""Owner, command grants, and active game sessions.

The registry keeps its state in memory for routing decisions and writes every
mutation through to the database. Reads never hit the database after load().
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from butler.dao.access_dao import AccessDAO
from butler.dao.game_dao import GameDAO
from butler.enums import GameKind, GameStatus, RoutingReason
from butler.exceptions import GameAlreadyActiveError, InvalidInputError, PersistenceWriteError
from butler.models.domain import GameSession, InboundMessage, utcnow
from butler.security.identity import identities_equal, normalize

logger = logging.getLogger(__name__)

# Words a non-player may send to enter a game's waiting room
JOIN_WORDS = frozenset({"join", "start"})


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of an access check for a single message."""

    allowed: bool
    reason: RoutingReason
    game_kind: GameKind | None = None
    command: str | None = None


def _grant_key(identity: str) -> str:
    return normalize(identity) or (identity or "").strip().lower()


class AccessRegistry:
    """Persisted access-control state.

    Decision precedence is fixed: owner, then game player, then an explicit
    command grant; everything else is denied.
    """

    def __init__(self, access_dao: AccessDAO, game_dao: GameDAO):
        self._access_dao = access_dao
        self._game_dao = game_dao
        self._owner: str | None = None
        self._grants: dict[str, set[str]] = {}
        self._games: dict[str, GameSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def load(self) -> None:
        """Load owner, grants and sessions. Read failures leave empty state."""
        try:
            self._owner = await self._access_dao.get_owner()
        except Exception:
            logger.exception("Failed to load owner identity; starting without an owner")
            self._owner = None

        grants: dict[str, set[str]] = {}
        try:
            for grant in await self._access_dao.list_grants():
                grants.setdefault(_grant_key(grant.user_identity), set()).add(grant.command)
        except Exception:
            logger.exception("Failed to load command grants; starting with none")
            grants = {}
        self._grants = grants

        games: dict[str, GameSession] = {}
        try:
            for session in await self._game_dao.list_sessions():
                if session.is_running:
                    games[session.conversation_id] = session
        except Exception:
            logger.exception("Failed to load game sessions; starting with none")
            games = {}
        self._games = games

        logger.info(
            "Access registry loaded: owner=%s users_with_grants=%d active_games=%d",
            "set" if self._owner else "unset",
            len(self._grants),
            len(self._games),
        )

    def conversation_lock(self, conversation_id: str) -> asyncio.Lock:
        """Per-conversation lock serializing session mutations."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Owner
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str | None:
        return self._owner

    async def set_owner(self, identity: str) -> None:
        """Record identity as owner, replacing any previous owner."""
        if self._owner == identity:
            return
        self._owner = identity
        try:
            await self._access_dao.set_owner(identity)
        except Exception as e:
            logger.exception("Failed to persist owner identity")
            raise PersistenceWriteError("Could not save owner identity") from e

    def is_owner(self, identity: str | None) -> bool:
        return self._owner is not None and identities_equal(identity, self._owner)

    # ------------------------------------------------------------------
    # Command grants
    # ------------------------------------------------------------------

    async def allow(self, user: str, command: str) -> bool:
        """Grant command to user. Returns False if the grant already existed.

        Raises:
            InvalidInputError: user is the owner, who never holds grants.
        """
        if self.is_owner(user):
            raise InvalidInputError("The owner can already run every command")
        key = _grant_key(user)
        command = command.lower()
        commands = self._grants.setdefault(key, set())
        if command in commands:
            return False
        commands.add(command)
        try:
            await self._access_dao.add_grant(key, command)
        except Exception as e:
            logger.exception("Failed to persist grant %s for %s", command, key)
            raise PersistenceWriteError(f"Could not save grant for {command}") from e
        return True

    async def disallow(self, user: str, command: str) -> bool:
        """Revoke command from user. Returns False if it was not granted."""
        key = _grant_key(user)
        command = command.lower()
        commands = self._grants.get(key)
        if not commands or command not in commands:
            return False
        commands.discard(command)
        if not commands:
            del self._grants[key]
        try:
            await self._access_dao.remove_grant(key, command)
        except Exception as e:
            logger.exception("Failed to persist revocation of %s for %s", command, key)
            raise PersistenceWriteError(f"Could not remove grant for {command}") from e
        return True

    def is_command_allowed(self, user: str | None, command: str | None) -> bool:
        if not user or not command:
            return False
        return command.lower() in self._grants.get(_grant_key(user), set())

    def get_user_grants(self, user: str) -> list[str]:
        return sorted(self._grants.get(_grant_key(user), set()))

    def get_all_grants(self) -> dict[str, list[str]]:
        return {user: sorted(commands) for user, commands in sorted(self._grants.items())}

    # ------------------------------------------------------------------
    # Game sessions
    # ------------------------------------------------------------------

    async def start_game(
        self,
        conversation_id: str,
        kind: GameKind,
        players: list[str],
        state: dict | None = None,
        *,
        started_by: str | None = None,
        status: GameStatus = GameStatus.ACTIVE,
        turn_index: int = 0,
    ) -> GameSession:
        """Create the conversation's game session.

        Raises:
            GameAlreadyActiveError: A session already exists for the conversation.
            PersistenceWriteError: The session was created but could not be saved.
        """
        existing = self._games.get(conversation_id)
        if existing is not None:
            raise GameAlreadyActiveError(conversation_id, str(existing.kind))

        session = GameSession(
            conversation_id=conversation_id,
            kind=kind,
            players=list(players),
            status=status,
            turn_index=turn_index,
            state=dict(state or {}),
            started_by=started_by,
        )
        self._games[conversation_id] = session
        await self._persist_session(session)
        return session

    async def update_game(self, session: GameSession) -> None:
        """Replace the stored session for its conversation and persist it."""
        session.updated_at = utcnow()
        self._games[session.conversation_id] = session
        await self._persist_session(session)

    async def end_game(self, conversation_id: str) -> bool:
        """Remove the conversation's session. Returns False if none existed."""
        if self._games.pop(conversation_id, None) is None:
            return False
        try:
            await self._game_dao.delete_session(conversation_id)
        except Exception as e:
            logger.exception("Failed to delete game session for %s", conversation_id)
            raise PersistenceWriteError("Could not remove game session") from e
        return True

    async def _persist_session(self, session: GameSession) -> None:
        try:
            await self._game_dao.save_session(session)
        except Exception as e:
            logger.exception("Failed to persist game session for %s", session.conversation_id)
            raise PersistenceWriteError("Could not save game session") from e

    def get_active_game(self, conversation_id: str) -> GameSession | None:
        return self._games.get(conversation_id)

    def active_games(self) -> list[GameSession]:
        return list(self._games.values())

    def is_game_player(self, conversation_id: str, identity: str | None) -> bool:
        session = self._games.get(conversation_id)
        if session is None:
            return False
        return any(identities_equal(identity, p) for p in session.players)

    def accepts_game_input(self, message: InboundMessage) -> bool:
        """True if the sender plays in, or may join, the conversation's game."""
        session = self._games.get(message.conversation_id)
        if session is None:
            return False
        if self.is_game_player(message.conversation_id, message.sender):
            return True
        return (
            session.status is GameStatus.WAITING
            and message.text.strip().lower() in JOIN_WORDS
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self, message: InboundMessage, candidate_command: str | None
    ) -> RoutingDecision:
        """Compute the routing decision for one message."""
        sender = message.sender
        if self.is_owner(sender):
            return RoutingDecision(True, RoutingReason.OWNER, command=candidate_command)

        session = self._games.get(message.conversation_id)
        if session is not None and self.accepts_game_input(message):
            return RoutingDecision(
                True,
                RoutingReason.GAME_PLAYER,
                game_kind=session.kind,
                command=candidate_command,
            )

        if candidate_command and self.is_command_allowed(sender, candidate_command):
            return RoutingDecision(
                True, RoutingReason.ALLOWED_COMMAND, command=candidate_command.lower()
            )

        return RoutingDecision(False, RoutingReason.DENIED, command=candidate_command)

    def stats(self) -> dict[str, int | str | None]:
        return {
            "owner": self._owner,
            "users_with_grants": len(self._grants),
            "total_grants": sum(len(c) for c in self._grants.values()),
            "active_games": len(self._games),
        }
