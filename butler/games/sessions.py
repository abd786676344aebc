"""Game session manager.

Binds game engines to the access registry: starts and ends sessions, applies
moves under the conversation lock, runs AI moves and join/turn timers, and
keeps history and player statistics.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from butler.dao.game_dao import GameDAO
from butler.enums import GameKind, GameStatus
from butler.exceptions import GameAlreadyActiveError, InvalidInputError, PersistenceWriteError
from butler.games.base import AI_PLAYER, EngineState, GameEngine, MoveResult, display_name
from butler.models.domain import GameRecord, GameSession, InboundMessage, PlayerStats, utcnow
from butler.security.access_registry import AccessRegistry

logger = logging.getLogger(__name__)

SendText = Callable[[str, str], Awaitable[None]]


def _human_players(players: list[str]) -> list[str]:
    return [p for p in players if p != AI_PLAYER]


class GameSessionManager:
    """Runs game sessions on top of the access registry.

    Every mutation of a conversation's session happens while holding that
    conversation's lock; timers re-check the session after acquiring it.
    """

    def __init__(
        self,
        registry: AccessRegistry,
        game_dao: GameDAO,
        engines: dict[GameKind, GameEngine],
        *,
        send_text: SendText | None = None,
        ai_move_delay: float = 2.0,
        join_window: float = 45.0,
        turn_timeout: float = 30.0,
        history_limit: int = 1000,
    ):
        self._registry = registry
        self._game_dao = game_dao
        self._engines = dict(engines)
        self._send_text = send_text
        self._ai_move_delay = ai_move_delay
        self._join_window = join_window
        self._turn_timeout = turn_timeout
        self._history_limit = history_limit
        self._timers: dict[str, asyncio.Task] = {}
        self._timer_tasks: set[asyncio.Task] = set()

    def set_sender(self, send_text: SendText) -> None:
        self._send_text = send_text

    @property
    def kinds(self) -> list[GameKind]:
        return list(self._engines)

    def engine_for(self, kind: GameKind) -> GameEngine:
        engine = self._engines.get(kind)
        if engine is None:
            raise InvalidInputError(f"Game {kind} is not available")
        return engine

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_game(
        self,
        conversation_id: str,
        kind: GameKind,
        players: list[str],
        *,
        started_by: str | None = None,
        **options,
    ) -> str:
        """Start a game and return its opening prompt.

        Raises:
            GameAlreadyActiveError: The conversation already has a session.
            InvalidInputError: The engine rejected the player list or options.
            PersistenceWriteError: The game started but could not be saved.
        """
        engine = self.engine_for(kind)
        async with self._registry.conversation_lock(conversation_id):
            existing = self._registry.get_active_game(conversation_id)
            if existing is not None:
                raise GameAlreadyActiveError(conversation_id, str(existing.kind))

            prompt, state = engine.start(conversation_id, players, **options)
            try:
                session = await self._registry.start_game(
                    conversation_id,
                    kind,
                    state.players,
                    state.model_dump(),
                    started_by=started_by or players[0],
                    status=engine.status_of(state),
                    turn_index=state.turn_index,
                )
            except PersistenceWriteError:
                # The session is live in memory, so its timers must run
                session = self._registry.get_active_game(conversation_id)
                if session is not None:
                    await self._record_started(state.players, kind)
                    self._schedule_followups(session, engine, state)
                raise
            logger.info(
                "Game %s started in %s by %s with %d player(s)",
                kind,
                conversation_id,
                session.started_by,
                len(state.players),
            )
            await self._record_started(state.players, kind)
            self._schedule_followups(session, engine, state)
        return prompt

    async def handle_input(self, message: InboundMessage) -> str | None:
        """Forward a player's text to the conversation's game.

        Returns the reply to send, or None when the input was not game input.
        """
        conversation_id = message.conversation_id
        if self._registry.get_active_game(conversation_id) is None:
            return None

        async with self._registry.conversation_lock(conversation_id):
            session = self._registry.get_active_game(conversation_id)
            if session is None:
                return None
            engine = self.engine_for(session.kind)
            state = engine.load_state(session.state)
            if not engine.is_valid_input(message.text, state):
                return None

            result = engine.apply_move(state, message.sender, message.text)
            await self._apply_result(session, engine, result)
            return result.reply or None

    async def end_game(
        self,
        conversation_id: str,
        *,
        status: GameStatus = GameStatus.QUIT,
        ended_by: str | None = None,
    ) -> GameSession | None:
        """Force-end the conversation's session. Returns the ended session."""
        async with self._registry.conversation_lock(conversation_id):
            session = self._registry.get_active_game(conversation_id)
            if session is None:
                return None
            engine = self.engine_for(session.kind)
            state = engine.load_state(session.state)
            await self._finish(session, state, status, winner=None)
            logger.info(
                "Game %s in %s ended (%s) by %s",
                session.kind,
                conversation_id,
                status,
                ended_by or "system",
            )
            return session

    def game_info(self, conversation_id: str) -> str | None:
        session = self._registry.get_active_game(conversation_id)
        if session is None:
            return None
        engine = self.engine_for(session.kind)
        return engine.render_info(engine.load_state(session.state))

    async def resume(self) -> None:
        """Re-arm timers for sessions loaded from the database."""
        for session in self._registry.active_games():
            engine = self._engines.get(session.kind)
            if engine is None:
                logger.warning(
                    "Dropping %s session in %s: game kind disabled",
                    session.kind,
                    session.conversation_id,
                )
                await self.end_game(session.conversation_id, status=GameStatus.QUIT)
                continue
            self._schedule_followups(session, engine, engine.load_state(session.state))

    async def shutdown(self) -> None:
        """Cancel pending AI moves and timers. Sessions stay persisted."""
        # Timers that already left the map may still be announcing
        current = asyncio.current_task()
        timers = [t for t in self._timer_tasks if t is not current]
        self._timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        logger.info("Game timers cancelled (%d)", len(timers))

    # ------------------------------------------------------------------
    # Internals (caller holds the conversation lock)
    # ------------------------------------------------------------------

    async def _apply_result(
        self, session: GameSession, engine: GameEngine, result: MoveResult
    ) -> None:
        if result.ended:
            await self._finish(session, result.state, result.outcome, winner=result.winner)
            return
        if not result.changed:
            return

        state = result.state
        session.state = state.model_dump()
        session.players = list(state.players)
        session.turn_index = state.turn_index
        session.status = engine.status_of(state)
        try:
            await self._registry.update_game(session)
        except PersistenceWriteError:
            logger.warning("Game %s in %s continues unsaved", session.kind, session.conversation_id)
        self._schedule_followups(session, engine, state)

    async def _finish(
        self,
        session: GameSession,
        state: EngineState,
        status: GameStatus | None,
        *,
        winner: str | None,
    ) -> None:
        status = status or GameStatus.QUIT
        self._cancel_timer(session.conversation_id)
        session.status = status
        try:
            await self._registry.end_game(session.conversation_id)
        except PersistenceWriteError:
            logger.warning("Ended game in %s may reappear after restart", session.conversation_id)

        record = GameRecord(
            conversation_id=session.conversation_id,
            kind=session.kind,
            status=status,
            players=list(state.players or session.players),
            winner=winner,
            moves=state.moves,
            started_at=session.started_at,
            ended_at=utcnow(),
        )
        try:
            await self._game_dao.add_history(record, keep_last=self._history_limit)
            # Games abandoned before the first move don't count towards stats
            if state.moves:
                await self._game_dao.record_finished(
                    _human_players(record.players), status, winner if winner != AI_PLAYER else None
                )
        except Exception:
            logger.exception("Failed to record game history for %s", session.conversation_id)

    async def _record_started(self, players: list[str], kind: GameKind) -> None:
        try:
            await self._game_dao.record_started(_human_players(players), kind)
        except Exception:
            logger.exception("Failed to record game start statistics")

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _cancel_timer(self, conversation_id: str) -> None:
        task = self._timers.pop(conversation_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _set_timer(self, conversation_id: str, coro: Awaitable[None]) -> None:
        self._cancel_timer(conversation_id)
        task = asyncio.create_task(coro, name=f"game-timer:{conversation_id}")
        self._timers[conversation_id] = task
        self._timer_tasks.add(task)
        task.add_done_callback(lambda t: self._forget_timer(conversation_id, t))

    def _forget_timer(self, conversation_id: str, task: asyncio.Task) -> None:
        self._timer_tasks.discard(task)
        if self._timers.get(conversation_id) is task:
            del self._timers[conversation_id]

    def _schedule_followups(
        self, session: GameSession, engine: GameEngine, state: EngineState
    ) -> None:
        cid = session.conversation_id
        if engine.pending_automatic_move(state):
            self._set_timer(cid, self._run_automatic_move(cid, session.kind))
        elif session.status is GameStatus.WAITING:
            # Joins must not extend the join window
            if cid not in self._timers:
                self._set_timer(cid, self._close_waiting_room(cid))
        elif engine.turn_timed(state):
            self._set_timer(
                cid, self._expire_turn(cid, state.current_player, state.moves)
            )
        else:
            self._cancel_timer(cid)

    async def _run_automatic_move(self, conversation_id: str, kind: GameKind) -> None:
        try:
            await asyncio.sleep(self._ai_move_delay)
            async with self._registry.conversation_lock(conversation_id):
                session = self._registry.get_active_game(conversation_id)
                if session is None or session.kind != kind:
                    return
                engine = self.engine_for(kind)
                state = engine.load_state(session.state)
                if not engine.pending_automatic_move(state):
                    return
                result = engine.automatic_move(state)
                await self._apply_result(session, engine, result)
            await self._announce(conversation_id, result.reply)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Automatic move failed in %s", conversation_id)

    async def _close_waiting_room(self, conversation_id: str) -> None:
        try:
            await asyncio.sleep(self._join_window)
            async with self._registry.conversation_lock(conversation_id):
                session = self._registry.get_active_game(conversation_id)
                if session is None or session.status is not GameStatus.WAITING:
                    return
                engine = self.engine_for(session.kind)
                close = getattr(engine, "close_waiting_room", None)
                if close is None:
                    return
                # This task is the timer; drop it so the turn timer can replace it
                self._timers.pop(conversation_id, None)
                result = close(engine.load_state(session.state))
                await self._apply_result(session, engine, result)
            await self._announce(conversation_id, result.reply)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Closing waiting room failed in %s", conversation_id)

    async def _expire_turn(self, conversation_id: str, player: str | None, moves: int) -> None:
        try:
            await asyncio.sleep(self._turn_timeout)
            async with self._registry.conversation_lock(conversation_id):
                session = self._registry.get_active_game(conversation_id)
                if session is None:
                    return
                engine = self.engine_for(session.kind)
                state = engine.load_state(session.state)
                if state.moves != moves or state.current_player != player:
                    return
                await self._finish(session, state, GameStatus.TIMEOUT, winner=None)
            logger.info("Game in %s timed out waiting for %s", conversation_id, player)
            await self._announce(
                conversation_id,
                f"⏰ *Time's up!* {display_name(player)} took too long.\n\n"
                + engine.render_info(state)
                + "\n\n🏁 Game over.",
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Turn timeout handling failed in %s", conversation_id)

    async def _announce(self, conversation_id: str, text: str | None) -> None:
        if not text or self._send_text is None:
            return
        try:
            await self._send_text(conversation_id, text)
        except Exception:
            logger.exception("Failed to send game update to %s", conversation_id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def player_stats(self, identity: str) -> PlayerStats | None:
        return await self._game_dao.get_player_stats(identity)

    async def global_stats(self) -> dict:
        finished_by_kind = await self._game_dao.count_history()
        active_by_kind: dict[str, int] = {}
        for session in self._registry.active_games():
            active_by_kind[str(session.kind)] = active_by_kind.get(str(session.kind), 0) + 1
        top = await self._game_dao.top_players(limit=5)
        return {
            "active_games": sum(active_by_kind.values()),
            "active_by_kind": active_by_kind,
            "finished_games": sum(finished_by_kind.values()),
            "finished_by_kind": finished_by_kind,
            "top_players": top,
        }
