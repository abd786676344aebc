"""Game session, history, and player statistics data access operations."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import delete, func, select

from butler.dao.base import BaseDAO, from_db_datetime, to_db_datetime
from butler.enums import GameKind, GameStatus
from butler.models.domain import GameRecord, GameSession, PlayerStats, utcnow
from butler.models.orm import GameHistoryModel, GameSessionModel, PlayerStatsModel

_OUTCOME_COLUMNS = {
    GameStatus.WON: "games_won",
    GameStatus.LOST: "games_lost",
    GameStatus.TIED: "games_tied",
}


def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def _loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return default


class GameDAO(BaseDAO[GameSession]):
    """Data access object for games.

    Active sessions are keyed by conversation id. Finished games are kept in
    a bounded history table and folded into per-player counters.
    """

    @staticmethod
    def _session_to_domain(model: GameSessionModel) -> GameSession:
        return GameSession(
            conversation_id=model.conversation_id,
            kind=GameKind(model.kind),
            players=_loads(model.players, []),
            status=GameStatus(model.status),
            turn_index=model.turn_index or 0,
            state=_loads(model.state, {}),
            started_by=model.started_by,
            started_at=from_db_datetime(model.started_at),
            updated_at=from_db_datetime(model.updated_at),
        )

    @staticmethod
    def _record_to_domain(model: GameHistoryModel) -> GameRecord:
        return GameRecord(
            id=model.id,
            conversation_id=model.conversation_id,
            kind=GameKind(model.kind),
            status=GameStatus(model.status),
            players=_loads(model.players, []),
            winner=model.winner,
            moves=model.moves or 0,
            started_at=from_db_datetime(model.started_at),
            ended_at=from_db_datetime(model.ended_at),
        )

    @staticmethod
    def _stats_to_domain(model: PlayerStatsModel) -> PlayerStats:
        return PlayerStats(
            identity=model.identity,
            games_started=model.games_started or 0,
            games_completed=model.games_completed or 0,
            games_won=model.games_won or 0,
            games_lost=model.games_lost or 0,
            games_tied=model.games_tied or 0,
            by_kind=_loads(model.by_kind, {}),
        )

    # ------------------------------------------------------------------
    # Active sessions
    # ------------------------------------------------------------------

    async def list_sessions(self) -> list[GameSession]:
        async with self._db.session() as session:
            result = await session.execute(select(GameSessionModel))
            return [self._session_to_domain(m) for m in result.scalars().all()]

    async def save_session(self, game: GameSession) -> None:
        """Insert or update the session row for game.conversation_id."""
        async with self._db.session() as session:
            model = await session.get(GameSessionModel, game.conversation_id)
            if model is None:
                model = GameSessionModel(conversation_id=game.conversation_id)
                session.add(model)
            model.kind = str(game.kind)
            model.status = str(game.status)
            model.players = _dumps(game.players)
            model.turn_index = game.turn_index
            model.state = _dumps(game.state)
            model.started_by = game.started_by
            model.started_at = to_db_datetime(game.started_at)
            model.updated_at = to_db_datetime(game.updated_at)

    async def delete_session(self, conversation_id: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                delete(GameSessionModel).where(
                    GameSessionModel.conversation_id == conversation_id
                )
            )
            return (result.rowcount or 0) > 0

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def add_history(self, record: GameRecord, *, keep_last: int) -> GameRecord:
        """Append a finished game and prune history beyond keep_last rows."""
        async with self._db.session() as session:
            model = GameHistoryModel(
                conversation_id=record.conversation_id,
                kind=str(record.kind),
                status=str(record.status),
                players=_dumps(record.players),
                winner=record.winner,
                moves=record.moves,
                started_at=to_db_datetime(record.started_at),
                ended_at=to_db_datetime(record.ended_at),
            )
            session.add(model)
            await session.flush()
            saved = self._record_to_domain(model)

            cutoff_result = await session.execute(
                select(GameHistoryModel.id)
                .order_by(GameHistoryModel.id.desc())
                .offset(keep_last)
                .limit(1)
            )
            cutoff = cutoff_result.scalar_one_or_none()
            if cutoff is not None:
                await session.execute(
                    delete(GameHistoryModel).where(GameHistoryModel.id <= cutoff)
                )
            return saved

    async def list_history(
        self, *, limit: int = 20, identity: str | None = None
    ) -> list[GameRecord]:
        """Most recent finished games first, optionally for one player."""
        async with self._db.session() as session:
            query = select(GameHistoryModel).order_by(GameHistoryModel.id.desc())
            if identity is None:
                query = query.limit(limit)
            result = await session.execute(query)
            records = [self._record_to_domain(m) for m in result.scalars().all()]
        if identity is not None:
            records = [r for r in records if identity in r.players][:limit]
        return records

    async def count_history(self) -> dict[str, int]:
        """Finished game counts keyed by kind."""
        async with self._db.session() as session:
            result = await session.execute(
                select(GameHistoryModel.kind, func.count()).group_by(GameHistoryModel.kind)
            )
            return {kind: count for kind, count in result.all()}

    # ------------------------------------------------------------------
    # Player statistics
    # ------------------------------------------------------------------

    async def _get_or_create_stats(self, session, identity: str) -> PlayerStatsModel:
        model = await session.get(PlayerStatsModel, identity)
        if model is None:
            model = PlayerStatsModel(
                identity=identity,
                games_started=0,
                games_completed=0,
                games_won=0,
                games_lost=0,
                games_tied=0,
                by_kind=_dumps({}),
            )
            session.add(model)
        return model

    async def record_started(self, players: list[str], kind: GameKind) -> None:
        async with self._db.session() as session:
            for identity in players:
                model = await self._get_or_create_stats(session, identity)
                model.games_started = (model.games_started or 0) + 1
                by_kind = _loads(model.by_kind, {})
                by_kind[str(kind)] = by_kind.get(str(kind), 0) + 1
                model.by_kind = _dumps(by_kind)
                model.updated_at = to_db_datetime(utcnow())

    async def record_finished(
        self, players: list[str], status: GameStatus, winner: str | None
    ) -> None:
        """Fold a finished game into each player's counters.

        With a winner, the winner gets a win and everybody else a loss. A
        lost status without a winner counts as a loss for every player.
        """
        async with self._db.session() as session:
            for identity in players:
                model = await self._get_or_create_stats(session, identity)
                model.games_completed = (model.games_completed or 0) + 1
                if winner is not None:
                    column = "games_won" if identity == winner else "games_lost"
                else:
                    column = _OUTCOME_COLUMNS.get(status)
                if column:
                    setattr(model, column, (getattr(model, column) or 0) + 1)
                model.updated_at = to_db_datetime(utcnow())

    async def get_player_stats(self, identity: str) -> PlayerStats | None:
        async with self._db.session() as session:
            model = await session.get(PlayerStatsModel, identity)
            return self._stats_to_domain(model) if model else None

    async def top_players(self, limit: int = 5) -> list[PlayerStats]:
        async with self._db.session() as session:
            result = await session.execute(
                select(PlayerStatsModel)
                .order_by(
                    PlayerStatsModel.games_won.desc(),
                    PlayerStatsModel.games_completed.desc(),
                )
                .limit(limit)
            )
            return [self._stats_to_domain(m) for m in result.scalars().all()]
