"""Unit tests for DAO layer.

Tests verify:
- DAOs return Pydantic models, not SQLAlchemy objects
- Upserts, pruning and counters behave as the registry and games expect
"""

from datetime import timedelta

from butler.dao import AccessDAO, GameDAO, MediaDAO
from butler.enums import GameKind, GameStatus, MediaCategory
from butler.models.domain import (
    CommandGrant,
    GameRecord,
    GameSession,
    MediaObject,
    MediaReference,
    PlayerStats,
    utcnow,
)
from tests.conftest import ALICE, BOB, CAROL, OWNER


def _record(conversation_id: str = "chat", **overrides) -> GameRecord:
    now = utcnow()
    values = dict(
        conversation_id=conversation_id,
        kind=GameKind.TICTACTOE,
        status=GameStatus.WON,
        players=[ALICE, BOB],
        winner=ALICE,
        moves=5,
        started_at=now - timedelta(minutes=2),
        ended_at=now,
    )
    values.update(overrides)
    return GameRecord(**values)


def _media(digest: str, category: MediaCategory = MediaCategory.IMAGES, **overrides) -> MediaObject:
    values = dict(
        content_hash=digest,
        filename=f"1700000000000_{digest[:8]}.jpg",
        category=category,
        mime_type="image/jpeg",
        size_bytes=100,
        storage_path=f"/vault/{category}/{digest}.jpg",
        relative_path=f"{category}/{digest}.jpg",
        created_at=utcnow(),
        references=[MediaReference(message_id="m1", conversation_id="chat")],
    )
    values.update(overrides)
    return MediaObject(**values)


class TestAccessDAO:
    async def test_owner_roundtrip_and_replace(self, access_dao: AccessDAO):
        assert await access_dao.get_owner() is None
        await access_dao.set_owner(OWNER)
        assert await access_dao.get_owner() == OWNER
        await access_dao.set_owner(ALICE)
        assert await access_dao.get_owner() == ALICE

    async def test_add_grant_returns_pydantic_and_is_idempotent(self, access_dao: AccessDAO):
        first = await access_dao.add_grant(ALICE, "ping")
        second = await access_dao.add_grant(ALICE, "ping")
        assert isinstance(first, CommandGrant)
        assert first.granted_at == second.granted_at
        assert len(await access_dao.list_grants()) == 1

    async def test_remove_grant(self, access_dao: AccessDAO):
        await access_dao.add_grant(ALICE, "ping")
        assert await access_dao.remove_grant(ALICE, "ping") is True
        assert await access_dao.remove_grant(ALICE, "ping") is False

    async def test_remove_user(self, access_dao: AccessDAO):
        await access_dao.add_grant(ALICE, "ping")
        await access_dao.add_grant(ALICE, "help")
        await access_dao.add_grant(BOB, "ping")
        assert await access_dao.remove_user(ALICE) == 2
        grants = await access_dao.list_grants()
        assert [(g.user_identity, g.command) for g in grants] == [(BOB, "ping")]


class TestGameDAOSessions:
    async def test_save_session_upserts(self, game_dao: GameDAO):
        session = GameSession(conversation_id="chat", kind=GameKind.TICTACTOE, players=[ALICE, BOB])
        await game_dao.save_session(session)
        session.turn_index = 1
        session.state = {"moves": 1}
        await game_dao.save_session(session)

        stored = await game_dao.list_sessions()
        assert len(stored) == 1
        assert isinstance(stored[0], GameSession)
        assert stored[0].turn_index == 1
        assert stored[0].state == {"moves": 1}
        assert stored[0].kind is GameKind.TICTACTOE

    async def test_delete_session(self, game_dao: GameDAO):
        await game_dao.save_session(
            GameSession(conversation_id="chat", kind=GameKind.WORD_GUESS, players=[ALICE])
        )
        assert await game_dao.delete_session("chat") is True
        assert await game_dao.delete_session("chat") is False
        assert await game_dao.list_sessions() == []


class TestGameDAOHistory:
    async def test_history_is_pruned_to_limit(self, game_dao: GameDAO):
        for i in range(5):
            await game_dao.add_history(_record(f"chat{i}"), keep_last=3)
        history = await game_dao.list_history(limit=10)
        assert [r.conversation_id for r in history] == ["chat4", "chat3", "chat2"]

    async def test_history_filtered_by_player(self, game_dao: GameDAO):
        await game_dao.add_history(_record("a"), keep_last=10)
        await game_dao.add_history(_record("b", players=[CAROL, BOB], winner=CAROL), keep_last=10)
        history = await game_dao.list_history(identity=CAROL)
        assert [r.conversation_id for r in history] == ["b"]

    async def test_count_history_by_kind(self, game_dao: GameDAO):
        await game_dao.add_history(_record("a"), keep_last=10)
        await game_dao.add_history(_record("b"), keep_last=10)
        await game_dao.add_history(
            _record("c", kind=GameKind.WORD_GUESS, players=[ALICE], winner=None),
            keep_last=10,
        )
        assert await game_dao.count_history() == {"tictactoe": 2, "wordguess": 1}

    async def test_duration(self, game_dao: GameDAO):
        saved = await game_dao.add_history(_record(), keep_last=10)
        assert saved.duration_seconds == 120


class TestGameDAOStats:
    async def test_winner_and_loser_counters(self, game_dao: GameDAO):
        await game_dao.record_started([ALICE, BOB], GameKind.TICTACTOE)
        await game_dao.record_finished([ALICE, BOB], GameStatus.WON, ALICE)

        alice = await game_dao.get_player_stats(ALICE)
        bob = await game_dao.get_player_stats(BOB)
        assert isinstance(alice, PlayerStats)
        assert (alice.games_started, alice.games_completed, alice.games_won) == (1, 1, 1)
        assert bob.games_lost == 1
        assert alice.by_kind == {"tictactoe": 1}

    async def test_tie_counts_for_everyone(self, game_dao: GameDAO):
        await game_dao.record_finished([ALICE, BOB], GameStatus.TIED, None)
        assert (await game_dao.get_player_stats(ALICE)).games_tied == 1
        assert (await game_dao.get_player_stats(BOB)).games_tied == 1

    async def test_quit_only_counts_completion(self, game_dao: GameDAO):
        await game_dao.record_finished([ALICE], GameStatus.QUIT, None)
        stats = await game_dao.get_player_stats(ALICE)
        assert stats.games_completed == 1
        assert stats.games_won == stats.games_lost == stats.games_tied == 0

    async def test_unknown_player(self, game_dao: GameDAO):
        assert await game_dao.get_player_stats(CAROL) is None

    async def test_top_players_ordered_by_wins(self, game_dao: GameDAO):
        await game_dao.record_finished([ALICE, BOB], GameStatus.WON, BOB)
        await game_dao.record_finished([ALICE, BOB], GameStatus.WON, BOB)
        await game_dao.record_finished([ALICE, CAROL], GameStatus.WON, ALICE)
        top = await game_dao.top_players(limit=2)
        assert [p.identity for p in top] == [BOB, ALICE]


class TestMediaDAO:
    async def test_create_and_get_with_references(self, media_dao: MediaDAO):
        await media_dao.create(_media("a" * 64))
        stored = await media_dao.get("a" * 64)
        assert isinstance(stored, MediaObject)
        assert stored.category is MediaCategory.IMAGES
        assert [r.message_id for r in stored.references] == ["m1"]

    async def test_add_reference_dedupes_by_message(self, media_dao: MediaDAO):
        await media_dao.create(_media("a" * 64))
        ref = MediaReference(message_id="m2", conversation_id="other")
        assert await media_dao.add_reference("a" * 64, ref) is True
        assert await media_dao.add_reference("a" * 64, ref) is False
        assert await media_dao.count_references() == 2

    async def test_search_filters(self, media_dao: MediaDAO):
        await media_dao.create(_media("a" * 64))
        await media_dao.create(
            _media(
                "b" * 64,
                MediaCategory.VIDEOS,
                mime_type="video/mp4",
                references=[MediaReference(message_id="m9", conversation_id="group")],
            )
        )
        assert [m.content_hash for m in await media_dao.search(category=MediaCategory.VIDEOS)] == [
            "b" * 64
        ]
        assert [m.content_hash for m in await media_dao.search(mime_prefix="image/")] == ["a" * 64]
        assert [m.content_hash for m in await media_dao.search(conversation_id="group")] == [
            "b" * 64
        ]

    async def test_stats_and_delete(self, media_dao: MediaDAO):
        await media_dao.create(_media("a" * 64, size_bytes=10))
        await media_dao.create(_media("b" * 64, size_bytes=30))
        assert await media_dao.stats() == {"images": {"files": 2, "bytes": 40}}

        assert await media_dao.delete("a" * 64) is True
        assert await media_dao.get("a" * 64) is None
        assert await media_dao.list_paths() == {"/vault/images/" + "b" * 64 + ".jpg"}
