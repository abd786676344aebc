"""Unit tests for application bootstrap and shutdown."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from butler.config import BotConfig
from butler.main import Application
from tests.conftest import ALICE, OWNER, make_message


@pytest.fixture
def transport():
    t = MagicMock()
    t.own_identity = "999"
    for name in ("start", "stop_intake", "stop", "send_text", "send_transient_indicator", "download_media"):
        setattr(t, name, AsyncMock())
    return t


@pytest.fixture
def config(tmp_path) -> BotConfig:
    return BotConfig(
        database_url="sqlite+aiosqlite:///:memory:",
        archive_dir=str(tmp_path / "archive"),
        media_dir=str(tmp_path / "media"),
        error_log_file_enabled=False,
        owner_identity=OWNER,
        game_ai_move_delay_seconds=0,
    )


async def test_setup_wires_components(config, transport):
    app = Application(config, transport=transport)
    await app.setup()
    try:
        assert app.registry.owner == OWNER
        assert "ping" in app.commands
        assert "tictactoe" in app.commands
        assert "search" in app.commands
        assert app.archive_queue is not None
    finally:
        await app.shutdown()


async def test_games_and_archive_can_be_disabled(config, transport):
    config = config.model_copy(update={"enable_games": False, "archive_enabled": False})
    app = Application(config, transport=transport)
    await app.setup()
    try:
        assert app.games is None
        assert app.archive_queue is None
        assert "tictactoe" not in app.commands
        assert "search" not in app.commands
    finally:
        await app.shutdown()


async def test_missing_token_without_transport(config):
    app = Application(config)
    with pytest.raises(RuntimeError):
        await app.setup()
    await app.shutdown()


async def test_round_trip_and_graceful_shutdown(config, transport):
    app = Application(config, transport=transport)
    await app.setup()
    await app.start()
    transport.start.assert_awaited_once_with(app.router.handle)

    await app.router.handle(make_message(".ping", sender=OWNER))
    await app.router.handle(make_message(".ping", sender=ALICE))
    for _ in range(100):
        if not app.router.in_flight:
            break
        await asyncio.sleep(0.01)

    await app.shutdown()
    await app.shutdown()

    conversation, text = transport.send_text.await_args.args
    assert conversation == OWNER
    assert text.startswith("🏓 Pong!")
    transport.send_text.assert_awaited_once()
    transport.stop_intake.assert_awaited_once()
    transport.stop.assert_awaited_once()

    directions = [str(e.direction) for e in app.message_log.iter_entries()]
    assert sorted(directions) == ["inbound", "inbound", "outbound"]


async def test_request_stop_unblocks_wait(config, transport):
    app = Application(config, transport=transport)
    app.request_stop()
    await asyncio.wait_for(app.wait_for_stop(), timeout=1)


async def test_shutdown_drains_messages_received_while_stopping(config, transport, monkeypatch):
    app = Application(config, transport=transport)
    await app.setup()
    await app.start()
    order: list[str] = []

    async def deliver_queued_update():
        order.append("stop_intake")
        await app.router.handle(make_message(".ping", sender=OWNER))

    transport.stop_intake.side_effect = deliver_queued_update
    transport.stop.side_effect = lambda: order.append("stop")

    stop_router = app.router.stop
    close_database = app.database.close

    async def router_stop():
        order.append("router")
        await stop_router()

    async def database_close():
        order.append("database")
        await close_database()

    monkeypatch.setattr(app.router, "stop", router_stop)
    monkeypatch.setattr(app.database, "close", database_close)

    await app.shutdown()

    assert order == ["stop_intake", "router", "database", "stop"]
    assert transport.send_text.await_args.args[1].startswith("🏓 Pong!")
    directions = [str(e.direction) for e in app.message_log.iter_entries()]
    assert sorted(directions) == ["inbound", "outbound"]
