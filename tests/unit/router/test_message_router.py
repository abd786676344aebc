"""Unit tests for MessageRouter.

Tests verify:
- Owner, game-player and granted-command lanes dispatch correctly
- Denied messages are archived but never answered
- Handler exceptions map to the right replies
- Shutdown waits for in-flight work and stops intake
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from butler.enums import GameKind, IndicatorKind, MessageDirection
from butler.exceptions import (
    GameAlreadyActiveError,
    InvalidInputError,
    PermissionDeniedError,
    PersistenceWriteError,
)
from butler.models.domain import MediaAttachment
from butler.router.message_router import GENERIC_ERROR_REPLY, MessageRouter
from butler.security.access_registry import AccessRegistry
from butler.services.command_parser import CommandParser
from butler.services.command_registry import CommandRegistry, CommandSpec
from tests.conftest import ALICE, BOB, OWNER, make_message

GROUP = "-1001"


@pytest.fixture
def transport():
    t = MagicMock()
    t.own_identity = "999"
    t.send_text = AsyncMock()
    t.send_transient_indicator = AsyncMock()
    return t


@pytest_asyncio.fixture
async def registry(access_dao, game_dao) -> AccessRegistry:
    reg = AccessRegistry(access_dao, game_dao)
    await reg.load()
    await reg.set_owner(OWNER)
    return reg


@pytest.fixture
def commands() -> CommandRegistry:
    reg = CommandRegistry()

    async def echo(ctx):
        await asyncio.sleep(0.05)
        return f"echo {ctx.command.raw_args}".strip()

    async def secret(ctx):
        return "secret"

    async def fail_with(ctx):
        errors = {
            "input": InvalidInputError("bad move"),
            "active": GameAlreadyActiveError(ctx.conversation_id),
            "denied": PermissionDeniedError("nope"),
            "persist": PersistenceWriteError("db locked"),
            "boom": RuntimeError("boom"),
        }
        raise errors[ctx.args[0]]

    reg.register(CommandSpec(name="echo", handler=echo, aliases=("e",)))
    reg.register(CommandSpec(name="secret", handler=secret, owner_only=True))
    reg.register(CommandSpec(name="fail", handler=fail_with))
    return reg


@pytest.fixture
def archive():
    return MagicMock()


@pytest.fixture
def games():
    mgr = MagicMock()
    mgr.handle_input = AsyncMock(return_value="moved")
    return mgr


@pytest.fixture
def router(transport, registry, commands, games, archive) -> MessageRouter:
    return MessageRouter(
        transport,
        registry,
        commands,
        CommandParser(),
        games=games,
        archive=archive,
        indicator_interval=0.01,
    )


async def settle(router: MessageRouter) -> None:
    for _ in range(200):
        if not router.in_flight:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("router tasks did not finish")


def replies(transport) -> list[str]:
    return [call.args[1] for call in transport.send_text.await_args_list]


class TestOwnerLane:
    async def test_command_with_processing_indicator(self, router, transport):
        await router.handle(make_message(".echo hi", sender=OWNER))
        await settle(router)

        transport.send_text.assert_awaited_once_with(OWNER, "echo hi")
        kinds = [call.args[1] for call in transport.send_transient_indicator.await_args_list]
        assert kinds[0] is IndicatorKind.PROCESSING
        assert kinds[-1] is IndicatorKind.CLEAR

    async def test_alias_resolves(self, router, transport):
        await router.handle(make_message(".e", sender=OWNER))
        await settle(router)
        assert replies(transport) == ["echo"]

    async def test_unknown_command_gets_hint(self, router, transport):
        await router.handle(make_message(".nope", sender=OWNER))
        await settle(router)
        assert replies(transport)[0].startswith("❓ Unknown command .nope")

    async def test_plain_text_ignored(self, router, transport):
        await router.handle(make_message("just chatting", sender=OWNER))
        await settle(router)
        transport.send_text.assert_not_awaited()
        assert router.stats()["ignored"] == 1

    async def test_own_outbound_echo_ignored(self, router, transport):
        await router.handle(make_message("hello", sender=OWNER, from_me=True))
        await settle(router)
        assert router.stats()["ignored"] == 1


class TestDeniedAndGranted:
    async def test_stranger_command_denied_silently(self, router, transport, archive):
        message = make_message(".echo", sender=ALICE)
        await router.handle(message)
        await settle(router)

        transport.send_text.assert_not_awaited()
        assert router.stats()["denied"] == 1
        archive.enqueue_message.assert_called_once_with(message, MessageDirection.INBOUND)

    async def test_granted_command_runs(self, router, transport, registry):
        await registry.allow(ALICE, "echo")
        await router.handle(make_message(".echo yo", sender=ALICE))
        await settle(router)

        assert replies(transport) == ["echo yo"]
        transport.send_transient_indicator.assert_not_awaited()

    async def test_owner_only_never_runs_for_others(self, router, transport, registry):
        await registry.allow(ALICE, "secret")
        await router.handle(make_message(".secret", sender=ALICE))
        await settle(router)
        transport.send_text.assert_not_awaited()

    async def test_media_is_archived(self, router, archive):
        message = make_message(sender=ALICE, media=MediaAttachment(file_id="f", mime_type="image/png"))
        await router.handle(message)
        archive.enqueue_media.assert_called_once_with(message)


class TestGameLane:
    @pytest_asyncio.fixture
    async def game(self, registry):
        await registry.start_game(
            GROUP, GameKind.TICTACTOE, [ALICE, BOB], {"board": [""] * 9}, started_by=ALICE
        )

    async def test_player_text_goes_to_game(self, router, transport, games, game):
        message = make_message("5", sender=BOB, conversation_id=GROUP)
        await router.handle(message)
        await settle(router)

        games.handle_input.assert_awaited_once_with(message)
        assert replies(transport) == ["moved"]
        assert router.stats()["game_inputs"] == 1

    async def test_player_ungranted_command_ignored(self, router, transport, game):
        await router.handle(make_message(".echo", sender=BOB, conversation_id=GROUP))
        await settle(router)
        transport.send_text.assert_not_awaited()

    async def test_owner_game_input_forwarded(self, router, games, registry):
        await registry.start_game(
            OWNER, GameKind.TICTACTOE, [OWNER, BOB], {"board": [""] * 9}, started_by=OWNER
        )
        await router.handle(make_message("3", sender=OWNER))
        await settle(router)
        games.handle_input.assert_awaited_once()

    async def test_game_failure_is_counted(self, router, transport, games, game):
        games.handle_input.side_effect = RuntimeError("engine broke")
        await router.handle(make_message("5", sender=BOB, conversation_id=GROUP))
        await settle(router)
        transport.send_text.assert_not_awaited()
        assert router.stats()["failed"] == 1


class TestErrorMapping:
    @pytest.mark.parametrize(
        "kind,expected",
        [
            ("input", "❌ bad move"),
            ("active", "🎮 A game is already running in this chat."),
            ("persist", "⚠️ Applied, but saving failed: db locked"),
            ("boom", GENERIC_ERROR_REPLY),
        ],
    )
    async def test_reply_for_exception(self, router, transport, kind, expected):
        await router.handle(make_message(f".fail {kind}", sender=OWNER))
        await settle(router)
        assert replies(transport)[0].startswith(expected)

    async def test_permission_denied_is_silent(self, router, transport):
        await router.handle(make_message(".fail denied", sender=OWNER))
        await settle(router)
        transport.send_text.assert_not_awaited()


class TestOutbound:
    async def test_reply_is_archived(self, router, archive):
        await router.reply(ALICE, "hello")
        outbound = archive.enqueue_message.call_args
        assert outbound.args[1] is MessageDirection.OUTBOUND
        assert outbound.args[0].sender == "999"
        assert outbound.args[0].from_me

    async def test_send_failure_not_raised(self, router, transport, archive):
        transport.send_text.side_effect = ConnectionError("offline")
        await router.reply(ALICE, "hello")
        archive.enqueue_message.assert_not_called()


class TestLifecycle:
    async def test_stop_waits_then_rejects(self, router, transport):
        await router.handle(make_message(".echo late", sender=OWNER))
        await router.stop()
        assert replies(transport) == ["echo late"]

        await router.handle(make_message(".echo again", sender=OWNER))
        assert router.stats()["received"] == 1

    async def test_concurrency_is_bounded(self, transport, registry, commands):
        router = MessageRouter(transport, registry, commands, CommandParser(), max_concurrent=1)
        for i in range(3):
            await router.handle(make_message(f".echo {i}", sender=OWNER))
        assert router.in_flight == 3
        await settle(router)
        assert sorted(replies(transport)) == ["echo 0", "echo 1", "echo 2"]

    async def test_queued_work_is_not_started_when_cancelled(
        self, transport, registry, monkeypatch
    ):
        commands = CommandRegistry()

        async def hang(ctx):
            await asyncio.Event().wait()

        commands.register(CommandSpec(name="hang", handler=hang))
        router = MessageRouter(
            transport, registry, commands, CommandParser(), max_concurrent=1, shutdown_timeout=0.05
        )
        started: list[str] = []
        execute = router._execute

        def tracking(message, *args, **kwargs):
            started.append(message.text)
            return execute(message, *args, **kwargs)

        monkeypatch.setattr(router, "_execute", tracking)
        for i in range(3):
            await router.handle(make_message(f".hang {i}", sender=OWNER))
        await asyncio.sleep(0.01)

        await router.stop()
        assert started == [".hang 0"]
        assert router.in_flight == 0
