"""Inbound message routing.

Every message is archived first, then checked against the access registry
and dispatched to the owner, game, or granted-command lane. Command
execution runs in background tasks bounded by a semaphore so the inbound
consumer never waits on a handler.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from butler.enums import MessageDirection, RoutingReason
from butler.exceptions import (
    GameAlreadyActiveError,
    InvalidInputError,
    PermissionDeniedError,
    PersistenceWriteError,
)
from butler.models.domain import InboundMessage
from butler.observability.access_denied_log import log_access_denied
from butler.router.processing_indicator import ProcessingIndicatorLoop
from butler.security.access_registry import AccessRegistry
from butler.services.command_parser import CommandParser, ParsedCommand
from butler.services.command_registry import CommandContext, CommandRegistry, CommandSpec

if TYPE_CHECKING:
    from butler.archive.queue import ArchivalQueue
    from butler.games.sessions import GameSessionManager
    from butler.transport.base import Transport

logger = logging.getLogger(__name__)

GENERIC_ERROR_REPLY = "❌ Something went wrong while running that command."


@dataclass
class RouterStats:
    received: int = 0
    commands: int = 0
    game_inputs: int = 0
    denied: int = 0
    failed: int = 0
    ignored: int = 0


class MessageRouter:
    """Routes inbound messages to command handlers and games."""

    def __init__(
        self,
        transport: "Transport",
        registry: AccessRegistry,
        commands: CommandRegistry,
        parser: CommandParser,
        *,
        games: "GameSessionManager | None" = None,
        archive: "ArchivalQueue | None" = None,
        max_concurrent: int = 5,
        shutdown_timeout: float = 30.0,
        indicator_interval: float = ProcessingIndicatorLoop.DEFAULT_INTERVAL_SECONDS,
        archive_media: bool = True,
    ):
        self._transport = transport
        self._registry = registry
        self._commands = commands
        self._parser = parser
        self._games = games
        self._archive = archive
        self._max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._shutdown_timeout = shutdown_timeout
        self._indicator_interval = indicator_interval
        self._archive_media = archive_media
        self._tasks: set[asyncio.Task] = set()
        self._accepting = True
        self._stats = RouterStats()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle(self, message: InboundMessage) -> None:
        """Transport callback for one inbound message. Never raises."""
        if not self._accepting:
            logger.debug("Router stopping; ignoring message %s", message.message_id)
            return
        self._stats.received += 1

        self._archive_inbound(message)

        parsed = self._parser.parse(message.text)
        spec: CommandSpec | None = None
        if parsed is not None:
            parsed.name = self._commands.canonical_name(parsed.name) or parsed.name
            spec = self._commands.resolve(parsed.name)

        if message.from_me and spec is None:
            self._stats.ignored += 1
            return

        decision = self._registry.decide(message, parsed.name if parsed else None)
        if not decision.allowed:
            self._stats.denied += 1
            log_access_denied(message, decision)
            return

        if decision.reason is RoutingReason.OWNER:
            if parsed is not None:
                self._spawn(
                    partial(self._execute, message, parsed, spec, decision.reason, indicator=True)
                )
            elif self._games is not None and self._registry.accepts_game_input(message):
                self._spawn(partial(self._game_input, message))
            else:
                self._stats.ignored += 1
            return

        if decision.reason is RoutingReason.GAME_PLAYER:
            if parsed is None:
                self._spawn(partial(self._game_input, message))
            elif spec is not None and (
                spec.game_scoped or self._registry.is_command_allowed(message.sender, spec.name)
            ):
                self._spawn(
                    partial(self._execute, message, parsed, spec, decision.reason, indicator=False)
                )
            else:
                self._stats.ignored += 1
            return

        if decision.reason is RoutingReason.ALLOWED_COMMAND and parsed is not None:
            self._spawn(
                partial(
                    self._execute,
                    message,
                    parsed,
                    spec,
                    decision.reason,
                    indicator=False,
                    revalidate=True,
                )
            )

    def _archive_inbound(self, message: InboundMessage) -> None:
        if self._archive is None:
            return
        try:
            self._archive.enqueue_message(message, MessageDirection.INBOUND)
            if message.has_media and self._archive_media:
                self._archive.enqueue_media(message)
        except Exception:
            logger.exception("Failed to enqueue message %s for archiving", message.message_id)

    def _spawn(self, work: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.create_task(self._limited(work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _limited(self, work: Callable[[], Awaitable[None]]) -> None:
        # The coroutine is created only once a slot is free
        async with self._semaphore:
            await work()

    # ------------------------------------------------------------------
    # Lanes
    # ------------------------------------------------------------------

    async def _execute(
        self,
        message: InboundMessage,
        parsed: ParsedCommand,
        spec: CommandSpec | None,
        reason: RoutingReason,
        *,
        indicator: bool,
        revalidate: bool = False,
    ) -> None:
        cid = message.conversation_id
        if spec is None:
            if reason is RoutingReason.OWNER:
                await self.reply(
                    cid,
                    f"❓ Unknown command {self._parser.prefix}{parsed.name}. "
                    f"Send {self._parser.prefix}help for the list.",
                )
            return
        if spec.owner_only and reason is not RoutingReason.OWNER:
            logger.info("Owner-only command %s refused for %s", spec.name, message.sender)
            return
        # The grant may have been revoked between decide() and now
        if revalidate and not self._registry.is_command_allowed(message.sender, spec.name):
            logger.info("Grant for %s revoked before execution for %s", spec.name, message.sender)
            return

        self._stats.commands += 1
        ctx = CommandContext(
            command=parsed,
            message=message,
            reason=reason,
            reply_fn=lambda text: self.reply(cid, text),
        )
        loop = None
        if indicator:
            loop = ProcessingIndicatorLoop(self._transport, message, self._indicator_interval)
            await loop.start()
        try:
            result = await spec.handler(ctx)
            if result:
                await self.reply(cid, result)
        except InvalidInputError as e:
            await self.reply(cid, f"❌ {e}")
        except GameAlreadyActiveError:
            await self.reply(
                cid,
                "🎮 A game is already running in this chat. "
                f"Use {self._parser.prefix}endgame to end it first.",
            )
        except PermissionDeniedError:
            logger.info("Command %s denied for %s", spec.name, message.sender)
        except PersistenceWriteError as e:
            self._stats.failed += 1
            logger.error("Command %s could not persist its change: %s", spec.name, e)
            await self.reply(cid, f"⚠️ Applied, but saving failed: {e}")
        except Exception:
            self._stats.failed += 1
            logger.exception("Command %s failed for %s in %s", spec.name, message.sender, cid)
            await self.reply(cid, GENERIC_ERROR_REPLY)
        finally:
            if loop is not None:
                await loop.stop()

    async def _game_input(self, message: InboundMessage) -> None:
        if self._games is None:
            return
        try:
            reply = await self._games.handle_input(message)
        except Exception:
            self._stats.failed += 1
            logger.exception("Game input failed in %s", message.conversation_id)
            return
        if reply:
            self._stats.game_inputs += 1
            await self.reply(message.conversation_id, reply)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def reply(self, conversation_id: str, text: str) -> None:
        """Send text and archive it. Transport failures are logged, not raised."""
        try:
            await self._transport.send_text(conversation_id, text)
        except Exception:
            logger.exception("Failed to send reply to %s", conversation_id)
            return
        if self._archive is not None:
            self._archive.enqueue_message(
                InboundMessage(
                    message_id=f"out-{uuid.uuid4().hex}",
                    conversation_id=conversation_id,
                    sender=self._transport.own_identity or "self",
                    text=text,
                    from_me=True,
                ),
                MessageDirection.OUTBOUND,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop intake and wait for in-flight work, cancelling stragglers."""
        self._accepting = False
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info("Waiting for %d in-flight message task(s)", len(tasks))
        _, pending = await asyncio.wait(tasks, timeout=self._shutdown_timeout)
        for t in pending:
            t.cancel()
        if pending:
            logger.warning("Cancelled %d message task(s) still running at shutdown", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    def stats(self) -> dict[str, int]:
        s = self._stats
        return {
            "in_flight": self.in_flight,
            "max_concurrent": self._max_concurrent,
            "received": s.received,
            "commands": s.commands,
            "game_inputs": s.game_inputs,
            "denied": s.denied,
            "failed": s.failed,
            "ignored": s.ignored,
        }
