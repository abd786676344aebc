"""Built-in command handlers."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from butler.enums import GameKind, WordGuessMode
from butler.exceptions import InvalidInputError, PermissionDeniedError
from butler.games.base import AI_PLAYER, display_name
from butler.models.domain import utcnow
from butler.security.identity import identities_equal, is_group_conversation, normalize
from butler.services.command_registry import CommandContext, CommandRegistry

if TYPE_CHECKING:
    from butler.archive.media_vault import MediaVault
    from butler.archive.message_log import MessageLog
    from butler.archive.queue import ArchivalQueue
    from butler.games.sessions import GameSessionManager
    from butler.router.message_router import MessageRouter
    from butler.security.access_registry import AccessRegistry

logger = logging.getLogger(__name__)

SEARCH_RESULT_LIMIT = 10


def _format_uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"


class BuiltinCommands:
    """Owns the handlers for the commands every deployment ships with.

    Collaborators that are optional (games, archive, media) simply leave
    their commands unregistered when absent.
    """

    def __init__(
        self,
        registry: "AccessRegistry",
        commands: CommandRegistry,
        *,
        prefix: str = ".",
        games: "GameSessionManager | None" = None,
        message_log: "MessageLog | None" = None,
        media_vault: "MediaVault | None" = None,
        archive_queue: "ArchivalQueue | None" = None,
        search_limit: int = SEARCH_RESULT_LIMIT,
    ):
        self._registry = registry
        self._commands = commands
        self._prefix = prefix
        self._games = games
        self._message_log = message_log
        self._media_vault = media_vault
        self._archive_queue = archive_queue
        self._search_limit = search_limit
        self._router: MessageRouter | None = None
        self._started = time.monotonic()

    def attach_router(self, router: "MessageRouter") -> None:
        self._router = router

    def register(self) -> None:
        c = self._commands
        c.command("help", description="Show available commands", usage="help [command]")(self.help)
        c.command("ping", description="Check that the bot is alive")(self.ping)
        c.command("status", description="Show bot status", owner_only=True)(self.status)
        c.command(
            "allow",
            description="Let the person in this private chat use a command",
            usage="allow <command>",
            owner_only=True,
        )(self.allow)
        c.command(
            "disallow",
            description="Revoke a command from the person in this private chat",
            usage="disallow <command>",
            owner_only=True,
        )(self.disallow)
        c.command("grants", description="List command grants", usage="grants [all]", owner_only=True)(
            self.grants
        )

        if self._games is not None:
            kinds = set(self._games.kinds)
            if GameKind.TICTACTOE in kinds:
                c.command(
                    "tictactoe",
                    description="Start a tic-tac-toe game",
                    usage="tictactoe [@user|ai]",
                    aliases=("ttt",),
                )(self.tictactoe)
            if GameKind.WORD_GUESS in kinds:
                c.command(
                    "wordguess",
                    description="Start a word guessing game",
                    usage="wordguess [race]",
                    aliases=("wg",),
                )(self.wordguess)
            c.command(
                "endgame",
                description="End the game in this chat",
                aliases=("quit",),
                game_scoped=True,
            )(self.endgame)
            c.command("gameinfo", description="Show the current game", game_scoped=True)(
                self.gameinfo
            )
            c.command("gamestats", description="Show game statistics", usage="gamestats [@user]")(
                self.gamestats
            )

        if self._message_log is not None:
            c.command(
                "search",
                description="Search archived messages",
                usage="search <text>",
                owner_only=True,
            )(self.search)

        if self._media_vault is not None:
            c.command("mediastats", description="Show media vault statistics", owner_only=True)(
                self.mediastats
            )

    # ------------------------------------------------------------------
    # General
    # ------------------------------------------------------------------

    async def help(self, ctx: CommandContext) -> str:
        p = self._prefix
        if ctx.args:
            spec = self._commands.resolve(ctx.args[0].lstrip(p))
            if spec is None or not self._visible_to(ctx, spec.name):
                raise InvalidInputError(f"Unknown command: {ctx.args[0]}")
            return spec.help_line(p)

        lines = ["🤖 *Available commands:*", ""]
        for spec in self._commands.list_commands():
            if self._visible_to(ctx, spec.name):
                lines.append(spec.help_line(p))
        return "\n".join(lines)

    def _visible_to(self, ctx: CommandContext, name: str) -> bool:
        if ctx.is_owner:
            return True
        spec = self._commands.resolve(name)
        if spec is None or spec.owner_only:
            return False
        return spec.game_scoped or self._registry.is_command_allowed(ctx.sender, spec.name)

    async def ping(self, ctx: CommandContext) -> str:
        latency_ms = int((utcnow() - ctx.message.timestamp).total_seconds() * 1000)
        return f"🏓 Pong! ({max(latency_ms, 0)} ms)"

    async def status(self, ctx: CommandContext) -> str:
        registry = self._registry.stats()
        lines = [
            "📊 *Bot Status*",
            "",
            f"⏱️ Uptime: {_format_uptime(time.monotonic() - self._started)}",
            f"👥 Users with grants: {registry['users_with_grants']} ({registry['total_grants']} grants)",
            f"🎮 Active games: {registry['active_games']}",
        ]
        if self._router is not None:
            r = self._router.stats()
            lines.append(
                f"📨 Messages: {r['received']} received, {r['commands']} commands, "
                f"{r['denied']} denied, {r['failed']} failed"
            )
            lines.append(f"⚙️ In flight: {r['in_flight']}/{r['max_concurrent']}")
        if self._archive_queue is not None:
            q = self._archive_queue.stats()
            lines.append(
                f"🗄️ Archive: {q['archived_messages']} messages, {q['stored_media']} media, "
                f"{q['queued']} queued, {q['dropped']} dropped"
            )
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Access control
    # ------------------------------------------------------------------

    def _grant_target(self, ctx: CommandContext) -> tuple[str, str]:
        if is_group_conversation(ctx.conversation_id):
            raise InvalidInputError(
                f"{self._prefix}{ctx.command.name} only works in a private chat with the user"
            )
        if not ctx.args:
            raise InvalidInputError(f"Usage: {self._prefix}{ctx.command.name} <command>")
        spec = self._commands.resolve(ctx.args[0].lstrip(self._prefix))
        if spec is None:
            raise InvalidInputError(f"Unknown command: {ctx.args[0]}")
        if spec.owner_only:
            raise InvalidInputError(f"{self._prefix}{spec.name} can't be granted")
        target = ctx.conversation_id
        if self._registry.is_owner(target):
            raise InvalidInputError("The owner already has access to every command")
        return target, spec.name

    async def allow(self, ctx: CommandContext) -> str:
        target, command = self._grant_target(ctx)
        if not await self._registry.allow(target, command):
            return f"ℹ️ {display_name(target)} can already use {self._prefix}{command}"
        logger.info("Granted %s to %s", command, target)
        return f"✅ {display_name(target)} can now use {self._prefix}{command}"

    async def disallow(self, ctx: CommandContext) -> str:
        target, command = self._grant_target(ctx)
        if not await self._registry.disallow(target, command):
            return f"ℹ️ {display_name(target)} was not allowed to use {self._prefix}{command}"
        logger.info("Revoked %s from %s", command, target)
        return f"🚫 {display_name(target)} can no longer use {self._prefix}{command}"

    async def grants(self, ctx: CommandContext) -> str:
        p = self._prefix
        show_all = (ctx.args and ctx.args[0].lower() == "all") or is_group_conversation(
            ctx.conversation_id
        )
        if not show_all:
            commands = self._registry.get_user_grants(ctx.conversation_id)
            if not commands:
                return f"ℹ️ {display_name(ctx.conversation_id)} has no command grants"
            listed = ", ".join(p + c for c in commands)
            return f"🔑 {display_name(ctx.conversation_id)}: {listed}"

        all_grants = self._registry.get_all_grants()
        if not all_grants:
            return "ℹ️ No command grants"
        lines = ["🔑 *Command grants:*", ""]
        for user, commands in all_grants.items():
            lines.append(f"• {display_name(user)}: {', '.join(p + c for c in commands)}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def _resolve_opponent(self, ctx: CommandContext) -> str:
        args = ctx.args
        if args and args[0].lower() in ("ai", "bot"):
            return AI_PLAYER
        if ctx.message.mentions:
            return ctx.message.mentions[0]
        if not args:
            return ctx.message.reply_to_sender or AI_PLAYER
        # Typed numbers often carry a "+" or "@" marker
        candidate = normalize(args[0].lstrip("+@"))
        if candidate:
            return candidate
        raise InvalidInputError(
            f"Couldn't find {args[0]}. Mention a player, reply to one of their messages, "
            f"or use {self._prefix}tictactoe ai"
        )

    async def tictactoe(self, ctx: CommandContext) -> str:
        opponent = self._resolve_opponent(ctx)
        if opponent != AI_PLAYER and identities_equal(opponent, ctx.sender):
            raise InvalidInputError("You can't play against yourself")
        return await self._games.start_game(
            ctx.conversation_id,
            GameKind.TICTACTOE,
            [ctx.sender, opponent],
            started_by=ctx.sender,
        )

    async def wordguess(self, ctx: CommandContext) -> str:
        mode = WordGuessMode.CLASSIC
        if ctx.args:
            try:
                mode = WordGuessMode(ctx.args[0].lower())
            except ValueError:
                raise InvalidInputError(
                    f"Unknown mode {ctx.args[0]}. Use {self._prefix}wordguess or "
                    f"{self._prefix}wordguess race"
                ) from None
        if mode is WordGuessMode.RACE and not is_group_conversation(ctx.conversation_id):
            raise InvalidInputError("Word race needs a group chat")
        return await self._games.start_game(
            ctx.conversation_id,
            GameKind.WORD_GUESS,
            [ctx.sender],
            started_by=ctx.sender,
            mode=mode,
        )

    async def endgame(self, ctx: CommandContext) -> str:
        session = self._registry.get_active_game(ctx.conversation_id)
        if session is None:
            return "ℹ️ No active game in this chat"
        if not ctx.is_owner and not self._registry.is_game_player(ctx.conversation_id, ctx.sender):
            raise PermissionDeniedError("Only players or the owner can end the game")
        info = self._games.game_info(ctx.conversation_id)
        ended = await self._games.end_game(ctx.conversation_id, ended_by=ctx.sender)
        if ended is None:
            return "ℹ️ No active game in this chat"
        return f"🏁 *{ended.kind} ended by {display_name(ctx.sender)}*\n\n{info}"

    async def gameinfo(self, ctx: CommandContext) -> str:
        info = self._games.game_info(ctx.conversation_id)
        return info or "ℹ️ No active game in this chat"

    async def gamestats(self, ctx: CommandContext) -> str:
        if ctx.args:
            target = ctx.message.mentions[0] if ctx.message.mentions else ctx.args[0].lstrip("+@")
            stats = await self._games.player_stats(target)
            if stats is None:
                return f"ℹ️ No games recorded for {display_name(target)}"
            return self._format_player_stats(stats)

        overall = await self._games.global_stats()
        lines = [
            "🎮 *Game Statistics*",
            "",
            f"▶️ Active games: {overall['active_games']}",
            f"🏁 Finished games: {overall['finished_games']}",
        ]
        for kind, count in sorted(overall["finished_by_kind"].items()):
            lines.append(f"  • {kind}: {count}")
        if overall["top_players"]:
            lines.extend(["", "🏆 *Top players:*"])
            for i, player in enumerate(overall["top_players"], start=1):
                lines.append(
                    f"{i}. {display_name(player.identity)} - {player.games_won} wins "
                    f"/ {player.games_completed} games"
                )
        mine = await self._games.player_stats(ctx.sender)
        if mine is not None:
            lines.extend(["", self._format_player_stats(mine)])
        return "\n".join(lines)

    @staticmethod
    def _format_player_stats(stats) -> str:
        lines = [
            f"👤 *{display_name(stats.identity)}*",
            f"Started: {stats.games_started} | Completed: {stats.games_completed}",
            f"Won: {stats.games_won} | Lost: {stats.games_lost} | Tied: {stats.games_tied}",
        ]
        if stats.by_kind:
            per_kind = ", ".join(f"{k}: {v}" for k, v in sorted(stats.by_kind.items()))
            lines.append(f"By game: {per_kind}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    async def search(self, ctx: CommandContext) -> str:
        query = ctx.command.raw_args
        if not query:
            raise InvalidInputError(f"Usage: {self._prefix}search <text>")
        results = await asyncio.to_thread(
            self._message_log.search, text=query, limit=self._search_limit
        )
        if not results:
            return f"🔍 No archived messages matching “{query}”"
        lines = [f"🔍 *{len(results)} result(s) for “{query}”:*", ""]
        for entry in results:
            stamp = entry.timestamp.strftime("%Y-%m-%d %H:%M")
            body = entry.body_text if len(entry.body_text) <= 80 else entry.body_text[:77] + "..."
            lines.append(f"• [{stamp}] {display_name(entry.sender_identity)}: {body}")
        return "\n".join(lines)

    async def mediastats(self, ctx: CommandContext) -> str:
        stats = await self._media_vault.stats()
        lines = [
            "🗂️ *Media Vault*",
            "",
            f"Files: {stats['files']} ({stats['size']})",
            f"References: {stats['references']}",
            f"Max file size: {stats['max_file_size']}",
        ]
        for category, values in sorted(stats["by_category"].items()):
            lines.append(f"  • {category}: {values['files']}")
        return "\n".join(lines)
