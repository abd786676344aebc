"""Command handler registry."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from butler.enums import RoutingReason
from butler.models.domain import InboundMessage
from butler.services.command_parser import ParsedCommand

logger = logging.getLogger(__name__)

ReplyFn = Callable[[str], Awaitable[None]]


@dataclass
class CommandContext:
    """Everything a handler may look at or act on.

    Attributes:
        command: The parsed command (name already resolved to its canonical form).
        message: The inbound message that carried the command.
        reason: Why the router let the message through.
        reply_fn: Sends text back to the originating conversation.
    """

    command: ParsedCommand
    message: InboundMessage
    reason: RoutingReason
    reply_fn: ReplyFn

    @property
    def args(self) -> list[str]:
        return self.command.args

    @property
    def sender(self) -> str:
        return self.message.sender

    @property
    def conversation_id(self) -> str:
        return self.message.conversation_id

    @property
    def is_owner(self) -> bool:
        return self.reason is RoutingReason.OWNER

    async def reply(self, text: str) -> None:
        await self.reply_fn(text)


Handler = Callable[[CommandContext], Awaitable[str | None]]


@dataclass
class CommandSpec:
    """A registered command.

    Attributes:
        owner_only: Never grantable; only the owner may run it.
        game_scoped: Players of the conversation's game may run it without a grant.
    """

    name: str
    handler: Handler
    description: str = ""
    usage: str | None = None
    aliases: tuple[str, ...] = field(default_factory=tuple)
    owner_only: bool = False
    game_scoped: bool = False

    def help_line(self, prefix: str) -> str:
        usage = self.usage or self.name
        line = f"• {prefix}{usage}"
        if self.aliases:
            line += f" (alias: {', '.join(prefix + a for a in self.aliases)})"
        if self.description:
            line += f" - {self.description}"
        return line


class CommandRegistry:
    """Maps command names and aliases to handlers."""

    def __init__(self):
        self._commands: dict[str, CommandSpec] = {}
        self._aliases: dict[str, str] = {}

    def register(self, spec: CommandSpec) -> CommandSpec:
        name = spec.name.lower()
        if name in self._commands or name in self._aliases:
            raise ValueError(f"Command already registered: {name}")
        self._commands[name] = spec
        for alias in spec.aliases:
            alias = alias.lower()
            if alias in self._commands or alias in self._aliases:
                raise ValueError(f"Command alias already registered: {alias}")
            self._aliases[alias] = name
        logger.debug("Registered command %s", name)
        return spec

    def command(
        self,
        name: str,
        *,
        description: str = "",
        usage: str | None = None,
        aliases: tuple[str, ...] = (),
        owner_only: bool = False,
        game_scoped: bool = False,
    ) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(handler: Handler) -> Handler:
            self.register(
                CommandSpec(
                    name=name,
                    handler=handler,
                    description=description,
                    usage=usage,
                    aliases=aliases,
                    owner_only=owner_only,
                    game_scoped=game_scoped,
                )
            )
            return handler

        return decorator

    def canonical_name(self, name: str | None) -> str | None:
        """Resolve an alias to its command name. Unknown names pass through."""
        if not name:
            return None
        name = name.lower()
        return self._aliases.get(name, name)

    def resolve(self, name: str | None) -> CommandSpec | None:
        canonical = self.canonical_name(name)
        return self._commands.get(canonical) if canonical else None

    def __contains__(self, name: str) -> bool:
        return self.resolve(name) is not None

    def list_commands(self) -> list[CommandSpec]:
        return [self._commands[name] for name in sorted(self._commands)]

    def grantable(self) -> list[str]:
        return [s.name for s in self.list_commands() if not s.owner_only]
