"""Command parser for prefixed chat input."""

from dataclasses import dataclass, field


@dataclass
class ParsedCommand:
    """Represents a parsed user command.

    Attributes:
        name: Lowercased command name without the prefix.
        args: Whitespace-separated arguments, case preserved.
        raw_args: Everything after the command name, stripped.
    """

    name: str
    args: list[str] = field(default_factory=list)
    raw_args: str = ""


class CommandParser:
    """Extracts commands from message text.

    Text is a command when it starts with the configured prefix followed
    directly by a name, e.g. ``.tictactoe @15551234567``. Anything else is
    not a command; parse() returns None rather than raising.
    """

    def __init__(self, prefix: str = "."):
        self.prefix = prefix

    def parse(self, text: str | None) -> ParsedCommand | None:
        """Parse text into a command.

        Args:
            text: Raw message body.

        Returns:
            ParsedCommand, or None when text carries no command.
        """
        if not text:
            return None

        text = text.strip()
        if not text.startswith(self.prefix):
            return None

        body = text[len(self.prefix):]
        if not body or body[0].isspace():
            return None

        parts = body.split(maxsplit=1)
        name = parts[0].lower()
        raw_args = parts[1].strip() if len(parts) > 1 else ""
        return ParsedCommand(name=name, args=raw_args.split(), raw_args=raw_args)
