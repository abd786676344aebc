"""Unit tests for command parser."""

import pytest
from hypothesis import given, strategies as st

from butler.services.command_parser import CommandParser


class TestCommandParser:
    """Unit tests for CommandParser."""

    @pytest.fixture
    def parser(self) -> CommandParser:
        return CommandParser()

    def test_parse_bare_command(self, parser: CommandParser):
        result = parser.parse(".ping")
        assert result.name == "ping"
        assert result.args == []
        assert result.raw_args == ""

    def test_name_is_lowercased_args_keep_case(self, parser: CommandParser):
        result = parser.parse(".TicTacToe @Bob AI")
        assert result.name == "tictactoe"
        assert result.args == ["@Bob", "AI"]
        assert result.raw_args == "@Bob AI"

    def test_surrounding_whitespace_ignored(self, parser: CommandParser):
        result = parser.parse("   .search   hello world  ")
        assert result.name == "search"
        assert result.raw_args == "hello world"

    @pytest.mark.parametrize("text", ["", None, "ping", "hello .ping", ".", ". ping"])
    def test_not_a_command(self, parser: CommandParser, text):
        assert parser.parse(text) is None

    def test_custom_prefix(self):
        parser = CommandParser(prefix="!")
        assert parser.parse("!help games").args == ["games"]
        assert parser.parse(".help") is None

    def test_multi_character_prefix(self):
        parser = CommandParser(prefix="bot:")
        assert parser.parse("bot:ping").name == "ping"


@given(st.text())
def test_parse_never_raises(text: str):
    CommandParser().parse(text)


@given(st.from_regex(r"[a-z]{1,12}", fullmatch=True), st.lists(st.from_regex(r"\S{1,8}", fullmatch=True), max_size=4))
def test_parse_recovers_name_and_args(name: str, args: list[str]):
    result = CommandParser().parse("." + " ".join([name, *args]))
    assert result.name == name
    assert result.args == args
