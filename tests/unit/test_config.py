"""Unit tests for BotConfig loading."""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from butler import config as config_module
from butler.config import BotConfig, resolve_path


@pytest.fixture(autouse=True)
def isolated_root(tmp_path, monkeypatch):
    """Point repo-root discovery at an empty directory and clear BUTLER_ env vars."""
    monkeypatch.setattr(config_module, "_find_repo_root", lambda *, start: tmp_path)
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("BUTLER_"):
            monkeypatch.delenv(key)
    return tmp_path


def test_defaults():
    config = BotConfig()
    assert config.command_prefix == "."
    assert config.telegram_bot_token is None
    assert config.max_concurrent_commands == 5
    assert config.archive_max_queue_length is None
    assert config.max_media_size_bytes == 50 * 1024 * 1024


def test_env_override(monkeypatch):
    monkeypatch.setenv("BUTLER_COMMAND_PREFIX", "!")
    monkeypatch.setenv("BUTLER_MAX_MEDIA_SIZE_MB", "2")
    monkeypatch.setenv("BUTLER_ENABLE_GAMES", "false")
    config = BotConfig()
    assert config.command_prefix == "!"
    assert config.max_media_size_bytes == 2 * 1024 * 1024
    assert config.enable_games is False


@pytest.mark.parametrize("prefix", ["", "   ", "b t"])
def test_invalid_prefix(prefix):
    with pytest.raises(ValidationError):
        BotConfig(command_prefix=prefix)


def test_prefix_is_stripped():
    assert BotConfig(command_prefix=" ! ").command_prefix == "!"


def test_layered_files(tmp_path, monkeypatch):
    (tmp_path / "config.json").write_text(
        json.dumps({"command_prefix": "!", "archive_batch_size": 20, "log_level": "DEBUG"})
    )
    (tmp_path / "config.yml").write_text("archive_batch_size: 30\n")
    (tmp_path / "secrets.yml").write_text(
        "telegram:\n  bot_token: '123:abc'\nowner:\n  identity: '15550000001'\n"
    )
    monkeypatch.setenv("BUTLER_LOG_LEVEL", "WARNING")

    config = BotConfig.from_json_file(
        str(tmp_path / "config.json"), str(tmp_path / "secrets.yml")
    )
    assert config.command_prefix == "!"
    assert config.archive_batch_size == 30
    assert config.telegram_bot_token == "123:abc"
    assert config.owner_identity == "15550000001"
    assert config.log_level == "WARNING"


def test_missing_files_fall_back_to_defaults(tmp_path):
    config = BotConfig.from_json_file(str(tmp_path / "nope.json"), str(tmp_path / "nope.yml"))
    assert config.command_prefix == "."


def test_paths_anchor_at_repo_root(tmp_path):
    config = BotConfig(archive_dir="./archive")
    assert config.archive_path == (tmp_path / "archive").resolve()
    assert resolve_path("/abs/media") == Path("/abs/media")


def test_resolved_database_url(tmp_path):
    assert BotConfig(database_url="sqlite+aiosqlite:///:memory:").resolved_database_url().endswith(":memory:")
    url = BotConfig(database_url="sqlite+aiosqlite:///./db/butler.db").resolved_database_url()
    assert url == f"sqlite+aiosqlite:///{(tmp_path / 'db' / 'butler.db').resolve()}"
    assert (tmp_path / "db").is_dir()
