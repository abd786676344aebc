"""Configuration with JSON file, config.yml, secrets.yml, and env variable support."""

import json
import logging
import os
from pathlib import Path

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "BUTLER_"


def _find_repo_root(*, start: Path) -> Path:
    """Best-effort repository root discovery.

    Relative data paths are resolved against the repo root so the bot can be
    launched from any working directory. The root is the first directory
    containing `pyproject.toml`, otherwise the current working directory.
    """

    try:
        start = start.resolve()
        for p in [start, *start.parents]:
            if (p / "pyproject.toml").exists():
                return p
    except OSError:
        pass

    return Path.cwd()


def resolve_path(raw: str | Path) -> Path:
    """Resolve a configured path, anchoring relative paths at the repo root."""
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = _find_repo_root(start=Path(__file__)) / p
    return p.resolve()


def _flatten_secrets_mapping(secrets: dict) -> dict:
    """Flatten secrets mapping into BotConfig-compatible keys.

    Converts nested YAML structure to flat config keys:
        telegram.bot_token -> telegram_bot_token
        owner.identity -> owner_identity
    """
    flat = {}
    for section, values in secrets.items():
        if isinstance(values, dict):
            for key, value in values.items():
                flat[f"{section}_{key}"] = value
        else:
            flat[section] = values
    return flat


def _load_secrets(secrets_path: Path) -> dict:
    """Load and flatten secrets from YAML file."""
    if not secrets_path.exists():
        return {}

    with open(secrets_path) as f:
        secrets = yaml.safe_load(f) or {}

    if not isinstance(secrets, dict):
        return {}

    return _flatten_secrets_mapping(secrets)


def _load_yaml_overlay(path: Path) -> dict:
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config overlay %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


class BotConfig(BaseSettings):
    """Configuration with JSON file + config.yml + secrets.yml + env var support.

    Load order (later overrides earlier):
    1. config.json - base configuration
    2. config.yml - non-secret overlay at the repo root
    3. secrets.yml - sensitive values (bot token, owner identity)
    4. Environment variables - runtime overrides

    Prefix: BUTLER_ (e.g., BUTLER_TELEGRAM_BOT_TOKEN)
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Transport settings
    telegram_bot_token: str | None = Field(default=None)
    owner_identity: str | None = Field(
        default=None,
        description="Identity recorded as owner on startup when none is persisted",
    )
    command_prefix: str = Field(default=".")

    # Persistence
    database_url: str = Field(default="sqlite+aiosqlite:///./data/butler.db")
    auto_create_tables: bool = Field(default=True)
    data_dir: str = Field(default="./data")
    archive_dir: str = Field(default="./data/archive")
    media_dir: str = Field(default="./data/media")

    # Routing
    max_concurrent_commands: int = Field(default=5, ge=1)
    shutdown_timeout_seconds: float = Field(default=30.0, ge=0)
    processing_indicator_interval_seconds: float = Field(default=4.0, gt=0)

    # Archival queue
    archive_enabled: bool = Field(default=True)
    archive_drain_interval_seconds: float = Field(default=1.0, gt=0)
    archive_batch_size: int = Field(default=10, ge=1)
    archive_max_queue_length: int | None = Field(default=None, ge=1)
    archive_max_retries: int = Field(default=3, ge=0)
    archive_search_limit: int = Field(default=50, ge=1)

    # Media vault
    auto_download_media: bool = Field(default=True)
    max_media_size_mb: int = Field(default=50, ge=1)

    # Games
    enable_games: bool = Field(default=True)
    game_ai_move_delay_seconds: float = Field(default=2.0, ge=0)
    word_guess_max_wrong_guesses: int = Field(default=6, ge=1)
    word_race_join_window_seconds: float = Field(default=45.0, gt=0)
    word_race_turn_timeout_seconds: float = Field(default=30.0, gt=0)
    game_history_limit: int = Field(default=1000, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    error_log_file_enabled: bool = Field(default=True)
    error_log_file_path: str = Field(default="./logs/errors.log")
    error_log_level: str = Field(default="WARNING")
    error_log_max_bytes: int = Field(default=10_485_760)
    error_log_backup_count: int = Field(default=5)

    @field_validator("command_prefix")
    @classmethod
    def _validate_prefix(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("command_prefix must not be empty")
        if any(ch.isspace() for ch in v):
            raise ValueError("command_prefix must not contain whitespace")
        return v

    @property
    def max_media_size_bytes(self) -> int:
        return self.max_media_size_mb * 1024 * 1024

    @property
    def archive_path(self) -> Path:
        return resolve_path(self.archive_dir)

    @property
    def media_path(self) -> Path:
        return resolve_path(self.media_dir)

    def resolved_database_url(self) -> str:
        """Return database_url with relative sqlite file paths anchored at the repo root."""
        for scheme in ("sqlite+aiosqlite:///", "sqlite:///"):
            if self.database_url.startswith(scheme):
                raw = self.database_url[len(scheme):]
                if not raw or raw == ":memory:" or raw.startswith("/"):
                    return self.database_url
                db_file = resolve_path(raw)
                db_file.parent.mkdir(parents=True, exist_ok=True)
                return f"{scheme}{db_file}"
        return self.database_url

    @classmethod
    def from_json_file(
        cls,
        config_path: str = "config.json",
        secrets_path: str = "secrets.yml",
    ) -> "BotConfig":
        """Load config from JSON + config.yml + secrets.yml with env var overrides.

        Args:
            config_path: Path to JSON config file.
            secrets_path: Path to secrets YAML file.

        Returns:
            Configured BotConfig instance.
        """
        config_data = {}

        json_path = Path(config_path)
        if json_path.exists():
            with open(json_path) as f:
                config_data = json.load(f)

        # Precedence: config.json < config.yml < secrets.yml < env
        repo_root = _find_repo_root(start=Path(__file__))
        config_data.update(_load_yaml_overlay(repo_root / "config.yml"))

        config_data.update(_load_secrets(Path(secrets_path)))

        # Drop file values shadowed by env vars so pydantic-settings picks the env value
        for key in list(config_data):
            if f"{ENV_PREFIX}{key.upper()}" in os.environ:
                del config_data[key]

        return cls(**config_data)
