"""Error log file handler capturing warnings and errors to a rotating file."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from butler.config import resolve_path

if TYPE_CHECKING:
    from butler.config import BotConfig


_error_file_handler: RotatingFileHandler | None = None


def setup_error_log_file(config: "BotConfig") -> RotatingFileHandler | None:
    """Attach a rotating error log handler to the root logger.

    Args:
        config: Bot configuration with error log settings.

    Returns:
        The configured RotatingFileHandler, or None if disabled or unwritable.
    """
    global _error_file_handler

    if not config.error_log_file_enabled:
        return None

    log_level = getattr(logging, config.error_log_level.upper(), logging.WARNING)
    log_file = resolve_path(config.error_log_file_path)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Warning: Cannot create error log directory {log_file.parent}: {e}", file=sys.stderr)
        return None

    try:
        handler = RotatingFileHandler(
            filename=str(log_file),
            maxBytes=config.error_log_max_bytes,
            backupCount=config.error_log_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        print(f"Warning: Cannot create error log file {log_file}: {e}", file=sys.stderr)
        return None

    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger = logging.getLogger()
    if _error_file_handler is not None:
        root_logger.removeHandler(_error_file_handler)
        _error_file_handler.close()
    root_logger.addHandler(handler)
    _error_file_handler = handler

    logging.getLogger(__name__).info(
        "Error log file handler initialized: %s (level=%s)", log_file, config.error_log_level
    )
    return handler


def get_error_log_handler() -> RotatingFileHandler | None:
    return _error_file_handler
