"""Logging helpers and filters applied from the entrypoint."""

from __future__ import annotations

import logging

from butler.observability.redaction import redact_text


class RedactBotTokenFilter(logging.Filter):
    """Mask bot tokens in log records.

    httpx logs every Bot API request URL, and those URLs embed the token:
        HTTP Request: POST https://api.telegram.org/bot123:ABC.../getUpdates
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact_text(message, max_chars=0)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class SuppressPollingNoise(logging.Filter):
    """Drop successful long-poll request lines (one every few seconds)."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        if record.levelno > logging.INFO:
            return True
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        return "/getUpdates" not in message


def install_logging_filters() -> None:
    """Install filters on the HTTP client logger. Safe to call multiple times."""
    httpx_logger = logging.getLogger("httpx")
    for filter_cls in (SuppressPollingNoise, RedactBotTokenFilter):
        if not any(isinstance(f, filter_cls) for f in httpx_logger.filters):
            httpx_logger.addFilter(filter_cls())
