"""Access-denied telemetry.

Denied messages never get a reply; instead one redacted JSON line is logged
per message on the ``butler.access`` logger so misconfigured grants can be
diagnosed.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from butler.observability.redaction import sanitize

if TYPE_CHECKING:
    from butler.models.domain import InboundMessage
    from butler.security.access_registry import RoutingDecision

logger = logging.getLogger("butler.access")

MAX_TEXT_CHARS = 200


def log_access_denied(message: "InboundMessage", decision: "RoutingDecision") -> None:
    """Log a redacted access-denied line for a message."""
    try:
        payload: dict[str, Any] = {
            "message_id": message.message_id,
            "conversation_id": message.conversation_id,
            "sender": message.sender,
            "command": decision.command,
            "reason": str(decision.reason),
            "has_media": message.has_media,
            "text": message.text,
        }
        # Plain chatter is the common case; only attempted commands are worth INFO
        level = logging.INFO if decision.command else logging.DEBUG
        logger.log(level, "ACCESS_DENIED %s", json.dumps(sanitize(payload, max_chars=MAX_TEXT_CHARS), ensure_ascii=False))
    except Exception:
        # Never break routing due to logging.
        logger.exception("Failed to log denied access")
