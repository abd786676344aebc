"""Redaction helpers to keep secrets and message bodies out of logs.

Chat text can contain anything people paste into it, so anything logged from
a message goes through redact_text first.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

_REPLACEMENT = "[REDACTED]"
_TRUNC_SUFFIX = "…(truncated)"

_SECRET_KEY_RE = re.compile(
    r"(^|_)(password|passwd|pwd|secret|token|api[_-]?key|access[_-]?key|private[_-]?key|authorization)($|_)",
    flags=re.IGNORECASE,
)

_SENSITIVE_VALUE_RES: list[re.Pattern[str]] = [
    # Emails
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    # Telegram bot tokens: <bot id>:<35 char secret>
    re.compile(r"(?<!\d)\d{6,12}:[A-Za-z0-9_-]{30,}"),
    # Bearer tokens
    re.compile(r"\bBearer\s+[A-Za-z0-9._\-]+\b", flags=re.IGNORECASE),
    # Generic 'key=value' patterns
    re.compile(r"\b(?:password|passwd|pwd)\s*[:=]\s*\S+", flags=re.IGNORECASE),
    re.compile(r"\b(?:api[_-]?key|apikey)\s*[:=]\s*\S+", flags=re.IGNORECASE),
    re.compile(r"\b(?:token)\s*[:=]\s*\S+", flags=re.IGNORECASE),
    re.compile(r"\b(?:secret|private[_-]?key)\s*[:=]\s*\S+", flags=re.IGNORECASE),
]


def _looks_sensitive_key(key: str) -> bool:
    return bool(_SECRET_KEY_RE.search(key))


def redact_text(text: str, *, max_chars: int = 4000) -> str:
    """Redact sensitive substrings in a text blob and truncate."""
    if text is None:
        return text

    out = text
    for rx in _SENSITIVE_VALUE_RES:
        out = rx.sub(_REPLACEMENT, out)

    if max_chars and len(out) > max_chars:
        out = out[:max_chars] + _TRUNC_SUFFIX

    return out


def sanitize(obj: Any, *, max_depth: int = 6, max_chars: int = 4000) -> Any:
    """Sanitize an object for logging.

    - Dict keys that look like secrets are redacted.
    - String values are scanned for sensitive substrings.
    - Deep structures are truncated by depth.
    """
    if max_depth <= 0:
        return "…"

    if obj is None or isinstance(obj, (int, float, bool)):
        return obj

    if isinstance(obj, bytes):
        return f"<bytes:{len(obj)}>"

    if isinstance(obj, str):
        return redact_text(obj, max_chars=max_chars)

    if isinstance(obj, Mapping):
        out: dict[str, Any] = {}
        for k, v in obj.items():
            ks = str(k)
            if _looks_sensitive_key(ks):
                out[ks] = _REPLACEMENT
            else:
                out[ks] = sanitize(v, max_depth=max_depth - 1, max_chars=max_chars)
        return out

    if isinstance(obj, Sequence):
        items = list(obj)
        if len(items) > 50:
            items = items[:50]
            items.append("…")
        return [sanitize(v, max_depth=max_depth - 1, max_chars=max_chars) for v in items]

    return redact_text(str(obj), max_chars=max_chars)
