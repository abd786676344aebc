"""Participant identity normalization.

Transports hand us identifiers like ``15551234567:12@s.whatsapp.net`` or
``987654321`` (Telegram numeric ids). Only the leading routing-number digits
identify the person; device/session suffixes and domains vary per connection.
"""

from __future__ import annotations

import re

from butler.enums import ArchiveCategory

_LEADING_DIGITS_RE = re.compile(r"^(\d+)")

GROUP_SUFFIXES = ("@g.us", "@group")
BROADCAST_MARKERS = ("@broadcast", "@channel", "@status", "status@")


def normalize(raw: str | None) -> str:
    """Return the canonical routing-number digits of an identity.

    Surrounding whitespace is ignored. Identities without a leading digit
    run, including ``+``-prefixed numbers, normalize to the empty string.
    """
    s = (raw or "").strip()
    match = _LEADING_DIGITS_RE.match(s)
    return match.group(1) if match else ""


def identities_equal(a: str | None, b: str | None) -> bool:
    """Two identities are equal iff their non-empty canonical forms match."""
    left = normalize(a)
    return bool(left) and left == normalize(b)


def is_group_conversation(conversation_id: str | None) -> bool:
    cid = (conversation_id or "").lower()
    return cid.endswith(GROUP_SUFFIXES) or cid.startswith("-")


def is_broadcast_conversation(conversation_id: str | None) -> bool:
    cid = (conversation_id or "").lower()
    return any(marker in cid for marker in BROADCAST_MARKERS)


def conversation_category(conversation_id: str | None) -> ArchiveCategory:
    """Map a conversation id to the archive directory it belongs in."""
    if is_broadcast_conversation(conversation_id):
        return ArchiveCategory.STATUS
    if is_group_conversation(conversation_id):
        return ArchiveCategory.GROUPS
    return ArchiveCategory.INDIVIDUAL
