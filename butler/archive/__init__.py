"""Message archive, media vault, and the queue feeding them."""

from butler.archive.media_vault import MediaVault
from butler.archive.message_log import MessageLog
from butler.archive.queue import ArchivalQueue

__all__ = ["ArchivalQueue", "MediaVault", "MessageLog"]
