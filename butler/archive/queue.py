"""Archival queue.

Messages and media are enqueued without blocking routing and drained in
batches on a fixed interval by a background task. Failed items are retried
on later drains up to a bounded number of attempts, then dropped and counted.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from butler.archive.media_vault import MediaVault
from butler.archive.message_log import MessageLog, entry_for
from butler.enums import MessageDirection
from butler.exceptions import MediaTooLargeError
from butler.models.domain import InboundMessage, utcnow

logger = logging.getLogger(__name__)

Downloader = Callable[[InboundMessage], Awaitable[bytes]]


@dataclass
class ArchiveItem:
    """One unit of archival work.

    Attributes:
        message: The message to archive, or whose media to store.
        direction: Inbound or outbound relative to this agent.
        media: True for a media-storage item, False for a log line.
        data: Media bytes when already in hand; otherwise downloaded on drain.
        attempts: Failed processing attempts so far.
    """

    message: InboundMessage
    direction: MessageDirection = MessageDirection.INBOUND
    media: bool = False
    data: bytes | None = None
    attempts: int = 0


@dataclass
class ArchiveStats:
    enqueued: int = 0
    archived_messages: int = 0
    stored_media: int = 0
    retries: int = 0
    dropped_evicted: int = 0
    dropped_failed: int = 0
    last_drain_at: datetime | None = None

    @property
    def dropped(self) -> int:
        return self.dropped_evicted + self.dropped_failed


class ArchivalQueue:
    """Buffers archival work and drains it on its own task."""

    def __init__(
        self,
        message_log: MessageLog,
        media_vault: MediaVault | None = None,
        *,
        downloader: Downloader | None = None,
        drain_interval: float = 1.0,
        batch_size: int = 10,
        max_length: int | None = None,
        max_retries: int = 3,
    ):
        self._log = message_log
        self._vault = media_vault
        self._downloader = downloader
        self._interval = drain_interval
        self._batch_size = batch_size
        self._max_length = max_length
        self._max_retries = max_retries
        self._items: deque[ArchiveItem] = deque()
        self._stats = ArchiveStats()
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._drain_lock = asyncio.Lock()
        self._running = False

    def set_downloader(self, downloader: Downloader) -> None:
        self._downloader = downloader

    def __len__(self) -> int:
        return len(self._items)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def _push(self, item: ArchiveItem) -> None:
        if self._max_length is not None and len(self._items) >= self._max_length:
            evicted = self._items.popleft()
            self._stats.dropped_evicted += 1
            logger.warning(
                "Archive queue full (%d); evicted oldest item %s",
                self._max_length,
                evicted.message.message_id,
            )
        self._items.append(item)
        self._stats.enqueued += 1

    def enqueue_message(
        self, message: InboundMessage, direction: MessageDirection = MessageDirection.INBOUND
    ) -> None:
        self._push(ArchiveItem(message=message, direction=direction))

    def enqueue_media(self, message: InboundMessage, data: bytes | None = None) -> None:
        if self._vault is None:
            return
        self._push(ArchiveItem(message=message, media=True, data=data))

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def drain_once(self) -> int:
        """Process up to one batch. Returns the number of items that succeeded."""
        async with self._drain_lock:
            batch: list[ArchiveItem] = []
            while self._items and len(batch) < self._batch_size:
                batch.append(self._items.popleft())
            if not batch:
                return 0

            failed: list[ArchiveItem] = []
            succeeded = 0

            messages = [item for item in batch if not item.media]
            if messages:
                try:
                    await asyncio.to_thread(
                        self._log.append_many,
                        [entry_for(item.message, item.direction) for item in messages],
                    )
                    succeeded += len(messages)
                    self._stats.archived_messages += len(messages)
                except Exception:
                    logger.exception("Failed to append %d archive entries", len(messages))
                    failed.extend(messages)

            for item in batch:
                if not item.media:
                    continue
                try:
                    await self._store_media(item)
                    succeeded += 1
                    self._stats.stored_media += 1
                except MediaTooLargeError as e:
                    self._stats.dropped_failed += 1
                    logger.warning(
                        "Dropping media for message %s: %s", item.message.message_id, e
                    )
                except Exception:
                    logger.exception("Failed to store media for message %s", item.message.message_id)
                    failed.append(item)

            self._requeue(failed)
            self._stats.last_drain_at = utcnow()
            return succeeded

    async def _store_media(self, item: ArchiveItem) -> None:
        media = item.message.media
        if media is None or self._vault is None:
            return
        if item.data is None:
            if self._downloader is None:
                raise RuntimeError("No media downloader configured")
            item.data = await self._downloader(item.message)
        await self._vault.store(
            item.data,
            item.message,
            mime_type=media.mime_type,
            original_name=media.file_name,
        )

    def _requeue(self, failed: list[ArchiveItem]) -> None:
        retry: list[ArchiveItem] = []
        for item in failed:
            item.attempts += 1
            if item.attempts > self._max_retries:
                self._stats.dropped_failed += 1
                logger.error(
                    "Dropping archive item for message %s after %d attempts",
                    item.message.message_id,
                    item.attempts,
                )
            else:
                self._stats.retries += 1
                retry.append(item)
        # Retried items go back to the front so per-conversation order holds
        for item in reversed(retry):
            self._items.appendleft(item)

    async def flush(self) -> None:
        """Drain until empty. Failing items use up their retries and are dropped."""
        while self._items:
            await self.drain_once()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning("ArchivalQueue is already running")
            return
        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="archival-queue")
        logger.info(
            "ArchivalQueue started (interval=%.1fs, batch=%d, max_length=%s)",
            self._interval,
            self._batch_size,
            self._max_length,
        )

    async def stop(self) -> None:
        """Stop the drain loop and flush whatever is still queued."""
        if not self._running:
            return
        logger.info("Stopping ArchivalQueue...")
        self._running = False
        self._stop_event.set()
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("ArchivalQueue task did not stop gracefully, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            finally:
                self._task = None
        await self.flush()
        logger.info("ArchivalQueue stopped (%d item(s) left)", len(self._items))

    async def _run(self) -> None:
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.drain_once()
            except Exception:
                logger.exception("Archive drain cycle failed")

    def stats(self) -> dict:
        s = self._stats
        return {
            "queued": len(self._items),
            "enqueued": s.enqueued,
            "archived_messages": s.archived_messages,
            "stored_media": s.stored_media,
            "retries": s.retries,
            "dropped": s.dropped,
            "dropped_evicted": s.dropped_evicted,
            "dropped_failed": s.dropped_failed,
            "last_drain_at": s.last_drain_at.isoformat() if s.last_drain_at else None,
        }
