"""Append-only JSONL message archive.

Layout: ``<base>/messages/YYYY/MM/<category>/YYYY-MM-DD.jsonl``; one line per
message in the order it was archived.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from datetime import date, timezone
from pathlib import Path

from pydantic import ValidationError

from butler.enums import ArchiveCategory, MessageDirection
from butler.models.domain import ArchiveEntry, InboundMessage
from butler.security.identity import conversation_category, normalize

logger = logging.getLogger(__name__)


def entry_for(message: InboundMessage, direction: MessageDirection) -> ArchiveEntry:
    """Build the archive line for a message."""
    timestamp = message.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return ArchiveEntry(
        message_id=message.message_id,
        conversation_id=message.conversation_id,
        sender_identity=message.sender,
        timestamp=timestamp,
        body_text=message.text,
        message_kind=message.kind,
        has_media=message.has_media,
        media_ref=message.media.file_id if message.media else None,
        direction=direction,
        category=conversation_category(message.conversation_id),
    )


class MessageLog:
    """Reads and writes the per-day, per-category archive files.

    Methods are synchronous file I/O; async callers wrap them in
    asyncio.to_thread.
    """

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)
        self.messages_dir = self.base_dir / "messages"

    def path_for(self, category: ArchiveCategory, day: date) -> Path:
        return (
            self.messages_dir
            / f"{day.year:04d}"
            / f"{day.month:02d}"
            / str(category)
            / f"{day.isoformat()}.jsonl"
        )

    def append_many(self, entries: Iterable[ArchiveEntry]) -> int:
        """Append entries, grouped per target file, preserving their order."""
        by_path: dict[Path, list[str]] = {}
        count = 0
        for entry in entries:
            day = entry.timestamp.astimezone(timezone.utc).date()
            path = self.path_for(entry.category, day)
            by_path.setdefault(path, []).append(entry.model_dump_json())
            count += 1

        for path, lines in by_path.items():
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        return count

    def _day_files(
        self, date_from: date | None = None, date_to: date | None = None
    ) -> list[Path]:
        if not self.messages_dir.exists():
            return []
        files = []
        for path in self.messages_dir.glob("*/*/*/*.jsonl"):
            try:
                day = date.fromisoformat(path.stem)
            except ValueError:
                continue
            if date_from and day < date_from:
                continue
            if date_to and day > date_to:
                continue
            files.append((day, path))
        files.sort(key=lambda item: (item[0], str(item[1])))
        return [path for _, path in files]

    def iter_entries(
        self, date_from: date | None = None, date_to: date | None = None
    ) -> Iterator[ArchiveEntry]:
        """Yield entries day by day, each file in written order."""
        for path in self._day_files(date_from, date_to):
            with path.open("r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield ArchiveEntry.model_validate(json.loads(line))
                    except (json.JSONDecodeError, ValidationError):
                        logger.warning("Skipping corrupt archive line %s:%d", path, line_no)

    def search(
        self,
        *,
        conversation_id: str | None = None,
        sender: str | None = None,
        text: str | None = None,
        has_media: bool | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 50,
    ) -> list[ArchiveEntry]:
        """Newest matching entries first."""
        needle = text.lower() if text else None
        sender_key = normalize(sender) if sender else None
        matches: list[ArchiveEntry] = []
        for entry in self.iter_entries(date_from, date_to):
            if conversation_id and entry.conversation_id != conversation_id:
                continue
            if sender_key is not None and normalize(entry.sender_identity) != sender_key:
                continue
            if has_media is not None and entry.has_media != has_media:
                continue
            if needle and needle not in entry.body_text.lower():
                continue
            matches.append(entry)
        matches.sort(key=lambda e: e.timestamp, reverse=True)
        return matches[:limit]

    def get_by_id(self, message_id: str) -> ArchiveEntry | None:
        found = None
        for entry in self.iter_entries():
            if entry.message_id == message_id:
                found = entry
        return found

    def stats(self) -> dict:
        files = self._day_files()
        by_category: dict[str, int] = {}
        total = 0
        size = 0
        for path in files:
            category = path.parent.name
            with path.open("r", encoding="utf-8") as f:
                lines = sum(1 for line in f if line.strip())
            by_category[category] = by_category.get(category, 0) + lines
            total += lines
            size += path.stat().st_size
        return {
            "files": len(files),
            "messages": total,
            "bytes": size,
            "by_category": by_category,
            "first_day": files[0].stem if files else None,
            "last_day": files[-1].stem if files else None,
        }
