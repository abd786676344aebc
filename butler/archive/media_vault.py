"""Content-addressed media store.

Files live under ``<base>/<category>/<timestamp>_<hash8>.<ext>``; metadata
and message back-references live in the database keyed by SHA-256.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
import re
from pathlib import Path

from butler.dao.media_dao import MediaDAO
from butler.enums import MediaCategory
from butler.exceptions import MediaTooLargeError
from butler.models.domain import InboundMessage, MediaObject, MediaReference, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3, "TB": 1024**4}
_EXT_RE = re.compile(r"^[a-z0-9]{1,10}$")


def parse_size(raw: str | int) -> int:
    """Parse sizes like ``50MB`` or ``512 kb`` into bytes."""
    if isinstance(raw, int):
        return raw
    match = _SIZE_RE.match(raw or "")
    if not match:
        raise ValueError(f"Invalid size: {raw!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "B").upper()])


def format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def category_for_mime(mime_type: str | None) -> MediaCategory:
    mime = (mime_type or "").lower()
    if mime == "image/webp":
        return MediaCategory.STICKERS
    if mime.startswith("image/"):
        return MediaCategory.IMAGES
    if mime.startswith("video/"):
        return MediaCategory.VIDEOS
    if mime.startswith("audio/"):
        return MediaCategory.AUDIO
    return MediaCategory.DOCUMENTS


def extension_for(original_name: str | None, mime_type: str | None) -> str:
    """Extension from the filename, else the MIME type, else ``bin``."""
    if original_name and "." in original_name:
        ext = original_name.rsplit(".", 1)[1].lower()
        if _EXT_RE.match(ext):
            return ext
    if mime_type:
        guessed = mimetypes.guess_extension(mime_type.split(";")[0].strip())
        if guessed:
            return guessed.lstrip(".")
    return "bin"


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".part")
    tmp.write_bytes(data)
    tmp.replace(path)


class MediaVault:
    """Deduplicating media storage.

    Storing bytes that are already present only adds a back-reference to the
    existing object; nothing is written to disk.
    """

    def __init__(self, base_dir: Path | str, media_dao: MediaDAO, *, max_size_bytes: int):
        self.base_dir = Path(base_dir)
        self._dao = media_dao
        self.max_size_bytes = max_size_bytes

    async def store(
        self,
        data: bytes,
        message: InboundMessage,
        *,
        mime_type: str | None = None,
        original_name: str | None = None,
    ) -> MediaObject:
        """Store media bytes for a message and return the (possibly existing) object.

        Raises:
            MediaTooLargeError: data exceeds the configured limit.
        """
        if len(data) > self.max_size_bytes:
            raise MediaTooLargeError(len(data), self.max_size_bytes)

        digest = content_hash(data)
        reference = MediaReference(
            message_id=message.message_id,
            conversation_id=message.conversation_id,
            sender_identity=message.sender,
        )

        existing = await self._dao.get(digest)
        if existing is not None:
            if await self._dao.add_reference(digest, reference):
                existing.references.append(reference)
            logger.debug("Media %s already stored; added reference %s", digest[:8], message.message_id)
            return existing

        mime = (mime_type or DEFAULT_MIME_TYPE).lower()
        category = category_for_mime(mime)
        now = utcnow()
        filename = f"{int(now.timestamp() * 1000)}_{digest[:8]}.{extension_for(original_name, mime)}"
        relative_path = f"{category}/{filename}"
        path = self.base_dir / relative_path

        await asyncio.to_thread(_write_file, path, data)

        media = MediaObject(
            content_hash=digest,
            filename=filename,
            original_name=original_name,
            category=category,
            mime_type=mime,
            size_bytes=len(data),
            storage_path=str(path),
            relative_path=relative_path,
            created_at=now,
            references=[reference],
        )
        try:
            await self._dao.create(media)
        except Exception:
            # Keep disk and metadata consistent
            path.unlink(missing_ok=True)
            raise
        logger.info("Stored %s media %s (%s)", category, filename, format_size(len(data)))
        return media

    async def get(self, digest: str) -> MediaObject | None:
        return await self._dao.get(digest)

    async def read(self, digest: str) -> bytes | None:
        media = await self._dao.get(digest)
        if media is None:
            return None
        path = Path(media.storage_path)
        if not path.exists():
            logger.warning("Media file missing for %s: %s", digest[:8], path)
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def search(
        self,
        *,
        category: MediaCategory | None = None,
        mime_prefix: str | None = None,
        conversation_id: str | None = None,
        limit: int = 50,
    ) -> list[MediaObject]:
        return await self._dao.search(
            category=category,
            mime_prefix=mime_prefix,
            conversation_id=conversation_id,
            limit=limit,
        )

    async def stats(self) -> dict:
        by_category = await self._dao.stats()
        total_files = sum(c["files"] for c in by_category.values())
        total_bytes = sum(c["bytes"] for c in by_category.values())
        return {
            "files": total_files,
            "bytes": total_bytes,
            "size": format_size(total_bytes),
            "references": await self._dao.count_references(),
            "by_category": by_category,
            "max_file_size": format_size(self.max_size_bytes),
        }

    async def cleanup_orphaned_files(self) -> int:
        """Delete files under the vault with no metadata row. Returns the count."""
        known = {str(Path(p)) for p in await self._dao.list_paths()}

        def _sweep() -> int:
            removed = 0
            for category in MediaCategory:
                directory = self.base_dir / str(category)
                if not directory.is_dir():
                    continue
                for path in directory.iterdir():
                    if path.is_file() and str(path) not in known:
                        path.unlink(missing_ok=True)
                        removed += 1
            return removed

        removed = await asyncio.to_thread(_sweep)
        if removed:
            logger.info("Removed %d orphaned media file(s)", removed)
        return removed
