"""Unit tests for the content-addressed media vault."""

import hashlib

import pytest

from butler.archive.media_vault import (
    MediaVault,
    category_for_mime,
    extension_for,
    format_size,
    parse_size,
)
from butler.dao import MediaDAO
from butler.enums import MediaCategory
from butler.exceptions import MediaTooLargeError
from tests.conftest import ALICE, BOB, make_message


@pytest.fixture
def vault(tmp_path, media_dao: MediaDAO) -> MediaVault:
    return MediaVault(tmp_path / "media", media_dao, max_size_bytes=1024)


class TestHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [("50MB", 50 * 1024 * 1024), ("512 kb", 512 * 1024), ("10", 10), (7, 7), ("1.5KB", 1536)],
    )
    def test_parse_size(self, raw, expected):
        assert parse_size(raw) == expected

    def test_parse_size_invalid(self):
        with pytest.raises(ValueError):
            parse_size("lots")

    def test_format_size(self):
        assert format_size(512) == "512 B"
        assert format_size(1536) == "1.50 KB"

    @pytest.mark.parametrize(
        "mime,category",
        [
            ("image/jpeg", MediaCategory.IMAGES),
            ("image/webp", MediaCategory.STICKERS),
            ("video/mp4", MediaCategory.VIDEOS),
            ("audio/ogg", MediaCategory.AUDIO),
            ("application/pdf", MediaCategory.DOCUMENTS),
            (None, MediaCategory.DOCUMENTS),
        ],
    )
    def test_category_for_mime(self, mime, category):
        assert category_for_mime(mime) is category

    def test_extension_for(self):
        assert extension_for("Report.PDF", "application/pdf") == "pdf"
        assert extension_for(None, "image/png") == "png"
        assert extension_for("no-extension", None) == "bin"


class TestStore:
    async def test_store_writes_file_and_metadata(self, vault: MediaVault, tmp_path):
        data = b"\x89PNG fake image"
        media = await vault.store(
            data, make_message(sender=ALICE), mime_type="image/png", original_name="cat.png"
        )

        digest = hashlib.sha256(data).hexdigest()
        assert media.content_hash == digest
        assert media.category is MediaCategory.IMAGES
        assert media.filename.endswith(f"_{digest[:8]}.png")
        assert media.relative_path == f"images/{media.filename}"
        assert (tmp_path / "media" / media.relative_path).read_bytes() == data
        assert await vault.read(digest) == data

    async def test_duplicate_adds_reference_only(self, vault: MediaVault, tmp_path):
        data = b"same bytes"
        first = await vault.store(data, make_message(sender=ALICE), mime_type="image/jpeg")
        second = await vault.store(data, make_message(sender=BOB), mime_type="image/jpeg")

        assert second.content_hash == first.content_hash
        assert len(second.references) == 2
        files = list((tmp_path / "media" / "images").iterdir())
        assert len(files) == 1

    async def test_duplicate_across_conversations(self, vault: MediaVault, tmp_path):
        data = b"forwarded photo bytes"
        await vault.store(data, make_message(sender=ALICE), mime_type="image/jpeg")
        shared = await vault.store(
            data, make_message(sender=BOB, conversation_id="-100"), mime_type="image/jpeg"
        )

        assert shared.size_bytes == len(data)
        assert sorted(ref.conversation_id for ref in shared.references) == sorted([ALICE, "-100"])
        assert len(list((tmp_path / "media" / "images").iterdir())) == 1
        assert len(await vault.search(conversation_id="-100")) == 1
        assert len(await vault.search(conversation_id=ALICE)) == 1

    async def test_same_message_twice_is_one_reference(self, vault: MediaVault):
        message = make_message(sender=ALICE)
        await vault.store(b"bytes", message, mime_type="image/jpeg")
        again = await vault.store(b"bytes", message, mime_type="image/jpeg")
        assert len(again.references) == 1

    async def test_too_large_rejected_before_write(self, vault: MediaVault, tmp_path):
        with pytest.raises(MediaTooLargeError):
            await vault.store(b"x" * 1025, make_message(), mime_type="video/mp4")
        assert not (tmp_path / "media").exists()

    async def test_metadata_failure_removes_file(self, tmp_path, media_dao, monkeypatch):
        vault = MediaVault(tmp_path / "media", media_dao, max_size_bytes=1024)

        async def boom(media):
            raise RuntimeError("db down")

        monkeypatch.setattr(media_dao, "create", boom)
        with pytest.raises(RuntimeError):
            await vault.store(b"data", make_message(), mime_type="application/pdf")
        assert list((tmp_path / "media" / "documents").iterdir()) == []


class TestQueries:
    async def test_search_and_stats(self, vault: MediaVault):
        await vault.store(b"img", make_message(conversation_id="-100"), mime_type="image/jpeg")
        await vault.store(b"doc", make_message(), mime_type="application/pdf")

        images = await vault.search(category=MediaCategory.IMAGES)
        assert [m.mime_type for m in images] == ["image/jpeg"]
        in_group = await vault.search(conversation_id="-100")
        assert [m.mime_type for m in in_group] == ["image/jpeg"]

        stats = await vault.stats()
        assert stats["files"] == 2
        assert stats["bytes"] == 6
        assert stats["references"] == 2
        assert stats["max_file_size"] == "1.00 KB"

    async def test_read_missing(self, vault: MediaVault):
        assert await vault.read("0" * 64) is None

    async def test_cleanup_orphaned_files(self, vault: MediaVault, tmp_path):
        kept = await vault.store(b"kept", make_message(), mime_type="image/jpeg")
        orphan = tmp_path / "media" / "images" / "orphan.jpg"
        orphan.write_bytes(b"stray")

        assert await vault.cleanup_orphaned_files() == 1
        assert not orphan.exists()
        assert (tmp_path / "media" / kept.relative_path).exists()
