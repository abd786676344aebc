"""Media vault metadata data access operations."""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from butler.dao.base import BaseDAO, from_db_datetime, to_db_datetime
from butler.enums import MediaCategory
from butler.models.domain import MediaObject, MediaReference
from butler.models.orm import MediaObjectModel, MediaReferenceModel


class MediaDAO(BaseDAO[MediaObject]):
    """Data access object for content-addressed media metadata.

    Objects are keyed by SHA-256 content hash; every message that carried the
    same bytes is recorded as a separate reference row.
    """

    @staticmethod
    def _ref_to_domain(model: MediaReferenceModel) -> MediaReference:
        return MediaReference(
            message_id=model.message_id,
            conversation_id=model.conversation_id,
            sender_identity=model.sender_identity,
            added_at=from_db_datetime(model.added_at),
        )

    @classmethod
    def _to_domain(cls, model: MediaObjectModel) -> MediaObject:
        return MediaObject(
            content_hash=model.content_hash,
            filename=model.filename,
            original_name=model.original_name,
            category=MediaCategory(model.category),
            mime_type=model.mime_type,
            size_bytes=model.size_bytes,
            storage_path=model.storage_path,
            relative_path=model.relative_path,
            created_at=from_db_datetime(model.created_at),
            references=[cls._ref_to_domain(r) for r in model.references],
        )

    async def get(self, content_hash: str) -> MediaObject | None:
        async with self._db.session() as session:
            result = await session.execute(
                select(MediaObjectModel)
                .options(selectinload(MediaObjectModel.references))
                .where(MediaObjectModel.content_hash == content_hash)
            )
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def create(self, media: MediaObject) -> MediaObject:
        """Insert a new media object together with its initial references."""
        async with self._db.session() as session:
            model = MediaObjectModel(
                content_hash=media.content_hash,
                filename=media.filename,
                original_name=media.original_name,
                category=str(media.category),
                mime_type=media.mime_type,
                size_bytes=media.size_bytes,
                storage_path=media.storage_path,
                relative_path=media.relative_path,
                created_at=to_db_datetime(media.created_at),
            )
            for ref in media.references:
                model.references.append(
                    MediaReferenceModel(
                        message_id=ref.message_id,
                        conversation_id=ref.conversation_id,
                        sender_identity=ref.sender_identity,
                        added_at=to_db_datetime(ref.added_at),
                    )
                )
            session.add(model)
            await session.flush()
        return media

    async def add_reference(self, content_hash: str, ref: MediaReference) -> bool:
        """Attach a message reference. Returns False if it was already recorded."""
        async with self._db.session() as session:
            result = await session.execute(
                select(MediaReferenceModel.id).where(
                    MediaReferenceModel.content_hash == content_hash,
                    MediaReferenceModel.message_id == ref.message_id,
                )
            )
            if result.scalar_one_or_none() is not None:
                return False
            session.add(
                MediaReferenceModel(
                    content_hash=content_hash,
                    message_id=ref.message_id,
                    conversation_id=ref.conversation_id,
                    sender_identity=ref.sender_identity,
                    added_at=to_db_datetime(ref.added_at),
                )
            )
            return True

    async def search(
        self,
        *,
        category: MediaCategory | None = None,
        mime_prefix: str | None = None,
        conversation_id: str | None = None,
        limit: int = 50,
    ) -> list[MediaObject]:
        """Newest media first, filtered by category, MIME prefix, or conversation."""
        async with self._db.session() as session:
            query = (
                select(MediaObjectModel)
                .options(selectinload(MediaObjectModel.references))
                .order_by(MediaObjectModel.created_at.desc())
            )
            if category is not None:
                query = query.where(MediaObjectModel.category == str(category))
            if mime_prefix:
                query = query.where(MediaObjectModel.mime_type.startswith(mime_prefix))
            if conversation_id:
                query = query.where(
                    MediaObjectModel.references.any(
                        MediaReferenceModel.conversation_id == conversation_id
                    )
                )
            result = await session.execute(query.limit(limit))
            return [self._to_domain(m) for m in result.scalars().all()]

    async def stats(self) -> dict[str, dict[str, int]]:
        """Per-category file counts and byte totals."""
        async with self._db.session() as session:
            result = await session.execute(
                select(
                    MediaObjectModel.category,
                    func.count(),
                    func.coalesce(func.sum(MediaObjectModel.size_bytes), 0),
                ).group_by(MediaObjectModel.category)
            )
            return {
                category: {"files": count, "bytes": int(size)}
                for category, count, size in result.all()
            }

    async def count_references(self) -> int:
        async with self._db.session() as session:
            result = await session.execute(select(func.count(MediaReferenceModel.id)))
            return result.scalar_one()

    async def list_paths(self) -> set[str]:
        """Storage paths of every known object."""
        async with self._db.session() as session:
            result = await session.execute(select(MediaObjectModel.storage_path))
            return set(result.scalars().all())

    async def delete(self, content_hash: str) -> bool:
        async with self._db.session() as session:
            await session.execute(
                delete(MediaReferenceModel).where(
                    MediaReferenceModel.content_hash == content_hash
                )
            )
            result = await session.execute(
                delete(MediaObjectModel).where(
                    MediaObjectModel.content_hash == content_hash
                )
            )
            return (result.rowcount or 0) > 0
