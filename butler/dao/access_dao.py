"""Owner and command grant data access operations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select

from butler.dao.base import BaseDAO, from_db_datetime, to_db_datetime
from butler.models.domain import CommandGrant, utcnow
from butler.models.orm import BotSettingModel, CommandGrantModel

OWNER_SETTING_KEY = "owner_identity"


class AccessDAO(BaseDAO[CommandGrant]):
    """Data access object for the owner setting and command grants.

    All methods return Pydantic models or plain values, never SQLAlchemy objects.
    """

    @staticmethod
    def _to_domain(model: CommandGrantModel) -> CommandGrant:
        return CommandGrant(
            user_identity=model.user_identity,
            command=model.command,
            granted_at=from_db_datetime(model.granted_at),
        )

    async def get_owner(self) -> str | None:
        """Return the persisted owner identity, if any."""
        async with self._db.session() as session:
            result = await session.execute(
                select(BotSettingModel).where(BotSettingModel.key == OWNER_SETTING_KEY)
            )
            model = result.scalar_one_or_none()
            return model.value if model else None

    async def set_owner(self, identity: str) -> None:
        """Insert or replace the owner identity."""
        now = to_db_datetime(utcnow())
        async with self._db.session() as session:
            model = await session.get(BotSettingModel, OWNER_SETTING_KEY)
            if model is None:
                session.add(
                    BotSettingModel(key=OWNER_SETTING_KEY, value=identity, updated_at=now)
                )
            else:
                model.value = identity
                model.updated_at = now

    async def list_grants(self) -> list[CommandGrant]:
        """Return every grant ordered by user then command."""
        async with self._db.session() as session:
            result = await session.execute(
                select(CommandGrantModel).order_by(
                    CommandGrantModel.user_identity, CommandGrantModel.command
                )
            )
            return [self._to_domain(m) for m in result.scalars().all()]

    async def add_grant(
        self, user_identity: str, command: str, granted_at: datetime | None = None
    ) -> CommandGrant:
        """Persist a grant. Adding an existing grant is a no-op."""
        async with self._db.session() as session:
            result = await session.execute(
                select(CommandGrantModel).where(
                    CommandGrantModel.user_identity == user_identity,
                    CommandGrantModel.command == command,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                model = CommandGrantModel(
                    user_identity=user_identity,
                    command=command,
                    granted_at=to_db_datetime(granted_at or utcnow()),
                )
                session.add(model)
                await session.flush()
            return self._to_domain(model)

    async def remove_grant(self, user_identity: str, command: str) -> bool:
        """Delete a grant. Returns True if a row was removed."""
        async with self._db.session() as session:
            result = await session.execute(
                delete(CommandGrantModel).where(
                    CommandGrantModel.user_identity == user_identity,
                    CommandGrantModel.command == command,
                )
            )
            return (result.rowcount or 0) > 0

    async def remove_user(self, user_identity: str) -> int:
        """Delete all grants for a user. Returns the number of rows removed."""
        async with self._db.session() as session:
            result = await session.execute(
                delete(CommandGrantModel).where(
                    CommandGrantModel.user_identity == user_identity
                )
            )
            return result.rowcount or 0
