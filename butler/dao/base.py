"""Base DAO abstract class."""

from abc import ABC
from datetime import datetime, timezone
from typing import Generic, TypeVar

from butler.database import Database

# Type variable for Pydantic domain models
T = TypeVar("T")


def to_db_datetime(value: datetime) -> datetime:
    """Normalize to naive UTC, which is how SQLite DateTime columns store values."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_datetime(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseDAO(ABC, Generic[T]):
    """Abstract base class for Data Access Objects.

    DAOs handle all database operations and MUST return Pydantic domain models,
    never SQLAlchemy ORM objects.

    All operations are async and use the Database session context manager
    for automatic transaction handling.
    """

    def __init__(self, database: Database):
        """Initialize DAO with database connection.

        Args:
            database: Database instance for session management.
        """
        self._db = database

    @property
    def db(self) -> Database:
        """Get the database instance."""
        return self._db
