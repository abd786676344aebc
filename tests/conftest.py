"""Pytest configuration and fixtures."""

import itertools

import pytest
import pytest_asyncio

from butler.dao import AccessDAO, GameDAO, MediaDAO
from butler.database import Database
from butler.models.domain import InboundMessage, MediaAttachment

# Configure pytest-asyncio to auto-detect async tests
pytest_plugins = ("pytest_asyncio",)

OWNER = "15550000001"
ALICE = "15550000002"
BOB = "15550000003"
CAROL = "15550000004"

_message_ids = itertools.count(1)


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest_asyncio.fixture
async def test_db():
    """Create a fresh in-memory database for each test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init_db()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def access_dao(test_db: Database) -> AccessDAO:
    return AccessDAO(test_db)


@pytest_asyncio.fixture
async def game_dao(test_db: Database) -> GameDAO:
    return GameDAO(test_db)


@pytest_asyncio.fixture
async def media_dao(test_db: Database) -> MediaDAO:
    return MediaDAO(test_db)


def make_message(
    text: str = "",
    *,
    sender: str = ALICE,
    conversation_id: str | None = None,
    media: MediaAttachment | None = None,
    **kwargs,
) -> InboundMessage:
    """Build an inbound message; private chats use the sender id as conversation id."""
    return InboundMessage(
        message_id=kwargs.pop("message_id", f"m{next(_message_ids)}"),
        conversation_id=conversation_id or sender,
        sender=sender,
        text=text,
        media=media,
        **kwargs,
    )
