"""Data Access Objects package."""

from .access_dao import AccessDAO
from .base import BaseDAO
from .game_dao import GameDAO
from .media_dao import MediaDAO

__all__ = [
    "AccessDAO",
    "BaseDAO",
    "GameDAO",
    "MediaDAO",
]
