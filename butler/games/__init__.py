"""Interactive mini-games played inside conversations."""

from butler.games.base import AI_PLAYER, EngineState, GameEngine, MoveResult
from butler.games.sessions import GameSessionManager
from butler.games.tictactoe import TicTacToeEngine
from butler.games.word_guess import WordGuessEngine

__all__ = [
    "AI_PLAYER",
    "EngineState",
    "GameEngine",
    "GameSessionManager",
    "MoveResult",
    "TicTacToeEngine",
    "WordGuessEngine",
]
