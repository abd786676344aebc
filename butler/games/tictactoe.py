"""Tic-tac-toe on a 3x3 grid, against another player or a random AI."""

from __future__ import annotations

import random
import re

from pydantic import Field

from butler.enums import GameKind, GameStatus
from butler.exceptions import InvalidInputError
from butler.games.base import (
    AI_PLAYER,
    QUIT_WORDS,
    EngineState,
    GameEngine,
    MoveResult,
    display_name,
    format_duration,
    same_player,
)

MARKS = ("X", "O")
WIN_LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),  # rows
    (0, 3, 6), (1, 4, 7), (2, 5, 8),  # columns
    (0, 4, 8), (2, 4, 6),             # diagonals
)
SYMBOLS = {"X": "❌", "O": "⭕", "": "⬜"}
POSITION_GUIDE = "```\n1 | 2 | 3\n---------\n4 | 5 | 6\n---------\n7 | 8 | 9\n```"

_MOVE_RE = re.compile(r"^\d{1,2}$")


class TicTacToeState(EngineState):
    """players[0] plays X, players[1] plays O; turn_index points at the mover."""

    board: list[str] = Field(default_factory=lambda: [""] * 9)
    winner_mark: str | None = None

    @property
    def current_mark(self) -> str:
        return MARKS[self.turn_index % 2]

    def player_for(self, mark: str) -> str:
        return self.players[MARKS.index(mark)]

    def empty_cells(self) -> list[int]:
        return [i for i, cell in enumerate(self.board) if not cell]


def find_winner(board: list[str]) -> str | None:
    for a, b, c in WIN_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return board[a]
    return None


def render_board(board: list[str]) -> str:
    rows = []
    for i in range(0, 9, 3):
        rows.append(" ".join(SYMBOLS[cell or ""] for cell in board[i:i + 3]))
    return "\n".join(rows)


class TicTacToeEngine(GameEngine[TicTacToeState]):
    kind = GameKind.TICTACTOE
    state_model = TicTacToeState

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def start(self, conversation_id: str, players: list[str], **options) -> tuple[str, TicTacToeState]:
        if not players:
            raise InvalidInputError("Tic-tac-toe needs at least one player")
        starter = players[0]
        opponent = players[1] if len(players) > 1 else AI_PLAYER
        if same_player(starter, opponent):
            raise InvalidInputError("You can't play tic-tac-toe against yourself")

        # An invited human opens the game; against the AI the starter opens.
        turn_index = 0 if opponent == AI_PLAYER else 1
        state = TicTacToeState(players=[starter, opponent], turn_index=turn_index)

        prompt = (
            "🎯 *Tic-Tac-Toe Game Started!*\n\n"
            f"{render_board(state.board)}\n\n"
            "👤 *Players:*\n"
            f"❌ X: {display_name(starter)}\n"
            f"⭕ O: {display_name(opponent)}\n\n"
            f"🎮 *Current Turn:* {display_name(state.current_player)} ({state.current_mark})\n"
            '📝 Send a number 1-9 to place your mark, or "quit" to end the game\n\n'
            f"{POSITION_GUIDE}"
        )
        return prompt, state

    def is_valid_input(self, raw: str, state: TicTacToeState) -> bool:
        text = (raw or "").strip().lower()
        return text in QUIT_WORDS or bool(_MOVE_RE.match(text))

    def apply_move(self, state: TicTacToeState, player: str, raw: str) -> MoveResult[TicTacToeState]:
        text = (raw or "").strip().lower()
        if text in QUIT_WORDS:
            return self._quit(state, player)

        if not _MOVE_RE.match(text) or not 1 <= int(text) <= 9:
            return MoveResult.rejected(state, "❌ Invalid position. Please enter a number 1-9")
        position = int(text) - 1

        expected = state.current_player
        if not same_player(player, expected):
            return MoveResult.rejected(
                state, f"⏳ Wait for {display_name(expected)}'s turn ({state.current_mark})"
            )

        if state.board[position]:
            return MoveResult.rejected(state, "❌ Position already taken. Choose another position")

        return self._place(state, position)

    def _place(self, state: TicTacToeState, position: int) -> MoveResult[TicTacToeState]:
        new_state = state.model_copy(deep=True)
        mark = new_state.current_mark
        new_state.board[position] = mark
        new_state.moves += 1

        header = f"🎯 *Tic-Tac-Toe*\n\n{render_board(new_state.board)}\n\n"
        winner_mark = find_winner(new_state.board)
        if winner_mark:
            new_state.winner_mark = winner_mark
            winner = new_state.player_for(winner_mark)
            reply = (
                header
                + "🎉 *Game Over!*\n"
                + f"🏆 Winner: {display_name(winner)} ({winner_mark})\n"
                + f"🎮 Moves: {new_state.moves}"
            )
            return MoveResult(
                state=new_state, reply=reply, ended=True, outcome=GameStatus.WON, winner=winner
            )

        if new_state.moves >= 9:
            reply = header + "🤝 *Game Over!*\n⚖️ Result: Tie game!\n" + f"🎮 Total moves: {new_state.moves}"
            return MoveResult(state=new_state, reply=reply, ended=True, outcome=GameStatus.TIED)

        new_state.turn_index = (new_state.turn_index + 1) % 2
        reply = (
            header
            + f"🎮 *Next Turn:* {display_name(new_state.current_player)} ({new_state.current_mark})\n"
            + "📝 Send a number 1-9 to place your mark"
        )
        return MoveResult(state=new_state, reply=reply)

    def _quit(self, state: TicTacToeState, player: str) -> MoveResult[TicTacToeState]:
        reply = (
            "🎯 *Tic-Tac-Toe Game Ended*\n\n"
            f"⏹️ Game quit by {display_name(player)}\n"
            f"🎮 Total moves: {state.moves}\n"
            f"⏱️ Duration: {format_duration(state.started_at)}"
        )
        return MoveResult(state=state, reply=reply, ended=True, outcome=GameStatus.QUIT)

    def pending_automatic_move(self, state: TicTacToeState) -> bool:
        return state.current_player == AI_PLAYER and bool(state.empty_cells())

    def automatic_move(self, state: TicTacToeState) -> MoveResult[TicTacToeState]:
        """Play a uniformly random empty cell for the AI slot."""
        cells = state.empty_cells()
        if not cells or state.current_player != AI_PLAYER:
            return MoveResult.rejected(state, "")
        result = self._place(state, self._rng.choice(cells))
        result.reply = f"🤖 *AI Move:*\n\n{result.reply}"
        return result

    def render_info(self, state: TicTacToeState) -> str:
        x_player, o_player = state.players
        lines = [
            "🎯 *Tic-Tac-Toe Game Info*",
            "",
            render_board(state.board),
            "",
            f"❌ X: {display_name(x_player)}",
            f"⭕ O: {display_name(o_player)}",
            f"🎮 Moves: {state.moves}",
        ]
        if state.winner_mark:
            lines.append(f"🏆 Winner: {display_name(state.player_for(state.winner_mark))}")
        elif state.moves >= 9:
            lines.append("⚖️ Result: Tie game")
        else:
            lines.append(f"⏭️ Turn: {display_name(state.current_player)} ({state.current_mark})")
        return "\n".join(lines)
