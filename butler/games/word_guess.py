"""Word guessing game.

Classic mode is hangman on one long word shared by the players. Race mode
opens a waiting room, then players take turns on words that grow from three
to six letters; a wrong letter passes the turn and so does finishing a word.
"""

from __future__ import annotations

import random

from pydantic import Field

from butler.enums import GameKind, GameStatus, WordGuessMode
from butler.exceptions import InvalidInputError
from butler.games.base import (
    QUIT_WORDS,
    EngineState,
    GameEngine,
    MoveResult,
    display_name,
    format_duration,
    same_player,
)
from butler.security.access_registry import JOIN_WORDS

HINT_WORDS = frozenset({"hint"})
DEFAULT_MAX_WRONG_GUESSES = 6

CLASSIC_WORDS: dict[str, str] = {
    "JAVASCRIPT": "A popular programming language for web development",
    "WHATSAPP": "A messaging application owned by Meta",
    "COMPUTER": "An electronic device for processing data",
    "KEYBOARD": "Input device with keys for typing",
    "INTERNET": "Global network connecting computers worldwide",
    "PROGRAMMING": "The process of creating computer software",
    "ALGORITHM": "A step-by-step procedure for solving problems",
    "DATABASE": "Organized collection of data",
    "NETWORK": "Group of interconnected devices",
    "SOFTWARE": "Computer programs and applications",
    "HARDWARE": "Physical components of a computer",
    "SECURITY": "Protection against threats and attacks",
    "ENCRYPTION": "Process of encoding information",
    "ARTIFICIAL": "Man-made or synthetic",
    "INTELLIGENCE": "Ability to learn and understand",
    "MACHINE": "Device that performs work",
    "LEARNING": "Process of acquiring knowledge",
    "TECHNOLOGY": "Application of scientific knowledge",
    "DEVELOPMENT": "Process of creating or improving",
    "FRAMEWORK": "Basic structure or foundation",
}

RACE_WORDS: dict[int, tuple[str, ...]] = {
    3: ("CAT", "DOG", "SUN", "CAR", "RUN", "SIT", "EAT", "WIN", "BOX", "MAP"),
    4: ("BOOK", "TREE", "BIRD", "MOON", "FISH", "HOME", "GAME", "LOVE", "STAR", "WALK"),
    5: ("HOUSE", "WATER", "SMILE", "HAPPY", "WORLD", "PEACE", "LIGHT", "MUSIC", "DREAM", "MAGIC"),
    6: ("SIMPLE", "NATURE", "FRIEND", "FLOWER", "BRIDGE", "CASTLE", "ISLAND", "FOREST", "ROCKET", "PUZZLE"),
}
RACE_FIRST_LENGTH = 3
RACE_LAST_LENGTH = 6
RACE_MIN_PLAYERS = 2

HANGMAN_STAGES = (
    "  +---+\n  |   |\n      |\n      |\n      |\n      |\n=========",
    "  +---+\n  |   |\n  O   |\n      |\n      |\n      |\n=========",
    "  +---+\n  |   |\n  O   |\n  |   |\n      |\n      |\n=========",
    "  +---+\n  |   |\n  O   |\n /|   |\n      |\n      |\n=========",
    "  +---+\n  |   |\n  O   |\n /|\\  |\n      |\n      |\n=========",
    "  +---+\n  |   |\n  O   |\n /|\\  |\n /    |\n      |\n=========",
    "  +---+\n  |   |\n  O   |\n /|\\  |\n / \\  |\n      |\n=========",
)


def hangman_drawing(wrong_guesses: int, max_wrong_guesses: int) -> str:
    """Scale the wrong-guess count onto the seven drawing stages."""
    last = len(HANGMAN_STAGES) - 1
    if max_wrong_guesses <= 0:
        stage = last
    else:
        stage = min(last, (wrong_guesses * last) // max_wrong_guesses)
    return f"```\n{HANGMAN_STAGES[stage]}\n```"


class WordGuessState(EngineState):
    mode: WordGuessMode = WordGuessMode.CLASSIC
    word: str = ""
    hint: str | None = None
    correct: list[str] = Field(default_factory=list)
    wrong: list[str] = Field(default_factory=list)
    wrong_guesses: int = 0
    max_wrong_guesses: int = DEFAULT_MAX_WRONG_GUESSES
    words_completed: int = 0

    @property
    def waiting(self) -> bool:
        return self.mode is WordGuessMode.RACE and not self.word

    @property
    def masked_word(self) -> str:
        return " ".join(ch if ch in self.correct else "_" for ch in self.word)

    @property
    def solved(self) -> bool:
        return bool(self.word) and all(ch in self.correct for ch in self.word)

    @property
    def guessed(self) -> list[str]:
        return sorted(set(self.correct) | set(self.wrong))


class WordGuessEngine(GameEngine[WordGuessState]):
    kind = GameKind.WORD_GUESS
    state_model = WordGuessState

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        max_wrong_guesses: int = DEFAULT_MAX_WRONG_GUESSES,
    ):
        self._rng = rng or random.Random()
        self._max_wrong_guesses = max_wrong_guesses

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, conversation_id: str, players: list[str], **options) -> tuple[str, WordGuessState]:
        if not players:
            raise InvalidInputError("Word guess needs at least one player")
        mode = WordGuessMode(options.get("mode") or WordGuessMode.CLASSIC)
        if mode is WordGuessMode.RACE:
            return self._open_waiting_room(players[0])

        word = self._rng.choice(sorted(CLASSIC_WORDS))
        state = WordGuessState(
            players=list(players),
            word=word,
            hint=CLASSIC_WORDS[word],
            max_wrong_guesses=self._max_wrong_guesses,
        )
        prompt = (
            "🔤 *Word Guessing Game Started!*\n\n"
            f"{self._progress(state)}\n"
            f"*Length:* {len(word)} letters\n\n"
            "🎮 *Instructions:*\n"
            "• Send a single letter to guess\n"
            '• Send "hint" for a clue\n'
            '• Send "quit" to end the game\n\n'
            f"👤 *Players:* {', '.join(display_name(p) for p in state.players)}"
        )
        return prompt, state

    def _open_waiting_room(self, starter: str) -> tuple[str, WordGuessState]:
        state = WordGuessState(
            mode=WordGuessMode.RACE,
            players=[starter],
            max_wrong_guesses=self._max_wrong_guesses,
        )
        prompt = (
            "🎲 *Word Race - Waiting Room*\n\n"
            '📝 Type "join" to join the game!\n'
            f"👥 *Players joined:* 1 ({display_name(starter)})\n\n"
            "🎮 *Rules:*\n"
            "• Players take turns guessing letters\n"
            "• A wrong letter passes the turn\n"
            "• Words start with 3 letters, then grow up to 6\n"
            "• Finish the 6-letter word to win"
        )
        return prompt, state

    def close_waiting_room(self, state: WordGuessState) -> MoveResult[WordGuessState]:
        """End the join phase: pick the first word, or cancel if too few joined."""
        if not state.waiting:
            return MoveResult.rejected(state, "")
        if len(state.players) < RACE_MIN_PLAYERS:
            reply = (
                "❌ *Game Cancelled*\n\n"
                f"Not enough players joined ({len(state.players)}/{RACE_MIN_PLAYERS} minimum)\n\n"
                "Try again later!"
            )
            return MoveResult(state=state, reply=reply, ended=True, outcome=GameStatus.TIMEOUT)

        new_state = state.model_copy(deep=True)
        self._next_race_word(new_state, RACE_FIRST_LENGTH)
        new_state.turn_index = 0
        reply = (
            "🎮 *Word Race Started!*\n\n"
            f"👥 *Players:* {', '.join(display_name(p) for p in new_state.players)}\n"
            f"📝 *Word:* {new_state.masked_word}\n\n"
            f"🎯 *First turn:* {display_name(new_state.current_player)}"
        )
        return MoveResult(state=new_state, reply=reply)

    def _next_race_word(self, state: WordGuessState, length: int) -> None:
        state.word = self._rng.choice(RACE_WORDS[length])
        state.hint = None
        state.correct = []
        state.wrong = []
        state.wrong_guesses = 0

    def status_of(self, state: WordGuessState) -> GameStatus:
        return GameStatus.WAITING if state.waiting else GameStatus.ACTIVE

    def turn_timed(self, state: WordGuessState) -> bool:
        return state.mode is WordGuessMode.RACE and not state.waiting

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def is_valid_input(self, raw: str, state: WordGuessState) -> bool:
        text = (raw or "").strip().lower()
        if state.waiting:
            return text in JOIN_WORDS or text in QUIT_WORDS
        return text in QUIT_WORDS or text in HINT_WORDS or len(text) == 1

    def apply_move(self, state: WordGuessState, player: str, raw: str) -> MoveResult[WordGuessState]:
        text = (raw or "").strip().lower()
        if state.waiting:
            return self._waiting_room_input(state, player, text)

        if text in QUIT_WORDS:
            return self._quit(state, player)
        if state.mode is WordGuessMode.RACE and not same_player(player, state.current_player):
            return MoveResult.rejected(
                state, f"❌ It's not your turn. Waiting for {display_name(state.current_player)}."
            )

        if text in HINT_WORDS:
            return MoveResult.rejected(state, f"💡 *Hint:* {self._hint(state)}")
        if len(text) != 1 or not ("a" <= text <= "z"):
            return MoveResult.rejected(state, "❌ Please enter a single letter (A-Z)")

        letter = text.upper()
        if letter in state.correct or letter in state.wrong:
            return MoveResult.rejected(
                state, f'❌ You already guessed "{letter}". Try a different letter.'
            )

        new_state = state.model_copy(deep=True)
        new_state.moves += 1
        if letter in new_state.word:
            new_state.correct.append(letter)
            return self._after_correct(new_state, player, letter)

        new_state.wrong.append(letter)
        new_state.wrong_guesses += 1
        return self._after_wrong(new_state, player, letter)

    def _waiting_room_input(
        self, state: WordGuessState, player: str, text: str
    ) -> MoveResult[WordGuessState]:
        joined = any(same_player(player, p) for p in state.players)
        if text in QUIT_WORDS and joined:
            return MoveResult(
                state=state,
                reply=f"⏹️ Word race cancelled by {display_name(player)}",
                ended=True,
                outcome=GameStatus.QUIT,
            )
        if text not in JOIN_WORDS:
            return MoveResult.rejected(state, '📝 Type "join" to join the game!')
        if joined:
            return MoveResult.rejected(state, "❌ You already joined the game!")

        new_state = state.model_copy(deep=True)
        new_state.players.append(player)
        return MoveResult(
            state=new_state,
            reply=f"✅ {display_name(player)} joined the game! ({len(new_state.players)} players)",
        )

    def _after_correct(
        self, state: WordGuessState, player: str, letter: str
    ) -> MoveResult[WordGuessState]:
        name = display_name(player)
        if not state.solved:
            reply = f'✅ Good guess, {name}! "{letter}" is in the word.\n\n{self._progress(state)}'
            if state.mode is WordGuessMode.RACE:
                reply += f"\n\n🎮 {name}'s turn continues!"
            return MoveResult(state=state, reply=reply)

        if state.mode is WordGuessMode.CLASSIC:
            reply = (
                f"🎉 *Congratulations!*\n🏆 {name} guessed the word: *{state.word}*\n"
                f"⏱️ Time: {format_duration(state.started_at)}\n"
                f"🎯 Wrong guesses: {state.wrong_guesses}/{state.max_wrong_guesses}"
            )
            return MoveResult(
                state=state, reply=reply, ended=True, outcome=GameStatus.WON, winner=player
            )

        finished = state.word
        state.words_completed += 1
        next_length = len(finished) + 1
        if next_length > RACE_LAST_LENGTH:
            reply = (
                f"🎊 *Congratulations {name}! You completed all words!*\n\n"
                f"🎯 *Final word was:* {finished}"
            )
            return MoveResult(
                state=state, reply=reply, ended=True, outcome=GameStatus.WON, winner=player
            )

        self._next_race_word(state, next_length)
        state.turn_index = (state.turn_index + 1) % len(state.players)
        reply = (
            f"🎯 *{name} completed {finished}!* Moving to a {next_length}-letter word:\n\n"
            f"📝 *New Word:* {state.masked_word}\n\n"
            f"🎮 *Next Turn:* {display_name(state.current_player)}"
        )
        return MoveResult(state=state, reply=reply)

    def _after_wrong(
        self, state: WordGuessState, player: str, letter: str
    ) -> MoveResult[WordGuessState]:
        name = display_name(player)
        reply = f'❌ Sorry {name}, "{letter}" is not in the word.\n\n{self._progress(state)}'
        if state.wrong_guesses >= state.max_wrong_guesses:
            reply += (
                "\n\n💀 *Game Over!*\n😞 Out of guesses.\n"
                f"🔤 The word was: *{state.word}*"
            )
            return MoveResult(state=state, reply=reply, ended=True, outcome=GameStatus.LOST)

        if state.mode is WordGuessMode.RACE:
            state.turn_index = (state.turn_index + 1) % len(state.players)
            reply += f"\n\n🎮 *Next Turn:* {display_name(state.current_player)}"
        else:
            remaining = state.max_wrong_guesses - state.wrong_guesses
            plural = "" if remaining == 1 else "es"
            reply += f"\n\n🎮 Keep guessing! {remaining} wrong guess{plural} remaining."
        return MoveResult(state=state, reply=reply)

    def _quit(self, state: WordGuessState, player: str) -> MoveResult[WordGuessState]:
        reply = (
            "🔤 *Word Guessing Game Ended*\n\n"
            f"⏹️ Game quit by {display_name(player)}\n"
            f"🔤 The word was: *{state.word}*\n"
            f"*Progress:* {state.masked_word}\n"
            f"⏱️ Duration: {format_duration(state.started_at)}"
        )
        return MoveResult(state=state, reply=reply, ended=True, outcome=GameStatus.QUIT)

    def _hint(self, state: WordGuessState) -> str:
        if state.hint:
            return state.hint
        return f"A {len(state.word)}-letter word starting with {state.word[:1]}"

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _progress(self, state: WordGuessState) -> str:
        guessed = ", ".join(state.guessed) or "-"
        return (
            f"{hangman_drawing(state.wrong_guesses, state.max_wrong_guesses)}\n\n"
            f"*Word:* {state.masked_word}\n"
            f"*Wrong guesses:* {state.wrong_guesses}/{state.max_wrong_guesses}\n"
            f"*Guessed letters:* {guessed}"
        )

    def render_info(self, state: WordGuessState) -> str:
        players = ", ".join(display_name(p) for p in state.players)
        if state.waiting:
            return (
                "🎲 *Word Race - Waiting Room*\n\n"
                f"👥 *Players joined:* {len(state.players)} ({players})"
            )
        title = "Word Race" if state.mode is WordGuessMode.RACE else "Word Guessing Game"
        lines = [f"🔤 *{title} Info*", "", self._progress(state), f"👤 *Players:* {players}"]
        if state.mode is WordGuessMode.RACE:
            lines.append(f"🎯 *Words completed:* {state.words_completed}")
            lines.append(f"⏭️ *Turn:* {display_name(state.current_player)}")
        return "\n".join(lines)
