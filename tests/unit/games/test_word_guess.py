"""Unit tests for the word guessing engine (classic and race modes)."""

import random
import string

import pytest

from butler.enums import GameStatus, WordGuessMode
from butler.games.word_guess import (
    CLASSIC_WORDS,
    HANGMAN_STAGES,
    RACE_WORDS,
    WordGuessEngine,
    WordGuessState,
    hangman_drawing,
)
from tests.conftest import ALICE, BOB, CAROL


@pytest.fixture
def engine() -> WordGuessEngine:
    return WordGuessEngine(random.Random(3), max_wrong_guesses=6)


def _wrong_letters(word: str) -> list[str]:
    return [c for c in string.ascii_uppercase if c not in word]


def _start_race(engine: WordGuessEngine, *players: str) -> WordGuessState:
    _, state = engine.start("-100", [players[0]], mode=WordGuessMode.RACE)
    for player in players[1:]:
        state = engine.apply_move(state, player, "join").state
    return engine.close_waiting_room(state).state


class TestClassic:
    def test_start(self, engine: WordGuessEngine):
        prompt, state = engine.start("chat", [ALICE])
        assert state.word in CLASSIC_WORDS
        assert state.hint == CLASSIC_WORDS[state.word]
        assert engine.status_of(state) is GameStatus.ACTIVE
        assert not engine.turn_timed(state)
        assert f"{len(state.word)} letters" in prompt

    def test_correct_guess_reveals_letter(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE])
        letter = state.word[0]
        result = engine.apply_move(state, ALICE, letter.lower())
        assert result.changed and not result.ended
        assert letter in result.state.correct
        assert letter in result.state.masked_word

    def test_repeat_guess_costs_nothing(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE])
        wrong = _wrong_letters(state.word)[0]
        state = engine.apply_move(state, ALICE, wrong).state
        result = engine.apply_move(state, ALICE, wrong)
        assert not result.changed
        assert "already guessed" in result.reply
        assert result.state.wrong_guesses == 1

    def test_hint_does_not_change_state(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE])
        result = engine.apply_move(state, ALICE, "hint")
        assert not result.changed
        assert state.hint in result.reply

    def test_non_letter_rejected(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE])
        result = engine.apply_move(state, ALICE, "7")
        assert not result.changed
        assert "single letter" in result.reply

    def test_solving_wins(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE, BOB])
        letters = list(dict.fromkeys(state.word))
        for letter in letters[:-1]:
            result = engine.apply_move(state, BOB, letter)
            assert result.changed and not result.ended
            state = result.state
        result = engine.apply_move(state, BOB, letters[-1])
        assert result.ended
        assert result.outcome is GameStatus.WON
        assert result.winner == BOB

    def test_running_out_of_guesses_loses(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE])
        wrong = _wrong_letters(state.word)[:6]
        for letter in wrong[:-1]:
            result = engine.apply_move(state, ALICE, letter)
            assert result.changed and not result.ended
            state = result.state
        result = engine.apply_move(state, ALICE, wrong[-1])
        assert result.ended
        assert result.outcome is GameStatus.LOST
        assert state.word in result.reply

    def test_input_filter(self, engine: WordGuessEngine):
        _, state = engine.start("chat", [ALICE])
        assert engine.is_valid_input("a", state)
        assert engine.is_valid_input("Hint", state)
        assert engine.is_valid_input("quit", state)
        assert not engine.is_valid_input("hello there", state)


class TestRace:
    def test_waiting_room(self, engine: WordGuessEngine):
        prompt, state = engine.start("-100", [ALICE], mode=WordGuessMode.RACE)
        assert state.waiting
        assert engine.status_of(state) is GameStatus.WAITING
        assert "Waiting Room" in prompt
        assert engine.is_valid_input("join", state)
        assert not engine.is_valid_input("a", state)

    def test_join_once(self, engine: WordGuessEngine):
        _, state = engine.start("-100", [ALICE], mode=WordGuessMode.RACE)
        state = engine.apply_move(state, BOB, "join").state
        assert state.players == [ALICE, BOB]
        again = engine.apply_move(state, BOB, "join")
        assert not again.changed
        assert "already joined" in again.reply

    def test_too_few_players_cancels(self, engine: WordGuessEngine):
        _, state = engine.start("-100", [ALICE], mode=WordGuessMode.RACE)
        result = engine.close_waiting_room(state)
        assert result.ended
        assert result.outcome is GameStatus.TIMEOUT

    def test_close_picks_three_letter_word(self, engine: WordGuessEngine):
        state = _start_race(engine, ALICE, BOB)
        assert state.word in RACE_WORDS[3]
        assert state.current_player == ALICE
        assert engine.status_of(state) is GameStatus.ACTIVE
        assert engine.turn_timed(state)

    def test_out_of_turn_rejected(self, engine: WordGuessEngine):
        state = _start_race(engine, ALICE, BOB)
        result = engine.apply_move(state, BOB, state.word[0])
        assert not result.changed
        assert "not your turn" in result.reply

    def test_off_turn_player_can_quit(self, engine: WordGuessEngine):
        state = _start_race(engine, ALICE, BOB)
        result = engine.apply_move(state, BOB, "quit")
        assert result.ended
        assert result.outcome is GameStatus.QUIT
        assert state.word in result.reply

    def test_wrong_letter_passes_turn(self, engine: WordGuessEngine):
        state = _start_race(engine, ALICE, BOB, CAROL)
        result = engine.apply_move(state, ALICE, _wrong_letters(state.word)[0])
        assert result.state.current_player == BOB

    def test_correct_letter_keeps_turn(self, engine: WordGuessEngine):
        state = _start_race(engine, ALICE, BOB)
        word = state.word
        letter = next(c for c in word if word.count(c) < len(word))
        result = engine.apply_move(state, ALICE, letter)
        if not result.state.solved:
            assert result.state.current_player == ALICE

    def test_completing_words_grows_length_and_final_word_wins(self, engine: WordGuessEngine):
        state = _start_race(engine, ALICE, BOB)
        for length in (3, 4, 5, 6):
            assert len(state.word) == length
            result = None
            for letter in dict.fromkeys(state.word):
                result = engine.apply_move(state, state.current_player, letter)
                state = result.state
            if length < 6:
                assert not result.ended
                assert state.words_completed == length - 2
        assert result.ended
        assert result.outcome is GameStatus.WON
        assert result.winner in (ALICE, BOB)


@pytest.mark.parametrize(
    "wrong,maximum,stage",
    [(0, 6, 0), (3, 6, 3), (6, 6, 6), (1, 3, 2), (9, 6, 6)],
)
def test_hangman_drawing_scales(wrong: int, maximum: int, stage: int):
    assert HANGMAN_STAGES[stage] in hangman_drawing(wrong, maximum)
