"""
Horse race: betting, the race itself, payouts and the odds carried into the next race.
"""

import random

import pytest

from chugzone.engine import SUITS
from chugzone.engine.actions import (
    draw_race_card,
    lock_bet,
    place_bet,
    remove_bet,
    reset_race,
    start_race,
)
from chugzone.engine.cards import suit_deck
from chugzone.engine.events import GAME_FINISHED, GAME_RESET, RACE_CARD_DRAWN
from chugzone.engine.horse_race import calculate_payouts, next_odds
from chugzone.engine.reducer import apply_action
from chugzone.engine.state import HorseRaceBet
from chugzone.engine.utils import draw_race_suit, initialize_game_state, shuffled_suit_deck


def _racing_state():
    state = initialize_game_state("horse-race")
    state, _ = apply_action(state, place_bet("p1", "Sam", "spades", 10))
    state, _ = apply_action(state, place_bet("p2", "Rosie", "clubs", 5))
    state, _ = apply_action(state, start_race())
    return state


def test_new_bet_replaces_and_unlocks_old_one():
    state = initialize_game_state("horse-race")
    state, _ = apply_action(state, place_bet("p1", "Sam", "hearts", 5))
    state, _ = apply_action(state, lock_bet("p1"))
    assert state.bets[0].locked

    state, _ = apply_action(state, place_bet("p1", "Sam", "diamonds", 15))
    assert len(state.bets) == 1
    assert state.bets[0].suit == "diamonds"
    assert state.bets[0].amount == 15
    assert not state.bets[0].locked


@pytest.mark.parametrize("suit,amount", [("spades", 3), ("spades", 0), ("stars", 5), ("hearts", True)])
def test_invalid_bets_are_rejected(suit, amount):
    state = initialize_game_state("horse-race")
    with pytest.raises(ValueError):
        apply_action(state, place_bet("p1", "Sam", suit, amount))


def test_race_needs_a_bet():
    state = initialize_game_state("horse-race")
    with pytest.raises(ValueError):
        apply_action(state, start_race())


def test_cards_cannot_be_drawn_while_betting():
    state = initialize_game_state("horse-race")
    with pytest.raises(ValueError, match="not allowed in phase 'betting'"):
        apply_action(state, draw_race_card("spades"))


def test_progress_only_moves_forward_and_stops_at_finish():
    state = _racing_state()
    deck = shuffled_suit_deck(seed=3)
    previous = dict(state.race_progress)
    while state.current_phase == "racing":
        suit = deck.pop()
        state, events = apply_action(state, draw_race_card(suit))
        assert events[0].type == RACE_CARD_DRAWN
        for s in SUITS:
            assert state.race_progress[s] >= previous[s]
        assert sum(state.race_progress.values()) == sum(previous.values()) + 1
        previous = dict(state.race_progress)

    assert state.current_phase == "finished"
    assert state.race_progress[state.winner] == state.finish_line
    assert [s for s in SUITS if state.race_progress[s] >= state.finish_line] == [state.winner]
    with pytest.raises(ValueError):
        apply_action(state, draw_race_card("hearts"))


def test_host_draws_come_off_the_remaining_deck():
    state = _racing_state()
    # Three suits fully flipped, so only clubs are left in the deck
    state.drawn_cards = ["spades"] * 13 + ["hearts"] * 13 + ["diamonds"] * 13
    rng = random.Random(0)
    assert {draw_race_suit(state, rng) for _ in range(20)} == {"clubs"}

    state.drawn_cards = suit_deck()
    assert draw_race_suit(state, rng) in SUITS


def test_spades_win_pays_out_and_shifts_odds():
    state = _racing_state()
    for _ in range(7):
        state, _ = apply_action(state, draw_race_card("spades"))
    assert state.current_phase == "racing"

    state, events = apply_action(state, draw_race_card("spades"))
    assert state.winner == "spades"
    assert [(p.player_id, p.payout) for p in state.payouts] == [("p1", 40.0)]
    finished = next(e for e in events if e.type == GAME_FINISHED)
    assert finished.payload["winner"] == "spades"

    state, events = apply_action(state, reset_race())
    assert state.current_phase == "betting"
    assert state.odds == {"spades": 3.5, "hearts": 3.2, "diamonds": 2.2, "clubs": 1.2}
    assert state.bets == []
    assert state.winner is None
    assert all(v == 0 for v in state.race_progress.values())
    assert events[-1].type == GAME_RESET


def test_odds_stay_within_bounds():
    odds = {"spades": 1.2, "hearts": 4.9, "diamonds": 5.0, "clubs": 1.0}
    result = next_odds(odds, "spades")
    assert result == {"spades": 1.0, "hearts": 5.0, "diamonds": 5.0, "clubs": 1.2}
    assert next_odds(odds, None) == odds


def test_only_winning_bets_get_payouts():
    bets = [
        HorseRaceBet("p1", "Sam", "hearts", 5),
        HorseRaceBet("p2", "Rosie", "clubs", 20),
        HorseRaceBet("p3", "Merry", "hearts", 15),
    ]
    payouts = calculate_payouts(bets, "hearts", {"hearts": 3.2})
    assert [(p.player_id, p.payout) for p in payouts] == [("p1", 16.0), ("p3", 48.0)]


def test_remove_bet_is_allowed_mid_race():
    state = _racing_state()
    state, events = apply_action(state, remove_bet("p2"))
    assert [b.player_id for b in state.bets] == ["p1"]
    assert len(events) == 1

    # Removing a bet that does not exist is a no-op
    state, events = apply_action(state, remove_bet("nobody"))
    assert events == []


def test_reducer_does_not_mutate_input():
    state = _racing_state()
    before = state.to_dict()
    apply_action(state, draw_race_card("hearts"))
    assert state.to_dict() == before
