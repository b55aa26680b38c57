"""
King's Cup on a single device: drawing, roster edits, mates and shared rule sets.
"""

import pytest

from chugzone.engine.actions import (
    add_mate,
    add_player,
    draw_card,
    remove_mate,
    remove_player,
    rename_player,
    reorder_players,
    restart_game,
    set_stack_dates,
    update_rules,
)
from chugzone.engine.cards import full_deck
from chugzone.engine.events import CARD_DRAWN, GAME_FINISHED, MATES_CHANGED
from chugzone.engine.kings_cup import NO_RULE, decode_rules, encode_rules, remaining_cards
from chugzone.engine.reducer import apply_action
from chugzone.engine.utils import initialize_game_state


def _three_players():
    state = initialize_game_state("kings-cup-local")
    state, _ = apply_action(state, add_player("Merry", "3"))
    return state


def test_new_game_has_two_players_and_classic_rules():
    state = initialize_game_state("kings-cup-local")
    assert [p.name for p in state.players] == ["Player 1", "Player 2"]
    assert len(state.rules) == 13
    assert state.current_phase == "playing"


def test_draw_sets_rule_and_passes_turn():
    state = initialize_game_state("kings-cup-local")
    state, events = apply_action(state, draw_card("A-hearts"))
    assert events[0].type == CARD_DRAWN
    assert events[0].payload["player_id"] == "1"
    assert events[0].payload["cards_left"] == 51
    assert state.current_rule.startswith("Waterfall")
    assert state.current_player_index == 1

    with pytest.raises(ValueError, match="already been drawn"):
        apply_action(state, draw_card("A-hearts"))
    with pytest.raises(ValueError, match="Invalid card"):
        apply_action(state, draw_card("1-hearts"))


def test_missing_rule_falls_back():
    state = initialize_game_state("kings-cup-local")
    state, _ = apply_action(state, update_rules([{"card": "A", "rule": "Waterfall"}]))
    state, _ = apply_action(state, draw_card("7-clubs"))
    assert state.current_rule == NO_RULE


def test_deck_runs_out_after_fifty_two_cards():
    state = initialize_game_state("kings-cup-local")
    for card in full_deck():
        state, events = apply_action(state, draw_card(card))
    assert state.current_phase == "finished"
    assert events[-1].type == GAME_FINISHED
    assert remaining_cards(state) == []

    with pytest.raises(ValueError):
        apply_action(state, draw_card("A-hearts"))

    state, _ = apply_action(state, restart_game())
    assert state.current_phase == "playing"
    assert state.drawn_cards == []
    assert len(remaining_cards(state)) == 52


def test_roster_never_drops_below_two():
    state = initialize_game_state("kings-cup-local")
    with pytest.raises(ValueError, match="at least 2"):
        apply_action(state, remove_player("1"))
    with pytest.raises(ValueError, match="duplicate"):
        apply_action(state, add_player("Again", "1"))


def test_removing_earlier_player_keeps_whose_turn_it_is():
    state = _three_players()
    state, _ = apply_action(state, draw_card("2-hearts"))
    state, _ = apply_action(state, draw_card("3-hearts"))
    assert state.players[state.current_player_index].id == "3"

    state, _ = apply_action(state, remove_player("1"))
    assert state.players[state.current_player_index].id == "3"


def test_reorder_keeps_current_player_up():
    state = _three_players()
    state, _ = apply_action(state, draw_card("2-hearts"))
    state, _ = apply_action(state, reorder_players(["3", "2", "1"]))
    assert [p.id for p in state.players] == ["3", "2", "1"]
    assert state.players[state.current_player_index].id == "2"

    with pytest.raises(ValueError, match="exactly once"):
        apply_action(state, reorder_players(["3", "3", "1"]))


def test_rename_trims_and_rejects_blank():
    state = initialize_game_state("kings-cup-local")
    state, _ = apply_action(state, rename_player("1", "  Pippin "))
    assert state.players[0].name == "Pippin"
    with pytest.raises(ValueError):
        apply_action(state, rename_player("1", "   "))


def test_mates_follow_their_players():
    state = _three_players()
    state, _ = apply_action(state, add_mate("m1", "1", "3"))
    with pytest.raises(ValueError, match="own mate"):
        apply_action(state, add_mate("m2", "2", "2"))

    state, events = apply_action(state, remove_player("3"))
    assert state.mates == []
    assert events[-1].type == MATES_CHANGED

    state, _ = apply_action(state, add_mate("m3", "1", "2"))
    state, _ = apply_action(state, remove_mate("m3"))
    assert state.mates == []
    with pytest.raises(ValueError):
        apply_action(state, remove_mate("m3"))


def test_edits_still_allowed_after_the_deck_is_done():
    state = initialize_game_state("kings-cup-local")
    for card in full_deck():
        state, _ = apply_action(state, draw_card(card))
    state, _ = apply_action(state, set_stack_dates(True))
    assert state.stack_dates


def test_rule_blobs():
    rules = [{"card": "K", "rule": "Pour one in"}, {"card": "2", "rule": "You"}]
    assert decode_rules(encode_rules(rules)) == rules
    with pytest.raises(ValueError):
        decode_rules("not base64!!")
    with pytest.raises(ValueError):
        decode_rules(encode_rules([{"card": "Z", "rule": "?"}]))
