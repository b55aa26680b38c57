"""
Beer pong: cup layout, throws, host resolution and the end of the game.
"""

import random

import pytest

from chugzone.engine.actions import join_team, resolve_shot, set_bracket, start_game, take_shot
from chugzone.engine.beer_pong import build_cups, hit_chance
from chugzone.engine.events import GAME_FINISHED, SHOT_RESOLVED, SHOT_TAKEN
from chugzone.engine.reducer import apply_action
from chugzone.engine.state import state_from_json, state_to_json
from chugzone.engine.utils import generate_shot_outcome, initialize_game_state


def _playing_state(mode="head_to_head"):
    state = initialize_game_state("beer-pong", mode=mode)
    state, _ = apply_action(state, start_game())
    return state


def test_cup_triangle_layout():
    cups = build_cups("right")
    assert len(cups) == 10
    assert [c.id for c in cups] == [f"right-{i}" for i in range(10)]
    rows = sorted({c.y for c in cups})
    assert rows == [30, 45, 60, 75]
    assert [sum(1 for c in cups if c.y == y) for y in rows] == [4, 3, 2, 1]
    assert all(not c.hit for c in cups)


def test_hit_chance_peaks_at_full_power_straight_throw():
    assert hit_chance(100, 0) == pytest.approx(0.7)
    assert hit_chance(50, 0) == pytest.approx(0.35)
    assert hit_chance(100, 45) == pytest.approx(0.35)
    assert hit_chance(20, -45) < hit_chance(20, 0)


def test_shot_stays_pending_until_resolved():
    state = _playing_state()
    state, events = apply_action(state, take_shot("p1", "Sam", 80, 10))
    assert events[0].type == SHOT_TAKEN
    assert state.pending_shot.player_id == "p1"
    assert state.shots == []

    with pytest.raises(ValueError, match="already waiting"):
        apply_action(state, take_shot("p2", "Rosie", 80, 10))

    state, events = apply_action(state, resolve_shot(True, "right-3", timestamp=12.5))
    assert events[0].type == SHOT_RESOLVED
    assert state.pending_shot is None
    assert state.shots[0].hit and state.shots[0].timestamp == 12.5
    assert state.team1.score == 1
    assert next(c for c in state.team2.cups if c.id == "right-3").hit
    assert state.current_turn == "team2"


@pytest.mark.parametrize("power,angle", [(10, 0), (101, 0), (50, -46), (50, 46)])
def test_throw_bounds(power, angle):
    state = _playing_state()
    with pytest.raises(ValueError):
        apply_action(state, take_shot("p1", "Sam", power, angle))


def test_only_shooting_team_members_may_throw():
    state = initialize_game_state("beer-pong")
    state, _ = apply_action(state, join_team("p1", "team1"))
    state, _ = apply_action(state, join_team("p2", "team2"))
    state, _ = apply_action(state, start_game())
    with pytest.raises(ValueError, match="turn"):
        apply_action(state, take_shot("p2", "Rosie", 80, 0))


def test_switching_teams_leaves_the_old_team():
    state = initialize_game_state("beer-pong")
    state, _ = apply_action(state, join_team("p1", "team1"))
    state, _ = apply_action(state, join_team("p1", "team2"))
    assert state.team1.players == []
    assert state.team2.players == ["p1"]


def test_resolve_rejects_own_or_already_hit_cups():
    state = _playing_state()
    state, _ = apply_action(state, take_shot("p1", "Sam", 80, 0))
    with pytest.raises(ValueError):
        apply_action(state, resolve_shot(True, "left-0"))

    state, _ = apply_action(state, resolve_shot(True, "right-0"))
    state, _ = apply_action(state, resolve_shot(False, shot={"player_id": "p2", "power": 60, "angle": 0}))
    state, _ = apply_action(state, take_shot("p1", "Sam", 80, 0))
    with pytest.raises(ValueError, match="already been hit"):
        apply_action(state, resolve_shot(True, "right-0"))


def test_resolve_without_a_shot_is_rejected():
    state = _playing_state()
    with pytest.raises(ValueError, match="No shot"):
        apply_action(state, resolve_shot(False))


def test_host_fired_shot_is_recorded_for_current_team():
    state = _playing_state()
    state, _ = apply_action(state, resolve_shot(False, shot={"player_id": "p1", "power": 90, "angle": 5}))
    assert state.shots[0].team == "team1"
    assert state.shots[0].power == 90
    assert state.current_turn == "team2"


def test_game_ends_when_a_side_is_cleared():
    state = _playing_state()
    shots = 0
    while state.current_phase == "playing":
        if state.current_turn == "team1":
            cup = state.team2.remaining_cups()[0]
            state, events = apply_action(state, resolve_shot(True, cup.id, shot={"power": 100, "angle": 0}))
        else:
            state, events = apply_action(state, resolve_shot(False, shot={"power": 40, "angle": 30}))
        shots += 1
        assert shots <= 20

    assert shots == 19
    assert state.winner == "team1"
    assert state.team1.score == 10
    assert state.team2.remaining_cups() == []
    assert events[-1].type == GAME_FINISHED
    with pytest.raises(ValueError):
        apply_action(state, take_shot("p1", "Sam", 80, 0))


def test_generated_outcomes_target_standing_opponent_cups():
    state = _playing_state()
    rng = random.Random(11)
    hits = 0
    for _ in range(50):
        hit, cup_id = generate_shot_outcome(state, 100, 0, rng)
        if hit:
            hits += 1
            assert cup_id.startswith("right-")
        else:
            assert cup_id is None
    assert 0 < hits < 50


def test_brackets_only_in_tournament_mode():
    state = _playing_state()
    with pytest.raises(ValueError, match="tournament"):
        apply_action(state, set_bracket({"matches": []}))

    state = _playing_state(mode="tournament")
    state, _ = apply_action(state, set_bracket({"teams": ["A", "B"], "matches": []}, current_match_index=1))
    assert state.current_match_index == 1


def test_state_survives_storage():
    state = _playing_state()
    state, _ = apply_action(state, take_shot("p1", "Sam", 70, -20))
    loaded = state_from_json("beer-pong", state_to_json(state))
    assert loaded.pending_shot.power == 70
    assert loaded.team2.cups[5].id == "right-5"
    assert loaded.current_phase == "playing"
