from chugzone.engine import HOST_ACTOR
from chugzone.engine.actions import Action, place_bet, start_race, start_ride_bus, submit_guess, take_shot
from chugzone.engine.queries import (
    get_available_action_types,
    get_bet_totals,
    get_game_summary,
    get_race_leader,
    validate_action,
)
from chugzone.engine.reducer import apply_action
from chugzone.engine.utils import initialize_game_state


def test_players_cannot_act_for_each_other():
    state = initialize_game_state("horse-race")
    result = validate_action(state, place_bet("p2", "Rosie", "hearts", 5, actor="p1"))
    assert not result.valid
    assert "themselves" in result.error


def test_host_only_actions_are_refused_to_players():
    state = initialize_game_state("horse-race")
    state, _ = apply_action(state, place_bet("p1", "Sam", "hearts", 5))
    result = validate_action(state, Action("start_race", "p1", {"player_id": "p1"}))
    assert not result.valid
    assert validate_action(state, start_race()).valid


def test_validation_runs_the_game_rules():
    state = initialize_game_state("horse-race")
    result = validate_action(state, place_bet("p1", "Sam", "hearts", 7))
    assert not result.valid
    assert "amount" in result.error


def test_available_actions_follow_the_turn():
    state = initialize_game_state("ride-bus")
    state, _ = apply_action(state, start_ride_bus([{"id": "p1", "name": "Sam"}, {"id": "p2", "name": "Rosie"}]))
    assert get_available_action_types(state, "p1") == ["submit_guess"]
    assert get_available_action_types(state, "p2") == []
    assert "resolve_guess" in get_available_action_types(state, HOST_ACTOR)

    state, _ = apply_action(state, submit_guess("p1", "red"))
    assert get_available_action_types(state, "p1") == []


def test_take_shot_hidden_while_a_shot_is_pending():
    state = initialize_game_state("beer-pong")
    state, _ = apply_action(state, Action("start_game", HOST_ACTOR, {}))
    assert "take_shot" in get_available_action_types(state, "p1")
    state, _ = apply_action(state, take_shot("p1", "Sam", 80, 0))
    assert "take_shot" not in get_available_action_types(state, "p1")


def test_race_summary():
    state = initialize_game_state("horse-race")
    state, _ = apply_action(state, place_bet("p1", "Sam", "hearts", 5))
    state, _ = apply_action(state, place_bet("p2", "Rosie", "hearts", 10))
    state, _ = apply_action(state, start_race())
    for suit in ("clubs", "hearts", "clubs", "hearts"):
        state, _ = apply_action(state, Action("draw_race_card", HOST_ACTOR, {"suit": suit}))

    assert get_bet_totals(state)["hearts"] == 15
    # Tied on 2; clubs got there first
    assert get_race_leader(state) == "clubs"
    summary = get_game_summary(state)
    assert summary["phase"] == "racing"
    assert summary["bets"] == 2
