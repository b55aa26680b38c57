"""
Host and player controllers on top of a real (in-memory) store.
"""

import random

import pytest

from chugzone.api.controllers import ActionForbidden, HostController, PlayerController, status_after
from chugzone.api.sessions import SessionNotFound, WriteConflict
from chugzone.engine import HOST_ACTOR
from chugzone.engine.actions import Action, place_bet, start_race, take_shot
from chugzone.engine.events import GameEvent, game_finished, game_reset, game_started


def _horse_session(store):
    session = store.create_session("horse-race", "Frodo")
    sam = store.join_session(session.join_code, "Sam")
    return session, sam


def test_player_bets_and_host_starts(store):
    session, sam = _horse_session(store)
    player = PlayerController(store, session.id, sam.id)
    result = player.submit(place_bet(sam.id, "Sam", "hearts", 10))
    assert result.version == 2
    assert result.state.bets[0].player_id == sam.id

    host = HostController(store, session.id, rng=random.Random(1))
    result = host.submit(start_race())
    assert result.state.current_phase == "racing"
    assert store.get_session(session.id).status == "active"


def test_player_cannot_issue_host_actions(store):
    session, sam = _horse_session(store)
    player = PlayerController(store, session.id, sam.id)
    with pytest.raises(ActionForbidden):
        player.submit(Action("start_race", sam.id, {"player_id": sam.id}))


def test_player_cannot_act_for_someone_else(store):
    session, sam = _horse_session(store)
    rosie = store.join_session(session.join_code, "Rosie")
    player = PlayerController(store, session.id, sam.id)
    with pytest.raises(ActionForbidden):
        player.submit(place_bet(rosie.id, "Rosie", "hearts", 5, actor=sam.id))
    with pytest.raises(ActionForbidden):
        player.submit(place_bet(rosie.id, "Rosie", "hearts", 5))


def test_player_action_in_wrong_phase(store):
    session, sam = _horse_session(store)
    host = HostController(store, session.id)
    host.submit(place_bet(sam.id, "Sam", "hearts", 10, actor=HOST_ACTOR))
    host.submit(start_race())
    with pytest.raises(ValueError):
        PlayerController(store, session.id, sam.id).submit(place_bet(sam.id, "Sam", "clubs", 5))


def test_host_draws_a_suit_when_none_given(store):
    session, sam = _horse_session(store)
    host = HostController(store, session.id, rng=random.Random(4))
    host.submit(place_bet(sam.id, "Sam", "hearts", 10, actor=HOST_ACTOR))
    host.submit(start_race())

    result = None
    for _ in range(40):
        result = host.submit(Action("draw_race_card", HOST_ACTOR, {}))
        if result.state.current_phase == "finished":
            break
    assert result.state.current_phase == "finished"
    assert store.get_session(session.id).status == "finished"

    result = host.submit(Action("reset_race", HOST_ACTOR, {}))
    assert store.get_session(session.id).status == "waiting"


def test_host_resolves_a_players_shot(store):
    session = store.create_session("beer-pong", "Frodo")
    sam = store.join_session(session.join_code, "Sam")
    host = HostController(store, session.id, rng=random.Random(2))
    host.submit(Action("start_game", HOST_ACTOR, {}))
    PlayerController(store, session.id, sam.id).submit(take_shot(sam.id, "Sam", 100, 0))

    result = host.submit(Action("resolve_shot", HOST_ACTOR, {}))
    shot = result.state.shots[0]
    assert result.state.pending_shot is None
    assert shot.player_id == sam.id
    assert shot.timestamp > 0
    assert result.state.team1.score == (1 if shot.hit else 0)


def test_host_rejects_bad_fired_shot(store):
    session = store.create_session("beer-pong", "Frodo")
    host = HostController(store, session.id)
    host.submit(Action("start_game", HOST_ACTOR, {}))
    with pytest.raises(ValueError):
        host.submit(Action("resolve_shot", HOST_ACTOR, {"shot": {"power": "hard", "angle": 0}}))
    with pytest.raises(ValueError):
        host.submit(Action("resolve_shot", HOST_ACTOR, {}))


def test_ride_bus_start_uses_the_roster(store):
    session = store.create_session("ride-bus", "Frodo")
    sam = store.join_session(session.join_code, "Sam")
    rosie = store.join_session(session.join_code, "Rosie")
    host = HostController(store, session.id, rng=random.Random(3))
    result = host.submit(Action("start_game", HOST_ACTOR, {}))
    assert [pc.player_id for pc in result.state.player_cards] == [sam.id, rosie.id]

    PlayerController(store, session.id, sam.id).submit(
        Action("submit_guess", sam.id, {"player_id": sam.id, "choice": "red"})
    )
    result = host.submit(Action("resolve_guess", HOST_ACTOR, {}))
    assert len(result.state.get_player(sam.id).cards) == 1
    assert result.state.current_player().player_id == rosie.id


def test_kings_cup_host_draws_unique_cards(store):
    session = store.create_session("kings-cup-local", "Frodo")
    host = HostController(store, session.id, rng=random.Random(5))
    drawn = set()
    for _ in range(10):
        result = host.submit(Action("draw_card", HOST_ACTOR, {}))
        drawn.add(result.state.current_card)
    assert len(drawn) == 10
    assert store.get_session(session.id).status == "active"


def test_removing_a_player_drops_their_bet(store):
    session, sam = _horse_session(store)
    PlayerController(store, session.id, sam.id).submit(place_bet(sam.id, "Sam", "hearts", 10))
    HostController(store, session.id).remove_player(sam.id)
    state, version = store.load_state(session.id)
    assert state.bets == []
    assert version == 3
    assert store.list_players(session.id) == []


def test_conflicting_removal_keeps_the_player_and_the_bet(store, monkeypatch):
    session, sam = _horse_session(store)
    PlayerController(store, session.id, sam.id).submit(place_bet(sam.id, "Sam", "hearts", 10))
    # Read at version 1, but the bet already moved the state on to version 2
    stale = (store.load_state(session.id)[0], 1)
    host = HostController(store, session.id)
    monkeypatch.setattr(host.store, "load_state", lambda session_id: stale)
    with pytest.raises(WriteConflict):
        host.remove_player(sam.id)
    monkeypatch.undo()

    assert [p.id for p in store.list_players(session.id)] == [sam.id]
    state, version = store.load_state(session.id)
    assert [b.player_id for b in state.bets] == [sam.id]
    assert version == 2


def test_removed_player_can_no_longer_act(store):
    session, sam = _horse_session(store)
    HostController(store, session.id).remove_player(sam.id)
    with pytest.raises(SessionNotFound):
        PlayerController(store, session.id, sam.id).submit(place_bet(sam.id, "Sam", "hearts", 5))
    state, _ = store.load_state(session.id)
    assert state.bets == []


def test_status_after_events():
    assert status_after("horse-race", [game_started("horse-race")]) == "active"
    assert status_after("horse-race", [game_finished("horse-race", "spades")]) == "finished"
    assert status_after("horse-race", [game_reset("horse-race")]) == "waiting"
    assert status_after("ride-bus", [game_reset("ride-bus")]) == "active"
    assert status_after("beer-pong", [GameEvent("team_joined", {})]) is None
