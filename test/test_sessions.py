"""
Session store: join codes, the roster, and compare-and-swap state writes.
"""

import pytest

from chugzone.api.sessions import JoinCodeUnavailable, SessionNotFound, SessionStore, WriteConflict
from chugzone.engine.actions import place_bet
from chugzone.engine.join_codes import JOIN_CODE_ALPHABET
from chugzone.engine.reducer import apply_action
from chugzone.engine.state import HorseRaceState


def test_create_session_starts_waiting_at_version_one(store):
    session = store.create_session("horse-race", "  Frodo ")
    assert session.status == "waiting"
    assert session.host_name == "Frodo"
    assert len(session.join_code) == 5
    assert all(c in JOIN_CODE_ALPHABET for c in session.join_code)

    state, version = store.load_state(session.id)
    assert isinstance(state, HorseRaceState)
    assert version == 1


def test_create_session_validates_input(store):
    with pytest.raises(ValueError):
        store.create_session("darts", "Frodo")
    with pytest.raises(ValueError):
        store.create_session("horse-race", "   ")


def test_join_by_code_is_case_and_space_insensitive(store):
    session = store.create_session("ride-bus", "Frodo")
    sam = store.join_session(f"  {session.join_code.lower()} ", "Sam")
    rosie = store.join_session(session.join_code, "Rosie")
    assert sam.session_id == session.id
    assert [p.player_name for p in store.list_players(session.id)] == ["Sam", "Rosie"]
    assert rosie.join_order > sam.join_order


def test_join_rejects_bad_codes_and_names(store):
    session = store.create_session("ride-bus", "Frodo")
    with pytest.raises(ValueError, match="Invalid join code"):
        store.join_session("AB", "Sam")
    with pytest.raises(ValueError):
        store.join_session(session.join_code, "  ")
    with pytest.raises(SessionNotFound):
        store.join_session("ZZZZZ" if session.join_code != "ZZZZZ" else "YYYYY", "Sam")


def test_finished_sessions_cannot_be_joined(store):
    session = store.create_session("beer-pong", "Frodo")
    store.set_status(session.id, "finished")
    with pytest.raises(SessionNotFound):
        store.join_session(session.join_code, "Sam")

    # Reopening is allowed
    store.set_status(session.id, "waiting")
    assert store.join_session(session.join_code, "Sam").session_id == session.id


def test_invalid_status_is_rejected(store):
    session = store.create_session("beer-pong", "Frodo")
    with pytest.raises(ValueError):
        store.set_status(session.id, "paused")


def test_manual_players_are_marked(store):
    session = store.create_session("kings-cup-local", "Frodo")
    player = store.add_player(session.id, "Pippin")
    assert '"manual": true' in player.player_data
    store.remove_player(session.id, player.id)
    assert store.list_players(session.id) == []
    with pytest.raises(SessionNotFound):
        store.get_player(session.id, player.id)


def test_save_state_bumps_version(store):
    session = store.create_session("horse-race", "Frodo")
    state, version = store.load_state(session.id)
    state, _ = apply_action(state, place_bet("p1", "Sam", "hearts", 5))

    new_version = store.save_state(session.id, state, version)
    assert new_version == 2
    loaded, loaded_version = store.load_state(session.id)
    assert loaded_version == 2
    assert loaded.bets[0].player_id == "p1"


def test_stale_write_is_rejected(session_factory):
    first = SessionStore(session_factory())
    second = SessionStore(session_factory())
    session = first.create_session("horse-race", "Frodo")

    state_a, version_a = first.load_state(session.id)
    state_b, version_b = second.load_state(session.id)
    state_a, _ = apply_action(state_a, place_bet("p1", "Sam", "hearts", 5))
    state_b, _ = apply_action(state_b, place_bet("p2", "Rosie", "clubs", 10))

    assert second.save_state(session.id, state_b, version_b) == 2
    with pytest.raises(WriteConflict):
        first.save_state(session.id, state_a, version_a)

    final, version = first.load_state(session.id)
    assert version == 2
    assert [b.player_id for b in final.bets] == ["p2"]
    first.db.close()
    second.db.close()


def test_save_state_checks_game_type(store):
    session = store.create_session("kings-cup-local", "Frodo")
    with pytest.raises(ValueError):
        store.save_state(session.id, HorseRaceState(), 1)


def test_unknown_session(store):
    with pytest.raises(SessionNotFound):
        store.load_state("missing")


def test_gives_up_when_no_code_is_free(store, monkeypatch):
    session = store.create_session("horse-race", "Frodo")
    monkeypatch.setattr("chugzone.api.sessions.generate_join_code", lambda: session.join_code)
    with pytest.raises(JoinCodeUnavailable):
        store.create_session("horse-race", "Sam")
