"""
Background follow-ups: race loop, decision timers, and event routing.
"""

import asyncio

from chugzone.api import tasks
from chugzone.api.controllers import HostController
from chugzone.api.sessions import SessionStore, WriteConflict
from chugzone.engine import HOST_ACTOR
from chugzone.engine.actions import Action, place_bet
from chugzone.engine.events import match_pending, match_resolved
from chugzone.engine.state import PendingMatch, RideBusPlayerCards, RideBusState


def _ride_bus_with_pending_match(store):
    session = store.create_session("ride-bus", "Frodo")
    state = RideBusState(
        current_phase="community",
        player_cards=[
            RideBusPlayerCards("p1", "Sam", cards=["5-hearts", "9-clubs"]),
            RideBusPlayerCards("p2", "Rosie", cards=["2-spades"]),
        ],
        community_cards=["5-clubs", "A-spades", "A-hearts", "A-diamonds",
                         "A-clubs", "Q-spades", "Q-hearts", "Q-diamonds"],
        flipped_community_cards=1,
        pending_matches=[PendingMatch("p1", "Sam", "5-hearts", "5-clubs")],
    )
    store.save_state(session.id, state, 1)
    return session


def test_timer_fires_after_timeout():
    fired = []

    async def scenario():
        timers = tasks.DecisionTimers()

        async def on_expire():
            fired.append(True)

        task = timers.start(("s1", "p1"), 0.01, on_expire)
        assert timers.is_pending(("s1", "p1"))
        await task
        assert not timers.is_pending(("s1", "p1"))

    asyncio.run(scenario())
    assert fired == [True]


def test_cancelled_timer_never_fires():
    fired = []

    async def scenario():
        timers = tasks.DecisionTimers()

        async def on_expire():
            fired.append(True)

        timers.start(("s1", "p1"), 0.05, on_expire)
        assert timers.cancel(("s1", "p1"))
        assert not timers.cancel(("s1", "p1"))
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert fired == []


def test_race_loop_runs_to_the_finish(session_factory, store):
    session = store.create_session("horse-race", "Frodo")
    host = HostController(store, session.id)
    host.submit(place_bet("p1", "Sam", "spades", 10, actor=HOST_ACTOR))
    host.submit(Action("start_race", HOST_ACTOR, {}))

    asyncio.run(tasks.run_race(session_factory, session.id, interval=0, seed=9))

    check = SessionStore(session_factory())
    state, _ = check.load_state(session.id)
    assert state.current_phase == "finished"
    assert state.race_progress[state.winner] == 8
    assert check.get_session(session.id).status == "finished"
    assert session.id not in tasks._running_races
    check.db.close()


def test_race_loop_redraws_after_a_write_conflict(session_factory, store, monkeypatch):
    session = store.create_session("horse-race", "Frodo")
    host = HostController(store, session.id)
    host.submit(place_bet("p1", "Sam", "spades", 10, actor=HOST_ACTOR))
    host.submit(Action("start_race", HOST_ACTOR, {}))

    save_state = SessionStore.save_state
    calls = []

    def lose_second_write(self, session_id, state, expected_version):
        calls.append(expected_version)
        if len(calls) == 2:
            raise WriteConflict("Game state changed, reload and try again")
        return save_state(self, session_id, state, expected_version)

    monkeypatch.setattr(SessionStore, "save_state", lose_second_write)
    asyncio.run(tasks.run_race(session_factory, session.id, interval=0, seed=9))
    monkeypatch.undo()

    check = SessionStore(session_factory())
    state, _ = check.load_state(session.id)
    assert state.current_phase == "finished"
    assert state.race_progress[state.winner] == 8
    assert calls[1] == calls[2]
    assert session.id not in tasks._running_races
    check.db.close()


def test_background_action_gives_up_after_its_retries(session_factory, store, monkeypatch):
    session = store.create_session("kings-cup-local", "Frodo")
    calls = []

    def always_conflict(self, session_id, state, expected_version):
        calls.append(expected_version)
        raise WriteConflict("Game state changed, reload and try again")

    monkeypatch.setattr(SessionStore, "save_state", always_conflict)

    async def scenario():
        return await tasks._submit_quietly(
            session_factory, session.id, Action("draw_card", HOST_ACTOR, {}), retries=2,
        )

    assert asyncio.run(scenario()) is None
    assert len(calls) == 3


def test_unanswered_match_defaults_to_take(session_factory, store):
    session = _ride_bus_with_pending_match(store)

    async def scenario():
        task = tasks.start_decision_timer(session_factory, session.id, "p1", timeout=0)
        await task

    asyncio.run(scenario())

    check = SessionStore(session_factory())
    state, _ = check.load_state(session.id)
    assert state.pending_matches == []
    assert state.get_player("p1").drinks_taken == 1
    assert state.get_player("p1").cards == ["5-hearts", "9-clubs"]
    check.db.close()


def test_late_default_take_leaves_a_newer_match_alone(session_factory, store):
    session = _ride_bus_with_pending_match(store)

    async def scenario():
        # Started for the match on an earlier community card
        task = tasks.start_decision_timer(session_factory, session.id, "p1", "9-spades", timeout=0)
        await task

    asyncio.run(scenario())

    check = SessionStore(session_factory())
    state, version = check.load_state(session.id)
    assert [m.community_card for m in state.pending_matches] == ["5-clubs"]
    assert state.get_player("p1").drinks_taken == 0
    assert version == 2
    check.db.close()


def test_match_events_start_and_cancel_timers(session_factory, store, monkeypatch):
    session = _ride_bus_with_pending_match(store)
    monkeypatch.setattr(tasks.config, "MATCH_DECISION_TIMEOUT", 30)

    async def scenario():
        key = (session.id, "p1")
        await tasks.handle_events(session_factory, session.id, [match_pending("p1", "5-hearts", "5-clubs")])
        assert tasks.decision_timers.is_pending(key)
        await tasks.handle_events(session_factory, session.id, [match_resolved("p1", "take", "5-hearts", None)])
        assert not tasks.decision_timers.is_pending(key)

    asyncio.run(scenario())


def test_rejected_background_action_is_quiet(session_factory, store):
    session = store.create_session("kings-cup-local", "Frodo")

    async def scenario():
        return await tasks._submit_quietly(session_factory, session.id, Action("start_race", HOST_ACTOR, {}))

    assert asyncio.run(scenario()) is None
