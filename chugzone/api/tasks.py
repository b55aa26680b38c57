"""
Host-paced background work: the horse race draw loop, give/take decision timers,
the delayed start of the bus ride, and auto-resolution of submitted throws and guesses.

Everything here runs on the server's event loop. Store work is synchronous
SQLAlchemy, so it is pushed to the threadpool and each step opens its own DB session.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from starlette.concurrency import run_in_threadpool

from chugzone import config
from chugzone.engine import GAME_HORSE_RACE, HOST_ACTOR
from chugzone.engine.actions import Action, draw_race_card, resolve_match
from chugzone.engine.events import (
    BUS_RIDER_CHOSEN,
    GAME_STARTED,
    GUESS_SUBMITTED,
    MATCH_PENDING,
    MATCH_RESOLVED,
    PHASE_CHANGED,
    SHOT_TAKEN,
    GameEvent,
)

from .controllers import ActionResult, HostController
from .sessions import SessionStore, StoreError, WriteConflict

logger = logging.getLogger(__name__)


class DecisionTimers:
    """
    One cancellable timer per (session, player) decision.
    Whichever comes first wins: the player's decision cancels the timer,
    and an expired timer's default is rejected by the reducer if the player already decided.
    """

    def __init__(self):
        self._tasks: dict[tuple[str, str], asyncio.Task] = {}

    def start(self, key: tuple[str, str], timeout: float, on_expire: Callable[[], Awaitable[None]]) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._run(key, timeout, on_expire))
        self._tasks[key] = task
        return task

    async def _run(self, key: tuple[str, str], timeout: float, on_expire: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(timeout)
        # Past this point the timer can no longer be cancelled by a decision
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        logger.info("Decision timer expired for %s", key)
        await on_expire()

    def cancel(self, key: tuple[str, str]) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Decision timer cancelled for %s", key)
        return True

    def is_pending(self, key: tuple[str, str]) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)


decision_timers = DecisionTimers()

# Sessions with a race loop currently running
_running_races: set[str] = set()


def _host_submit(session_factory, session_id: str, action: Action, rng: random.Random | None = None) -> ActionResult:
    db = session_factory()
    try:
        return HostController(SessionStore(db), session_id, rng=rng).submit(action)
    finally:
        db.close()


async def _submit_quietly(
    session_factory,
    session_id: str,
    action: Action,
    retries: int = 0,
    rng: random.Random | None = None,
) -> ActionResult | None:
    """
    Submit a host action from a background task.
    A rejection means the game moved on (someone decided first, the host restarted);
    that ends the task rather than failing it. A write conflict is retried up to
    `retries` times, each attempt against freshly loaded state.
    """
    attempts = 0
    while True:
        try:
            return await run_in_threadpool(_host_submit, session_factory, session_id, action, rng)
        except WriteConflict as e:
            if attempts < retries:
                attempts += 1
                logger.info("Session %s: background %s conflicted, retrying (%d)", session_id, action.type, attempts)
                continue
            logger.warning("Session %s: background %s failed: %s", session_id, action.type, e)
        except ValueError as e:
            logger.debug("Session %s: background %s rejected: %s", session_id, action.type, e)
        except StoreError as e:
            logger.warning("Session %s: background %s failed: %s", session_id, action.type, e)
        return None


async def run_race(session_factory, session_id: str, interval: float | None = None, seed: int | None = None) -> None:
    """Flip suit cards off the race deck until a horse crosses the line."""
    if session_id in _running_races:
        return
    _running_races.add(session_id)
    interval = config.RACE_DRAW_INTERVAL if interval is None else interval
    rng = random.Random(seed)
    result = None
    logger.info("Race started for session %s", session_id)
    try:
        while True:
            await asyncio.sleep(interval)
            # No suit in the action: the host flips it off the deck as the state stands at write time
            result = await _submit_quietly(
                session_factory, session_id, draw_race_card(),
                retries=config.BACKGROUND_WRITE_RETRIES, rng=rng,
            )
            if result is None or result.state.current_phase != "racing":
                break
    finally:
        _running_races.discard(session_id)
    if result is not None:
        logger.info("Race in session %s won by %s", session_id, result.state.winner)


async def resolve_shot_later(session_factory, session_id: str, delay: float | None = None) -> None:
    await asyncio.sleep(config.SHOT_RESOLVE_DELAY if delay is None else delay)
    result = await _submit_quietly(session_factory, session_id, Action("resolve_shot", HOST_ACTOR, {}))
    if result:
        await handle_events(session_factory, session_id, result.events)


async def resolve_guess_now(session_factory, session_id: str) -> None:
    result = await _submit_quietly(session_factory, session_id, Action("resolve_guess", HOST_ACTOR, {}))
    if result:
        await handle_events(session_factory, session_id, result.events)


def start_decision_timer(
    session_factory,
    session_id: str,
    player_id: str,
    community_card: str | None = None,
    timeout: float | None = None,
) -> asyncio.Task:
    async def take_by_default():
        # Pinned to this match, so a late default cannot resolve the next one
        action = resolve_match(player_id, "take", actor=HOST_ACTOR, community_card=community_card)
        result = await _submit_quietly(session_factory, session_id, action)
        if result:
            await handle_events(session_factory, session_id, result.events)

    timeout = config.MATCH_DECISION_TIMEOUT if timeout is None else timeout
    return decision_timers.start((session_id, player_id), timeout, take_by_default)


async def deal_community_now(session_factory, session_id: str) -> None:
    await _submit_quietly(session_factory, session_id, Action("deal_community_cards", HOST_ACTOR, {}))


async def start_bus_ride_later(session_factory, session_id: str, delay: float | None = None) -> None:
    await asyncio.sleep(config.BUS_RIDER_ANNOUNCE_DELAY if delay is None else delay)
    await _submit_quietly(session_factory, session_id, Action("start_bus_ride", HOST_ACTOR, {}))


async def handle_events(session_factory, session_id: str, events: list[GameEvent]) -> None:
    """Run whatever host follow-up a batch of events calls for."""
    for evt in events:
        if evt.type == GAME_STARTED and evt.payload.get("game_type") == GAME_HORSE_RACE:
            await run_race(session_factory, session_id)
        elif evt.type == SHOT_TAKEN:
            await resolve_shot_later(session_factory, session_id)
        elif evt.type == GUESS_SUBMITTED:
            await resolve_guess_now(session_factory, session_id)
        elif evt.type == MATCH_PENDING:
            start_decision_timer(
                session_factory, session_id, evt.payload["player_id"], evt.payload.get("community_card"),
            )
        elif evt.type == MATCH_RESOLVED:
            decision_timers.cancel((session_id, evt.payload["player_id"]))
        elif evt.type == PHASE_CHANGED and evt.payload.get("new_phase") == "community":
            await deal_community_now(session_factory, session_id)
        elif evt.type == BUS_RIDER_CHOSEN:
            await start_bus_ride_later(session_factory, session_id)
