"""
Host and player controllers.

Both follow the same cycle: read state (with its version), reduce, compare-and-swap
write. The host additionally decides every random outcome before the action reaches
the reducer, and keeps the session status in step with the game's lifecycle.
"""

import logging
import random
import time
from dataclasses import dataclass, field

from chugzone.engine import GAME_HORSE_RACE, HOST_ACTOR
from chugzone.engine.actions import Action, remove_bet
from chugzone.engine.events import CARD_DRAWN, GAME_FINISHED, GAME_RESET, GAME_STARTED, GameEvent
from chugzone.engine.queries import is_player_action, validate_actor
from chugzone.engine.reducer import allowed_actions, apply_action
from chugzone.engine.state import (
    BeerPongState,
    GameState,
    HorseRaceState,
    KingsCupState,
    RideBusState,
)
from chugzone.engine.utils import (
    draw_card_not_in_play,
    draw_distinct_cards,
    draw_race_suit,
    generate_shot_outcome,
)

from .sessions import SessionStore

logger = logging.getLogger(__name__)


class ActionForbidden(Exception):
    """The caller is not allowed to submit this action."""


@dataclass
class ActionResult:
    state: GameState
    events: list[GameEvent] = field(default_factory=list)
    version: int = 0

    def to_dict(self) -> dict:
        return {
            "state": self.state.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "version": self.version,
        }


def status_after(game_type: str, events: list[GameEvent]) -> str | None:
    """Session status implied by a batch of events, or None if they imply no change."""
    status = None
    for evt in events:
        if evt.type in (GAME_STARTED, CARD_DRAWN):
            status = "active"
        elif evt.type == GAME_FINISHED:
            status = "finished"
        elif evt.type == GAME_RESET:
            # Between races the session reopens so new players can join
            status = "waiting" if game_type == GAME_HORSE_RACE else "active"
    return status


class _Controller:
    def __init__(self, store: SessionStore, session_id: str):
        self.store = store
        self.session_id = session_id

    def _commit(self, state: GameState, action: Action, version: int) -> ActionResult:
        new_state, events = apply_action(state, action)
        new_version = self.store.save_state(self.session_id, new_state, version)
        logger.debug("Session %s: %s by %s -> v%s", self.session_id, action.type, action.actor, new_version)
        return ActionResult(state=new_state, events=events, version=new_version)


class PlayerController(_Controller):
    """Submits a joined player's own actions."""

    def __init__(self, store: SessionStore, session_id: str, player_id: str):
        super().__init__(store, session_id)
        self.player_id = player_id

    def submit(self, action: Action) -> ActionResult:
        """
        Raises:
            SessionNotFound: the player is no longer on the roster
            ActionForbidden: host-only action, or acting for someone else
            ValueError: illegal in the current phase or against the game rules
            WriteConflict: the state changed since it was read
        """
        if action.actor != self.player_id:
            raise ActionForbidden("Players can only act for themselves")
        # A removed player keeps a valid token but is no longer in the game
        self.store.get_player(self.session_id, self.player_id)
        state, version = self.store.load_state(self.session_id)
        if not is_player_action(state, action.type):
            raise ActionForbidden(f"Only the host can {action.type}")
        check = validate_actor(state, action)
        if not check.valid:
            raise ActionForbidden(check.error)
        if action.type not in allowed_actions(state):
            raise ValueError(f"Cannot {action.type} during {state.current_phase} phase")
        return self._commit(state, action, version)


class HostController(_Controller):
    """
    Issues host actions. Actions that need a random outcome may leave it out of the
    payload; the controller fills it in from the current state before reducing.
    """

    def __init__(self, store: SessionStore, session_id: str, rng: random.Random | None = None):
        super().__init__(store, session_id)
        self.rng = rng or random.Random()

    def submit(self, action: Action) -> ActionResult:
        if action.actor != HOST_ACTOR:
            action = Action(type=action.type, actor=HOST_ACTOR, payload=action.payload)
        state, version = self.store.load_state(self.session_id)
        action = self._with_outcome(state, action)
        result = self._commit(state, action, version)
        self._mirror_status(state.GAME_TYPE, result.events)
        return result

    def set_status(self, status: str):
        return self.store.set_status(self.session_id, status)

    def remove_player(self, player_id: str):
        """
        Drop a player from the roster, and their horse race bet with them.
        Both go in one write; on WriteConflict the player and the bet both stay.
        """
        state, version = self.store.load_state(self.session_id)
        if isinstance(state, HorseRaceState) and any(b.player_id == player_id for b in state.bets):
            new_state, _ = apply_action(state, remove_bet(player_id))
            return self.store.remove_player(self.session_id, player_id, new_state, version)
        return self.store.remove_player(self.session_id, player_id)

    def _mirror_status(self, game_type: str, events: list[GameEvent]) -> None:
        status = status_after(game_type, events)
        if status is not None:
            self.store.set_status(self.session_id, status)

    def _with_outcome(self, state: GameState, action: Action) -> Action:
        payload = dict(action.payload)

        if isinstance(state, HorseRaceState) and action.type == "draw_race_card" and not payload.get("suit"):
            payload["suit"] = draw_race_suit(state, self.rng)

        elif isinstance(state, BeerPongState) and action.type == "resolve_shot" and "hit" not in payload:
            if state.pending_shot is not None:
                power, angle = state.pending_shot.power, state.pending_shot.angle
            else:
                shot = _shot_from_payload(payload)
                if shot is None:
                    raise ValueError("No shot to resolve")
                power, angle = shot["power"], shot["angle"]
            hit, cup_id = generate_shot_outcome(state, power, angle, self.rng)
            payload.update(hit=hit, cup_id=cup_id)
            payload.setdefault("timestamp", time.time())

        elif isinstance(state, RideBusState):
            if action.type == "start_game" and not payload.get("players"):
                payload["players"] = [
                    {"id": p.id, "name": p.player_name}
                    for p in self.store.list_players(self.session_id)
                ]
            elif action.type == "resolve_guess" and not payload.get("card"):
                if state.current_phase == "riding_bus":
                    # Second card is only used if the guess is wrong
                    card, restart = draw_distinct_cards(state, 2, self.rng)
                    payload.update(card=card, restart_card=restart)
                else:
                    payload["card"] = draw_card_not_in_play(state, self.rng)
            elif action.type == "deal_community_cards" and not payload.get("cards"):
                payload["cards"] = draw_distinct_cards(state, 8, self.rng)
            elif action.type == "start_bus_ride" and not payload.get("card"):
                payload["card"] = draw_card_not_in_play(state, self.rng)

        elif isinstance(state, KingsCupState) and action.type == "draw_card" and not payload.get("card"):
            payload["card"] = draw_card_not_in_play(state, self.rng)

        return Action(type=action.type, actor=action.actor, payload=payload)


def _shot_from_payload(payload: dict) -> dict | None:
    shot = payload.get("shot")
    if not isinstance(shot, dict):
        return None
    if not all(isinstance(shot.get(k), (int, float)) for k in ("power", "angle")):
        raise ValueError("Shot needs numeric power and angle")
    return shot
