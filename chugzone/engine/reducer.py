"""
Main game reducer.
Applies actions to state, enforcing rules and producing new state.
Returns (new_state, events) where events describe what happened.

The input state is never mutated; each game module works on a copy.
"""

from chugzone.engine import beer_pong, horse_race, kings_cup, ride_bus
from chugzone.engine.actions import Action
from chugzone.engine.events import GameEvent
from chugzone.engine.state import (
    BeerPongState,
    GameState,
    HorseRaceState,
    KingsCupState,
    RideBusState,
)

# state type -> game module (apply + PHASE_ALLOWED_ACTIONS)
GAME_MODULES = {
    HorseRaceState: horse_race,
    BeerPongState: beer_pong,
    RideBusState: ride_bus,
    KingsCupState: kings_cup,
}


def _game_module(state: GameState):
    module = GAME_MODULES.get(type(state))
    if module is None:
        raise ValueError(f"Unsupported state type: {type(state).__name__}")
    return module


def allowed_actions(state: GameState) -> list[str]:
    return list(_game_module(state).PHASE_ALLOWED_ACTIONS.get(state.current_phase, []))


def _validate_action_for_phase(action: Action, state: GameState) -> None:
    """Validate that an action is allowed in the current phase."""
    allowed = allowed_actions(state)
    if action.type not in allowed:
        raise ValueError(
            f"Action '{action.type}' is not allowed in phase '{state.current_phase}'. "
            f"Allowed actions: {', '.join(allowed) or 'none'}"
        )


def apply_action(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Apply a single action to the current state, returning new state and events.

    Validates that the action is legal in the current phase; the game module
    then checks the action's own rules (turn, amounts, cards).
    Who may issue the action is not checked here (see queries.validate_action).

    Raises:
        ValueError: if the action is illegal for this state
    """
    module = _game_module(state)
    _validate_action_for_phase(action, state)
    return module.apply(state, action)


def replay_actions(state: GameState, actions: list[Action]) -> tuple[GameState, list[GameEvent]]:
    """Apply actions in order, collecting every event. Stops at the first illegal action."""
    events: list[GameEvent] = []
    for action in actions:
        state, evts = apply_action(state, action)
        events.extend(evts)
    return state, events
