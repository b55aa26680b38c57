"""
Query functions for UI integration.
These functions help host and player views understand what actions are available
without mutating game state.
"""

from dataclasses import dataclass
from typing import Any

from chugzone.engine import HOST_ACTOR, SUITS
from chugzone.engine.actions import Action
from chugzone.engine.beer_pong import hit_chance
from chugzone.engine.reducer import allowed_actions, apply_action
from chugzone.engine.state import (
    BeerPongState,
    GameState,
    HorseRaceState,
    KingsCupState,
    PendingMatch,
    RideBusState,
)

# Action types a joined player may submit for themselves. Everything else is host-only.
PLAYER_ACTIONS = {
    HorseRaceState: ["place_bet", "lock_bet"],
    BeerPongState: ["join_team", "take_shot"],
    RideBusState: ["submit_guess", "resolve_match"],
    KingsCupState: [],
}


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


# ===== Action Validation =====

def is_player_action(state: GameState, action_type: str) -> bool:
    return action_type in PLAYER_ACTIONS.get(type(state), [])


def validate_actor(state: GameState, action: Action) -> ValidationResult:
    """Host may issue anything; a player only their own player-level actions."""
    if action.actor == HOST_ACTOR:
        return ValidationResult(True)
    if not is_player_action(state, action.type):
        return ValidationResult(False, f"Only the host can {action.type}")
    if action.payload.get("player_id") != action.actor:
        return ValidationResult(False, "Players can only act for themselves")
    return ValidationResult(True)


def validate_action(state: GameState, action: Action) -> ValidationResult:
    """
    Validate an action without applying it.
    Returns ValidationResult with valid=True or valid=False with error message.
    """
    actor_check = validate_actor(state, action)
    if not actor_check.valid:
        return actor_check

    allowed = allowed_actions(state)
    if action.type not in allowed:
        return ValidationResult(
            False,
            f"Cannot {action.type} during {state.current_phase} phase. Allowed: {allowed}"
        )

    # Rule checks live in the game modules; a trial run on the (copied) state covers them
    try:
        apply_action(state, action)
    except ValueError as e:
        return ValidationResult(False, str(e))
    return ValidationResult(True)


# ===== Query Functions =====

def get_available_action_types(state: GameState, actor: str = HOST_ACTOR) -> list[str]:
    """Action types the actor could submit right now."""
    allowed = allowed_actions(state)
    if actor == HOST_ACTOR:
        return allowed

    allowed = [a for a in allowed if is_player_action(state, a)]
    if isinstance(state, RideBusState):
        allowed = [a for a in allowed if _ride_bus_player_can(state, actor, a)]
    elif isinstance(state, BeerPongState) and "take_shot" in allowed:
        shooting = state.team(state.current_turn)
        if state.pending_shot is not None or (shooting.players and actor not in shooting.players):
            allowed.remove("take_shot")
    elif isinstance(state, HorseRaceState) and "lock_bet" in allowed:
        if not any(b.player_id == actor for b in state.bets):
            allowed.remove("lock_bet")
    return allowed


def _ride_bus_player_can(state: RideBusState, player_id: str, action_type: str) -> bool:
    if action_type == "resolve_match":
        return get_pending_match(state, player_id) is not None
    if action_type == "submit_guess":
        if state.pending_guess is not None:
            return False
        if state.current_phase == "riding_bus":
            return state.bus_rider_id == player_id
        current = state.current_player()
        return current is not None and current.player_id == player_id
    return True


def get_pending_match(state: RideBusState, player_id: str) -> PendingMatch | None:
    return next((m for m in state.pending_matches if m.player_id == player_id), None)


def get_cards_in_play(state: GameState) -> set[str]:
    """Cards currently on the table, which the host must not deal again."""
    if isinstance(state, RideBusState):
        cards = set(state.community_cards) | set(state.bus_cards)
        for pc in state.player_cards:
            cards.update(pc.cards)
        return cards
    if isinstance(state, KingsCupState):
        return set(state.drawn_cards)
    return set()


def get_bet_totals(state: HorseRaceState) -> dict[str, int]:
    """Total drinks riding on each suit."""
    totals = {s: 0 for s in SUITS}
    for bet in state.bets:
        if bet.suit in totals:
            totals[bet.suit] += bet.amount
    return totals


def get_race_leader(state: HorseRaceState) -> str | None:
    """Suit furthest along; ties go to the suit that got there first."""
    best = max(state.race_progress.values(), default=0)
    if best == 0:
        return None
    seen = {s: 0 for s in SUITS}
    for suit in state.drawn_cards:
        seen[suit] += 1
        if seen[suit] == best:
            return suit
    return None


def get_shot_hit_chance(power: int, angle: int) -> float:
    return round(hit_chance(power, angle), 4)


def get_game_summary(state: GameState) -> dict[str, Any]:
    """Short overview for lobby screens and logs."""
    summary: dict[str, Any] = {"phase": state.current_phase}

    if isinstance(state, HorseRaceState):
        summary.update({
            "bets": len(state.bets),
            "bet_totals": get_bet_totals(state),
            "leader": get_race_leader(state),
            "winner": state.winner,
        })
    elif isinstance(state, BeerPongState):
        summary.update({
            "mode": state.mode,
            "current_turn": state.current_turn,
            "cups_remaining": {
                "team1": len(state.team1.remaining_cups()),
                "team2": len(state.team2.remaining_cups()),
            },
            "shots": len(state.shots),
            "winner": state.winner,
        })
    elif isinstance(state, RideBusState):
        current = state.current_player()
        summary.update({
            "round": state.current_round,
            "current_player": current.player_id if current else None,
            "revealed": state.flipped_community_cards,
            "pending_matches": len(state.pending_matches),
            "bus_rider": state.bus_rider_id,
            "bus_drinks": state.bus_drinks,
        })
    elif isinstance(state, KingsCupState):
        current = state.players[state.current_player_index % len(state.players)] if state.players else None
        summary.update({
            "players": len(state.players),
            "current_player": current.id if current else None,
            "cards_left": 52 - len(state.drawn_cards),
            "current_card": state.current_card,
        })
    return summary
