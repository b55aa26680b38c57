"""
Action definitions for the session games.
Actions are immutable, deterministic instructions: every random outcome (drawn suit,
shot result, dealt card) is decided by the host before the action is built.
"""

from dataclasses import dataclass

from chugzone.engine import HOST_ACTOR


@dataclass
class Action:
    """Base action class. All actions have a type, actor, and payload."""
    type: str  # e.g., "place_bet", "take_shot", "submit_guess", "draw_card"
    actor: str  # SessionPlayer id, or HOST_ACTOR for host-issued actions
    payload: dict  # Action-specific data

    def to_dict(self) -> dict:
        return {"type": self.type, "actor": self.actor, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict) -> "Action":
        return cls(
            type=str(data.get("type") or ""),
            actor=str(data.get("actor") or ""),
            payload=dict(data.get("payload") or {}),
        )


# ===== Horse Race =====

def place_bet(player_id: str, player_name: str, suit: str, amount: int, actor: str | None = None) -> Action:
    """
    Bet on a suit. Replaces any earlier bet from the same player (and unlocks it).
    actor defaults to the player; the host passes HOST_ACTOR when betting for a manual player.
    """
    return Action(
        type="place_bet",
        actor=actor or player_id,
        payload={"player_id": player_id, "player_name": player_name, "suit": suit, "amount": amount},
    )


def lock_bet(player_id: str, actor: str | None = None) -> Action:
    return Action(type="lock_bet", actor=actor or player_id, payload={"player_id": player_id})


def remove_bet(player_id: str) -> Action:
    return Action(type="remove_bet", actor=HOST_ACTOR, payload={"player_id": player_id})


def start_race() -> Action:
    return Action(type="start_race", actor=HOST_ACTOR, payload={})


def draw_race_card(suit: str | None = None) -> Action:
    """Advance the horse of the drawn suit. Left out, the host flips one off the race deck."""
    return Action(type="draw_race_card", actor=HOST_ACTOR, payload={"suit": suit})


def reset_race() -> Action:
    return Action(type="reset_race", actor=HOST_ACTOR, payload={})


# ===== Beer Pong =====

def join_team(player_id: str, team: str, actor: str | None = None) -> Action:
    return Action(type="join_team", actor=actor or player_id, payload={"player_id": player_id, "team": team})


def start_game() -> Action:
    """Start a beer pong game (lobby -> playing)."""
    return Action(type="start_game", actor=HOST_ACTOR, payload={})


def take_shot(player_id: str, player_name: str, power: int, angle: int, actor: str | None = None) -> Action:
    """
    Throw for the team whose turn it is. The shot stays pending until the host resolves it.
    power: 20..100, angle: -45..45 degrees.
    """
    return Action(
        type="take_shot",
        actor=actor or player_id,
        payload={"player_id": player_id, "player_name": player_name, "power": power, "angle": angle},
    )


def resolve_shot(
    hit: bool,
    cup_id: str | None = None,
    timestamp: float = 0.0,
    shot: dict | None = None,
) -> Action:
    """
    Host resolution of the pending shot.
    hit/cup_id are drawn by the host; shot carries power/angle/player when the host
    fires directly without a pending player shot.
    """
    payload = {"hit": hit, "cup_id": cup_id, "timestamp": timestamp}
    if shot:
        payload["shot"] = shot
    return Action(type="resolve_shot", actor=HOST_ACTOR, payload=payload)


def set_bracket(bracket_data: dict | None, current_match_index: int = 0) -> Action:
    return Action(
        type="set_bracket",
        actor=HOST_ACTOR,
        payload={"bracket_data": bracket_data, "current_match_index": current_match_index},
    )


# ===== Ride the Bus =====

def start_ride_bus(players: list[dict]) -> Action:
    """
    Snapshot the roster into the turn order and start round 1.
    players: [{"id": ..., "name": ...}] in join order.
    """
    return Action(type="start_game", actor=HOST_ACTOR, payload={"players": players})


def submit_guess(player_id: str, choice: str, actor: str | None = None) -> Action:
    """
    Guess for the current round. choice depends on the round:
    red/black, higher/lower, inside/outside, or a suit.
    """
    return Action(type="submit_guess", actor=actor or player_id, payload={"player_id": player_id, "choice": choice})


def resolve_guess(card: str, restart_card: str | None = None) -> Action:
    """
    Reveal the host-drawn card against the pending guess.
    During the bus ride, restart_card is the fresh base card laid after a wrong guess.
    """
    payload = {"card": card}
    if restart_card:
        payload["restart_card"] = restart_card
    return Action(type="resolve_guess", actor=HOST_ACTOR, payload=payload)


def deal_community_cards(cards: list[str]) -> Action:
    return Action(type="deal_community_cards", actor=HOST_ACTOR, payload={"cards": cards})


def reveal_community_card() -> Action:
    return Action(type="reveal_community_card", actor=HOST_ACTOR, payload={})


def resolve_match(
    player_id: str,
    decision: str,
    target_id: str | None = None,
    actor: str | None = None,
    community_card: str | None = None,
) -> Action:
    """
    Give (to target_id) or take a matched card.
    Timer expiry resolves with decision="take" under HOST_ACTOR, pinned to the
    community_card of the match it was started for.
    """
    payload = {"player_id": player_id, "decision": decision, "target_id": target_id}
    if community_card is not None:
        payload["community_card"] = community_card
    return Action(type="resolve_match", actor=actor or player_id, payload=payload)


def start_bus_ride(card: str) -> Action:
    """Lay the first bus card and hand the ride to the bus rider."""
    return Action(type="start_bus_ride", actor=HOST_ACTOR, payload={"card": card})


def restart_game() -> Action:
    return Action(type="restart_game", actor=HOST_ACTOR, payload={})


# ===== King's Cup =====

def add_player(name: str, player_id: str) -> Action:
    return Action(type="add_player", actor=HOST_ACTOR, payload={"id": player_id, "name": name})


def remove_player(player_id: str) -> Action:
    return Action(type="remove_player", actor=HOST_ACTOR, payload={"id": player_id})


def rename_player(player_id: str, name: str) -> Action:
    return Action(type="rename_player", actor=HOST_ACTOR, payload={"id": player_id, "name": name})


def reorder_players(player_ids: list[str]) -> Action:
    return Action(type="reorder_players", actor=HOST_ACTOR, payload={"order": player_ids})


def draw_card(card: str) -> Action:
    return Action(type="draw_card", actor=HOST_ACTOR, payload={"card": card})


def update_rules(rules: list[dict]) -> Action:
    """rules: [{"card": "A", "rule": "Waterfall"}, ...]"""
    return Action(type="update_rules", actor=HOST_ACTOR, payload={"rules": rules})


def add_mate(mate_id: str, player1_id: str, player2_id: str) -> Action:
    return Action(
        type="add_mate",
        actor=HOST_ACTOR,
        payload={"id": mate_id, "player1_id": player1_id, "player2_id": player2_id},
    )


def remove_mate(mate_id: str) -> Action:
    return Action(type="remove_mate", actor=HOST_ACTOR, payload={"id": mate_id})


def set_stack_dates(enabled: bool) -> Action:
    return Action(type="set_stack_dates", actor=HOST_ACTOR, payload={"enabled": enabled})
