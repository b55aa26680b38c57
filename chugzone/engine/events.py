"""
Game events for UI hooks, logging, and host follow-up scheduling.
Events describe what happened during action processing.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Lifecycle
PHASE_CHANGED = "phase_changed"
GAME_STARTED = "game_started"
GAME_FINISHED = "game_finished"
GAME_RESET = "game_reset"

# Horse race
BET_PLACED = "bet_placed"
BET_LOCKED = "bet_locked"
BET_REMOVED = "bet_removed"
RACE_CARD_DRAWN = "race_card_drawn"
ODDS_UPDATED = "odds_updated"

# Beer pong
TEAM_JOINED = "team_joined"
SHOT_TAKEN = "shot_taken"
SHOT_RESOLVED = "shot_resolved"
BRACKET_UPDATED = "bracket_updated"

# Ride the bus
GUESS_SUBMITTED = "guess_submitted"
GUESS_RESOLVED = "guess_resolved"
COMMUNITY_DEALT = "community_dealt"
COMMUNITY_CARD_REVEALED = "community_card_revealed"
MATCH_PENDING = "match_pending"
MATCH_RESOLVED = "match_resolved"
BUS_RIDER_CHOSEN = "bus_rider_chosen"
BUS_CARD_LAID = "bus_card_laid"

# King's cup
CARD_DRAWN = "card_drawn"
PLAYERS_CHANGED = "players_changed"
RULES_UPDATED = "rules_updated"
MATES_CHANGED = "mates_changed"


# ===== Event Factory Functions =====

def phase_changed(old_phase: str, new_phase: str) -> GameEvent:
    return GameEvent(PHASE_CHANGED, {"old_phase": old_phase, "new_phase": new_phase})


def game_started(game_type: str) -> GameEvent:
    return GameEvent(GAME_STARTED, {"game_type": game_type})


def game_finished(game_type: str, winner: str | None, **details: Any) -> GameEvent:
    payload = {"game_type": game_type, "winner": winner}
    payload.update(details)
    return GameEvent(GAME_FINISHED, payload)


def game_reset(game_type: str) -> GameEvent:
    return GameEvent(GAME_RESET, {"game_type": game_type})


def bet_placed(player_id: str, player_name: str, suit: str, amount: int) -> GameEvent:
    return GameEvent(BET_PLACED, {
        "player_id": player_id,
        "player_name": player_name,
        "suit": suit,
        "amount": amount,
    })


def bet_locked(player_id: str) -> GameEvent:
    return GameEvent(BET_LOCKED, {"player_id": player_id})


def bet_removed(player_id: str) -> GameEvent:
    return GameEvent(BET_REMOVED, {"player_id": player_id})


def race_card_drawn(suit: str, progress: int) -> GameEvent:
    return GameEvent(RACE_CARD_DRAWN, {"suit": suit, "progress": progress})


def odds_updated(old_odds: dict[str, float], new_odds: dict[str, float]) -> GameEvent:
    return GameEvent(ODDS_UPDATED, {"old_odds": old_odds, "new_odds": new_odds})


def team_joined(player_id: str, team: str) -> GameEvent:
    return GameEvent(TEAM_JOINED, {"player_id": player_id, "team": team})


def shot_taken(team: str, player_id: str, power: int, angle: int) -> GameEvent:
    return GameEvent(SHOT_TAKEN, {
        "team": team,
        "player_id": player_id,
        "power": power,
        "angle": angle,
    })


def shot_resolved(team: str, player_id: str, hit: bool, cup_id: str | None, cups_remaining: int) -> GameEvent:
    return GameEvent(SHOT_RESOLVED, {
        "team": team,
        "player_id": player_id,
        "hit": hit,
        "cup_id": cup_id,
        "cups_remaining": cups_remaining,
    })


def bracket_updated(current_match_index: int) -> GameEvent:
    return GameEvent(BRACKET_UPDATED, {"current_match_index": current_match_index})


def guess_submitted(player_id: str, choice: str, phase: str) -> GameEvent:
    return GameEvent(GUESS_SUBMITTED, {"player_id": player_id, "choice": choice, "phase": phase})


def guess_resolved(player_id: str, choice: str, card: str, correct: bool, drinks: int, phase: str) -> GameEvent:
    return GameEvent(GUESS_RESOLVED, {
        "player_id": player_id,
        "choice": choice,
        "card": card,
        "correct": correct,
        "drinks": drinks,
        "phase": phase,
    })


def community_dealt(count: int) -> GameEvent:
    return GameEvent(COMMUNITY_DEALT, {"count": count})


def community_card_revealed(card: str, index: int) -> GameEvent:
    return GameEvent(COMMUNITY_CARD_REVEALED, {"card": card, "index": index})


def match_pending(player_id: str, card: str, community_card: str) -> GameEvent:
    """A give/take decision is now open; the host starts a decision timer for it."""
    return GameEvent(MATCH_PENDING, {
        "player_id": player_id,
        "card": card,
        "community_card": community_card,
    })


def match_resolved(player_id: str, decision: str, card: str, target_id: str | None) -> GameEvent:
    return GameEvent(MATCH_RESOLVED, {
        "player_id": player_id,
        "decision": decision,
        "card": card,
        "target_id": target_id,
    })


def bus_rider_chosen(player_id: str, player_name: str, card_count: int) -> GameEvent:
    return GameEvent(BUS_RIDER_CHOSEN, {
        "player_id": player_id,
        "player_name": player_name,
        "card_count": card_count,
    })


def bus_card_laid(card: str, streak: int) -> GameEvent:
    return GameEvent(BUS_CARD_LAID, {"card": card, "streak": streak})


def card_drawn(player_id: str | None, card: str, rule: str, cards_left: int) -> GameEvent:
    return GameEvent(CARD_DRAWN, {
        "player_id": player_id,
        "card": card,
        "rule": rule,
        "cards_left": cards_left,
    })


def players_changed(player_ids: list[str]) -> GameEvent:
    return GameEvent(PLAYERS_CHANGED, {"players": player_ids})


def rules_updated(count: int) -> GameEvent:
    return GameEvent(RULES_UPDATED, {"count": count})


def mates_changed(mate_count: int) -> GameEvent:
    return GameEvent(MATES_CHANGED, {"mates": mate_count})
