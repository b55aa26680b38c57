"""
King's Cup, played on a single device passed around the table.
Every action comes from the host device; there is no per-player authority.

Phases: playing -> finished (deck empty) -> playing (restart)
"""

import base64
import json

from chugzone.engine import GAME_KINGS_CUP_LOCAL, RANKS
from chugzone.engine.actions import Action
from chugzone.engine.cards import card_rank, full_deck, parse_card
from chugzone.engine.events import (
    GameEvent,
    card_drawn,
    game_finished,
    game_reset,
    mates_changed,
    phase_changed,
    players_changed,
    rules_updated,
)
from chugzone.engine.state import KingsCupPlayer, KingsCupRule, KingsCupState, Mate

MIN_PLAYERS = 2
DECK_SIZE = 52
NO_RULE = "No rule found!"

_EDIT_ACTIONS = [
    "add_player",
    "remove_player",
    "rename_player",
    "reorder_players",
    "update_rules",
    "add_mate",
    "remove_mate",
    "set_stack_dates",
    "restart_game",
]

PHASE_ALLOWED_ACTIONS = {
    "playing": ["draw_card"] + _EDIT_ACTIONS,
    "finished": list(_EDIT_ACTIONS),
}

KINGS_CUP_PRESETS = [
    {
        "name": "Classic",
        "description": "The rules everyone argues about",
        "rules": [
            {"card": "A", "rule": "Waterfall - everyone drinks until the person before them stops"},
            {"card": "2", "rule": "You - pick someone to drink"},
            {"card": "3", "rule": "Me - you drink"},
            {"card": "4", "rule": "Floor - last to touch the floor drinks"},
            {"card": "5", "rule": "Guys - all guys drink"},
            {"card": "6", "rule": "Chicks - all girls drink"},
            {"card": "7", "rule": "Heaven - last to point up drinks"},
            {"card": "8", "rule": "Mate - pick a drinking buddy"},
            {"card": "9", "rule": "Rhyme - first to miss a rhyme drinks"},
            {"card": "10", "rule": "Categories - first to blank drinks"},
            {"card": "J", "rule": "Never have I ever"},
            {"card": "Q", "rule": "Questions - answer a question with a question"},
            {"card": "K", "rule": "King's Cup - pour some into the cup, last king drinks it"},
        ],
    },
    {
        "name": "Chill",
        "description": "Fewer drinks, more talking",
        "rules": [
            {"card": "A", "rule": "Everyone takes a sip"},
            {"card": "2", "rule": "Give a sip"},
            {"card": "3", "rule": "Take a sip"},
            {"card": "4", "rule": "Tell a story - the group decides if you drink"},
            {"card": "5", "rule": "Thumb master - last to put a thumb on the table sips"},
            {"card": "6", "rule": "Compliment the person to your left"},
            {"card": "7", "rule": "Heaven - last to point up sips"},
            {"card": "8", "rule": "Mate - pick a buddy"},
            {"card": "9", "rule": "Rhyme"},
            {"card": "10", "rule": "Categories"},
            {"card": "J", "rule": "Make a rule"},
            {"card": "Q", "rule": "Question master"},
            {"card": "K", "rule": "Pour into the cup"},
        ],
    },
]


def default_rules() -> list[KingsCupRule]:
    return [KingsCupRule.from_dict(r) for r in KINGS_CUP_PRESETS[0]["rules"]]


def lookup_rule(rules: list[KingsCupRule], card: str) -> str:
    rank = card_rank(card)
    rule = next((r for r in rules if r.card == rank), None)
    return rule.rule if rule and rule.rule else NO_RULE


def remaining_cards(state: KingsCupState) -> list[str]:
    drawn = set(state.drawn_cards)
    return [c for c in full_deck() if c not in drawn]


def encode_rules(rules: list[dict]) -> str:
    """Rule sets are shared as base64 of their JSON."""
    return base64.b64encode(json.dumps(rules).encode("utf-8")).decode("ascii")


def decode_rules(blob: str) -> list[dict]:
    try:
        data = json.loads(base64.b64decode(blob.encode("ascii"), validate=True).decode("utf-8"))
    except (ValueError, UnicodeError) as e:
        raise ValueError(f"Invalid rule blob: {e}") from e
    return _check_rules(data)


def _check_rules(rules) -> list[dict]:
    if not isinstance(rules, list):
        raise ValueError("Rules must be a list of {card, rule}")
    checked = []
    for entry in rules:
        if not isinstance(entry, dict) or entry.get("card") not in RANKS:
            raise ValueError(f"Invalid rule entry: {entry!r}")
        checked.append({"card": entry["card"], "rule": str(entry.get("rule") or "")})
    return checked


def _player_index(state: KingsCupState, player_id: str) -> int:
    for i, p in enumerate(state.players):
        if p.id == player_id:
            return i
    raise ValueError(f"Player {player_id} not found")


def apply(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    new_state = state.copy()

    if action.type == "draw_card":
        return _handle_draw_card(new_state, action)
    if action.type == "add_player":
        return _handle_add_player(new_state, action)
    if action.type == "remove_player":
        return _handle_remove_player(new_state, action)
    if action.type == "rename_player":
        return _handle_rename_player(new_state, action)
    if action.type == "reorder_players":
        return _handle_reorder_players(new_state, action)
    if action.type == "update_rules":
        new_state.rules = [KingsCupRule.from_dict(r) for r in _check_rules(action.payload.get("rules"))]
        return new_state, [rules_updated(len(new_state.rules))]
    if action.type == "add_mate":
        return _handle_add_mate(new_state, action)
    if action.type == "remove_mate":
        mate_id = action.payload.get("id")
        before = len(new_state.mates)
        new_state.mates = [m for m in new_state.mates if m.id != mate_id]
        if len(new_state.mates) == before:
            raise ValueError(f"Mate {mate_id} not found")
        return new_state, [mates_changed(len(new_state.mates))]
    if action.type == "set_stack_dates":
        new_state.stack_dates = bool(action.payload.get("enabled"))
        return new_state, []
    if action.type == "restart_game":
        return _handle_restart_game(new_state)
    raise ValueError(f"Unknown action type: {action.type}")


def _handle_draw_card(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    card = action.payload.get("card")
    parse_card(card)
    if card in state.drawn_cards:
        raise ValueError(f"{card} has already been drawn")
    if not state.players:
        raise ValueError("Add players before drawing")

    index = state.current_player_index % len(state.players)
    drawer = state.players[index]
    state.drawn_cards.append(card)
    state.current_card = card
    state.current_rule = lookup_rule(state.rules, card)
    state.current_player_index = (index + 1) % len(state.players)

    cards_left = DECK_SIZE - len(state.drawn_cards)
    events = [card_drawn(drawer.id, card, state.current_rule, cards_left)]
    if cards_left <= 0:
        state.current_phase = "finished"
        events.append(phase_changed("playing", "finished"))
        events.append(game_finished(GAME_KINGS_CUP_LOCAL, None, last_card=card))
    return state, events


def _handle_add_player(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    player_id = action.payload.get("id")
    name = (action.payload.get("name") or "").strip()
    if not name:
        raise ValueError("Please enter a player name")
    if not player_id or any(p.id == player_id for p in state.players):
        raise ValueError(f"Invalid or duplicate player id: {player_id}")
    state.players.append(KingsCupPlayer(id=player_id, name=name))
    return state, [players_changed([p.id for p in state.players])]


def _handle_remove_player(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    index = _player_index(state, action.payload.get("id"))
    if len(state.players) <= MIN_PLAYERS:
        raise ValueError(f"Need at least {MIN_PLAYERS} players")

    removed = state.players.pop(index)
    if index < state.current_player_index:
        state.current_player_index -= 1
    if state.current_player_index >= len(state.players):
        state.current_player_index = 0

    events = [players_changed([p.id for p in state.players])]
    mates = [m for m in state.mates if removed.id not in (m.player1_id, m.player2_id)]
    if len(mates) != len(state.mates):
        state.mates = mates
        events.append(mates_changed(len(mates)))
    return state, events


def _handle_rename_player(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    index = _player_index(state, action.payload.get("id"))
    name = (action.payload.get("name") or "").strip()
    if not name:
        raise ValueError("Please enter a player name")
    state.players[index].name = name
    return state, [players_changed([p.id for p in state.players])]


def _handle_reorder_players(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    order = action.payload.get("order") or []
    by_id = {p.id: p for p in state.players}
    if len(order) != len(by_id) or set(order) != set(by_id):
        raise ValueError("New order must list every player exactly once")

    current = state.players[state.current_player_index % len(state.players)].id if state.players else None
    state.players = [by_id[pid] for pid in order]
    # Whoever was up stays up
    if current is not None:
        state.current_player_index = order.index(current)
    return state, [players_changed(list(order))]


def _handle_add_mate(state: KingsCupState, action: Action) -> tuple[KingsCupState, list[GameEvent]]:
    mate_id = action.payload.get("id")
    p1 = action.payload.get("player1_id")
    p2 = action.payload.get("player2_id")
    _player_index(state, p1)
    _player_index(state, p2)
    if p1 == p2:
        raise ValueError("A player cannot be their own mate")
    if not mate_id or any(m.id == mate_id for m in state.mates):
        raise ValueError(f"Invalid or duplicate mate id: {mate_id}")
    state.mates.append(Mate(id=mate_id, player1_id=p1, player2_id=p2))
    return state, [mates_changed(len(state.mates))]


def _handle_restart_game(state: KingsCupState) -> tuple[KingsCupState, list[GameEvent]]:
    old_phase = state.current_phase
    state.drawn_cards = []
    state.current_card = None
    state.current_rule = None
    state.current_player_index = 0
    state.current_phase = "playing"
    events = [game_reset(GAME_KINGS_CUP_LOCAL)]
    if old_phase != "playing":
        events.insert(0, phase_changed(old_phase, "playing"))
    return state, events
