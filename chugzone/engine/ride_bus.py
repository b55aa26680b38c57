"""
Ride the Bus.

Four guessing rounds (each player in turn order, stake = round number), then a
pyramid of 8 community cards is flipped one at a time: anyone holding a card of
the flipped rank must give it away or take it. The player left holding the most
cards rides the bus: higher/lower against the last bus card until four in a row
come up right.

Phases: lobby -> round1 -> round2 -> round3 -> round4 -> community
        -> bus_rider -> riding_bus -> finished
"""

from chugzone.engine import GAME_RIDE_BUS, SUITS
from chugzone.engine.actions import Action
from chugzone.engine.cards import card_rank, card_suit, is_red, parse_card, rank_value
from chugzone.engine.events import (
    GameEvent,
    bus_card_laid,
    bus_rider_chosen,
    community_card_revealed,
    community_dealt,
    game_finished,
    game_reset,
    game_started,
    guess_resolved,
    guess_submitted,
    match_pending,
    match_resolved,
    phase_changed,
)
from chugzone.engine.state import PendingMatch, RideBusChoice, RideBusPlayerCards, RideBusState

MIN_PLAYERS = 2
GUESS_ROUNDS = 4
COMMUNITY_CARD_COUNT = 8
BUS_STREAK_TO_WIN = 4
MATCH_DRINKS = 1

ROUND_CHOICES = {
    1: ("red", "black"),
    2: ("higher", "lower"),
    3: ("inside", "outside"),
    4: SUITS,
}
BUS_CHOICES = ("higher", "lower")
MATCH_DECISIONS = ("give", "take")

_ROUND_PHASES = ("round1", "round2", "round3", "round4")

PHASE_ALLOWED_ACTIONS = {
    "lobby": ["start_game"],
    "round1": ["submit_guess", "resolve_guess", "restart_game"],
    "round2": ["submit_guess", "resolve_guess", "restart_game"],
    "round3": ["submit_guess", "resolve_guess", "restart_game"],
    "round4": ["submit_guess", "resolve_guess", "restart_game"],
    "community": ["deal_community_cards", "reveal_community_card", "resolve_match", "restart_game"],
    "bus_rider": ["start_bus_ride", "restart_game"],
    "riding_bus": ["submit_guess", "resolve_guess", "restart_game"],
    "finished": ["restart_game"],
}


def evaluate_guess(round_number: int, choice: str, card: str, previous_cards: list[str]) -> bool:
    """
    Whether a round guess is right for the drawn card.
    Round 2 compares against the player's last card and round 3 against the range
    of their first two; a tie is never "higher" or "lower" and never "inside".
    """
    if round_number == 1:
        return (choice == "red") == is_red(card)
    if round_number == 2:
        last = rank_value(previous_cards[-1])
        current = rank_value(card)
        return (choice == "higher" and current > last) or (choice == "lower" and current < last)
    if round_number == 3:
        low, high = sorted(rank_value(c) for c in previous_cards[:2])
        inside = low < rank_value(card) < high
        return inside if choice == "inside" else not inside
    if round_number == 4:
        return choice == card_suit(card)
    raise ValueError(f"No guessing round {round_number}")


def evaluate_bus_guess(choice: str, base_card: str, card: str) -> bool:
    base = rank_value(base_card)
    current = rank_value(card)
    return (choice == "higher" and current > base) or (choice == "lower" and current < base)


def choose_bus_rider(player_cards: list[RideBusPlayerCards]) -> RideBusPlayerCards:
    """Most cards rides; ties go to whoever comes first in turn order."""
    best = player_cards[0]
    for pc in player_cards[1:]:
        if len(pc.cards) > len(best.cards):
            best = pc
    return best


def apply(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    new_state = state.copy()

    if action.type == "start_game":
        return _handle_start_game(new_state, action)
    if action.type == "restart_game":
        return _handle_restart_game(new_state)
    if action.type == "submit_guess":
        return _handle_submit_guess(new_state, action)
    if action.type == "resolve_guess":
        if new_state.current_phase == "riding_bus":
            return _handle_resolve_bus_guess(new_state, action)
        return _handle_resolve_guess(new_state, action)
    if action.type == "deal_community_cards":
        return _handle_deal_community_cards(new_state, action)
    if action.type == "reveal_community_card":
        return _handle_reveal_community_card(new_state)
    if action.type == "resolve_match":
        return _handle_resolve_match(new_state, action)
    if action.type == "start_bus_ride":
        return _handle_start_bus_ride(new_state, action)
    raise ValueError(f"Unknown action type: {action.type}")


def _fresh_game(players: list[tuple[str, str]]) -> RideBusState:
    return RideBusState(
        current_phase="round1",
        current_round=1,
        current_player_index=0,
        player_cards=[RideBusPlayerCards(player_id=pid, player_name=name) for pid, name in players],
    )


def _handle_start_game(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    players = []
    seen = set()
    for p in action.payload.get("players") or []:
        pid = p.get("id") if isinstance(p, dict) else None
        if not pid or pid in seen:
            continue
        seen.add(pid)
        players.append((pid, p.get("name") or ""))
    if len(players) < MIN_PLAYERS:
        raise ValueError(f"Ride the Bus needs at least {MIN_PLAYERS} players")

    new_state = _fresh_game(players)
    return new_state, [phase_changed("lobby", "round1"), game_started(GAME_RIDE_BUS)]


def _handle_restart_game(state: RideBusState) -> tuple[RideBusState, list[GameEvent]]:
    old_phase = state.current_phase
    players = [(pc.player_id, pc.player_name) for pc in state.player_cards]
    new_state = _fresh_game(players)
    return new_state, [phase_changed(old_phase, "round1"), game_reset(GAME_RIDE_BUS)]


def _handle_submit_guess(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    if state.pending_guess is not None:
        raise ValueError("A guess is already waiting for its card")

    player_id = action.payload.get("player_id")
    choice = action.payload.get("choice")

    if state.current_phase == "riding_bus":
        if player_id != state.bus_rider_id:
            raise ValueError("Only the bus rider can guess now")
        allowed = BUS_CHOICES
    else:
        current = state.current_player()
        if current is None or player_id != current.player_id:
            raise ValueError(f"It is not {player_id}'s turn")
        allowed = ROUND_CHOICES[state.current_round]

    if choice not in allowed:
        raise ValueError(f"Invalid choice: {choice}. Choose one of {', '.join(allowed)}")

    player = state.get_player(player_id)
    state.pending_guess = RideBusChoice(
        player_id=player_id,
        player_name=player.player_name if player else "",
        choice=choice,
        phase=state.current_phase,
    )
    return state, [guess_submitted(player_id, choice, state.current_phase)]


def _handle_resolve_guess(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    guess = state.pending_guess
    if guess is None:
        raise ValueError("No guess to resolve")
    card = action.payload.get("card")
    parse_card(card)

    player = state.get_player(guess.player_id)
    if player is None:
        raise ValueError(f"Player {guess.player_id} is not in this game")

    stake = state.current_round
    correct = evaluate_guess(stake, guess.choice, card, player.cards)
    player.cards.append(card)
    if correct:
        player.drinks_given += stake
    else:
        player.drinks_taken += stake

    guess.result = "correct" if correct else "wrong"
    guess.card = card
    guess.drinks = stake
    state.choices.append(guess)
    state.pending_guess = None

    events = [guess_resolved(guess.player_id, guess.choice, card, correct, stake, state.current_phase)]

    # Turn passes in join order; a full pass moves to the next round
    state.current_player_index += 1
    if state.current_player_index >= len(state.player_cards):
        state.current_player_index = 0
        old_phase = state.current_phase
        if state.current_round >= GUESS_ROUNDS:
            state.current_phase = "community"
        else:
            state.current_round += 1
            state.current_phase = _ROUND_PHASES[state.current_round - 1]
        events.append(phase_changed(old_phase, state.current_phase))
    return state, events


def _handle_resolve_bus_guess(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    guess = state.pending_guess
    if guess is None:
        raise ValueError("No guess to resolve")
    card = action.payload.get("card")
    parse_card(card)
    if not state.bus_cards:
        raise ValueError("The bus ride has not started")

    rider = state.get_player(state.bus_rider_id)
    correct = evaluate_bus_guess(guess.choice, state.bus_cards[-1], card)
    events = []

    if correct:
        state.bus_cards.append(card)
        state.bus_streak += 1
        penalty = 0
        events.append(guess_resolved(guess.player_id, guess.choice, card, True, 0, state.current_phase))
        events.append(bus_card_laid(card, state.bus_streak))
    else:
        restart_card = action.payload.get("restart_card")
        parse_card(restart_card)
        # Penalty is the length of the run so far; the wrong card is discarded
        # and a fresh base card is laid on top, so repeated misses cost more.
        penalty = len(state.bus_cards)
        state.bus_drinks += penalty
        if rider is not None:
            rider.drinks_taken += penalty
        state.bus_streak = 0
        state.bus_cards.append(restart_card)
        events.append(guess_resolved(guess.player_id, guess.choice, card, False, penalty, state.current_phase))
        events.append(bus_card_laid(restart_card, 0))

    guess.result = "correct" if correct else "wrong"
    guess.card = card
    guess.drinks = penalty
    state.choices.append(guess)
    state.pending_guess = None

    if state.bus_streak >= BUS_STREAK_TO_WIN:
        state.current_phase = "finished"
        events.append(phase_changed("riding_bus", "finished"))
        events.append(game_finished(
            GAME_RIDE_BUS,
            state.bus_rider_id,
            bus_drinks=state.bus_drinks,
        ))
    return state, events


def _handle_deal_community_cards(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    if state.community_cards:
        raise ValueError("Community cards have already been dealt")
    cards = action.payload.get("cards") or []
    if len(cards) != COMMUNITY_CARD_COUNT:
        raise ValueError(f"Deal exactly {COMMUNITY_CARD_COUNT} community cards, got {len(cards)}")
    for card in cards:
        parse_card(card)
    if len(set(cards)) != len(cards):
        raise ValueError("Community cards must be distinct")

    state.community_cards = list(cards)
    state.flipped_community_cards = 0
    return state, [community_dealt(len(cards))]


def _handle_reveal_community_card(state: RideBusState) -> tuple[RideBusState, list[GameEvent]]:
    if not state.community_cards:
        raise ValueError("Community cards have not been dealt")
    if state.pending_matches:
        raise ValueError("Resolve pending matches before revealing the next card")
    if state.flipped_community_cards >= len(state.community_cards):
        raise ValueError("All community cards are already revealed")

    index = state.flipped_community_cards
    community = state.community_cards[index]
    state.flipped_community_cards += 1
    events = [community_card_revealed(community, index)]

    rank = card_rank(community)
    for pc in state.player_cards:
        matched = next((c for c in pc.cards if card_rank(c) == rank), None)
        if matched is None:
            continue
        pc.matches += 1
        state.pending_matches.append(PendingMatch(
            player_id=pc.player_id,
            player_name=pc.player_name,
            card=matched,
            community_card=community,
        ))
        events.append(match_pending(pc.player_id, matched, community))

    events.extend(_maybe_choose_bus_rider(state))
    return state, events


def _handle_resolve_match(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    player_id = action.payload.get("player_id")
    decision = action.payload.get("decision")
    target_id = action.payload.get("target_id")

    match = next((m for m in state.pending_matches if m.player_id == player_id), None)
    if match is None:
        raise ValueError(f"No pending match for player {player_id}")
    expected = action.payload.get("community_card")
    if expected is not None and expected != match.community_card:
        raise ValueError(f"Match on {expected} was already resolved")
    if decision not in MATCH_DECISIONS:
        raise ValueError(f"Invalid decision: {decision}. Choose give or take")

    player = state.get_player(player_id)
    if decision == "give":
        target = state.get_player(target_id) if target_id else None
        if target is None or target_id == player_id:
            raise ValueError("Give needs another player in this game as target")
        player.cards.remove(match.card)
        target.cards.append(match.card)
        player.drinks_given += MATCH_DRINKS
        target.drinks_taken += MATCH_DRINKS
    else:
        target_id = None
        player.drinks_taken += MATCH_DRINKS

    state.pending_matches.remove(match)
    state.choices.append(RideBusChoice(
        player_id=player_id,
        player_name=player.player_name,
        choice=decision,
        phase=state.current_phase,
        card=match.card,
        drinks=MATCH_DRINKS,
    ))
    events = [match_resolved(player_id, decision, match.card, target_id)]
    events.extend(_maybe_choose_bus_rider(state))
    return state, events


def _maybe_choose_bus_rider(state: RideBusState) -> list[GameEvent]:
    if state.pending_matches:
        return []
    if state.flipped_community_cards < len(state.community_cards) or not state.community_cards:
        return []
    rider = choose_bus_rider(state.player_cards)
    state.bus_rider_id = rider.player_id
    state.current_phase = "bus_rider"
    return [
        bus_rider_chosen(rider.player_id, rider.player_name, len(rider.cards)),
        phase_changed("community", "bus_rider"),
    ]


def _handle_start_bus_ride(state: RideBusState, action: Action) -> tuple[RideBusState, list[GameEvent]]:
    card = action.payload.get("card")
    parse_card(card)
    state.bus_cards = [card]
    state.bus_streak = 0
    state.bus_drinks = 0
    state.current_phase = "riding_bus"
    return state, [bus_card_laid(card, 0), phase_changed("bus_rider", "riding_bus")]
