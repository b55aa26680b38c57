"""
Horse race: players bet drinks on a suit, the host flips suit cards and each
flip moves that suit's horse one step. First horse to the finish line wins.

Phases: betting -> racing -> finished -> betting (reset)
"""

from chugzone.engine import GAME_HORSE_RACE, SUITS
from chugzone.engine.actions import Action
from chugzone.engine.events import (
    GameEvent,
    bet_locked,
    bet_placed,
    bet_removed,
    game_finished,
    game_reset,
    game_started,
    odds_updated,
    phase_changed,
    race_card_drawn,
)
from chugzone.engine.state import HorseRaceBet, HorseRacePayout, HorseRaceState

BET_AMOUNTS = (1, 5, 10, 15, 20)
FINISH_LINE = 8

MIN_ODDS = 1.0
MAX_ODDS = 5.0
WINNER_ODDS_STEP = 0.5
LOSER_ODDS_STEP = 0.2

PHASE_ALLOWED_ACTIONS = {
    "betting": ["place_bet", "lock_bet", "remove_bet", "start_race"],
    "racing": ["draw_race_card", "remove_bet"],
    "finished": ["reset_race", "remove_bet"],
}


def calculate_payouts(
    bets: list[HorseRaceBet],
    winner: str,
    odds: dict[str, float],
) -> list[HorseRacePayout]:
    """Each bet on the winning suit pays amount x odds[winner]; other bets pay nothing."""
    multiplier = odds.get(winner, 1.0)
    return [
        HorseRacePayout(
            player_id=bet.player_id,
            player_name=bet.player_name,
            suit=bet.suit,
            amount=bet.amount,
            payout=round(bet.amount * multiplier, 2),
        )
        for bet in bets
        if bet.suit == winner
    ]


def next_odds(odds: dict[str, float], winner: str | None) -> dict[str, float]:
    """
    Odds for the next race: the winner gets shorter (bounded below by MIN_ODDS),
    every other suit gets longer (bounded above by MAX_ODDS).
    """
    result = {}
    for suit in SUITS:
        current = odds.get(suit, MIN_ODDS)
        if winner is None:
            result[suit] = current
        elif suit == winner:
            result[suit] = round(max(MIN_ODDS, current - WINNER_ODDS_STEP), 2)
        else:
            result[suit] = round(min(MAX_ODDS, current + LOSER_ODDS_STEP), 2)
    return result


def apply(state: HorseRaceState, action: Action) -> tuple[HorseRaceState, list[GameEvent]]:
    new_state = state.copy()

    if action.type == "place_bet":
        return _handle_place_bet(new_state, action)
    if action.type == "lock_bet":
        return _handle_lock_bet(new_state, action)
    if action.type == "remove_bet":
        return _handle_remove_bet(new_state, action)
    if action.type == "start_race":
        return _handle_start_race(new_state)
    if action.type == "draw_race_card":
        return _handle_draw_race_card(new_state, action)
    if action.type == "reset_race":
        return _handle_reset_race(new_state)
    raise ValueError(f"Unknown action type: {action.type}")


def _handle_place_bet(state: HorseRaceState, action: Action) -> tuple[HorseRaceState, list[GameEvent]]:
    player_id = action.payload.get("player_id")
    player_name = action.payload.get("player_name") or ""
    suit = action.payload.get("suit")
    amount = action.payload.get("amount")

    if not player_id:
        raise ValueError("Bet must name a player")
    if suit not in SUITS:
        raise ValueError(f"Invalid suit: {suit}. Choose one of {', '.join(SUITS)}")
    if isinstance(amount, bool) or amount not in BET_AMOUNTS:
        raise ValueError(f"Invalid bet amount: {amount}. Choose one of {', '.join(map(str, BET_AMOUNTS))}")

    # One bet per player: a new bet replaces (and unlocks) the old one
    state.bets = [b for b in state.bets if b.player_id != player_id]
    state.bets.append(HorseRaceBet(
        player_id=player_id,
        player_name=player_name,
        suit=suit,
        amount=int(amount),
    ))
    return state, [bet_placed(player_id, player_name, suit, int(amount))]


def _handle_lock_bet(state: HorseRaceState, action: Action) -> tuple[HorseRaceState, list[GameEvent]]:
    player_id = action.payload.get("player_id")
    bet = next((b for b in state.bets if b.player_id == player_id), None)
    if bet is None:
        raise ValueError(f"No bet to lock for player {player_id}")
    bet.locked = True
    return state, [bet_locked(player_id)]


def _handle_remove_bet(state: HorseRaceState, action: Action) -> tuple[HorseRaceState, list[GameEvent]]:
    player_id = action.payload.get("player_id")
    remaining = [b for b in state.bets if b.player_id != player_id]
    if len(remaining) == len(state.bets):
        return state, []
    state.bets = remaining
    return state, [bet_removed(player_id)]


def _handle_start_race(state: HorseRaceState) -> tuple[HorseRaceState, list[GameEvent]]:
    if not state.bets:
        raise ValueError("Cannot start the race without any bets")
    state.current_phase = "racing"
    state.race_progress = {s: 0 for s in SUITS}
    state.drawn_cards = []
    state.winner = None
    state.payouts = []
    return state, [phase_changed("betting", "racing"), game_started(GAME_HORSE_RACE)]


def _handle_draw_race_card(state: HorseRaceState, action: Action) -> tuple[HorseRaceState, list[GameEvent]]:
    suit = action.payload.get("suit")
    if suit not in SUITS:
        raise ValueError(f"Invalid suit: {suit}")

    state.race_progress[suit] = state.race_progress.get(suit, 0) + 1
    state.drawn_cards.append(suit)
    events = [race_card_drawn(suit, state.race_progress[suit])]

    # Draws are applied one at a time, so the first suit to reach the line is the only winner
    if state.race_progress[suit] >= state.finish_line:
        state.winner = suit
        state.current_phase = "finished"
        state.payouts = calculate_payouts(state.bets, suit, state.odds)
        events.append(phase_changed("racing", "finished"))
        events.append(game_finished(
            GAME_HORSE_RACE,
            suit,
            payouts=[p.to_dict() for p in state.payouts],
        ))
    return state, events


def _handle_reset_race(state: HorseRaceState) -> tuple[HorseRaceState, list[GameEvent]]:
    old_odds = dict(state.odds)
    state.odds = next_odds(state.odds, state.winner)
    state.race_progress = {s: 0 for s in SUITS}
    state.drawn_cards = []
    state.winner = None
    state.payouts = []
    state.bets = []
    state.current_phase = "betting"
    return state, [
        odds_updated(old_odds, dict(state.odds)),
        phase_changed("finished", "betting"),
        game_reset(GAME_HORSE_RACE),
    ]
