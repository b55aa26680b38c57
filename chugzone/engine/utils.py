"""
Utility functions for the game engine.
Initial states, plus the host-side random draws that get baked into actions.
"""

import random

from chugzone.engine import (
    GAME_BEER_PONG,
    GAME_HORSE_RACE,
    GAME_KINGS_CUP_LOCAL,
    GAME_RIDE_BUS,
)
from chugzone.engine.beer_pong import build_cups, hit_chance, other_team
from chugzone.engine.cards import full_deck, suit_deck
from chugzone.engine.kings_cup import default_rules
from chugzone.engine.queries import get_cards_in_play
from chugzone.engine.state import (
    BeerPongState,
    BracketData,
    GameState,
    HorseRaceState,
    KingsCupPlayer,
    KingsCupState,
    RideBusState,
    Team,
)


def initialize_game_state(game_type: str, mode: str = "head_to_head") -> GameState:
    """
    Create the initial state stored alongside a new session.

    Args:
        game_type: One of GAME_TYPES
        mode: Beer pong only, "head_to_head" or "tournament"
    """
    if game_type == GAME_HORSE_RACE:
        return HorseRaceState()
    if game_type == GAME_BEER_PONG:
        if mode not in BeerPongState.MODES:
            raise ValueError(f"Unknown beer pong mode: {mode}")
        return BeerPongState(
            team1=Team(name="Team 1", cups=build_cups("left")),
            team2=Team(name="Team 2", cups=build_cups("right")),
            mode=mode,
            bracket_data=BracketData() if mode == "tournament" else None,
        )
    if game_type == GAME_RIDE_BUS:
        return RideBusState()
    if game_type == GAME_KINGS_CUP_LOCAL:
        return KingsCupState(
            players=[KingsCupPlayer(id="1", name="Player 1"), KingsCupPlayer(id="2", name="Player 2")],
            rules=default_rules(),
        )
    raise ValueError(f"Unknown game type: {game_type}")


def shuffled_suit_deck(seed: int | None = None) -> list[str]:
    """A shuffled 52-card deck reduced to suits; the race draws from it in order."""
    rng = random.Random(seed)
    deck = suit_deck()
    rng.shuffle(deck)
    return deck


def draw_race_suit(state: HorseRaceState, rng: random.Random | None = None) -> str:
    """
    Flip the next card of the race deck: the 52-card suit deck less every suit
    already drawn this race. An exhausted deck is reshuffled.
    """
    rng = rng or random.Random()
    remaining = suit_deck()
    for suit in state.drawn_cards:
        if suit in remaining:
            remaining.remove(suit)
    return rng.choice(remaining or suit_deck())


def generate_shot_outcome(
    state: BeerPongState,
    power: int,
    angle: int,
    rng: random.Random | None = None,
) -> tuple[bool, str | None]:
    """
    Roll whether a throw lands and, if so, which of the opponent's standing cups it hits.

    Returns:
        (hit, cup_id); cup_id is None on a miss
    """
    rng = rng or random.Random()
    hit = rng.random() < hit_chance(power, angle)
    if not hit:
        return False, None
    target = state.team(other_team(state.current_turn))
    standing = target.remaining_cups()
    if not standing:
        return False, None
    return True, rng.choice(standing).id


def draw_card_not_in_play(state: GameState, rng: random.Random | None = None) -> str:
    """
    Draw a card nobody is holding yet.
    With every card on the table, fall back to the full deck (reshuffle).
    """
    rng = rng or random.Random()
    in_play = get_cards_in_play(state)
    available = [c for c in full_deck() if c not in in_play]
    return rng.choice(available or full_deck())


def draw_distinct_cards(state: GameState, count: int, rng: random.Random | None = None) -> list[str]:
    rng = rng or random.Random()
    in_play = get_cards_in_play(state)
    available = [c for c in full_deck() if c not in in_play]
    if len(available) < count:
        available = full_deck()
    return rng.sample(available, count)


def print_game_state(state: GameState) -> None:
    """Print a one-screen view of a game state (for CLI demos)."""
    print(f"\n=== {state.GAME_TYPE} | phase: {state.current_phase} ===")

    if isinstance(state, HorseRaceState):
        for suit, progress in state.race_progress.items():
            track = "#" * progress + "." * (state.finish_line - progress)
            print(f"  {suit:9} [{track}] odds x{state.odds[suit]}")
        for bet in state.bets:
            lock = " (locked)" if bet.locked else ""
            print(f"  bet: {bet.player_name} {bet.amount} on {bet.suit}{lock}")
        if state.winner:
            print(f"  winner: {state.winner}")
        for payout in state.payouts:
            print(f"  payout: {payout.player_name} hands out {payout.payout}")

    elif isinstance(state, BeerPongState):
        for key in ("team1", "team2"):
            team = state.team(key)
            marker = "<-" if state.current_turn == key else "  "
            print(f"  {team.name:8} cups {len(team.remaining_cups()):2} score {team.score} {marker}")
        print(f"  shots: {len(state.shots)}")
        if state.winner:
            print(f"  winner: {state.team(state.winner).name}")

    elif isinstance(state, RideBusState):
        print(f"  round {state.current_round}")
        for pc in state.player_cards:
            print(f"  {pc.player_name:10} cards {' '.join(pc.cards) or '-':40} "
                  f"given {pc.drinks_given} taken {pc.drinks_taken}")
        if state.community_cards:
            shown = state.community_cards[:state.flipped_community_cards]
            print(f"  community: {' '.join(shown)} (+{8 - len(shown)} face down)")
        if state.bus_rider_id:
            print(f"  bus rider: {state.bus_rider_id} streak {state.bus_streak} drinks {state.bus_drinks}")

    elif isinstance(state, KingsCupState):
        names = [p.name for p in state.players]
        print(f"  players: {', '.join(names)}")
        print(f"  card: {state.current_card} -> {state.current_rule}")
        print(f"  drawn: {len(state.drawn_cards)}/52")
