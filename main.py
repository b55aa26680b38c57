"""
Main entry point for the ChugZone game engine.
Plays each session game through a short scripted scenario, the way the host
device would drive it, and prints the state after the interesting steps.
"""

import random

from chugzone.engine import GAME_BEER_PONG, GAME_HORSE_RACE, GAME_KINGS_CUP_LOCAL, GAME_RIDE_BUS
from chugzone.engine.actions import (
    deal_community_cards,
    draw_card,
    draw_race_card,
    join_team,
    lock_bet,
    place_bet,
    reset_race,
    resolve_guess,
    resolve_match,
    resolve_shot,
    reveal_community_card,
    start_bus_ride,
    start_game,
    start_race,
    start_ride_bus,
    submit_guess,
    take_shot,
)
from chugzone.engine.queries import get_pending_match
from chugzone.engine.reducer import apply_action
from chugzone.engine.ride_bus import BUS_CHOICES, ROUND_CHOICES
from chugzone.engine.utils import (
    draw_card_not_in_play,
    draw_distinct_cards,
    generate_shot_outcome,
    initialize_game_state,
    print_game_state,
    shuffled_suit_deck,
)


def demo_horse_race(rng: random.Random):
    print("\n[SCENARIO 1: Horse Race]")
    state = initialize_game_state(GAME_HORSE_RACE)

    state, events = apply_action(state, place_bet("p1", "Sam", "spades", 10))
    state, _ = apply_action(state, lock_bet("p1"))
    state, _ = apply_action(state, place_bet("p2", "Rosie", "clubs", 5))
    print(f"  Events: {[e.type for e in events]}")

    state, _ = apply_action(state, start_race())
    deck = shuffled_suit_deck(rng.randrange(1000))
    while state.current_phase == "racing":
        state, events = apply_action(state, draw_race_card(deck.pop()))
    print_game_state(state)

    state, events = apply_action(state, reset_race())
    print(f"✓ Reset, odds now {state.odds}")


def demo_beer_pong(rng: random.Random):
    print("\n[SCENARIO 2: Beer Pong]")
    state = initialize_game_state(GAME_BEER_PONG)
    state, _ = apply_action(state, join_team("p1", "team1"))
    state, _ = apply_action(state, join_team("p2", "team2"))
    state, _ = apply_action(state, start_game())

    shooters = {"team1": ("p1", "Sam"), "team2": ("p2", "Rosie")}
    throws = 0
    while state.current_phase == "playing":
        player_id, name = shooters[state.current_turn]
        state, _ = apply_action(state, take_shot(player_id, name, power=100, angle=0))
        hit, cup_id = generate_shot_outcome(state, 100, 0, rng)
        state, _ = apply_action(state, resolve_shot(hit, cup_id, timestamp=float(throws)))
        throws += 1
    print(f"✓ Game over after {throws} throws")
    print_game_state(state)


def demo_ride_bus(rng: random.Random):
    print("\n[SCENARIO 3: Ride the Bus]")
    state = initialize_game_state(GAME_RIDE_BUS)
    state, _ = apply_action(state, start_ride_bus([
        {"id": "p1", "name": "Sam"},
        {"id": "p2", "name": "Rosie"},
        {"id": "p3", "name": "Merry"},
    ]))

    while state.current_phase.startswith("round"):
        player = state.current_player()
        choice = rng.choice(ROUND_CHOICES[state.current_round])
        state, _ = apply_action(state, submit_guess(player.player_id, choice))
        state, events = apply_action(state, resolve_guess(draw_card_not_in_play(state, rng)))
        result = events[0].payload
        print(f"  {player.player_name} said {choice}, got {result['card']}: "
              f"{'give' if result['correct'] else 'take'} {result['drinks']}")
    print_game_state(state)

    state, _ = apply_action(state, deal_community_cards(draw_distinct_cards(state, 8, rng)))
    while state.current_phase == "community":
        state, _ = apply_action(state, reveal_community_card())
        for pc in list(state.player_cards):
            if get_pending_match(state, pc.player_id):
                state, _ = apply_action(state, resolve_match(pc.player_id, "take"))
    print(f"✓ {state.bus_rider_id} rides the bus")

    state, _ = apply_action(state, start_bus_ride(draw_card_not_in_play(state, rng)))
    while state.current_phase == "riding_bus":
        state, _ = apply_action(state, submit_guess(state.bus_rider_id, rng.choice(BUS_CHOICES)))
        card, restart = draw_distinct_cards(state, 2, rng)
        state, _ = apply_action(state, resolve_guess(card, restart))
    print_game_state(state)


def demo_kings_cup(rng: random.Random):
    print("\n[SCENARIO 4: King's Cup]")
    state = initialize_game_state(GAME_KINGS_CUP_LOCAL)
    for _ in range(5):
        state, events = apply_action(state, draw_card(draw_card_not_in_play(state, rng)))
        drawn = events[0].payload
        print(f"  {drawn['player_id']} drew {drawn['card']}: {drawn['rule']}")
    print_game_state(state)


def main():
    print("ChugZone Party Game Engine")
    print("=" * 60)
    rng = random.Random(7)
    try:
        demo_horse_race(rng)
        demo_beer_pong(rng)
        demo_ride_bus(rng)
        demo_kings_cup(rng)
    except ValueError as e:
        print(f"✗ Action rejected: {e}")


if __name__ == "__main__":
    main()
