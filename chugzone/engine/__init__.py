"""
ChugZone party game engine.
Pure state machines for the session games; no web framework, database, or randomness.
"""

SUITS = ("spades", "hearts", "diamonds", "clubs")
RED_SUITS = ("hearts", "diamonds")

# Ace high, so "higher"/"lower" guesses compare on index in this tuple.
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")

GAME_KINGS_CUP_LOCAL = "kings-cup-local"
GAME_HORSE_RACE = "horse-race"
GAME_BEER_PONG = "beer-pong"
GAME_RIDE_BUS = "ride-bus"
GAME_TYPES = (GAME_KINGS_CUP_LOCAL, GAME_HORSE_RACE, GAME_BEER_PONG, GAME_RIDE_BUS)

# Actor id used for host-issued actions (players act under their SessionPlayer id).
HOST_ACTOR = "host"
