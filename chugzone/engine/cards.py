"""
Playing card helpers. Cards are "rank-suit" strings (e.g. "10-hearts", "A-spades").
"""

from chugzone.engine import RANKS, RED_SUITS, SUITS


def make_card(rank: str, suit: str) -> str:
    return f"{rank}-{suit}"


def parse_card(card: str) -> tuple[str, str]:
    """Split a card into (rank, suit). Raises ValueError for anything that is not a real card."""
    if not isinstance(card, str) or "-" not in card:
        raise ValueError(f"Invalid card: {card!r}")
    rank, suit = card.rsplit("-", 1)
    if rank not in RANKS or suit not in SUITS:
        raise ValueError(f"Invalid card: {card!r}")
    return rank, suit


def card_rank(card: str) -> str:
    return parse_card(card)[0]


def card_suit(card: str) -> str:
    return parse_card(card)[1]


def rank_value(card: str) -> int:
    """Position of the card's rank in RANKS (2 lowest, ace highest)."""
    return RANKS.index(card_rank(card))


def is_red(card: str) -> bool:
    return card_suit(card) in RED_SUITS


def full_deck() -> list[str]:
    return [make_card(rank, suit) for suit in SUITS for rank in RANKS]


def suit_deck() -> list[str]:
    """The suit of every card in a 52-card deck (13 of each), used for the horse race."""
    return [suit for suit in SUITS for _ in RANKS]
