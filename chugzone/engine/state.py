"""
Game state representation.
One tagged state type per game; reducers work on copies and never mutate the input.
Includes JSON serialization for the per-game state rows.
"""

import json
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, ClassVar

from chugzone.engine import (
    GAME_BEER_PONG,
    GAME_HORSE_RACE,
    GAME_KINGS_CUP_LOCAL,
    GAME_RIDE_BUS,
    SUITS,
)


def _int(v: Any, default: int) -> int:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _float(v: Any, default: float) -> float:
    try:
        return float(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value]


def _dict_list(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [x for x in value if isinstance(x, dict)]


def _phase(data: dict[str, Any], key: str, phases: tuple[str, ...], default: str) -> str:
    """Stored phases are checked against the game's phase enum instead of being trusted."""
    phase = data.get(key) or default
    if phase not in phases:
        raise ValueError(f"Unknown phase {phase!r}; expected one of {', '.join(phases)}")
    return phase


# ===== Horse Race =====

INITIAL_ODDS = {"spades": 4.0, "hearts": 3.0, "diamonds": 2.0, "clubs": 1.0}


@dataclass
class HorseRaceBet:
    player_id: str
    player_name: str
    suit: str
    amount: int
    locked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "suit": self.suit,
            "amount": self.amount,
            "locked": self.locked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HorseRaceBet":
        return cls(
            player_id=str(data.get("player_id") or ""),
            player_name=str(data.get("player_name") or ""),
            suit=str(data.get("suit") or ""),
            amount=_int(data.get("amount"), 0),
            locked=bool(data.get("locked", False)),
        )


@dataclass
class HorseRacePayout:
    """What a single bet paid out once the race finished."""
    player_id: str
    player_name: str
    suit: str
    amount: int
    payout: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "suit": self.suit,
            "amount": self.amount,
            "payout": self.payout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HorseRacePayout":
        return cls(
            player_id=str(data.get("player_id") or ""),
            player_name=str(data.get("player_name") or ""),
            suit=str(data.get("suit") or ""),
            amount=_int(data.get("amount"), 0),
            payout=_float(data.get("payout"), 0.0),
        )


@dataclass
class HorseRaceState:
    GAME_TYPE: ClassVar[str] = GAME_HORSE_RACE
    PHASES: ClassVar[tuple[str, ...]] = ("betting", "racing", "finished")

    current_phase: str = "betting"
    bets: list[HorseRaceBet] = field(default_factory=list)
    # suit -> number of cards drawn for it (0..finish_line)
    race_progress: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SUITS})
    # suit -> payout multiplier
    odds: dict[str, float] = field(default_factory=lambda: dict(INITIAL_ODDS))
    drawn_cards: list[str] = field(default_factory=list)  # suits, in draw order
    winner: str | None = None
    payouts: list[HorseRacePayout] = field(default_factory=list)
    finish_line: int = 8

    def copy(self) -> "HorseRaceState":
        return deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_phase": self.current_phase,
            "bets": [b.to_dict() for b in self.bets],
            "race_progress": dict(self.race_progress),
            "odds": dict(self.odds),
            "drawn_cards": list(self.drawn_cards),
            "winner": self.winner,
            "payouts": [p.to_dict() for p in self.payouts],
            "finish_line": self.finish_line,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HorseRaceState":
        progress = data.get("race_progress") if isinstance(data.get("race_progress"), dict) else {}
        odds = data.get("odds") if isinstance(data.get("odds"), dict) else {}
        winner = data.get("winner")
        return cls(
            current_phase=_phase(data, "current_phase", cls.PHASES, "betting"),
            bets=[HorseRaceBet.from_dict(b) for b in _dict_list(data.get("bets"))],
            race_progress={s: _int(progress.get(s), 0) for s in SUITS},
            odds={s: _float(odds.get(s), INITIAL_ODDS[s]) for s in SUITS},
            drawn_cards=[s for s in _str_list(data.get("drawn_cards")) if s in SUITS],
            winner=winner if winner in SUITS else None,
            payouts=[HorseRacePayout.from_dict(p) for p in _dict_list(data.get("payouts"))],
            finish_line=_int(data.get("finish_line"), 8),
        )


# ===== Beer Pong =====

@dataclass
class Cup:
    id: str
    x: float
    y: float
    hit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "x": self.x, "y": self.y, "hit": self.hit}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cup":
        return cls(
            id=str(data.get("id") or ""),
            x=_float(data.get("x"), 0.0),
            y=_float(data.get("y"), 0.0),
            hit=bool(data.get("hit", False)),
        )


@dataclass
class Team:
    name: str
    cups: list[Cup] = field(default_factory=list)
    score: int = 0
    players: list[str] = field(default_factory=list)  # SessionPlayer ids

    def remaining_cups(self) -> list[Cup]:
        return [c for c in self.cups if not c.hit]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "cups": [c.to_dict() for c in self.cups],
            "score": self.score,
            "players": list(self.players),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Team":
        if not isinstance(data, dict):
            data = {}
        return cls(
            name=str(data.get("name") or ""),
            cups=[Cup.from_dict(c) for c in _dict_list(data.get("cups"))],
            score=_int(data.get("score"), 0),
            players=_str_list(data.get("players")),
        )


@dataclass
class Shot:
    player_id: str
    player_name: str
    power: int
    angle: int
    hit: bool = False
    timestamp: float = 0.0
    team: str = "team1"  # team that threw it

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "power": self.power,
            "angle": self.angle,
            "hit": self.hit,
            "timestamp": self.timestamp,
            "team": self.team,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Shot":
        return cls(
            player_id=str(data.get("player_id") or ""),
            player_name=str(data.get("player_name") or ""),
            power=_int(data.get("power"), 0),
            angle=_int(data.get("angle"), 0),
            hit=bool(data.get("hit", False)),
            timestamp=_float(data.get("timestamp"), 0.0),
            team=str(data.get("team") or "team1"),
        )


@dataclass
class BeerPongSettings:
    cups_per_side: int = 10
    allow_bounce: bool = True
    allow_reracks: bool = True
    redemption: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "cups_per_side": self.cups_per_side,
            "allow_bounce": self.allow_bounce,
            "allow_reracks": self.allow_reracks,
            "redemption": self.redemption,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BeerPongSettings":
        if not isinstance(data, dict):
            data = {}
        return cls(
            cups_per_side=_int(data.get("cups_per_side"), 10),
            allow_bounce=bool(data.get("allow_bounce", True)),
            allow_reracks=bool(data.get("allow_reracks", True)),
            redemption=bool(data.get("redemption", True)),
        )


@dataclass
class BracketMatch:
    id: str
    round: int
    team1: str | None = None
    team2: str | None = None
    winner: str | None = None
    score: dict[str, int] | None = None  # {"team1": n, "team2": n}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "round": self.round,
            "team1": self.team1,
            "team2": self.team2,
            "winner": self.winner,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BracketMatch":
        score = data.get("score")
        return cls(
            id=str(data.get("id") or ""),
            round=_int(data.get("round"), 1),
            team1=data.get("team1"),
            team2=data.get("team2"),
            winner=data.get("winner"),
            score={k: _int(v, 0) for k, v in score.items()} if isinstance(score, dict) else None,
        )


@dataclass
class BracketData:
    """Tournament bracket. Display-only: the host replaces it wholesale."""
    matches: list[BracketMatch] = field(default_factory=list)
    current_round: int = 1
    champion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "current_round": self.current_round,
            "champion": self.champion,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BracketData":
        return cls(
            matches=[BracketMatch.from_dict(m) for m in _dict_list(data.get("matches"))],
            current_round=_int(data.get("current_round"), 1),
            champion=data.get("champion"),
        )


@dataclass
class BeerPongState:
    GAME_TYPE: ClassVar[str] = GAME_BEER_PONG
    PHASES: ClassVar[tuple[str, ...]] = ("lobby", "playing", "finished")
    MODES: ClassVar[tuple[str, ...]] = ("head_to_head", "tournament")

    team1: Team
    team2: Team
    mode: str = "head_to_head"
    current_phase: str = "lobby"
    current_turn: str = "team1"
    shots: list[Shot] = field(default_factory=list)
    settings: BeerPongSettings = field(default_factory=BeerPongSettings)
    bracket_data: BracketData | None = None
    current_match_index: int = 0
    # Shot submitted by a player, waiting for the host to resolve it
    pending_shot: Shot | None = None
    winner: str | None = None  # "team1" | "team2"

    def copy(self) -> "BeerPongState":
        return deepcopy(self)

    def team(self, key: str) -> Team:
        if key == "team1":
            return self.team1
        if key == "team2":
            return self.team2
        raise ValueError(f"Unknown team: {key}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "current_phase": self.current_phase,
            "game_state": {
                "team1": self.team1.to_dict(),
                "team2": self.team2.to_dict(),
                "current_turn": self.current_turn,
                "shots": [s.to_dict() for s in self.shots],
                "settings": self.settings.to_dict(),
                "pending_shot": self.pending_shot.to_dict() if self.pending_shot else None,
                "winner": self.winner,
            },
            "bracket_data": self.bracket_data.to_dict() if self.bracket_data else None,
            "current_match_index": self.current_match_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BeerPongState":
        game = data.get("game_state") if isinstance(data.get("game_state"), dict) else {}
        mode = data.get("mode") or "head_to_head"
        if mode not in cls.MODES:
            raise ValueError(f"Unknown beer pong mode: {mode!r}")
        turn = game.get("current_turn") or "team1"
        winner = game.get("winner")
        bracket = data.get("bracket_data")
        pending = game.get("pending_shot")
        return cls(
            team1=Team.from_dict(game.get("team1")),
            team2=Team.from_dict(game.get("team2")),
            mode=mode,
            current_phase=_phase(data, "current_phase", cls.PHASES, "lobby"),
            current_turn=turn if turn in ("team1", "team2") else "team1",
            shots=[Shot.from_dict(s) for s in _dict_list(game.get("shots"))],
            settings=BeerPongSettings.from_dict(game.get("settings")),
            bracket_data=BracketData.from_dict(bracket) if isinstance(bracket, dict) else None,
            current_match_index=_int(data.get("current_match_index"), 0),
            pending_shot=Shot.from_dict(pending) if isinstance(pending, dict) else None,
            winner=winner if winner in ("team1", "team2") else None,
        )


# ===== Ride the Bus =====

@dataclass
class RideBusPlayerCards:
    player_id: str
    player_name: str
    cards: list[str] = field(default_factory=list)
    drinks_given: int = 0
    drinks_taken: int = 0
    matches: int = 0  # community-card matches

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "cards": list(self.cards),
            "drinks_given": self.drinks_given,
            "drinks_taken": self.drinks_taken,
            "matches": self.matches,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RideBusPlayerCards":
        return cls(
            player_id=str(data.get("player_id") or ""),
            player_name=str(data.get("player_name") or ""),
            cards=_str_list(data.get("cards")),
            drinks_given=_int(data.get("drinks_given"), 0),
            drinks_taken=_int(data.get("drinks_taken"), 0),
            matches=_int(data.get("matches"), 0),
        )


@dataclass
class RideBusChoice:
    """Entry of the action log. A pending guess has no result or card yet."""
    player_id: str
    player_name: str
    choice: str
    phase: str = ""
    result: str | None = None  # "correct" | "wrong"
    card: str | None = None
    drinks: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "choice": self.choice,
            "phase": self.phase,
            "result": self.result,
            "card": self.card,
            "drinks": self.drinks,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RideBusChoice":
        return cls(
            player_id=str(data.get("player_id") or ""),
            player_name=str(data.get("player_name") or ""),
            choice=str(data.get("choice") or ""),
            phase=str(data.get("phase") or ""),
            result=data.get("result"),
            card=data.get("card"),
            drinks=_int(data.get("drinks"), 0),
        )


@dataclass
class PendingMatch:
    """A player's card matched a revealed community card; they must give it away or take it."""
    player_id: str
    player_name: str
    card: str
    community_card: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "card": self.card,
            "community_card": self.community_card,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingMatch":
        return cls(
            player_id=str(data.get("player_id") or ""),
            player_name=str(data.get("player_name") or ""),
            card=str(data.get("card") or ""),
            community_card=str(data.get("community_card") or ""),
        )


@dataclass
class RideBusState:
    GAME_TYPE: ClassVar[str] = GAME_RIDE_BUS
    PHASES: ClassVar[tuple[str, ...]] = (
        "lobby", "round1", "round2", "round3", "round4",
        "community", "bus_rider", "riding_bus", "finished",
    )

    current_phase: str = "lobby"
    current_round: int = 1
    current_player_index: int = 0
    # Turn order is the order of this list (join order at game start)
    player_cards: list[RideBusPlayerCards] = field(default_factory=list)
    community_cards: list[str] = field(default_factory=list)
    flipped_community_cards: int = 0
    pending_matches: list[PendingMatch] = field(default_factory=list)
    pending_guess: RideBusChoice | None = None
    choices: list[RideBusChoice] = field(default_factory=list)
    bus_rider_id: str | None = None
    # Cards laid on the bus during the ride; the last one is what the rider guesses against
    bus_cards: list[str] = field(default_factory=list)
    bus_streak: int = 0
    bus_drinks: int = 0

    def copy(self) -> "RideBusState":
        return deepcopy(self)

    def get_player(self, player_id: str) -> RideBusPlayerCards | None:
        return next((pc for pc in self.player_cards if pc.player_id == player_id), None)

    def current_player(self) -> RideBusPlayerCards | None:
        if not self.player_cards:
            return None
        return self.player_cards[self.current_player_index % len(self.player_cards)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_phase": self.current_phase,
            "current_round": self.current_round,
            "current_player_index": self.current_player_index,
            "player_cards": [pc.to_dict() for pc in self.player_cards],
            "community_cards": list(self.community_cards),
            "flipped_community_cards": self.flipped_community_cards,
            "pending_matches": [m.to_dict() for m in self.pending_matches],
            "pending_guess": self.pending_guess.to_dict() if self.pending_guess else None,
            "choices": [c.to_dict() for c in self.choices],
            "bus_rider_id": self.bus_rider_id,
            "bus_cards": list(self.bus_cards),
            "bus_streak": self.bus_streak,
            "bus_drinks": self.bus_drinks,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RideBusState":
        pending = data.get("pending_guess")
        return cls(
            current_phase=_phase(data, "current_phase", cls.PHASES, "lobby"),
            current_round=_int(data.get("current_round"), 1),
            current_player_index=_int(data.get("current_player_index"), 0),
            player_cards=[RideBusPlayerCards.from_dict(pc) for pc in _dict_list(data.get("player_cards"))],
            community_cards=_str_list(data.get("community_cards")),
            flipped_community_cards=_int(data.get("flipped_community_cards"), 0),
            pending_matches=[PendingMatch.from_dict(m) for m in _dict_list(data.get("pending_matches"))],
            pending_guess=RideBusChoice.from_dict(pending) if isinstance(pending, dict) else None,
            choices=[RideBusChoice.from_dict(c) for c in _dict_list(data.get("choices"))],
            bus_rider_id=data.get("bus_rider_id"),
            bus_cards=_str_list(data.get("bus_cards")),
            bus_streak=_int(data.get("bus_streak"), 0),
            bus_drinks=_int(data.get("bus_drinks"), 0),
        )


# ===== King's Cup (single device) =====

@dataclass
class KingsCupPlayer:
    id: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KingsCupPlayer":
        return cls(id=str(data.get("id") or ""), name=str(data.get("name") or ""))


@dataclass
class KingsCupRule:
    card: str  # rank, e.g. "K"
    rule: str

    def to_dict(self) -> dict[str, Any]:
        return {"card": self.card, "rule": self.rule}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KingsCupRule":
        return cls(card=str(data.get("card") or ""), rule=str(data.get("rule") or ""))


@dataclass
class Mate:
    """Two players who drink whenever either of them drinks."""
    id: str
    player1_id: str
    player2_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "player1_id": self.player1_id, "player2_id": self.player2_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mate":
        return cls(
            id=str(data.get("id") or ""),
            player1_id=str(data.get("player1_id") or ""),
            player2_id=str(data.get("player2_id") or ""),
        )


@dataclass
class KingsCupState:
    GAME_TYPE: ClassVar[str] = GAME_KINGS_CUP_LOCAL
    PHASES: ClassVar[tuple[str, ...]] = ("playing", "finished")

    current_phase: str = "playing"
    players: list[KingsCupPlayer] = field(default_factory=list)
    current_player_index: int = 0
    rules: list[KingsCupRule] = field(default_factory=list)
    drawn_cards: list[str] = field(default_factory=list)
    current_card: str | None = None
    current_rule: str | None = None
    mates: list[Mate] = field(default_factory=list)
    stack_dates: bool = False

    def copy(self) -> "KingsCupState":
        return deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_phase": self.current_phase,
            "players": [p.to_dict() for p in self.players],
            "current_player_index": self.current_player_index,
            "rules": [r.to_dict() for r in self.rules],
            "drawn_cards": list(self.drawn_cards),
            "current_card": self.current_card,
            "current_rule": self.current_rule,
            "mates": [m.to_dict() for m in self.mates],
            "stack_dates": self.stack_dates,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KingsCupState":
        return cls(
            current_phase=_phase(data, "current_phase", cls.PHASES, "playing"),
            players=[KingsCupPlayer.from_dict(p) for p in _dict_list(data.get("players"))],
            current_player_index=_int(data.get("current_player_index"), 0),
            rules=[KingsCupRule.from_dict(r) for r in _dict_list(data.get("rules"))],
            drawn_cards=_str_list(data.get("drawn_cards")),
            current_card=data.get("current_card"),
            current_rule=data.get("current_rule"),
            mates=[Mate.from_dict(m) for m in _dict_list(data.get("mates"))],
            stack_dates=bool(data.get("stack_dates", False)),
        )


# ===== Tagged (de)serialization =====

GameState = HorseRaceState | BeerPongState | RideBusState | KingsCupState

STATE_TYPES: dict[str, type] = {
    GAME_HORSE_RACE: HorseRaceState,
    GAME_BEER_PONG: BeerPongState,
    GAME_RIDE_BUS: RideBusState,
    GAME_KINGS_CUP_LOCAL: KingsCupState,
}


def state_from_dict(game_type: str, data: dict[str, Any]) -> GameState:
    """Build the typed state for game_type. Raises ValueError for unknown games or phases."""
    state_cls = STATE_TYPES.get(game_type)
    if state_cls is None:
        raise ValueError(f"Unknown game type: {game_type}")
    if not isinstance(data, dict):
        data = {}
    return state_cls.from_dict(data)


def state_to_json(state: GameState) -> str:
    return json.dumps(state.to_dict())


def state_from_json(game_type: str, json_str: str) -> GameState:
    return state_from_dict(game_type, json.loads(json_str))
