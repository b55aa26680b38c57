"""
Beer pong: two teams of cups, players throw with a power/angle pair and the host
decides whether the throw landed.

Phases: lobby -> playing -> finished
"""

from chugzone.engine import GAME_BEER_PONG
from chugzone.engine.actions import Action
from chugzone.engine.events import (
    GameEvent,
    bracket_updated,
    game_finished,
    game_started,
    phase_changed,
    shot_resolved,
    shot_taken,
    team_joined,
)
from chugzone.engine.state import BeerPongState, BracketData, Cup, Shot, Team

TEAMS = ("team1", "team2")
MIN_POWER, MAX_POWER = 20, 100
MIN_ANGLE, MAX_ANGLE = -45, 45
# Best possible throw (full power, dead straight) still only lands this often
MAX_HIT_CHANCE = 0.7

# Rows of the cup triangle, back row first
CUP_ROWS = (4, 3, 2, 1)
CUP_SPACING_X = 8
CUP_SPACING_Y = 15
CUP_BASE_Y = 30
SIDE_BASE_X = {"left": 70, "right": 30}

PHASE_ALLOWED_ACTIONS = {
    "lobby": ["join_team", "start_game", "set_bracket"],
    "playing": ["take_shot", "resolve_shot", "set_bracket"],
    "finished": ["set_bracket"],
}


def build_cups(side: str) -> list[Cup]:
    """4-3-2-1 triangle for one side of the table; ids are '<side>-<n>'."""
    base_x = SIDE_BASE_X[side]
    cups = []
    for row, cups_in_row in enumerate(CUP_ROWS):
        for col in range(cups_in_row):
            cups.append(Cup(
                id=f"{side}-{len(cups)}",
                x=base_x + (col - cups_in_row / 2) * CUP_SPACING_X,
                y=CUP_BASE_Y + row * CUP_SPACING_Y,
            ))
    return cups


def hit_chance(power: int, angle: int) -> float:
    return (power / 100) * (1 - abs(angle) / 90) * MAX_HIT_CHANCE


def other_team(team: str) -> str:
    return "team2" if team == "team1" else "team1"


def _check_throw(power, angle) -> None:
    if isinstance(power, bool) or not isinstance(power, (int, float)) or not MIN_POWER <= power <= MAX_POWER:
        raise ValueError(f"Power must be between {MIN_POWER} and {MAX_POWER}, got {power}")
    if isinstance(angle, bool) or not isinstance(angle, (int, float)) or not MIN_ANGLE <= angle <= MAX_ANGLE:
        raise ValueError(f"Angle must be between {MIN_ANGLE} and {MAX_ANGLE}, got {angle}")


def apply(state: BeerPongState, action: Action) -> tuple[BeerPongState, list[GameEvent]]:
    new_state = state.copy()

    if action.type == "join_team":
        return _handle_join_team(new_state, action)
    if action.type == "start_game":
        return _handle_start_game(new_state)
    if action.type == "take_shot":
        return _handle_take_shot(new_state, action)
    if action.type == "resolve_shot":
        return _handle_resolve_shot(new_state, action)
    if action.type == "set_bracket":
        return _handle_set_bracket(new_state, action)
    raise ValueError(f"Unknown action type: {action.type}")


def _handle_join_team(state: BeerPongState, action: Action) -> tuple[BeerPongState, list[GameEvent]]:
    player_id = action.payload.get("player_id")
    team_key = action.payload.get("team")
    if not player_id:
        raise ValueError("join_team requires a player")
    if team_key not in TEAMS:
        raise ValueError(f"Unknown team: {team_key}")

    for key in TEAMS:
        team = state.team(key)
        team.players = [p for p in team.players if p != player_id]
    state.team(team_key).players.append(player_id)
    return state, [team_joined(player_id, team_key)]


def _handle_start_game(state: BeerPongState) -> tuple[BeerPongState, list[GameEvent]]:
    state.current_phase = "playing"
    state.current_turn = "team1"
    return state, [phase_changed("lobby", "playing"), game_started(GAME_BEER_PONG)]


def _handle_take_shot(state: BeerPongState, action: Action) -> tuple[BeerPongState, list[GameEvent]]:
    if state.pending_shot is not None:
        raise ValueError("A shot is already waiting to be resolved")

    player_id = action.payload.get("player_id")
    power = action.payload.get("power")
    angle = action.payload.get("angle")
    if not player_id:
        raise ValueError("Shot must name a player")
    _check_throw(power, angle)

    shooting = state.team(state.current_turn)
    if shooting.players and player_id not in shooting.players:
        raise ValueError(f"It is {shooting.name or state.current_turn}'s turn to shoot")

    state.pending_shot = Shot(
        player_id=player_id,
        player_name=action.payload.get("player_name") or "",
        power=int(power),
        angle=int(angle),
        team=state.current_turn,
    )
    return state, [shot_taken(state.current_turn, player_id, int(power), int(angle))]


def _handle_resolve_shot(state: BeerPongState, action: Action) -> tuple[BeerPongState, list[GameEvent]]:
    shot = state.pending_shot
    if shot is None:
        fired = action.payload.get("shot")
        if not fired:
            raise ValueError("No shot to resolve")
        _check_throw(fired.get("power"), fired.get("angle"))
        shot = Shot(
            player_id=str(fired.get("player_id") or "host"),
            player_name=str(fired.get("player_name") or ""),
            power=int(fired["power"]),
            angle=int(fired["angle"]),
            team=state.current_turn,
        )

    shooting_key = state.current_turn
    target_key = other_team(shooting_key)
    shooting: Team = state.team(shooting_key)
    target: Team = state.team(target_key)

    hit = bool(action.payload.get("hit"))
    cup_id = action.payload.get("cup_id") if hit else None
    if hit:
        cup = next((c for c in target.cups if c.id == cup_id), None)
        if cup is None:
            raise ValueError(f"Cup {cup_id} is not on {target_key}'s side")
        if cup.hit:
            raise ValueError(f"Cup {cup_id} has already been hit")
        cup.hit = True
        shooting.score += 1

    shot.hit = hit
    shot.team = shooting_key
    shot.timestamp = float(action.payload.get("timestamp") or 0.0)
    state.shots.append(shot)
    state.pending_shot = None
    state.current_turn = target_key

    remaining = len(target.remaining_cups())
    events = [shot_resolved(shooting_key, shot.player_id, hit, cup_id, remaining)]
    if remaining == 0:
        state.winner = shooting_key
        state.current_phase = "finished"
        events.append(phase_changed("playing", "finished"))
        events.append(game_finished(GAME_BEER_PONG, shooting_key, team_name=shooting.name))
    return state, events


def _handle_set_bracket(state: BeerPongState, action: Action) -> tuple[BeerPongState, list[GameEvent]]:
    if state.mode != "tournament":
        raise ValueError("Brackets are only used in tournament mode")
    bracket = action.payload.get("bracket_data")
    state.bracket_data = BracketData.from_dict(bracket) if isinstance(bracket, dict) else BracketData()
    index = action.payload.get("current_match_index") or 0
    if not isinstance(index, int) or index < 0:
        raise ValueError(f"Invalid match index: {index}")
    state.current_match_index = index
    return state, [bracket_updated(index)]
