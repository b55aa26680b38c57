"""
Session store: sessions, their rosters, and the per-game state rows.
All writes commit immediately; the change feed in sync.py publishes them.
"""

import json
import logging
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from chugzone.engine import GAME_TYPES
from chugzone.engine.join_codes import generate_join_code, normalize_join_code, validate_join_code
from chugzone.engine.state import GameState, state_from_json, state_to_json
from chugzone.engine.utils import initialize_game_state

from . import sync  # noqa: F401  (registers the change-feed listeners)
from .models import GAME_STATE_TABLES, SESSION_STATUSES, GameSession, SessionPlayer

logger = logging.getLogger(__name__)

JOINABLE_STATUSES = ("waiting", "active")
MAX_JOIN_CODE_ATTEMPTS = 20


class StoreError(Exception):
    """Base class for session store failures."""


class SessionNotFound(StoreError):
    pass


class WriteConflict(StoreError):
    """Someone else wrote the game state since it was read."""


class JoinCodeUnavailable(StoreError):
    pass


class SessionStore:
    def __init__(self, db: Session):
        self.db = db

    # ===== Sessions =====

    def create_session(
        self,
        game_type: str,
        host_name: str,
        initial_state: GameState | None = None,
    ) -> GameSession:
        """Allocate a join code and create a waiting session with its game state row (version 1)."""
        if game_type not in GAME_TYPES:
            raise ValueError(f"Unknown game type: {game_type}")
        host_name = (host_name or "").strip()
        if not host_name:
            raise ValueError("Please enter your name")
        if initial_state is None:
            initial_state = initialize_game_state(game_type)
        if initial_state.GAME_TYPE != game_type:
            raise ValueError(f"Initial state is for {initial_state.GAME_TYPE}, not {game_type}")

        session = GameSession(
            id=str(uuid.uuid4()),
            join_code=self._allocate_join_code(),
            game_type=game_type,
            host_name=host_name,
            status="waiting",
        )
        self.db.add(session)
        self.db.flush()
        row_cls = GAME_STATE_TABLES[game_type]
        self.db.add(row_cls(session_id=session.id, state=state_to_json(initial_state)))
        self.db.commit()
        logger.info("Created %s session %s (code %s) for %s", game_type, session.id, session.join_code, host_name)
        return session

    def _allocate_join_code(self) -> str:
        # Codes only need to be unique among sessions people can still join
        for _ in range(MAX_JOIN_CODE_ATTEMPTS):
            code = generate_join_code()
            taken = (
                self.db.query(GameSession.id)
                .filter(GameSession.join_code == code, GameSession.status.in_(JOINABLE_STATUSES))
                .first()
            )
            if not taken:
                return code
        logger.error("No free join code after %d attempts", MAX_JOIN_CODE_ATTEMPTS)
        raise JoinCodeUnavailable("Could not generate unique join code")

    def get_session(self, session_id: str) -> GameSession:
        session = self.db.query(GameSession).filter(GameSession.id == session_id).first()
        if not session:
            raise SessionNotFound("Session not found")
        return session

    def find_joinable(self, code: str) -> GameSession:
        session = (
            self.db.query(GameSession)
            .filter(
                GameSession.join_code == normalize_join_code(code),
                GameSession.status.in_(JOINABLE_STATUSES),
            )
            .order_by(GameSession.created_at.desc())
            .first()
        )
        if not session:
            # Wrong code and finished session look the same to the caller
            raise SessionNotFound("Session not found")
        return session

    def set_status(self, session_id: str, status: str) -> GameSession:
        """Host-only and unconditional: any status may follow any other."""
        if status not in SESSION_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        session = self.get_session(session_id)
        if session.status != status:
            old = session.status
            session.status = status
            self.db.commit()
            logger.info("Session %s status %s -> %s", session_id, old, status)
        return session

    # ===== Players =====

    def join_session(self, code: str, player_name: str) -> SessionPlayer:
        if not validate_join_code(code):
            raise ValueError("Invalid join code")
        player_name = (player_name or "").strip()
        if not player_name:
            raise ValueError("Please enter your name")
        session = self.find_joinable(code)
        player = self._insert_player(session.id, player_name, None)
        logger.info("%s joined session %s", player_name, session.id)
        return player

    def add_player(self, session_id: str, player_name: str) -> SessionPlayer:
        """A player added by the host who plays on the host's device."""
        player_name = (player_name or "").strip()
        if not player_name:
            raise ValueError("Please enter a player name")
        self.get_session(session_id)
        player = self._insert_player(session_id, player_name, {"manual": True})
        logger.info("Host added %s to session %s", player_name, session_id)
        return player

    def _insert_player(self, session_id: str, player_name: str, player_data: dict | None) -> SessionPlayer:
        last = (
            self.db.query(func.max(SessionPlayer.join_order))
            .filter(SessionPlayer.session_id == session_id)
            .scalar()
        )
        player = SessionPlayer(
            id=str(uuid.uuid4()),
            session_id=session_id,
            player_name=player_name,
            player_data=json.dumps(player_data) if player_data else None,
            join_order=(last or 0) + 1,
        )
        self.db.add(player)
        self.db.commit()
        return player

    def get_player(self, session_id: str, player_id: str) -> SessionPlayer:
        player = (
            self.db.query(SessionPlayer)
            .filter(SessionPlayer.session_id == session_id, SessionPlayer.id == player_id)
            .first()
        )
        if not player:
            raise SessionNotFound("Player not found")
        return player

    def remove_player(
        self,
        session_id: str,
        player_id: str,
        state: GameState | None = None,
        expected_version: int | None = None,
    ) -> SessionPlayer:
        """
        Delete a roster row. When a state is given it is compare-and-swap written
        in the same transaction, so either both land or neither does.
        """
        player = self.get_player(session_id, player_id)
        if state is not None:
            self._stage_state(session_id, state, expected_version)
        self.db.delete(player)
        self._flush(session_id)
        self.db.commit()
        logger.info("Removed %s from session %s", player.player_name, session_id)
        return player

    def list_players(self, session_id: str) -> list[SessionPlayer]:
        """Roster in join order, which is also the turn order."""
        return (
            self.db.query(SessionPlayer)
            .filter(SessionPlayer.session_id == session_id)
            .order_by(SessionPlayer.join_order)
            .all()
        )

    # ===== Game state =====

    def _state_row(self, session: GameSession):
        row_cls = GAME_STATE_TABLES[session.game_type]
        row = (
            self.db.query(row_cls)
            .populate_existing()
            .filter(row_cls.session_id == session.id)
            .first()
        )
        if not row:
            raise SessionNotFound("Session not found")
        return row

    def load_state(self, session_id: str) -> tuple[GameState, int]:
        """Current state and the version it was read at."""
        session = self.get_session(session_id)
        row = self._state_row(session)
        return state_from_json(session.game_type, row.state), row.version

    def save_state(self, session_id: str, state: GameState, expected_version: int) -> int:
        """
        Compare-and-swap write of the game state.
        Raises WriteConflict if the stored version is no longer expected_version.
        Returns the new version.
        """
        row = self._stage_state(session_id, state, expected_version)
        self._flush(session_id)
        new_version = row.version
        self.db.commit()
        return new_version

    def _stage_state(self, session_id: str, state: GameState, expected_version: int | None):
        session = self.get_session(session_id)
        if state.GAME_TYPE != session.game_type:
            raise ValueError(f"Session {session_id} plays {session.game_type}, not {state.GAME_TYPE}")
        row = self._state_row(session)
        if row.version != expected_version:
            logger.warning(
                "Write conflict on session %s: expected version %s, found %s",
                session_id, expected_version, row.version,
            )
            raise WriteConflict("Game state changed, reload and try again")
        row.state = state_to_json(state)
        return row

    def _flush(self, session_id: str) -> None:
        try:
            self.db.flush()
        except StaleDataError:
            # Another writer committed between our read and our UPDATE
            self.db.rollback()
            logger.warning("Write conflict on session %s at flush", session_id)
            raise WriteConflict("Game state changed, reload and try again")
