"""
SQLAlchemy models for sessions, their players, and per-game state.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey
from sqlalchemy.orm import declared_attr, relationship

from chugzone.engine import GAME_BEER_PONG, GAME_HORSE_RACE, GAME_KINGS_CUP_LOCAL, GAME_RIDE_BUS

from .database import Base

SESSION_STATUSES = ("waiting", "active", "finished")


class GameSession(Base):
    __tablename__ = "game_sessions"

    id = Column(String(36), primary_key=True)  # uuid
    join_code = Column(String(8), nullable=False, index=True)  # unique among waiting/active sessions only
    game_type = Column(String(32), nullable=False)
    host_name = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="waiting")  # waiting | active | finished
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    players = relationship(
        "SessionPlayer",
        back_populates="session",
        order_by="SessionPlayer.join_order",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "join_code": self.join_code,
            "game_type": self.game_type,
            "host_name": self.host_name,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SessionPlayer(Base):
    __tablename__ = "session_players"

    id = Column(String(36), primary_key=True)  # uuid; also the player's actor id in game actions
    session_id = Column(String(36), ForeignKey("game_sessions.id"), nullable=False, index=True)
    player_name = Column(String(64), nullable=False)
    player_data = Column(Text, nullable=True)  # JSON, e.g. {"manual": true} for players on the host's device
    join_order = Column(Integer, nullable=False, default=0)  # turn order
    joined_at = Column(DateTime, default=datetime.utcnow)

    session = relationship("GameSession", back_populates="players")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "player_name": self.player_name,
            "player_data": self.player_data,
            "join_order": self.join_order,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


class GameStateRow:
    """Columns shared by the per-game state tables (one row per session)."""

    @declared_attr
    def session_id(cls):
        return Column(String(36), ForeignKey("game_sessions.id"), primary_key=True)

    state = Column(Text, nullable=False)  # JSON string of the game's state
    # Starts at 1 and is bumped by the ORM on every UPDATE, which is issued as
    # "... WHERE version = <loaded version>"; a miss raises StaleDataError.
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @declared_attr
    def __mapper_args__(cls):
        return {"version_id_col": cls.version}

    def to_dict(self) -> dict:
        return {"session_id": self.session_id, "state": self.state, "version": self.version}


class HorseRaceStateRow(GameStateRow, Base):
    __tablename__ = "horse_race_state"


class BeerPongStateRow(GameStateRow, Base):
    __tablename__ = "beer_pong_state"


class RideBusStateRow(GameStateRow, Base):
    __tablename__ = "ride_bus_state"


class KingsCupStateRow(GameStateRow, Base):
    __tablename__ = "kings_cup_state"


GAME_STATE_TABLES = {
    GAME_HORSE_RACE: HorseRaceStateRow,
    GAME_BEER_PONG: BeerPongStateRow,
    GAME_RIDE_BUS: RideBusStateRow,
    GAME_KINGS_CUP_LOCAL: KingsCupStateRow,
}


class RuleSet(Base):
    """King's Cup rules saved under a user-chosen key. Keys are write-once."""
    __tablename__ = "rule_sets"

    key = Column(String(64), primary_key=True)
    blob = Column(Text, nullable=False)  # base64 of the rules JSON
    created_at = Column(DateTime, default=datetime.utcnow)
