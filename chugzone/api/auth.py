"""
Auth helpers: session-scoped JWTs.
The host gets a token when creating a session, a player when joining one.
Nobody has an account; a token only says who you are inside one session.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from chugzone.engine import HOST_ACTOR

SECRET_KEY = os.environ.get("JWT_SECRET", "change-me-in-production-use-env")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 24

ROLE_HOST = "host"
ROLE_PLAYER = "player"

security = HTTPBearer(auto_error=False)


@dataclass
class Actor:
    """Who is calling, as far as one session is concerned."""
    role: str  # ROLE_HOST | ROLE_PLAYER
    session_id: str
    player_id: str | None = None

    @property
    def is_host(self) -> bool:
        return self.role == ROLE_HOST

    @property
    def actor_id(self) -> str:
        """Id to put on engine actions."""
        return HOST_ACTOR if self.is_host else self.player_id


def _create_token(claims: dict) -> str:
    expire = datetime.utcnow() + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    payload = dict(claims, exp=expire)
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_host_token(session_id: str) -> str:
    return _create_token({"sub": HOST_ACTOR, "sid": session_id, "role": ROLE_HOST})


def create_player_token(session_id: str, player_id: str) -> str:
    return _create_token({"sub": player_id, "sid": session_id, "role": ROLE_PLAYER})


def decode_token(token: str) -> Actor | None:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    role = payload.get("role")
    session_id = payload.get("sid")
    if role not in (ROLE_HOST, ROLE_PLAYER) or not session_id:
        return None
    return Actor(
        role=role,
        session_id=session_id,
        player_id=payload.get("sub") if role == ROLE_PLAYER else None,
    )


def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Actor:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    actor = decode_token(credentials.credentials)
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return actor


def require_session_actor(actor: Actor, session_id: str) -> None:
    if actor.session_id != session_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token is for another session")


def require_host(actor: Actor, session_id: str) -> None:
    require_session_actor(actor, session_id)
    if not actor.is_host:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the host can do that")
