"""
FastAPI backend for ChugZone.
Provides REST endpoints for sessions and game actions, plus a WebSocket change feed per session.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from chugzone import config
from chugzone.engine import GAME_BEER_PONG, GAME_HORSE_RACE, GAME_KINGS_CUP_LOCAL, GAME_RIDE_BUS
from chugzone.engine.actions import Action
from chugzone.engine.kings_cup import KINGS_CUP_PRESETS, decode_rules, encode_rules
from chugzone.engine.queries import get_available_action_types, get_game_summary, get_pending_match
from chugzone.engine.state import RideBusState
from chugzone.engine.utils import initialize_game_state

from .auth import (
    Actor,
    create_host_token,
    create_player_token,
    decode_token,
    get_current_actor,
    require_host,
    require_session_actor,
)
from .controllers import ActionForbidden, HostController, PlayerController
from .database import SessionLocal, get_db, init_db
from .models import RuleSet
from .sessions import JoinCodeUnavailable, SessionNotFound, SessionStore, WriteConflict
from .sync import channel
from .tasks import decision_timers, handle_events

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    decision_timers.cancel_all()


app = FastAPI(
    title="ChugZone API",
    description="Session sync backend for ChugZone party games",
    version="1.0.0",
    lifespan=lifespan,
)

CORS_ORIGINS = config.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path so 500s can be traced to the failing endpoint."""
    method = getattr(request, "method", "?")
    url = getattr(request, "url", None)
    path = url.path if url else "?"
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error("[%s] %s %s", response.status_code, method, path)
        return response
    except Exception:
        logger.exception("[500] %s %s (exception)", method, path)
        raise


def _cors_headers(request) -> dict[str, str]:
    origin = request.headers.get("origin")
    allow_origin = origin if origin in CORS_ORIGINS else (CORS_ORIGINS[0] if CORS_ORIGINS else "*")
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Credentials": "true",
    }


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request, exc):
    return JSONResponse(status_code=404, content={"detail": str(exc) or "Session not found"})


@app.exception_handler(ActionForbidden)
async def action_forbidden_handler(request, exc):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(WriteConflict)
async def write_conflict_handler(request, exc):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(JoinCodeUnavailable)
async def join_code_handler(request, exc):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request, exc):
    """Store hiccup: the request's session is rolled back on close; nothing is retried."""
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable, try again"},
        headers=_cors_headers(request),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    """Return 500 with CORS headers so the frontend can read the error."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
        headers=_cors_headers(request),
    )


GAME_CATALOG = [
    {
        "id": GAME_KINGS_CUP_LOCAL,
        "name": "King's Cup",
        "description": "Classic card game on one phone passed around the table",
        "min_players": 2,
        "multiplayer": False,
    },
    {
        "id": GAME_HORSE_RACE,
        "name": "Horse Race",
        "description": "Bet drinks on a suit and watch the cards race",
        "min_players": 1,
        "multiplayer": True,
    },
    {
        "id": GAME_BEER_PONG,
        "name": "Beer Pong",
        "description": "Aim, throw, sink cups. Head to head or tournament",
        "min_players": 2,
        "multiplayer": True,
    },
    {
        "id": GAME_RIDE_BUS,
        "name": "Ride the Bus",
        "description": "Four rounds of guesses, a pyramid, and one unlucky bus rider",
        "min_players": 2,
        "multiplayer": True,
    },
]

RULE_KEY_MAX_LENGTH = 64


# ===== Pydantic Models =====

class CreateSessionRequest(BaseModel):
    game_type: str
    host_name: str
    mode: str = "head_to_head"  # beer pong only


class JoinSessionRequest(BaseModel):
    join_code: str
    player_name: str


class StatusRequest(BaseModel):
    status: str


class AddPlayerRequest(BaseModel):
    player_name: str


class ActionRequest(BaseModel):
    type: str
    payload: dict[str, Any] = {}


class SaveRulesRequest(BaseModel):
    key: str
    rules: list[dict[str, Any]]


# ===== Helper Functions =====

def get_session_factory():
    """Factory background tasks use to open their own DB sessions."""
    return SessionLocal


def _snapshot(store: SessionStore, session_id: str) -> dict[str, Any]:
    session = store.get_session(session_id)
    state, version = store.load_state(session_id)
    return {
        "session": session.to_dict(),
        "players": [p.to_dict() for p in store.list_players(session_id)],
        "state": state.to_dict(),
        "version": version,
    }


def _snapshot_with_new_db(session_factory, session_id: str) -> dict[str, Any]:
    db = session_factory()
    try:
        return _snapshot(SessionStore(db), session_id)
    finally:
        db.close()


def _fill_player_fields(store: SessionStore, session_id: str, player_id: str, payload: dict) -> dict:
    """Players act as themselves; default the id and name fields from their roster entry."""
    payload = dict(payload)
    payload.setdefault("player_id", player_id)
    if "player_name" not in payload:
        payload["player_name"] = store.get_player(session_id, player_id).player_name
    return payload


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "ChugZone API", "version": "1.0.0"}


@app.get("/games")
def list_games():
    return {"games": GAME_CATALOG}


# ----- Sessions -----

@app.post("/sessions")
def create_session(request: CreateSessionRequest, db: Session = Depends(get_db)):
    """Create a session. The caller becomes its host and gets a host token."""
    store = SessionStore(db)
    try:
        initial_state = initialize_game_state(request.game_type, mode=request.mode)
        session = store.create_session(request.game_type, request.host_name, initial_state)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "session": session.to_dict(),
        "host_token": create_host_token(session.id),
        "state": initial_state.to_dict(),
        "version": 1,
    }


@app.post("/sessions/join")
def join_session(request: JoinSessionRequest, db: Session = Depends(get_db)):
    """Join a waiting or active session by its code."""
    store = SessionStore(db)
    try:
        player = store.join_session(request.join_code, request.player_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    session = store.get_session(player.session_id)
    return {
        "session": session.to_dict(),
        "player": player.to_dict(),
        "player_token": create_player_token(session.id, player.id),
    }


@app.get("/sessions/{session_id}")
def get_session_state(
    session_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    require_session_actor(actor, session_id)
    return _snapshot(SessionStore(db), session_id)


@app.post("/sessions/{session_id}/status")
def set_session_status(
    session_id: str,
    request: StatusRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    require_host(actor, session_id)
    try:
        session = SessionStore(db).set_status(session_id, request.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"session": session.to_dict()}


@app.post("/sessions/{session_id}/players")
def add_manual_player(
    session_id: str,
    request: AddPlayerRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Host adds a player who plays on the host's device."""
    require_host(actor, session_id)
    try:
        player = SessionStore(db).add_player(session_id, request.player_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"player": player.to_dict()}


@app.delete("/sessions/{session_id}/players/{player_id}")
def remove_session_player(
    session_id: str,
    player_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Host removes a player; a player may remove themselves (leave)."""
    require_session_actor(actor, session_id)
    if not actor.is_host and actor.player_id != player_id:
        raise HTTPException(status_code=403, detail="Only the host can remove other players")
    player = HostController(SessionStore(db), session_id).remove_player(player_id)
    return {"removed": player.id}


@app.get("/sessions/{session_id}/available-actions")
def get_available_actions(
    session_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    require_session_actor(actor, session_id)
    state, version = SessionStore(db).load_state(session_id)
    out = {
        "phase": state.current_phase,
        "version": version,
        "actions": get_available_action_types(state, actor.actor_id),
        "summary": get_game_summary(state),
    }
    if isinstance(state, RideBusState) and not actor.is_host:
        match = get_pending_match(state, actor.player_id)
        out["pending_match"] = match.to_dict() if match else None
    return out


@app.post("/sessions/{session_id}/actions")
def submit_action(
    session_id: str,
    request: ActionRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Submit a game action. Host tokens may issue any action (random outcomes are drawn
    server-side when left out); player tokens only their own player-level actions.
    """
    require_session_actor(actor, session_id)
    store = SessionStore(db)
    try:
        if actor.is_host:
            action = Action(type=request.type, actor=actor.actor_id, payload=dict(request.payload))
            result = HostController(store, session_id).submit(action)
        else:
            payload = _fill_player_fields(store, session_id, actor.player_id, request.payload)
            action = Action(type=request.type, actor=actor.player_id, payload=payload)
            result = PlayerController(store, session_id, actor.player_id).submit(action)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(handle_events, session_factory, session_id, result.events)
    return result.to_dict()


@app.websocket("/sessions/{session_id}/ws")
async def session_feed(
    websocket: WebSocket,
    session_id: str,
    token: str | None = None,
    session_factory=Depends(get_session_factory),
):
    """
    Live change feed for one session.
    Subscribes before sending the snapshot, so nothing committed after the snapshot is missed;
    a change may arrive twice (clients drop state changes whose version they already have).
    """
    actor = decode_token(token) if token else None
    if actor is None or actor.session_id != session_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    async with channel.listen(session_id) as queue:
        try:
            snapshot = await run_in_threadpool(_snapshot_with_new_db, session_factory, session_id)
        except SessionNotFound:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        await websocket.send_json({"type": "snapshot", **snapshot})

        receiver = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if receiver in done:
                    getter.cancel()
                    break
                change = getter.result()
                await websocket.send_json({"type": "change", **change.to_dict()})
        except WebSocketDisconnect:
            pass
        finally:
            receiver.cancel()
    logger.debug("Feed for session %s closed", session_id)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients never send anything meaningful; reading is only how a disconnect shows up
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


# ----- King's Cup rule keys -----

@app.get("/kings-cup/presets")
def get_kings_cup_presets():
    return {"presets": KINGS_CUP_PRESETS}


@app.post("/rule-keys")
def save_rule_key(request: SaveRulesRequest, db: Session = Depends(get_db)):
    """Save rules under a key. Keys are first come, first served and never overwritten."""
    key = request.key.strip()
    if not key or len(key) > RULE_KEY_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"Key must be 1-{RULE_KEY_MAX_LENGTH} characters")
    try:
        blob = encode_rules(request.rules)
        decode_rules(blob)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if db.query(RuleSet).filter(RuleSet.key == key).first():
        raise HTTPException(status_code=409, detail="That key is already taken")
    db.add(RuleSet(key=key, blob=blob))
    db.commit()
    logger.info("Saved rule key %s", key)
    return {"key": key, "blob": blob}


@app.get("/rule-keys/{key}")
def load_rule_key(key: str, db: Session = Depends(get_db)):
    row = db.query(RuleSet).filter(RuleSet.key == key.strip()).first()
    if not row:
        raise HTTPException(status_code=404, detail="Rule key not found")
    return {"key": row.key, "rules": decode_rules(row.blob), "blob": row.blob}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
