from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from catch_config import ConfigError, Direction, OptionSet, Signal, settings_from_mapping
from catch_engine import MapFormatError, RoundOverError
from catch_session import CatchSession, SessionStore


class NewRoundRequest(BaseModel):
    options: Dict[str, str] = Field(default_factory=dict)


class MoveRequest(BaseModel):
    session_id: str
    key: Optional[str] = Field(default=None, min_length=1, max_length=1)
    direction: Optional[str] = None


class SaveMapRequest(BaseModel):
    session_id: str
    name: str = "map"


class LoadMapRequest(BaseModel):
    filename: str
    options: Dict[str, str] = Field(default_factory=dict)


app = FastAPI(title="Catch Me If You Can", version="0.1.0")
STORE = SessionStore(Path(__file__).parent / "maps")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _session_payload(session: CatchSession) -> dict:
    return {
        "session_id": session.session_id,
        "created_at": session.created_at,
        "snapshot": session.round.snapshot(),
    }


def _get_session(sid: str) -> CatchSession:
    try:
        return STORE.get_session(sid)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/health")
def health() -> dict:
    return {"ok": True}


@app.get("/api/options")
def options() -> dict:
    return {
        "options": [{"index": i, "name": name, "value": value} for i, name, value in OptionSet().listing()],
    }


@app.post("/api/rounds/new")
def new_round(req: NewRoundRequest) -> dict:
    try:
        settings = settings_from_mapping(req.options)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_payload(STORE.new_session(settings))


@app.get("/api/rounds/{session_id}")
def round_state(session_id: str) -> dict:
    session = _get_session(session_id)
    with session.lock:
        return _session_payload(session)


@app.post("/api/rounds/move")
def move(req: MoveRequest) -> dict:
    session = _get_session(req.session_id)
    with session.lock:
        game = session.round

        if req.direction is not None:
            try:
                command = Direction.parse(req.direction)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        elif req.key is not None:
            command = game.settings.bindings.decode(req.key)
            if command is None:
                raise HTTPException(status_code=400, detail=f"Unbound key '{req.key}'")
        else:
            raise HTTPException(status_code=400, detail="Either key or direction is required")

        if command in (Signal.QUIT, Signal.RESTART):
            # Another request may have closed the session while this one waited.
            try:
                if command is Signal.QUIT:
                    STORE.drop_session(session.session_id)
                    return {"session_id": session.session_id, "closed": True}
                return _session_payload(STORE.restart_session(session.session_id))
            except KeyError as exc:
                raise HTTPException(status_code=404, detail=str(exc)) from exc

        if game.active_player.is_ai:
            raise HTTPException(status_code=409, detail="Waiting for the AI turn")
        try:
            game.submit_move(command)
            if not game.is_over and game.active_player.is_ai:
                game.play_ai_turn()
        except RoundOverError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

        return _session_payload(session)


@app.post("/api/maps/save")
def save_map(req: SaveMapRequest) -> dict:
    session = _get_session(req.session_id)
    with session.lock:
        path = STORE.save_map(session.session_id, req.name)
    return {"ok": True, "filename": path.name}


@app.get("/api/maps")
def list_maps() -> dict:
    return {"files": STORE.list_saved()}


@app.post("/api/maps/load")
def load_map(req: LoadMapRequest) -> dict:
    try:
        settings = settings_from_mapping(req.options)
        session = STORE.new_session_from_map(req.filename, settings)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ConfigError, MapFormatError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_payload(session)
