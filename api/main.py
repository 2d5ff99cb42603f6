from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger

from analysis.analyzer import analyze_session
from analysis.config import PRESETS, ExerciseConfig, get_preset
from analysis.engine import PoseSession
from analysis.features import JOINT_LIBRARY
from api.config import get_settings
from api.logging_config import setup_logging
from api.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    FrameIn,
    FrameResponse,
    MovementRequest,
    MovementResponse,
    Points,
    ReferenceRequest,
    ReferenceResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionStateResponse,
)
from pose.landmarks import Landmark, frame_from_points


settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@dataclass
class _SessionEntry:
    session: PoseSession
    # frames for one session must not interleave; handlers run on a thread pool
    lock: threading.Lock = field(default_factory=threading.Lock)


SESSIONS: Dict[str, _SessionEntry] = {}
_sessions_lock = threading.Lock()


def _to_frame(points: Optional[Points]) -> Optional[List[Optional[Landmark]]]:
    if points is None:
        return None
    return frame_from_points(None if p is None else p.model_dump() for p in points)


def _resolve_config(preset: Optional[str], config: Optional[ExerciseConfig]) -> ExerciseConfig:
    if config is not None:
        return config
    name = preset or settings.default_preset
    try:
        return get_preset(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown preset {name!r}")


def _get_entry(session_id: str) -> _SessionEntry:
    entry = SESSIONS.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return entry


def _state(session_id: str, session: PoseSession) -> SessionStateResponse:
    return SessionStateResponse(session_id=session_id, **session.snapshot())


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "ok"


@app.get("/presets")
def presets() -> Dict[str, ExerciseConfig]:
    return PRESETS


@app.get("/joints")
def joints() -> Dict[str, List[int]]:
    return {name: list(spec.indices) for name, spec in JOINT_LIBRARY.items()}


@app.post("/sessions", response_model=SessionCreateResponse, status_code=201)
def create_session(req: SessionCreateRequest) -> SessionCreateResponse:
    config = _resolve_config(req.preset, req.config)
    with _sessions_lock:
        if len(SESSIONS) >= settings.max_sessions:
            raise HTTPException(status_code=429, detail="Too many open sessions")
        session_id = str(uuid.uuid4())
        SESSIONS[session_id] = _SessionEntry(session=PoseSession(config))
    logger.info("session {} created ({})", session_id, config.name)
    return SessionCreateResponse(session_id=session_id, exercise=config.name)


@app.get("/sessions/{session_id}", response_model=SessionStateResponse)
def session_state(session_id: str) -> SessionStateResponse:
    entry = _get_entry(session_id)
    with entry.lock:
        return _state(session_id, entry.session)


@app.delete("/sessions/{session_id}", status_code=204)
def delete_session(session_id: str) -> None:
    with _sessions_lock:
        if SESSIONS.pop(session_id, None) is None:
            raise HTTPException(status_code=404, detail="Unknown session_id")
    logger.info("session {} closed", session_id)


@app.post("/sessions/{session_id}/frames", response_model=FrameResponse)
def process_frame(session_id: str, body: FrameIn) -> FrameResponse:
    entry = _get_entry(session_id)
    frame = _to_frame(body.landmarks)
    with entry.lock:
        result = entry.session.process_frame(frame, body.timestamp_ms)
    return FrameResponse(**result.to_dict())


@app.post("/sessions/{session_id}/reference", response_model=ReferenceResponse)
def save_reference(session_id: str, body: Optional[ReferenceRequest] = None) -> ReferenceResponse:
    entry = _get_entry(session_id)
    frame = _to_frame(body.landmarks) if body is not None else None
    with entry.lock:
        try:
            ref = entry.session.save_reference(frame)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
    return ReferenceResponse(angles=ref.angles)


@app.delete("/sessions/{session_id}/reference", response_model=SessionStateResponse)
def clear_reference(session_id: str) -> SessionStateResponse:
    entry = _get_entry(session_id)
    with entry.lock:
        entry.session.clear_reference()
        return _state(session_id, entry.session)


@app.post("/sessions/{session_id}/movement", response_model=MovementResponse)
def save_movement(session_id: str, body: MovementRequest) -> MovementResponse:
    entry = _get_entry(session_id)
    with entry.lock:
        try:
            movement = entry.session.save_movement(_to_frame(body.start), _to_frame(body.end))
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
    return MovementResponse(lower=movement.lower, upper=movement.upper)


@app.post("/sessions/{session_id}/reset", response_model=SessionStateResponse)
def reset_session(session_id: str) -> SessionStateResponse:
    entry = _get_entry(session_id)
    with entry.lock:
        entry.session.reset()
        return _state(session_id, entry.session)


@app.post("/analyze", response_model=AnalyzeResponse)
def analyze(req: AnalyzeRequest) -> AnalyzeResponse:
    if len(req.frames) > settings.max_frames_per_request:
        raise HTTPException(
            status_code=413, detail=f"Too many frames; max {settings.max_frames_per_request}"
        )
    if req.timestamps_ms is not None and len(req.timestamps_ms) != len(req.frames):
        raise HTTPException(status_code=422, detail="timestamps_ms must match frames in length")

    config = _resolve_config(req.preset, req.config)
    frames = [_to_frame(points) for points in req.frames]
    items = list(zip(req.timestamps_ms, frames)) if req.timestamps_ms is not None else frames
    movement = None
    if req.movement is not None:
        movement = (_to_frame(req.movement.start), _to_frame(req.movement.end))

    try:
        result = analyze_session(
            items,
            config,
            reference=_to_frame(req.reference),
            movement=movement,
            fps=req.fps,
        )
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return AnalyzeResponse(**result)
