from __future__ import annotations

import statistics
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from pose.landmarks import LandmarkFrame
from .config import ExerciseConfig
from .engine import PoseSession, SessionEvent


TimedFrame = Tuple[float, Optional[LandmarkFrame]]
FrameInput = Union[Optional[LandmarkFrame], TimedFrame]


def _split(item: FrameInput, frame_idx: int, fps: float) -> Tuple[float, Optional[LandmarkFrame]]:
    # (timestamp_ms, frame) pairs carry their own clock; bare frames are spaced by fps
    if isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], (int, float)):
        return float(item[0]), item[1]
    return frame_idx * 1000.0 / fps, item


def analyze_session(
    frames_iter: Iterable[FrameInput],
    config: Optional[ExerciseConfig] = None,
    *,
    reference: Optional[LandmarkFrame] = None,
    movement: Optional[Tuple[LandmarkFrame, LandmarkFrame]] = None,
    fps: float = 30.0,
) -> Dict[str, object]:
    """
    Replay a recorded landmark stream through a fresh PoseSession and return a
    JSON-serializable summary.

    frames_iter yields either landmark frames (33 entries, Landmark or None; None for a frame
    without detection) or (timestamp_ms, frame) pairs.

    Output structure (example):
    {
      "session_id": "<uuid4>",
      "exercise": "lunge",
      "summary": {
        "total_reps": 3, "frames": 240, "frames_detected": 236, "final_phase": "up",
        "mean_match_score": null, "phase_changes": 6
      },
      "rep_data": [
        {"frame_index": 41, "timestamp_ms": 1366.7, "rep_id": 1, "limb": "left_knee",
         "angles": {"left_knee": 171.2, ...}}
      ]
    }
    """
    if fps <= 0:
        raise ValueError("fps must be positive")

    session = PoseSession(config)
    if reference is not None:
        session.save_reference(reference)
    if movement is not None:
        session.save_movement(*movement)

    rep_data: List[Dict[str, Any]] = []
    scores: List[float] = []
    phase_changes = 0
    frames = 0
    detected = 0
    current: Dict[str, Any] = {}
    # records added while the current frame is processed
    fresh: List[Dict[str, Any]] = []

    def on_event(event: SessionEvent) -> None:
        nonlocal phase_changes
        if event.kind == "phase":
            phase_changes += 1
        elif event.kind == "rep":
            record = {
                "frame_index": current["frame_index"],
                "timestamp_ms": event.payload["timestamp_ms"],
                "rep_id": event.payload["reps"],
                "limb": event.payload.get("limb"),
                "angles": {},
            }
            rep_data.append(record)
            fresh.append(record)

    session.subscribe(on_event)

    for frame_idx, item in enumerate(frames_iter):
        ts, frame = _split(item, frame_idx, fps)
        current["frame_index"] = frame_idx
        fresh.clear()
        frames += 1
        result = session.process_frame(frame, ts)
        if not result.detected:
            continue
        detected += 1
        # rep events fire mid-frame; attach this frame's angles once it is done
        for rec in fresh:
            rec["angles"] = dict(result.smoothed_angles)
        if result.match is not None:
            scores.append(float(result.match.score))

    mean_score = float(statistics.fmean(scores)) if scores else None
    logger.info(
        "{}: analyzed {} frames ({} detected), {} reps",
        session.config.name,
        frames,
        detected,
        session.reps,
    )

    return {
        "session_id": str(uuid.uuid4()),
        "exercise": session.config.name,
        "summary": {
            "total_reps": int(session.reps),
            "frames": frames,
            "frames_detected": detected,
            "final_phase": session.phase,
            "mean_match_score": mean_score,
            "phase_changes": phase_changes,
        },
        "rep_data": rep_data,
    }
