from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from analysis.config import ExerciseConfig


class LandmarkIn(BaseModel):
    x: float
    y: float
    z: Optional[float] = None
    visibility: Optional[float] = None


# None entries are occluded points
Points = List[Optional[LandmarkIn]]


class SessionCreateRequest(BaseModel):
    preset: Optional[str] = None
    config: Optional[ExerciseConfig] = None


class SessionCreateResponse(BaseModel):
    session_id: str
    exercise: str


class FrameIn(BaseModel):
    landmarks: Optional[Points] = Field(default=None, description="null when nothing was detected")
    timestamp_ms: Optional[float] = None


class MatchOut(BaseModel):
    score: float = Field(ge=0.0, le=100.0)
    avg_error: float
    smoothed_error: float
    feedback: List[str] = Field(default_factory=list)


class FrameResponse(BaseModel):
    timestamp_ms: float
    detected: bool
    angles: Dict[str, float]
    smoothed_angles: Dict[str, float]
    phase: Optional[str] = None
    limb_phases: Dict[str, str] = Field(default_factory=dict)
    reps: int = Field(0, ge=0)
    rep_completed: bool = False
    match: Optional[MatchOut] = None
    reference_distance: Optional[float] = None
    balanced: Optional[bool] = None
    advice: Optional[str] = None
    feedback: List[str] = Field(default_factory=list)
    aligned_reference: Optional[Points] = None


class ReferenceRequest(BaseModel):
    landmarks: Optional[Points] = Field(default=None, description="defaults to the last processed frame")


class ReferenceResponse(BaseModel):
    angles: Dict[str, float]


class MovementRequest(BaseModel):
    start: Points
    end: Points


class MovementResponse(BaseModel):
    lower: Dict[str, float]
    upper: Dict[str, float]


class SessionStateResponse(BaseModel):
    session_id: str
    exercise: str
    phase: Optional[str] = None
    limb_phases: Dict[str, str] = Field(default_factory=dict)
    reps: int = Field(0, ge=0)
    balanced: Optional[bool] = None
    has_reference: bool = False
    awaiting_reference: bool = False
    has_movement: bool = False
    reference_angles: Optional[Dict[str, float]] = None


class AnalyzeRequest(BaseModel):
    preset: Optional[str] = None
    config: Optional[ExerciseConfig] = None
    frames: List[Optional[Points]]
    timestamps_ms: Optional[List[float]] = None
    fps: float = Field(30.0, gt=0.0)
    reference: Optional[Points] = None
    movement: Optional[MovementRequest] = None


class RepRecord(BaseModel):
    frame_index: int
    timestamp_ms: float
    rep_id: int
    limb: Optional[str] = None
    angles: Dict[str, float]


class AnalyzeSummary(BaseModel):
    total_reps: int = Field(0, ge=0)
    frames: int = Field(0, ge=0)
    frames_detected: int = Field(0, ge=0)
    final_phase: Optional[str] = None
    mean_match_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    phase_changes: int = Field(0, ge=0)


class AnalyzeResponse(BaseModel):
    session_id: str
    exercise: str
    summary: AnalyzeSummary
    rep_data: List[RepRecord]
