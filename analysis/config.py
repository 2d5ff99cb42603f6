"""Exercise configuration.

Every exercise variant is data: a joint table, smoothing factors, thresholds and the
rep-counting rule. Configurations are validated once when a session starts, so per-frame
processing never has to deal with an unknown joint or an out-of-range parameter.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from .comparison import MissingJoints
from .features import ARM_RAISE_JOINTS, DEFAULT_JOINTS, JointSpec
from .phase import AT_END, AT_START, DOWN, IN_BETWEEN, UP
from .utils import (
    ANGLE_ALPHA,
    BALANCE_TARGET_DEG,
    BALANCE_THRESHOLD_DEG,
    DISTANCE_ALPHA,
    FEEDBACK_THRESHOLD_DEG,
    LATERAL_RAISE_ANGLE,
    LUNGE_KNEE_ANGLE,
    MILESTONE_EVERY,
    NEAR_MATCH_TOLERANCE_DEG,
    PUSHUP_ELBOW_ANGLE,
    REFERENCE_DISTANCE,
    SCORE_ALPHA,
    SCORE_MULTIPLIER,
    SQUAT_KNEE_ANGLE,
    STABILITY_WINDOW_MS,
    HysteresisThresholds,
)


# Signal name for the smoothed summed distance between live and reference angles
REFERENCE_DISTANCE_SIGNAL = "reference_distance"


def _joint_table(specs) -> Dict[str, Tuple[int, int, int]]:
    return {j.name: j.indices for j in specs}


class RepCounting(BaseModel):
    """
    Rep-counting rule.

    mode="threshold": phases from `signals` (joint names or "reference_distance") against
    low/high thresholds. mode="movement": at_start / at_end / in_between from the saved
    start/end pose pair.
    """

    mode: Literal["threshold", "movement"] = "threshold"
    signals: List[str] = Field(default_factory=list)
    limbs: Literal["all", "independent"] = "all"
    low: float = 90.0
    high: float = 170.0
    below_phase: str = DOWN
    above_phase: str = UP
    initial_phase: Optional[str] = None
    completion: Optional[Tuple[str, str]] = None
    # movement mode: count at_start -> in_between -> at_end as well as the direct edge
    span_neutral: bool = False

    @property
    def thresholds(self) -> HysteresisThresholds:
        return HysteresisThresholds(low=self.low, high=self.high)

    @property
    def phases(self) -> Tuple[str, ...]:
        if self.mode == "movement":
            return (AT_START, AT_END, IN_BETWEEN)
        return (self.below_phase, self.above_phase)

    @property
    def resolved_initial(self) -> str:
        if self.initial_phase is not None:
            return self.initial_phase
        return IN_BETWEEN if self.mode == "movement" else self.above_phase

    @property
    def resolved_completion(self) -> Tuple[str, str]:
        if self.completion is not None:
            return self.completion
        if self.mode == "movement":
            return (AT_START, AT_END)
        return (self.below_phase, self.above_phase)

    @model_validator(mode="after")
    def _check_rule(self) -> "RepCounting":
        if self.mode == "threshold":
            if not self.signals:
                raise ValueError("threshold rep counting needs at least one signal")
            if self.low > self.high:
                raise ValueError("low threshold must not exceed high threshold")
            if self.below_phase == self.above_phase:
                raise ValueError("below_phase and above_phase must differ")
        phases = self.phases
        if self.resolved_initial not in phases:
            raise ValueError(f"initial phase {self.resolved_initial!r} not one of {phases}")
        for p in self.resolved_completion:
            if p not in phases:
                raise ValueError(f"completion phase {p!r} not one of {phases}")
        return self


class BalanceRule(BaseModel):
    joints: List[str] = Field(default_factory=lambda: ["left_knee", "right_knee"])
    target: float = BALANCE_TARGET_DEG
    threshold: float = Field(BALANCE_THRESHOLD_DEG, ge=0.0)


class ExerciseConfig(BaseModel):
    name: str = "custom"
    joints: Dict[str, Tuple[int, int, int]] = Field(default_factory=lambda: _joint_table(DEFAULT_JOINTS))
    weights: Dict[str, float] = Field(default_factory=dict)

    angle_alpha: float = ANGLE_ALPHA
    distance_alpha: float = DISTANCE_ALPHA
    score_alpha: float = SCORE_ALPHA
    stability_ms: float = Field(STABILITY_WINDOW_MS, ge=0.0)

    tolerance: float = Field(NEAR_MATCH_TOLERANCE_DEG, ge=0.0)
    score_multiplier: float = Field(SCORE_MULTIPLIER, ge=0.0)
    feedback_threshold: float = Field(FEEDBACK_THRESHOLD_DEG, ge=0.0)
    missing_joints: MissingJoints = MissingJoints.ZERO
    scoring: Literal["weighted", "linear"] = "weighted"
    min_visibility: float = Field(0.0, ge=0.0, le=1.0)
    milestone_every: Optional[int] = Field(MILESTONE_EVERY, ge=1)

    reps: Optional[RepCounting] = None
    balance: Optional[BalanceRule] = None

    @field_validator("angle_alpha", "distance_alpha", "score_alpha")
    @classmethod
    def _check_alpha(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError("alpha must be in (0, 1]")
        return v

    @model_validator(mode="after")
    def _check_joints(self) -> "ExerciseConfig":
        if not self.joints:
            raise ValueError("at least one joint is required")
        for spec in self.joint_specs():
            spec.validate()
        for name, w in self.weights.items():
            if name not in self.joints:
                raise ValueError(f"weight given for unknown joint {name!r}")
            if w < 0:
                raise ValueError(f"weight for {name!r} must be non-negative")
        if self.reps is not None:
            for s in self.reps.signals:
                if s != REFERENCE_DISTANCE_SIGNAL and s not in self.joints:
                    raise ValueError(f"rep signal {s!r} is not a configured joint")
        if self.balance is not None:
            for j in self.balance.joints:
                if j not in self.joints:
                    raise ValueError(f"balance joint {j!r} is not a configured joint")
        return self

    @property
    def joint_names(self) -> List[str]:
        return list(self.joints)

    def joint_specs(self) -> Tuple[JointSpec, ...]:
        return tuple(JointSpec(name, *idx) for name, idx in self.joints.items())

    @property
    def needs_reference(self) -> bool:
        return self.reps is not None and REFERENCE_DISTANCE_SIGNAL in self.reps.signals


def _threshold_reps(thresholds: HysteresisThresholds, signals: List[str], **kwargs) -> RepCounting:
    return RepCounting(signals=signals, low=thresholds.low, high=thresholds.high, **kwargs)


PRESETS: Dict[str, ExerciseConfig] = {
    "lunge": ExerciseConfig(
        name="lunge",
        reps=_threshold_reps(LUNGE_KNEE_ANGLE, ["left_knee", "right_knee"], limbs="independent"),
    ),
    "lateral_raise": ExerciseConfig(
        name="lateral_raise",
        joints=_joint_table(DEFAULT_JOINTS + ARM_RAISE_JOINTS),
        reps=_threshold_reps(LATERAL_RAISE_ANGLE, ["left_arm_raise", "right_arm_raise"]),
    ),
    "squat": ExerciseConfig(
        name="squat",
        reps=_threshold_reps(SQUAT_KNEE_ANGLE, ["left_knee", "right_knee"]),
    ),
    "pushup": ExerciseConfig(
        name="pushup",
        reps=_threshold_reps(PUSHUP_ELBOW_ANGLE, ["left_elbow", "right_elbow"]),
    ),
    # Close to the saved start pose is "up"; drifting away is "down"
    "reference_reps": ExerciseConfig(
        name="reference_reps",
        angle_alpha=1.0,
        distance_alpha=DISTANCE_ALPHA,
        reps=_threshold_reps(
            REFERENCE_DISTANCE,
            [REFERENCE_DISTANCE_SIGNAL],
            below_phase=UP,
            above_phase=DOWN,
            initial_phase=UP,
            completion=(DOWN, UP),
        ),
    ),
    "movement": ExerciseConfig(name="movement", reps=RepCounting(mode="movement")),
    "yoga": ExerciseConfig(name="yoga", milestone_every=None),
    "balance": ExerciseConfig(name="balance", balance=BalanceRule(), milestone_every=None),
}


def get_preset(name: str) -> ExerciseConfig:
    """Fresh copy of a named preset; KeyError for unknown names."""
    if name not in PRESETS:
        raise KeyError(f"unknown exercise preset {name!r}")
    return PRESETS[name].model_copy(deep=True)