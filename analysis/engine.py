from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from pose.alignment import align_reference
from pose.landmarks import Landmark, LandmarkFrame, has_landmarks
from pose.smoothing import ExponentialSmoother, SmootherBank
from .balance import BalanceMonitor
from .comparison import (
    MatchResult,
    aggregate_distance,
    comparable_joints,
    linear_match_score,
    movement_envelope,
    weighted_match_score,
)
from .config import REFERENCE_DISTANCE_SIGNAL, ExerciseConfig
from .features import AngleMap, extract_joint_angles
from .phase import (
    DOWN,
    IN_BETWEEN,
    LimbGroup,
    PhaseMachine,
    PhaseTransition,
    ThresholdRule,
    movement_candidate,
)


@dataclass(frozen=True)
class ReferencePose:
    landmarks: Tuple[Optional[Landmark], ...]
    angles: Dict[str, float]


@dataclass(frozen=True)
class MovementPose:
    start: ReferencePose
    end: ReferencePose
    lower: Dict[str, float]
    upper: Dict[str, float]


@dataclass(frozen=True)
class SessionEvent:
    kind: str  # phase | rep | milestone | balance | reference | reset
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FrameResult:
    timestamp_ms: float
    detected: bool
    angles: AngleMap = field(default_factory=dict)
    smoothed_angles: AngleMap = field(default_factory=dict)
    phase: Optional[str] = None
    limb_phases: Dict[str, str] = field(default_factory=dict)
    reps: int = 0
    rep_completed: bool = False
    transitions: List[PhaseTransition] = field(default_factory=list)
    match: Optional[MatchResult] = None
    reference_distance: Optional[float] = None
    balanced: Optional[bool] = None
    advice: Optional[str] = None
    aligned_reference: Optional[List[Optional[Landmark]]] = None

    @property
    def feedback(self) -> List[str]:
        return list(self.match.feedback) if self.match is not None else []

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["feedback"] = self.feedback
        return out


Listener = Callable[[SessionEvent], None]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class PoseSession:
    """
    Per-session pose tracking engine.

    Owns all mutable state (smoothers, phase machines, reference pose, rep counter). Frames are
    expected one at a time from a single caller; UI or voice layers subscribe to SessionEvents
    instead of reading engine internals.
    """

    def __init__(
        self,
        config: Optional[ExerciseConfig] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or ExerciseConfig()
        self._clock = clock or _monotonic_ms
        self._joint_specs = self.config.joint_specs()
        self._joint_names = self.config.joint_names
        self._listeners: List[Listener] = []

        self._angle_smoothers = SmootherBank(self.config.angle_alpha)
        self._distance_smoother = ExponentialSmoother(self.config.distance_alpha)
        self._score_smoother = ExponentialSmoother(self.config.score_alpha)

        self._limbs: Optional[LimbGroup] = None
        self._movement_machine: Optional[PhaseMachine] = None
        rule = self.config.reps
        if rule is not None and rule.mode == "threshold":
            self._limbs = LimbGroup(
                ThresholdRule(rule.thresholds, below=rule.below_phase, above=rule.above_phase),
                rule.signals,
                limbs=rule.limbs,
                initial_phase=rule.resolved_initial,
                completion=rule.resolved_completion,
                stability_ms=self.config.stability_ms,
            )
        elif rule is not None:
            self._movement_machine = PhaseMachine(
                rule.resolved_initial,
                rule.resolved_completion,
                stability_ms=self.config.stability_ms,
                neutral_phase=IN_BETWEEN,
                span_neutral=rule.span_neutral,
            )

        self._balance: Optional[BalanceMonitor] = None
        if self.config.balance is not None:
            b = self.config.balance
            self._balance = BalanceMonitor(b.joints, target=b.target, threshold=b.threshold)

        self.reference: Optional[ReferencePose] = None
        self.movement: Optional[MovementPose] = None
        self.last_frame: Optional[List[Optional[Landmark]]] = None
        self.last_result: Optional[FrameResult] = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, **payload: Any) -> None:
        event = SessionEvent(kind=kind, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("session listener failed on {} event", kind)

    @property
    def reps(self) -> int:
        if self._limbs is not None:
            return self._limbs.reps
        if self._movement_machine is not None:
            return self._movement_machine.reps
        return 0

    @property
    def phase(self) -> Optional[str]:
        if self._limbs is not None:
            return self._limbs.phase
        if self._movement_machine is not None:
            return self._movement_machine.phase
        return None

    @property
    def limb_phases(self) -> Dict[str, str]:
        if self._limbs is not None and self._limbs.limbs == "independent":
            return self._limbs.phases
        return {}

    @property
    def balanced(self) -> Optional[bool]:
        return None if self._balance is None else self._balance.balanced

    def snapshot(self) -> Dict[str, Any]:
        return {
            "exercise": self.config.name,
            "phase": self.phase,
            "limb_phases": self.limb_phases,
            "reps": self.reps,
            "balanced": self.balanced,
            "has_reference": self.reference is not None,
            "awaiting_reference": self.config.needs_reference and self.reference is None,
            "has_movement": self.movement is not None,
            "reference_angles": dict(self.reference.angles) if self.reference else None,
        }

    def _capture(self, frame: Optional[LandmarkFrame]) -> ReferencePose:
        if frame is None:
            frame = self.last_frame
        angles = extract_joint_angles(frame, self._joint_specs, min_visibility=self.config.min_visibility)
        if not angles:
            raise ValueError("no valid landmarks to save")
        return ReferencePose(landmarks=tuple(frame), angles=angles)

    def save_reference(self, frame: Optional[LandmarkFrame] = None) -> ReferencePose:
        """Freeze `frame` (or the last processed frame) as the reference pose."""
        self.reference = self._capture(frame)
        self._distance_smoother.reset()
        self._score_smoother.reset()
        logger.info("{}: reference pose saved ({} joints)", self.config.name, len(self.reference.angles))
        self._emit("reference", angles=dict(self.reference.angles))
        return self.reference

    def save_movement(self, start: LandmarkFrame, end: LandmarkFrame) -> MovementPose:
        """Save a start/end pose pair; rep boundaries come from their per-joint envelope."""
        start_pose = self._capture(start)
        end_pose = self._capture(end)
        lower, upper = movement_envelope(start_pose.angles, end_pose.angles, self._joint_names)
        self.movement = MovementPose(start=start_pose, end=end_pose, lower=lower, upper=upper)
        logger.info("{}: movement saved", self.config.name)
        self._emit("reference", start=dict(start_pose.angles), end=dict(end_pose.angles))
        return self.movement

    def clear_reference(self) -> None:
        self.reference = None
        self.movement = None
        self._distance_smoother.reset()
        self._score_smoother.reset()

    def reset(self) -> None:
        """Clear reference poses, counters and every smoother."""
        self.clear_reference()
        self._angle_smoothers.reset()
        if self._limbs is not None:
            self._limbs.reset()
        if self._movement_machine is not None:
            self._movement_machine.reset()
        if self._balance is not None:
            self._balance.reset()
        self.last_frame = None
        self.last_result = None
        logger.info("{}: session reset", self.config.name)
        self._emit("reset")

    def _advice(self) -> Optional[str]:
        rule = self.config.reps
        if rule is None or rule.mode != "threshold" or rule.below_phase != DOWN:
            return None
        return "Go Higher" if self.phase == DOWN else "Go Lower"

    def _score(self, smoothed: AngleMap, reference: AngleMap) -> MatchResult:
        cfg = self.config
        if cfg.scoring == "linear":
            base = weighted_match_score(
                smoothed,
                reference,
                self._joint_names,
                weights=cfg.weights,
                feedback_threshold=cfg.feedback_threshold,
                missing=cfg.missing_joints,
            )
            score = linear_match_score(smoothed, reference, self._joint_names)
            return MatchResult(
                score=float(score),
                avg_error=base.avg_error,
                smoothed_error=base.smoothed_error,
                feedback=base.feedback,
            )
        return weighted_match_score(
            smoothed,
            reference,
            self._joint_names,
            weights=cfg.weights,
            smoother=self._score_smoother,
            multiplier=cfg.score_multiplier,
            feedback_threshold=cfg.feedback_threshold,
            missing=cfg.missing_joints,
        )

    def process_frame(
        self, frame: Optional[LandmarkFrame], timestamp_ms: Optional[float] = None
    ) -> FrameResult:
        """
        Run one frame through extraction, smoothing, comparison and phase tracking.

        A None or empty frame is a no-op: state carries forward and detected is False.
        """
        now = float(timestamp_ms) if timestamp_ms is not None else self._clock()

        if not has_landmarks(frame):
            result = FrameResult(
                timestamp_ms=now,
                detected=False,
                phase=self.phase,
                limb_phases=self.limb_phases,
                reps=self.reps,
                balanced=self.balanced,
                advice=self._advice(),
            )
            self.last_result = result
            return result

        cfg = self.config
        self.last_frame = list(frame)
        angles = extract_joint_angles(frame, self._joint_specs, min_visibility=cfg.min_visibility)
        smoothed = self._angle_smoothers.update(angles)

        match: Optional[MatchResult] = None
        distance: Optional[float] = None
        aligned = None
        if self.reference is not None:
            aligned = align_reference(self.reference.landmarks, frame)
            # no overlap with the reference under the missing-joint policy: nothing to compare
            if smoothed and comparable_joints(
                smoothed, self.reference.angles, self._joint_names, missing=cfg.missing_joints
            ):
                raw_distance = aggregate_distance(
                    smoothed, self.reference.angles, self._joint_names, missing=cfg.missing_joints
                )
                distance = self._distance_smoother.update(raw_distance)
                match = self._score(smoothed, self.reference.angles)

        transitions: List[PhaseTransition] = []
        if self._limbs is not None:
            signals: Dict[str, float] = dict(smoothed)
            if distance is not None:
                signals[REFERENCE_DISTANCE_SIGNAL] = distance
            transitions = self._limbs.update(signals, now)
        elif self._movement_machine is not None and self.movement is not None:
            cand = movement_candidate(
                smoothed,
                self.movement.lower,
                self.movement.upper,
                self._joint_names,
                tolerance=cfg.tolerance,
                missing=cfg.missing_joints,
            )
            t = self._movement_machine.update(cand, now)
            if t is not None:
                transitions = [t]

        balanced = self.balanced
        if self._balance is not None:
            before = self._balance.balanced
            balanced = self._balance.update(smoothed)
            if balanced is not None and balanced != before:
                self._emit("balance", balanced=balanced)

        rep_completed = False
        for t in transitions:
            self._emit("phase", previous=t.previous, current=t.current, limb=t.limb, timestamp_ms=t.timestamp_ms)
            if t.rep_completed:
                rep_completed = True
                reps = self.reps
                logger.info("{}: rep {} completed{}", cfg.name, reps, f" ({t.limb})" if t.limb else "")
                self._emit("rep", reps=reps, limb=t.limb, timestamp_ms=t.timestamp_ms)
                if cfg.milestone_every and reps % cfg.milestone_every == 0:
                    self._emit("milestone", reps=reps)

        result = FrameResult(
            timestamp_ms=now,
            detected=True,
            angles=angles,
            smoothed_angles=smoothed,
            phase=self.phase,
            limb_phases=self.limb_phases,
            reps=self.reps,
            rep_completed=rep_completed,
            transitions=transitions,
            match=match,
            reference_distance=distance,
            balanced=balanced,
            advice=self._advice(),
            aligned_reference=aligned,
        )
        self.last_result = result
        return result
