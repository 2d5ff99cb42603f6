from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pose.smoothing import ExponentialSmoother
from .utils import (
    FEEDBACK_THRESHOLD_DEG,
    LINEAR_SCORE_FULL_SCALE_DEG,
    NEAR_MATCH_TOLERANCE_DEG,
    SCORE_MULTIPLIER,
)


class MissingJoints(str, Enum):
    """How a joint absent from either angle map is treated."""
    ZERO = "zero"        # read as 0 degrees on the missing side
    EXCLUDE = "exclude"  # joint skipped entirely


@dataclass(frozen=True)
class MatchResult:
    score: float
    avg_error: float
    smoothed_error: float
    feedback: List[str] = field(default_factory=list)


def _pairs(
    live: Mapping[str, float],
    reference: Mapping[str, float],
    joints: Iterable[str],
    missing: MissingJoints,
) -> Iterable[Tuple[str, float, float]]:
    for name in joints:
        if missing is MissingJoints.EXCLUDE and (name not in live or name not in reference):
            continue
        yield name, float(live.get(name, 0.0)), float(reference.get(name, 0.0))


def comparable_joints(
    live: Mapping[str, float],
    reference: Mapping[str, float],
    joints: Iterable[str],
    *,
    missing: MissingJoints = MissingJoints.ZERO,
) -> List[str]:
    """Joints that take part in a comparison under `missing`; empty means no usable signal."""
    return [name for name, _, _ in _pairs(live, reference, joints, missing)]


def aggregate_distance(
    live: Mapping[str, float],
    reference: Mapping[str, float],
    joints: Iterable[str],
    *,
    missing: MissingJoints = MissingJoints.ZERO,
) -> float:
    """Sum of absolute per-joint angle differences."""
    return float(sum(abs(lv - rv) for _, lv, rv in _pairs(live, reference, joints, missing)))


def is_near_match(
    live: Mapping[str, float],
    reference: Mapping[str, float],
    joints: Iterable[str],
    *,
    tolerance: float = NEAR_MATCH_TOLERANCE_DEG,
    missing: MissingJoints = MissingJoints.ZERO,
) -> bool:
    """
    True only if every joint is within `tolerance` degrees of the reference.

    One outlier joint fails the whole pose. With MissingJoints.EXCLUDE and no comparable
    joint at all, the pose is not considered reached.
    """
    compared = 0
    for _, lv, rv in _pairs(live, reference, joints, missing):
        compared += 1
        if abs(lv - rv) > tolerance:
            return False
    if missing is MissingJoints.EXCLUDE and compared == 0:
        return False
    return True


def joint_feedback(name: str, live: float, reference: float, threshold: float) -> Optional[str]:
    diff = live - reference
    if abs(diff) <= threshold:
        return None
    label = name.replace("_", " ")
    if diff < 0:
        return f"Increase angle for {label}"
    return f"Decrease angle for {label}"


def weighted_match_score(
    live: Mapping[str, float],
    reference: Mapping[str, float],
    joints: Iterable[str],
    *,
    weights: Optional[Mapping[str, float]] = None,
    smoother: Optional[ExponentialSmoother] = None,
    multiplier: float = SCORE_MULTIPLIER,
    feedback_threshold: float = FEEDBACK_THRESHOLD_DEG,
    missing: MissingJoints = MissingJoints.ZERO,
) -> MatchResult:
    """
    Weighted 0-100 match score with per-joint directional hints.

    avg_error is the weight-averaged absolute difference; it is passed through `smoother`
    (when given) before scoring: score = max(0, 100 - smoothed_error * multiplier).
    """
    weights = weights or {}
    weighted_total = 0.0
    weight_total = 0.0
    feedback: List[str] = []

    for name, lv, rv in _pairs(live, reference, joints, missing):
        w = float(weights.get(name, 1.0))
        diff = abs(lv - rv)
        weighted_total += w * diff
        weight_total += w
        hint = joint_feedback(name, lv, rv, feedback_threshold)
        if hint is not None:
            feedback.append(hint)

    avg_error = weighted_total / weight_total if weight_total > 0 else 0.0
    smoothed_error = avg_error
    if smoother is not None:
        value = smoother.update(avg_error)
        smoothed_error = avg_error if value is None else value
    score = max(0.0, 100.0 - smoothed_error * multiplier)
    return MatchResult(score=score, avg_error=avg_error, smoothed_error=smoothed_error, feedback=feedback)


def linear_match_score(
    live: Mapping[str, float],
    reference: Mapping[str, float],
    joints: Iterable[str],
    *,
    full_scale: float = LINEAR_SCORE_FULL_SCALE_DEG,
) -> int:
    """
    Average per-joint score where 0 degrees off is 100 and `full_scale` degrees off is 0.

    Only joints present in both maps take part; 0 when none do.
    """
    total = 0.0
    count = 0
    for name in joints:
        if name not in live or name not in reference:
            continue
        diff = abs(live[name] - reference[name])
        total += max(0.0, 1.0 - diff / full_scale) * 100.0
        count += 1
    return int(round(total / count)) if count else 0


def movement_envelope(
    start: Mapping[str, float],
    end: Mapping[str, float],
    joints: Iterable[str],
) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Per-joint (lower, upper) bounds of a saved start/end pose pair; missing angles read as 0."""
    lower: Dict[str, float] = {}
    upper: Dict[str, float] = {}
    for name in joints:
        s = float(start.get(name, 0.0))
        e = float(end.get(name, 0.0))
        lower[name] = min(s, e)
        upper[name] = max(s, e)
    return lower, upper
