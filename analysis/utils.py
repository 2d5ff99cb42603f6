from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class HysteresisThresholds:
    """Pair of thresholds to avoid chatter: below `low` is one phase, above `high` the other."""
    low: float   # degrees (or summed degrees for reference distances)
    high: float


# Per-exercise thresholds (degrees)
LUNGE_KNEE_ANGLE = HysteresisThresholds(low=90.0, high=170.0)
LATERAL_RAISE_ANGLE = HysteresisThresholds(low=80.0, high=160.0)
SQUAT_KNEE_ANGLE = HysteresisThresholds(low=110.0, high=150.0)
PUSHUP_ELBOW_ANGLE = HysteresisThresholds(low=90.0, high=150.0)
# Summed absolute difference to the saved start pose
REFERENCE_DISTANCE = HysteresisThresholds(low=150.0, high=150.0)


# Smoothing factors
ANGLE_ALPHA = 0.65      # single-limb angles, fast response
DISTANCE_ALPHA = 0.3    # multi-joint aggregate distances
SCORE_ALPHA = 0.3       # match-score error

# A candidate phase must hold this long before it is committed
STABILITY_WINDOW_MS = 100.0

# Pose comparison
NEAR_MATCH_TOLERANCE_DEG = 10.0
FEEDBACK_THRESHOLD_DEG = 10.0
SCORE_MULTIPLIER = 5.0
LINEAR_SCORE_FULL_SCALE_DEG = 30.0

# Balance: legs within this many degrees of straight
BALANCE_TARGET_DEG = 180.0
BALANCE_THRESHOLD_DEG = 5.0

# Notify every N reps
MILESTONE_EVERY = 5
