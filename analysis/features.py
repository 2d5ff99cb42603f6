from __future__ import annotations

from dataclasses import dataclass
from math import atan2, degrees
from typing import Dict, Iterable, Optional, Tuple

from pose.landmarks import (
    L_ELBOW,
    L_HIP,
    L_KNEE,
    L_ANKLE,
    L_SHOULDER,
    L_WRIST,
    NUM_LANDMARKS,
    R_ANKLE,
    R_ELBOW,
    R_HIP,
    R_KNEE,
    R_SHOULDER,
    R_WRIST,
    Landmark,
    LandmarkFrame,
    landmark_at,
)


AngleMap = Dict[str, float]


@dataclass(frozen=True)
class JointSpec:
    """Named landmark triplet (a, b, c); the angle is measured at vertex b."""
    name: str
    a: int
    b: int
    c: int

    @property
    def indices(self) -> Tuple[int, int, int]:
        return (self.a, self.b, self.c)

    def validate(self) -> None:
        for idx in self.indices:
            if not (0 <= idx < NUM_LANDMARKS):
                raise ValueError(f"joint {self.name!r}: landmark index {idx} outside 0..{NUM_LANDMARKS - 1}")


# Eight joints tracked by the pose matchers
DEFAULT_JOINTS: Tuple[JointSpec, ...] = (
    JointSpec("right_elbow", R_WRIST, R_ELBOW, R_SHOULDER),
    JointSpec("right_shoulder", R_ELBOW, R_SHOULDER, R_HIP),
    JointSpec("left_shoulder", L_HIP, L_SHOULDER, L_ELBOW),
    JointSpec("left_elbow", L_SHOULDER, L_ELBOW, L_WRIST),
    JointSpec("right_hip", R_SHOULDER, R_HIP, R_KNEE),
    JointSpec("right_knee", R_HIP, R_KNEE, R_ANKLE),
    JointSpec("left_hip", L_SHOULDER, L_HIP, L_KNEE),
    JointSpec("left_knee", L_HIP, L_KNEE, L_ANKLE),
)

# Wrist-elbow-hip, opens as the arm is raised sideways
ARM_RAISE_JOINTS: Tuple[JointSpec, ...] = (
    JointSpec("left_arm_raise", L_WRIST, L_ELBOW, L_HIP),
    JointSpec("right_arm_raise", R_WRIST, R_ELBOW, R_HIP),
)

JOINT_LIBRARY: Dict[str, JointSpec] = {j.name: j for j in DEFAULT_JOINTS + ARM_RAISE_JOINTS}


def calculate_angle(a: Optional[Landmark], b: Optional[Landmark], c: Optional[Landmark]) -> float:
    """
    Unsigned angle at B (in degrees, within [0, 180]) for the triplet (A, B, C).

    Uses the difference of the two segment bearings. Returns NaN if any point is None;
    coincident points are not checked (valid limbs never have zero length).
    """
    if a is None or b is None or c is None:
        return float("nan")
    raw = atan2(c.y - b.y, c.x - b.x) - atan2(a.y - b.y, a.x - b.x)
    angle = abs(degrees(raw))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def extract_joint_angles(
    frame: Optional[LandmarkFrame],
    joints: Iterable[JointSpec] = DEFAULT_JOINTS,
    *,
    min_visibility: float = 0.0,
) -> AngleMap:
    """
    Angle per joint for one frame.

    A joint whose three landmarks are not all present is left out of the result; no
    placeholder value is stored. An empty or None frame yields an empty map.
    """
    angles: AngleMap = {}
    if not frame:
        return angles
    for joint in joints:
        a = landmark_at(frame, joint.a, min_visibility)
        b = landmark_at(frame, joint.b, min_visibility)
        c = landmark_at(frame, joint.c, min_visibility)
        if a is None or b is None or c is None:
            continue
        angles[joint.name] = calculate_angle(a, b, c)
    return angles
