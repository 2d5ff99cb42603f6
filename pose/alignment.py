from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, hypot, sin
from typing import List, Optional, Tuple

import numpy as np

from .landmarks import L_SHOULDER, R_SHOULDER, Landmark, LandmarkFrame, is_present, landmark_at


@dataclass(frozen=True)
class SimilarityTransform:
    """
    Rotation + uniform scale + translation mapping one landmark set onto another.

    A point p maps to: R(rotation) * (p - src_mid) * scale + dst_mid
    """
    scale: float
    rotation: float  # radians
    src_mid: Tuple[float, float]
    dst_mid: Tuple[float, float]

    def matrix(self) -> np.ndarray:
        c, s = cos(self.rotation), sin(self.rotation)
        return self.scale * np.array([[c, -s], [s, c]], dtype=np.float64)

    def apply_xy(self, points: np.ndarray) -> np.ndarray:
        """Map an (N, 2) array of x/y points."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        rel = pts - np.asarray(self.src_mid, dtype=np.float64)
        return rel @ self.matrix().T + np.asarray(self.dst_mid, dtype=np.float64)

    def apply(self, lm: Optional[Landmark]) -> Optional[Landmark]:
        if not is_present(lm):
            return None
        x, y = self.apply_xy(np.array([[lm.x, lm.y]]))[0]
        z = None if lm.z is None else float(lm.z * self.scale)
        return Landmark(x=float(x), y=float(y), z=z, visibility=lm.visibility)


def _midpoint(a: Landmark, b: Landmark) -> Tuple[float, float]:
    return ((a.x + b.x) / 2.0, (a.y + b.y) / 2.0)


def estimate_alignment(
    saved: Optional[LandmarkFrame],
    current: Optional[LandmarkFrame],
    *,
    anchors: Tuple[int, int] = (L_SHOULDER, R_SHOULDER),
) -> Optional[SimilarityTransform]:
    """
    Similarity transform taking the saved anchor pair (shoulders by default) onto the
    current anchor pair.

    Returns None when either pair is missing or the saved anchors coincide; callers skip
    alignment for that frame rather than apply a degenerate transform.
    """
    s_left = landmark_at(saved, anchors[0])
    s_right = landmark_at(saved, anchors[1])
    c_left = landmark_at(current, anchors[0])
    c_right = landmark_at(current, anchors[1])
    if s_left is None or s_right is None or c_left is None or c_right is None:
        return None

    saved_dist = hypot(s_right.x - s_left.x, s_right.y - s_left.y)
    if saved_dist <= 1e-12:
        return None
    current_dist = hypot(c_right.x - c_left.x, c_right.y - c_left.y)

    saved_bearing = atan2(s_right.y - s_left.y, s_right.x - s_left.x)
    current_bearing = atan2(c_right.y - c_left.y, c_right.x - c_left.x)

    return SimilarityTransform(
        scale=current_dist / saved_dist,
        rotation=current_bearing - saved_bearing,
        src_mid=_midpoint(s_left, s_right),
        dst_mid=_midpoint(c_left, c_right),
    )


def align_reference(
    saved: Optional[LandmarkFrame], current: Optional[LandmarkFrame]
) -> Optional[List[Optional[Landmark]]]:
    """Map every saved landmark into the current frame, or None if no transform is available."""
    transform = estimate_alignment(saved, current)
    if transform is None or saved is None:
        return None
    return [transform.apply(lm) for lm in saved]
