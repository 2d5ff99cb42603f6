from __future__ import annotations

from dataclasses import dataclass
from math import isfinite
from typing import Any, Iterable, List, Mapping, Optional, Sequence


# MediaPipe BlazePose topology
NUM_LANDMARKS = 33

L_SHOULDER, R_SHOULDER = 11, 12
L_ELBOW, R_ELBOW = 13, 14
L_WRIST, R_WRIST = 15, 16
L_HIP, R_HIP = 23, 24
L_KNEE, R_KNEE = 25, 26
L_ANKLE, R_ANKLE = 27, 28


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: Optional[float] = None
    visibility: Optional[float] = None


LandmarkFrame = Sequence[Optional[Landmark]]


def is_present(lm: Optional[Landmark], min_visibility: float = 0.0) -> bool:
    """A landmark counts as present when it exists, has finite x/y and enough visibility."""
    if lm is None:
        return False
    if not (isfinite(lm.x) and isfinite(lm.y)):
        return False
    if min_visibility > 0.0 and lm.visibility is not None and lm.visibility < min_visibility:
        return False
    return True


def landmark_at(
    frame: Optional[LandmarkFrame], index: int, min_visibility: float = 0.0
) -> Optional[Landmark]:
    """Return the landmark at `index`, or None when it is out of range or absent."""
    if frame is None or index < 0 or index >= len(frame):
        return None
    lm = frame[index]
    return lm if is_present(lm, min_visibility) else None


def has_landmarks(frame: Optional[LandmarkFrame]) -> bool:
    if not frame:
        return False
    return any(is_present(lm) for lm in frame)


def _coerce(item: Any) -> Optional[Landmark]:
    if item is None:
        return None
    if isinstance(item, Landmark):
        return item
    if isinstance(item, Mapping):
        if item.get("x") is None or item.get("y") is None:
            return None
        z = item.get("z")
        vis = item.get("visibility")
        return Landmark(
            x=float(item["x"]),
            y=float(item["y"]),
            z=None if z is None else float(z),
            visibility=None if vis is None else float(vis),
        )
    # (x, y[, z[, visibility]]) tuples or arrays
    values = [float(v) for v in item]
    if len(values) < 2:
        raise ValueError("landmark needs at least x and y")
    return Landmark(
        x=values[0],
        y=values[1],
        z=values[2] if len(values) > 2 else None,
        visibility=values[3] if len(values) > 3 else None,
    )


def frame_from_points(points: Iterable[Any]) -> List[Optional[Landmark]]:
    """
    Build a LandmarkFrame from estimator output.

    Accepts Landmark objects, dicts with x/y/z/visibility keys, (x, y[, z[, visibility]])
    sequences, or None for occluded points. Entries with NaN coordinates are kept as-is;
    consumers treat them as absent.
    """
    return [_coerce(p) for p in points]
