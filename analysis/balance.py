from __future__ import annotations

from typing import Iterable, Mapping, Optional

from .utils import BALANCE_TARGET_DEG, BALANCE_THRESHOLD_DEG


class BalanceMonitor:
    """
    Single-leg balance check on smoothed leg angles.

    Balanced while every tracked joint stays within `threshold` degrees of `target`
    (a straight leg). Frames without any tracked joint leave the state unchanged.
    """

    def __init__(
        self,
        joints: Iterable[str] = ("left_knee", "right_knee"),
        *,
        target: float = BALANCE_TARGET_DEG,
        threshold: float = BALANCE_THRESHOLD_DEG,
    ) -> None:
        self.joints = list(joints)
        self.target = float(target)
        self.threshold = float(threshold)
        self.balanced: Optional[bool] = None

    def reset(self) -> None:
        self.balanced = None

    def update(self, angles: Mapping[str, float]) -> Optional[bool]:
        observed = [angles[j] for j in self.joints if j in angles]
        if not observed:
            return self.balanced
        self.balanced = all(abs(a - self.target) <= self.threshold for a in observed)
        return self.balanced
