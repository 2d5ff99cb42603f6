from __future__ import annotations

from math import isfinite
from typing import Dict, Mapping, Optional


def _check_alpha(alpha: float) -> float:
    if not (0.0 < alpha <= 1.0):
        raise ValueError("alpha must be in (0, 1]")
    return float(alpha)


class ExponentialSmoother:
    """
    Exponential moving average (EMA) over a scalar time series.

    - The first finite observation seeds the state (no bias towards zero)
    - Non-finite observations are ignored: the state is kept and the current value returned
    - value is None until the first finite observation
    """

    def __init__(self, alpha: float = 0.65) -> None:
        self.alpha = _check_alpha(alpha)
        self._value: Optional[float] = None

    @property
    def value(self) -> Optional[float]:
        return self._value

    def reset(self) -> None:
        self._value = None

    def update(self, raw: float) -> Optional[float]:
        raw = float(raw)
        if not isfinite(raw):
            return self._value
        if self._value is None:
            self._value = raw
        else:
            a = self.alpha
            self._value = a * raw + (1.0 - a) * self._value
        return self._value


class SmootherBank:
    """
    One EMA per named signal, created lazily on first observation.

    Signals absent from an update keep their previous state and are not reported.
    """

    def __init__(self, alpha: float = 0.65) -> None:
        self.alpha = _check_alpha(alpha)
        self._smoothers: Dict[str, ExponentialSmoother] = {}

    def update(self, values: Mapping[str, float]) -> Dict[str, float]:
        """Feed this frame's raw values; returns smoothed values for the signals observed."""
        out: Dict[str, float] = {}
        for name, raw in values.items():
            sm = self._smoothers.get(name)
            if sm is None:
                sm = ExponentialSmoother(self.alpha)
                self._smoothers[name] = sm
            smoothed = sm.update(raw)
            if smoothed is not None:
                out[name] = smoothed
        return out

    def reset(self) -> None:
        self._smoothers.clear()
