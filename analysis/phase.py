from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from .comparison import MissingJoints, is_near_match
from .utils import NEAR_MATCH_TOLERANCE_DEG, STABILITY_WINDOW_MS, HysteresisThresholds


UP, DOWN = "up", "down"
AT_START, AT_END, IN_BETWEEN = "at_start", "at_end", "in_between"


@dataclass
class PhaseState:
    phase: str
    reps: int = 0


@dataclass
class PendingTransition:
    candidate: str
    since_ms: float


@dataclass(frozen=True)
class PhaseTransition:
    previous: str
    current: str
    timestamp_ms: float
    rep_completed: bool
    limb: Optional[str] = None


class PhaseMachine:
    """
    Debounced phase state machine.

    Each frame supplies a candidate phase. A candidate must be seen unchanged for at least
    `stability_ms` before it is committed. A rep is credited only when a commit is exactly the
    completion edge, completion[0] -> completion[1]. With span_neutral=True the edge may also
    pass through the neutral phase (at_start -> in_between -> at_end counts once).

    A None candidate means the frame had no usable signal: nothing changes.
    """

    def __init__(
        self,
        initial_phase: str = UP,
        completion: Tuple[str, str] = (DOWN, UP),
        *,
        stability_ms: float = STABILITY_WINDOW_MS,
        neutral_phase: Optional[str] = None,
        span_neutral: bool = False,
        name: Optional[str] = None,
    ) -> None:
        if stability_ms < 0:
            raise ValueError("stability_ms must be non-negative")
        self.initial_phase = initial_phase
        self.completion = completion
        self.stability_ms = float(stability_ms)
        self.neutral_phase = neutral_phase
        self.span_neutral = span_neutral
        self.name = name
        self.reset()

    def reset(self) -> None:
        self.state = PhaseState(phase=self.initial_phase)
        self.pending: Optional[PendingTransition] = None
        self._anchor: Optional[str] = None if self.initial_phase == self.neutral_phase else self.initial_phase

    @property
    def phase(self) -> str:
        return self.state.phase

    @property
    def reps(self) -> int:
        return self.state.reps

    def update(self, candidate: Optional[str], timestamp_ms: float) -> Optional[PhaseTransition]:
        if candidate is None:
            return None

        now = float(timestamp_ms)
        if self.pending is None or self.pending.candidate != candidate:
            self.pending = PendingTransition(candidate=candidate, since_ms=now)
            return None

        if candidate == self.state.phase:
            return None
        if now - self.pending.since_ms < self.stability_ms:
            return None

        return self._commit(candidate, now)

    def _commit(self, phase: str, now: float) -> PhaseTransition:
        previous = self.state.phase
        start, end = self.completion
        if self.span_neutral:
            rep = phase == end and self._anchor == start
        else:
            rep = (previous, phase) == (start, end)

        self.state.phase = phase
        if phase != self.neutral_phase:
            self._anchor = phase
        if rep:
            self.state.reps += 1

        logger.debug(
            "phase {} -> {} at {:.0f}ms{}{}",
            previous,
            phase,
            now,
            f" [{self.name}]" if self.name else "",
            " (+1 rep)" if rep else "",
        )
        return PhaseTransition(
            previous=previous, current=phase, timestamp_ms=now, rep_completed=rep, limb=self.name
        )


@dataclass(frozen=True)
class ThresholdRule:
    """
    Candidate phase from one or more scalar signals.

    - all values < thresholds.low: `below`
    - all values > thresholds.high: `above`
    - otherwise: hold the committed phase
    """
    thresholds: HysteresisThresholds
    below: str = DOWN
    above: str = UP

    def candidate(self, values: Sequence[float], committed: str) -> Optional[str]:
        if not values:
            return None
        if all(v < self.thresholds.low for v in values):
            return self.below
        if all(v > self.thresholds.high for v in values):
            return self.above
        return committed


def movement_candidate(
    live: Mapping[str, float],
    lower: Mapping[str, float],
    upper: Mapping[str, float],
    joints: Iterable[str],
    *,
    tolerance: float = NEAR_MATCH_TOLERANCE_DEG,
    missing: MissingJoints = MissingJoints.ZERO,
) -> Optional[str]:
    """at_start near the lower envelope, at_end near the upper one, in_between otherwise."""
    if not live:
        return None
    joints = list(joints)
    if is_near_match(live, lower, joints, tolerance=tolerance, missing=missing):
        return AT_START
    if is_near_match(live, upper, joints, tolerance=tolerance, missing=missing):
        return AT_END
    return IN_BETWEEN


class LimbGroup:
    """
    Threshold-driven rep counting over one or more limb signals.

    - limbs="all": one machine; every signal must cross a threshold for the candidate to move,
      and a frame missing any signal is skipped
    - limbs="independent": one machine per signal, each limb credits its own reps
    """

    def __init__(
        self,
        rule: ThresholdRule,
        signals: Sequence[str],
        *,
        limbs: str = "all",
        initial_phase: str = UP,
        completion: Tuple[str, str] = (DOWN, UP),
        stability_ms: float = STABILITY_WINDOW_MS,
    ) -> None:
        if not signals:
            raise ValueError("at least one signal is required")
        if limbs not in ("all", "independent"):
            raise ValueError("limbs must be 'all' or 'independent'")
        self.rule = rule
        self.signals = list(signals)
        self.limbs = limbs
        self.initial_phase = initial_phase
        names = self.signals if limbs == "independent" else ["all"]
        self.machines: Dict[str, PhaseMachine] = {
            n: PhaseMachine(
                initial_phase,
                completion,
                stability_ms=stability_ms,
                name=n if limbs == "independent" else None,
            )
            for n in names
        }

    @property
    def reps(self) -> int:
        return sum(m.reps for m in self.machines.values())

    @property
    def phase(self) -> str:
        for m in self.machines.values():
            if m.phase != self.initial_phase:
                return m.phase
        return self.initial_phase

    @property
    def phases(self) -> Dict[str, str]:
        return {name: m.phase for name, m in self.machines.items()}

    def reset(self) -> None:
        for m in self.machines.values():
            m.reset()

    def update(self, values: Mapping[str, float], timestamp_ms: float) -> List[PhaseTransition]:
        transitions: List[PhaseTransition] = []
        if self.limbs == "all":
            machine = self.machines["all"]
            if all(s in values for s in self.signals):
                cand = self.rule.candidate([values[s] for s in self.signals], machine.phase)
            else:
                cand = None
            t = machine.update(cand, timestamp_ms)
            if t is not None:
                transitions.append(t)
            return transitions

        for name, machine in self.machines.items():
            if name not in values:
                continue
            t = machine.update(self.rule.candidate([values[name]], machine.phase), timestamp_ms)
            if t is not None:
                transitions.append(t)
        return transitions
