from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np

from crfcalib.core.curves import RgbCurve


class Verdict(enum.Enum):
    CONTINUE = "continue"
    CONVERGED = "converged"
    ITERATION_LIMIT = "iteration_limit"


def curve_delta(previous: RgbCurve, current: RgbCurve) -> float:
    """Sum over bins and channels of the squared response change."""
    diff = current.table - previous.table
    return float(np.sum(diff * diff))


@dataclass
class ConvergenceMonitor:
    threshold: float
    max_iteration: int
    iterations: int = 0
    last_delta: float = float("inf")
    history: list[float] = field(default_factory=list)

    def update(self, previous: RgbCurve, current: RgbCurve) -> Verdict:
        """Record one full radiance + response pass and decide whether to iterate again."""
        self.iterations += 1
        self.last_delta = curve_delta(previous, current)
        self.history.append(self.last_delta)
        if not self.last_delta > self.threshold:
            return Verdict.CONVERGED
        if self.iterations >= self.max_iteration:
            return Verdict.ITERATION_LIMIT
        return Verdict.CONTINUE
