from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from crfcalib.core.curves import CHANNELS, RgbCurve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseAccumulator:
    """
    Per-bin sums for the response update.

    `numerator[m, c]` accumulates t * E over every (sample, image) pair whose
    channel-c bin is m; `count[m, c]` counts those pairs. Partial accumulators
    built independently (one per group or per worker) are combined with `merge`.
    """

    numerator: np.ndarray  # (Q,3) float64
    count: np.ndarray  # (Q,3) int64

    @classmethod
    def empty(cls, channel_quantization: int) -> "ResponseAccumulator":
        q = int(channel_quantization)
        return cls(
            numerator=np.zeros((q, CHANNELS), dtype=np.float64),
            count=np.zeros((q, CHANNELS), dtype=np.int64),
        )

    @property
    def size(self) -> int:
        return int(self.numerator.shape[0])

    def merge(self, other: "ResponseAccumulator") -> "ResponseAccumulator":
        if other.size != self.size:
            raise ValueError("cannot merge accumulators of different quantization")
        return ResponseAccumulator(self.numerator + other.numerator, self.count + other.count)

    def solve(self, previous: RgbCurve) -> RgbCurve:
        """
        f(m) = numerator[m] / count[m] for observed bins, previous f(m) otherwise.

        The returned curve is not normalized.
        """
        if previous.size != self.size:
            raise ValueError("previous response size does not match the accumulator")
        observed = self.count > 0
        table = previous.table.copy()
        table[observed] = self.numerator[observed] / self.count[observed]
        unobserved = int(observed.size - np.count_nonzero(observed))
        if unobserved:
            logger.debug("response: %d bin-channels unobserved, previous values kept", unobserved)
        return RgbCurve(table)


def accumulate_group(
    quantized: Sequence[np.ndarray],
    times: Sequence[float],
    radiance: np.ndarray,
    points: np.ndarray,
    channel_quantization: int,
) -> ResponseAccumulator:
    """Partial accumulator for the sample points of one bracket group."""
    q = int(channel_quantization)
    points = np.asarray(points, dtype=np.int64).reshape(-1, 2)
    rr = points[:, 0]
    cc = points[:, 1]
    E = np.asarray(radiance, dtype=np.float64)[rr, cc]  # (N,3)

    numerator = np.zeros((q, CHANNELS), dtype=np.float64)
    count = np.zeros((q, CHANNELS), dtype=np.int64)
    for z_full, t in zip(quantized, times, strict=True):
        z = np.asarray(z_full)[rr, cc].astype(np.int64)  # (N,3)
        tE = float(t) * E
        for c in range(CHANNELS):
            numerator[:, c] += np.bincount(z[:, c], weights=tE[:, c], minlength=q)[:q]
            count[:, c] += np.bincount(z[:, c], minlength=q)[:q]
    return ResponseAccumulator(numerator, count)


def combine(partials: Iterable[ResponseAccumulator], channel_quantization: int) -> ResponseAccumulator:
    total = ResponseAccumulator.empty(channel_quantization)
    for part in partials:
        total = total.merge(part)
    return total


def normalize_response(curve: RgbCurve) -> RgbCurve:
    """
    Resolve the response/radiance scale ambiguity: f(Q/2) = 1 for every channel.

    A channel whose pivot value is not strictly positive cannot be rescaled;
    it is left as is and reported.
    """
    pivot = curve.table[curve.pivot]
    bad = ~(np.isfinite(pivot) & (pivot > 0.0))
    if np.any(bad):
        logger.warning(
            "response: pivot bin %d is non-positive for channel(s) %s, normalization skipped",
            curve.pivot,
            np.flatnonzero(bad).tolist(),
        )
    return curve.normalized()
