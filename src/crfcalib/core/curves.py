from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

CHANNELS = 3

CurveFunction = Callable[[int, int], float]


@dataclass(frozen=True)
class RgbCurve:
    """
    Per-channel lookup table indexed by quantized pixel value.

    `table` is a float64 array shaped (Q, 3). The same type carries the
    camera response (solved for) and the calibration weights (supplied).
    """

    table: np.ndarray  # (Q,3)

    def __post_init__(self) -> None:
        table = np.asarray(self.table, dtype=np.float64)
        if table.ndim == 1:
            table = np.repeat(table[:, None], CHANNELS, axis=1)
        if table.ndim != 2 or table.shape[1] != CHANNELS:
            raise ValueError(f"curve table must be (Q,{CHANNELS}), got {table.shape}")
        if table.shape[0] == 0:
            raise ValueError("curve table must have at least one bin")
        object.__setattr__(self, "table", table)

    @property
    def size(self) -> int:
        return int(self.table.shape[0])

    @property
    def channels(self) -> int:
        return int(self.table.shape[1])

    @property
    def pivot(self) -> int:
        return self.size // 2

    def value(self, sample: int, channel: int) -> float:
        return float(self.table[int(sample), int(channel)])

    def copy(self) -> "RgbCurve":
        return RgbCurve(self.table.copy())

    def normalized(self) -> "RgbCurve":
        """
        Scale each channel so that its value at the middle bin is exactly 1.

        Channels whose pivot value is not strictly positive are returned unchanged.
        """
        table = self.table.copy()
        pivot = table[self.pivot]
        ok = np.isfinite(pivot) & (pivot > 0.0)
        table[:, ok] /= pivot[ok]
        return RgbCurve(table)

    def is_normalized(self) -> bool:
        return bool(np.all(self.table[self.pivot] == 1.0))

    @classmethod
    def flat(cls, size: int, value: float = 1.0) -> "RgbCurve":
        return cls(np.full((int(size), CHANNELS), float(value), dtype=np.float64))

    @classmethod
    def from_function(cls, size: int, fn: CurveFunction) -> "RgbCurve":
        size = int(size)
        table = np.empty((size, CHANNELS), dtype=np.float64)
        for z in range(size):
            for c in range(CHANNELS):
                table[z, c] = float(fn(z, c))
        return cls(table)


def _unit_axis(size: int) -> np.ndarray:
    if size == 1:
        return np.zeros((1,), dtype=np.float64)
    return np.linspace(0.0, 1.0, int(size), dtype=np.float64)


def uniform_weight(size: int) -> RgbCurve:
    return RgbCurve.flat(size, 1.0)


def triangle_weight(size: int) -> RgbCurve:
    """Hat function: 0 at both ends of the range, 1 at the middle."""
    x = _unit_axis(size)
    return RgbCurve(1.0 - np.abs(2.0 * x - 1.0))


def gaussian_weight(size: int, sigma: float = 1.0 / 6.0) -> RgbCurve:
    x = _unit_axis(size)
    w = np.exp(-((x - 0.5) ** 2) / (2.0 * float(sigma) ** 2))
    # Extremes carry no information about the response.
    w[0] = 0.0
    w[-1] = 0.0
    return RgbCurve(w)


def plateau_weight(size: int, power: float = 8.0) -> RgbCurve:
    """Flat in the middle of the range, rolls off towards black and saturation."""
    x = _unit_axis(size)
    w = 1.0 - np.abs(2.0 * x - 1.0) ** float(power)
    return RgbCurve(np.clip(w, 0.0, 1.0))


WEIGHT_PRESETS: dict[str, Callable[[int], RgbCurve]] = {
    "uniform": uniform_weight,
    "triangle": triangle_weight,
    "gaussian": gaussian_weight,
    "plateau": plateau_weight,
}


def weight_from_preset(name: str, size: int) -> RgbCurve:
    try:
        factory = WEIGHT_PRESETS[name]
    except KeyError:
        raise ValueError(f"unknown weight preset: {name}") from None
    return factory(size)
