from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import numpy as np


class SampleSelector(Protocol):
    """
    Picks the pixel positions used by the response update of one bracket group.

    Returns an int array shaped (N,2) of (row, col) pairs inside the image bounds.
    """

    def __call__(self, images: Sequence[np.ndarray], nb_points: int, fisheye: bool) -> np.ndarray: ...


def fisheye_mask(height: int, width: int, margin: float = 1.0) -> np.ndarray:
    """
    Boolean (H,W) mask of the lens-valid disk of a circular fisheye image.

    The disk is centered on the image and inscribed in its smaller side;
    `margin` < 1 shrinks it to drop the vignetted rim.
    """
    h, w = int(height), int(width)
    cy = (h - 1) / 2.0
    cx = (w - 1) / 2.0
    radius = 0.5 * min(h, w) * float(margin)
    yy, xx = np.meshgrid(np.arange(h, dtype=np.float64), np.arange(w, dtype=np.float64), indexing="ij")
    return (yy - cy) ** 2 + (xx - cx) ** 2 <= radius * radius


def candidate_points(height: int, width: int, fisheye: bool, margin: float = 1.0) -> np.ndarray:
    if fisheye:
        rows, cols = np.nonzero(fisheye_mask(height, width, margin))
    else:
        rows, cols = np.divmod(np.arange(int(height) * int(width), dtype=np.int64), int(width))
    return np.stack([rows, cols], axis=-1).astype(np.int64)


@dataclass(frozen=True)
class GridSampleSelector:
    """Evenly strided positions over the (optionally fisheye-masked) pixel raster."""

    margin: float = 0.97

    def __call__(self, images: Sequence[np.ndarray], nb_points: int, fisheye: bool) -> np.ndarray:
        h, w = np.asarray(images[0]).shape[:2]
        cand = candidate_points(h, w, fisheye, self.margin)
        n = int(nb_points)
        if n >= cand.shape[0]:
            return cand
        idx = np.unique(np.rint(np.linspace(0, cand.shape[0] - 1, n)).astype(np.int64))
        return cand[idx]


@dataclass(frozen=True)
class RandomSampleSelector:
    """Uniformly random positions without replacement, reproducible through `seed`."""

    seed: int = 0
    margin: float = 0.97

    def __call__(self, images: Sequence[np.ndarray], nb_points: int, fisheye: bool) -> np.ndarray:
        h, w = np.asarray(images[0]).shape[:2]
        cand = candidate_points(h, w, fisheye, self.margin)
        n = int(nb_points)
        if n >= cand.shape[0]:
            return cand
        rng = np.random.default_rng(self.seed)
        idx = np.sort(rng.choice(cand.shape[0], size=n, replace=False))
        return cand[idx]

