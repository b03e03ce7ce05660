from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from crfcalib.core.curves import CHANNELS, RgbCurve

logger = logging.getLogger(__name__)

_CH = np.arange(CHANNELS)


def estimate_radiance(
    quantized: Sequence[np.ndarray],
    times: Sequence[float],
    response: RgbCurve,
    weight: RgbCurve,
    *,
    out: np.ndarray | None = None,
    rows: slice = slice(None),
) -> np.ndarray:
    """
    Maximum-likelihood irradiance of one bracket group under the current response.

    For every pixel and channel, with bins Z_i and exposure times t_i:

      E = sum_i w(Z_i) t_i f(Z_i) / sum_i w(Z_i) t_i^2

    Pixels whose weights are all zero get E = 0.

    `quantized` holds the group's (H,W,3) bin-index images. The result is
    written into `out[rows]` (allocated as float32 (H,W,3) when omitted), so
    disjoint row bands can be processed concurrently on the same buffer.
    """
    if len(quantized) != len(times):
        raise ValueError("quantized images and exposure times must have the same length")
    h, w = quantized[0].shape[:2]
    if out is None:
        out = np.zeros((h, w, CHANNELS), dtype=np.float32)

    f = response.table
    wt = weight.table
    num = None
    den = None
    for z_full, t in zip(quantized, times, strict=True):
        z = z_full[rows]
        t = float(t)
        wz = wt[z, _CH]
        if num is None:
            num = np.zeros(wz.shape, dtype=np.float64)
            den = np.zeros(wz.shape, dtype=np.float64)
        num += wz * t * f[z, _CH]
        den += wz * (t * t)

    band = out[rows]
    band[...] = 0.0
    valid = den > 0.0
    np.divide(num, den, out=band, where=valid, casting="unsafe")

    degenerate = int(valid.size - np.count_nonzero(valid))
    if degenerate:
        logger.debug("radiance: %d pixel-channels with zero total weight set to 0", degenerate)
    return out
