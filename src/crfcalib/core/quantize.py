from __future__ import annotations

import numpy as np

from crfcalib.core.curves import CHANNELS


def as_rgb(image: np.ndarray) -> np.ndarray:
    """Return `image` as (H,W,3); grayscale (H,W) inputs are replicated per channel."""
    image = np.asarray(image)
    if image.ndim == 2:
        return np.repeat(image[:, :, None], CHANNELS, axis=2)
    if image.ndim == 3 and image.shape[2] == CHANNELS:
        return image
    raise ValueError(f"image must be (H,W) or (H,W,{CHANNELS}), got {image.shape}")


def quantize(image: np.ndarray, channel_quantization: int) -> np.ndarray:
    """
    Map pixel values to bin indices in [0, Q).

    Float images hold normalized values: v -> round(clip(v, 0, 1) * (Q-1)).
    Integer images span their full dtype range and are scaled to [0, 1] first,
    so uint8 input with Q=256 keeps its values.
    """
    q = int(channel_quantization)
    if q <= 0:
        raise ValueError("channel_quantization must be > 0")
    image = as_rgb(image)
    dtype = np.uint16 if q <= 65536 else np.int64
    if image.dtype == np.bool_:
        v = image.astype(np.float64)
    elif np.issubdtype(image.dtype, np.integer):
        v = image.astype(np.float64) / float(np.iinfo(image.dtype).max)
    else:
        v = image.astype(np.float64)
    v = np.nan_to_num(v, nan=0.0, posinf=1.0, neginf=0.0)
    z = np.rint(np.clip(v, 0.0, 1.0) * (q - 1))
    return z.astype(dtype)
