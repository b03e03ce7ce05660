from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def _to_unit_float(arr: np.ndarray) -> np.ndarray:
    if np.issubdtype(arr.dtype, np.integer):
        scale = float(np.iinfo(arr.dtype).max)
        return (arr.astype(np.float32) / scale).astype(np.float32)
    return np.clip(arr.astype(np.float32), 0.0, 1.0)


def load_rgb_f32(path: str | Path) -> np.ndarray:
    """
    Load an LDR image as float32 RGB in [0,1], shaped (H,W,3).

    Primary backend is OpenCV (if installed), which keeps 16-bit PNG/TIFF depth.
    Pillow is used as a fallback for formats or builds OpenCV cannot decode.
    """
    p = Path(path)
    try:
        import cv2  # type: ignore

        img = cv2.imread(str(p), cv2.IMREAD_ANYDEPTH | cv2.IMREAD_COLOR)
        if img is not None:
            img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
            return _to_unit_float(img)
    except Exception:
        # Fall back to Pillow below.
        pass

    with Image.open(p) as im:
        if im.mode in ("I;16", "I;16B", "I;16L"):
            arr = np.asarray(im, dtype=np.uint16)
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        else:
            arr = np.asarray(im.convert("RGB"), dtype=np.uint8)
    return _to_unit_float(arr)


def image_size(path: str | Path) -> tuple[int, int]:
    """(width, height) read from the file header without decoding pixels."""
    with Image.open(Path(path)) as im:
        return im.size
