from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

import numpy as np

from crfcalib.core.curves import CHANNELS, RgbCurve

SCHEMA_VERSION = "crfcalib.response.v0"


def save_response_curve(out_dir: Path, curve: RgbCurve, diagnostics: dict[str, Any] | None = None) -> Path:
    """
    Save a response curve into a directory:

      response.json + response.npz

    The JSON holds metadata and run diagnostics; the NPZ stores the (Q,3) table.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    table_path = out_dir / "response.npz"
    np.savez_compressed(table_path, response=np.asarray(curve.table, dtype=np.float64))

    meta: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "quantization": int(curve.size),
        "channels": int(curve.channels),
        "pivot_bin": int(curve.pivot),
        "diagnostics": dict(diagnostics or {}),
        "table": {"format": "npz", "path": table_path.name, "key": "response"},
    }
    json_path = out_dir / "response.json"
    json_path.write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf-8")
    return json_path


def load_response_curve(out_dir: Path) -> RgbCurve:
    out_dir = Path(out_dir)
    meta = json.loads((out_dir / "response.json").read_text(encoding="utf-8"))
    if str(meta.get("schema_version")) != SCHEMA_VERSION:
        raise ValueError("unsupported response schema")

    table_meta = meta["table"]
    with np.load(str(out_dir / str(table_meta["path"]))) as npz:
        table = np.asarray(npz[str(table_meta["key"])], dtype=np.float64)

    q = int(meta["quantization"])
    if table.shape != (q, CHANNELS):
        raise ValueError(f"response table shape {table.shape} != {(q, CHANNELS)}")
    if not np.all(np.isfinite(table)):
        raise ValueError("non-finite values")
    return RgbCurve(table)


def write_curve_csv(path: Path, curve: RgbCurve) -> Path:
    """One row per bin: `bin,r,g,b`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(["bin", "r", "g", "b"])
        for z in range(curve.size):
            writer.writerow([z, *(repr(float(v)) for v in curve.table[z])])
    return path


def read_curve_csv(path: Path) -> RgbCurve:
    rows: list[list[float]] = []
    with Path(path).open("r", encoding="utf-8", newline="") as fh:
        reader = csv.reader(fh)
        header = next(reader, None)
        if header is None or [h.strip() for h in header[:1]] != ["bin"]:
            raise ValueError("missing csv header")
        for line in reader:
            if not line:
                continue
            rows.append([float(v) for v in line[1 : 1 + CHANNELS]])
    return RgbCurve(np.asarray(rows, dtype=np.float64))
