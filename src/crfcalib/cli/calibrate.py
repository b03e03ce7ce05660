from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from crfcalib.api.curve_io import save_response_curve, write_curve_csv
from crfcalib.core.curves import weight_from_preset
from crfcalib.core.image_io import image_size, load_rgb_f32
from crfcalib.core.sampling import GridSampleSelector, RandomSampleSelector, SampleSelector
from crfcalib.hdr.robertson import RobertsonCalibrate
from crfcalib.meta import BracketManifest, load_bracket_manifest

logger = logging.getLogger(__name__)


def validate_manifest_files(manifest: BracketManifest) -> None:
    """Check that every image exists and that sizes agree inside each group."""
    for group in manifest.groups:
        sizes: set[tuple[int, int]] = set()
        for im in group.images:
            if not im.path.exists():
                raise FileNotFoundError(f"Missing {im.path}")
            sizes.add(image_size(im.path))
        if len(sizes) != 1:
            raise ValueError(f"group {group.name}: images have different sizes {sorted(sizes)}")


def build_selector(sampler: str, seed: int) -> SampleSelector:
    if sampler == "grid":
        return GridSampleSelector()
    if sampler == "random":
        return RandomSampleSelector(seed=int(seed))
    raise ValueError(f"unknown sampler: {sampler}")


def run_calibrate(
    *,
    manifest_path: Path,
    out_dir: Path,
    quantization: int,
    samples: int,
    fisheye: bool,
    weight: str,
    max_iter: int,
    threshold: float,
    sampler: str,
    seed: int,
    workers: int,
    save_radiance: bool,
    csv: bool,
) -> list[Path]:
    manifest = load_bracket_manifest(manifest_path)
    validate_manifest_files(manifest)

    groups = [[load_rgb_f32(im.path) for im in g.images] for g in manifest.groups]
    times = [g.exposure_times for g in manifest.groups]
    logger.info("loaded %d group(s) from %s", len(groups), manifest_path)

    cal = RobertsonCalibrate(
        max_iteration=max_iter,
        threshold=threshold,
        sample_selector=build_selector(sampler, seed),
        workers=workers,
    )
    response = cal.process(groups, quantization, times, samples, fisheye, weight_from_preset(weight, quantization))

    st = cal.iteration_state
    diagnostics = {
        "state": cal.state.value,
        "iterations": int(st.iterations) if st is not None else 0,
        "last_delta": float(st.last_delta) if st is not None else float("nan"),
        "weight": weight,
        "sampler": sampler,
        "samples": int(samples),
        "fisheye": bool(fisheye),
        "groups": [g.name for g in manifest.groups],
    }
    written = [save_response_curve(out_dir, response, diagnostics)]
    if csv:
        written.append(write_curve_csv(Path(out_dir) / "response.csv", response))
    if save_radiance:
        for g, group in enumerate(manifest.groups):
            p = Path(out_dir) / f"radiance_{group.name}.npy"
            np.save(p, np.asarray(cal.get_radiance(g)))
            written.append(p)
    return written
