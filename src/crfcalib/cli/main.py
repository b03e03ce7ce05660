from __future__ import annotations

import argparse
import logging
from pathlib import Path

from crfcalib.cli.calibrate import run_calibrate, validate_manifest_files
from crfcalib.core.curves import WEIGHT_PRESETS
from crfcalib.meta import load_bracket_manifest


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="crfcalib")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (per-iteration deltas).")
    sub = parser.add_subparsers(dest="cmd", required=True)

    val = sub.add_parser("validate-manifest", help="Validate a bracket manifest and its image files.")
    val.add_argument("manifest", type=Path)

    cal = sub.add_parser(
        "calibrate",
        help="Estimate the camera response function from the bracket groups of a manifest.",
    )
    cal.add_argument("manifest", type=Path)
    cal.add_argument("--out", type=Path, required=True, help="Output directory for response.json/.npz.")
    cal.add_argument("--quantization", type=int, default=256, help="Number of bins per channel.")
    cal.add_argument("--samples", type=int, default=1000, help="Sample points per group for the response update.")
    cal.add_argument("--fisheye", action="store_true", help="Restrict sampling to the centered fisheye disk.")
    cal.add_argument("--weight", type=str, default="triangle", choices=sorted(WEIGHT_PRESETS))
    cal.add_argument("--max-iter", type=int, default=500)
    cal.add_argument("--threshold", type=float, default=0.01, help="Stop when the squared curve change falls below.")
    cal.add_argument("--sampler", type=str, default="grid", choices=["grid", "random"])
    cal.add_argument("--seed", type=int, default=0, help="Seed for --sampler random.")
    cal.add_argument("--workers", type=int, default=1, help="Threads for the radiance pass (1 disables).")
    cal.add_argument("--save-radiance", action="store_true", help="Also write radiance_<group>.npy files.")
    cal.add_argument("--csv", action="store_true", help="Also write response.csv.")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "validate-manifest":
        manifest = load_bracket_manifest(args.manifest)
        validate_manifest_files(manifest)
        print(f"{args.manifest}: {len(manifest.groups)} group(s) OK")
        return 0

    if args.cmd == "calibrate":
        written = run_calibrate(
            manifest_path=args.manifest,
            out_dir=args.out,
            quantization=args.quantization,
            samples=args.samples,
            fisheye=args.fisheye,
            weight=args.weight,
            max_iter=args.max_iter,
            threshold=args.threshold,
            sampler=args.sampler,
            seed=args.seed,
            workers=args.workers,
            save_radiance=args.save_radiance,
            csv=args.csv,
        )
        for p in written:
            print(f"Wrote {p}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
