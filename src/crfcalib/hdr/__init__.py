"""
Camera response calibration from exposure brackets.

`RobertsonCalibrate` alternates a full-image radiance estimate with a sampled
per-bin response estimate until the response stops changing.
"""

from crfcalib.hdr.convergence import ConvergenceMonitor, Verdict, curve_delta
from crfcalib.hdr.radiance import estimate_radiance
from crfcalib.hdr.response import ResponseAccumulator, accumulate_group, combine, normalize_response
from crfcalib.hdr.robertson import CalibrationState, IterationState, RobertsonCalibrate, calibrate

__all__ = [
    "CalibrationState",
    "ConvergenceMonitor",
    "IterationState",
    "ResponseAccumulator",
    "RobertsonCalibrate",
    "Verdict",
    "accumulate_group",
    "calibrate",
    "combine",
    "curve_delta",
    "estimate_radiance",
    "normalize_response",
]
