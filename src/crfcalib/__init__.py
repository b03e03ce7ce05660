from crfcalib import meta
from crfcalib.api import load_response_curve, save_response_curve
from crfcalib.core.curves import RgbCurve
from crfcalib.errors import CalibrationStateError, DimensionMismatchError, InvalidConfigurationError
from crfcalib.hdr import CalibrationState, RobertsonCalibrate, calibrate

__all__ = [
    "meta",
    "CalibrationState",
    "CalibrationStateError",
    "DimensionMismatchError",
    "InvalidConfigurationError",
    "RgbCurve",
    "RobertsonCalibrate",
    "calibrate",
    "load_response_curve",
    "save_response_curve",
]
