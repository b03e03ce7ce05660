from __future__ import annotations


class CalibrationError(ValueError):
    pass


class DimensionMismatchError(CalibrationError):
    """Images of one bracket group do not share the same resolution."""


class InvalidConfigurationError(CalibrationError):
    """Calibrator settings or inputs that cannot produce a well-posed run."""


class CalibrationStateError(RuntimeError):
    """Results were requested before a calibration run completed."""
