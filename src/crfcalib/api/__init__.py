from crfcalib.api.curve_io import load_response_curve, read_curve_csv, save_response_curve, write_curve_csv

__all__ = [
    "load_response_curve",
    "read_curve_csv",
    "save_response_curve",
    "write_curve_csv",
]
