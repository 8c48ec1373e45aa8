from eyecal.api.readings_io import load_readings, save_readings, stereo_result_to_dict
from eyecal.api.session import CalibrationSession, FitResult, SessionState

__all__ = [
    "CalibrationSession",
    "FitResult",
    "SessionState",
    "load_readings",
    "save_readings",
    "stereo_result_to_dict",
]
