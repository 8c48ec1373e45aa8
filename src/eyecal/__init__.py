from eyecal import profiles
from eyecal.api import CalibrationSession, FitResult, SessionState, load_readings, save_readings
from eyecal.core.consistency import ConsistencyGrade, GradePolicy, StereoCalibrationResult
from eyecal.core.errors import (
    CalibrationError,
    IllConditionedError,
    InsufficientDataError,
    InvalidConfigurationError,
    NotInitializedError,
    SolverDivergenceError,
)
from eyecal.core.eye_model import EyeCalibration, EyeParams
from eyecal.core.readings import CalibrationReading, Eye
from eyecal.core.solver import SolverOptions

__all__ = [
    "profiles",
    "CalibrationSession",
    "FitResult",
    "SessionState",
    "load_readings",
    "save_readings",
    "ConsistencyGrade",
    "GradePolicy",
    "StereoCalibrationResult",
    "CalibrationError",
    "IllConditionedError",
    "InsufficientDataError",
    "InvalidConfigurationError",
    "NotInitializedError",
    "SolverDivergenceError",
    "EyeCalibration",
    "EyeParams",
    "CalibrationReading",
    "Eye",
    "SolverOptions",
]
