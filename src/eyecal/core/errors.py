from __future__ import annotations


class CalibrationError(Exception):
    """Base class for recoverable calibration failures."""

    reason = "calibration_error"


class NotInitializedError(CalibrationError):
    reason = "not_initialized"


class InvalidConfigurationError(CalibrationError, ValueError):
    reason = "invalid_configuration"


class InsufficientDataError(CalibrationError):
    reason = "insufficient_data"


class IllConditionedError(CalibrationError):
    reason = "ill_conditioned"


class SolverDivergenceError(CalibrationError):
    reason = "solver_divergence"
