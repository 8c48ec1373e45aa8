from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import numpy as np

from eyecal.core.consistency import (
    ConsistencyGrade,
    EyeOutcome,
    GradePolicy,
    StereoCalibrationResult,
    evaluate_stereo,
)
from eyecal.core.errors import CalibrationError, InvalidConfigurationError, NotInitializedError
from eyecal.core.eye_model import EyeCalibration, EyeGeometry, EyeParams, default_eye_params
from eyecal.core.readings import CalibrationReading, Eye
from eyecal.core.solver import EyeFit, SolverOptions, fit_eye
from eyecal.profiles import DeviceProfile, resolve_profile

logger = logging.getLogger(__name__)

# Target sides below this are taken to be metres rather than millimetres.
_METRES_THRESHOLD = 1.0


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class FitResult:
    """Outcome of a single-eye fit: either `calibration` or `error` is set."""

    eye: Eye | None
    calibration: EyeCalibration | None = None
    error: CalibrationError | None = None
    fit: EyeFit | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.calibration is not None


class CalibrationSession:
    """
    Calibration state for one eyewear device and one calibration target.

    Lifecycle: UNINITIALIZED -> READY after a successful `init`. Fits are pure
    functions of the supplied readings; nothing is retained between calls.
    """

    def __init__(
        self,
        profile: DeviceProfile | str | None = None,
        *,
        options: SolverOptions | None = None,
        policy: GradePolicy | None = None,
    ) -> None:
        self.profile = resolve_profile(profile)
        self.options = options if options is not None else SolverOptions()
        self.policy = policy if policy is not None else GradePolicy()
        self._state = SessionState.UNINITIALIZED
        self._surface: tuple[int, int] | None = None
        self._target_mm: tuple[float, float] | None = None
        self._geometry: EyeGeometry | None = None

    # -- lifecycle ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    def init(self, surface_width: int, surface_height: int, target_width: float, target_height: float) -> bool:
        """
        Configure surface (pixels) and target (millimetres) dimensions.

        Returns False on invalid dimensions or when already initialised.
        """
        if self.is_ready:
            logger.warning("init called on an initialised session; ignored")
            return False
        try:
            surface, target_mm = _validate_dimensions(surface_width, surface_height, target_width, target_height)
        except InvalidConfigurationError as e:
            logger.warning("init rejected: %s", e)
            return False

        self._surface = surface
        self._target_mm = target_mm
        self._geometry = EyeGeometry.from_rvec(
            focal_length=self.profile.focal_length,
            aspect=self.profile.drawing_aspect_ratio(*surface),
            eye_rotation_rvec=self.profile.eye_rotation_rvec,
            target_width_mm=target_mm[0],
            target_height_mm=target_mm[1],
        )
        self._state = SessionState.READY
        logger.debug("session ready: surface=%s target_mm=%s profile=%s", surface, target_mm, self.profile.name)
        return True

    def _require_ready(self) -> None:
        if not self.is_ready:
            raise NotInitializedError("init must succeed before this call")

    @property
    def surface_size(self) -> tuple[int, int]:
        self._require_ready()
        assert self._surface is not None
        return self._surface

    @property
    def target_size_mm(self) -> tuple[float, float]:
        self._require_ready()
        assert self._target_mm is not None
        return self._target_mm

    @property
    def geometry(self) -> EyeGeometry:
        self._require_ready()
        assert self._geometry is not None
        return self._geometry

    # -- device hints ------------------------------------------------------

    def get_min_scale_hint(self) -> float:
        w, _h = self.surface_size
        eye_width_px = 0.5 * w if self.profile.stereo_stretched else float(w)
        hint = max(float(self.profile.min_scale), float(self.profile.min_shape_px) / eye_width_px)
        return float(min(np.clip(hint, 0.0, 1.0), self.get_max_scale_hint()))

    def get_max_scale_hint(self) -> float:
        self._require_ready()
        return float(np.clip(self.profile.max_scale, 0.0, 1.0))

    def get_drawing_aspect_ratio(self, surface_width: int | None = None, surface_height: int | None = None) -> float:
        """
        Height/width scale for drawing target-shaped shapes in normalised display units.

        A shape of half-width s matches the target when its half-height is
        s * ratio * target_height / target_width.
        """
        self._require_ready()
        if surface_width is None or surface_height is None:
            surface_width, surface_height = self.surface_size
        return self.profile.drawing_aspect_ratio(surface_width, surface_height)

    def is_stereo_stretched(self) -> bool:
        self._require_ready()
        return bool(self.profile.stereo_stretched)

    # -- calibration -------------------------------------------------------

    def default_params(self, eye: Eye | str) -> EyeParams:
        eye = Eye.parse(eye)
        return default_eye_params(
            eye, eye_position_mm=self.profile.eye_position_mm(eye), eye_rotation=self.geometry.eye_rotation
        )

    def default_calibration(self, eye: Eye | str) -> EyeCalibration:
        eye = Eye.parse(eye)
        return EyeCalibration.from_params(
            eye,
            self.default_params(eye),
            self.geometry,
            near_mm=float(self.options.near_mm),
            far_mm=float(self.options.far_mm),
        )

    def fit_eye(self, readings: list[CalibrationReading]) -> EyeFit:
        """Single-eye fit; raises `CalibrationError` subclasses on failure."""
        self._require_ready()
        readings = list(readings)
        seed_eye = readings[0].eye if readings else Eye.LEFT
        return fit_eye(readings, geometry=self.geometry, seed=self.default_params(seed_eye), options=self.options)

    def get_projection_matrix(self, readings: list[CalibrationReading]) -> FitResult:
        readings = list(readings)
        eye = readings[0].eye if readings else None
        try:
            fit = self.fit_eye(readings)
        except CalibrationError as e:
            logger.info("projection fit failed (%s): %s", e.reason, e)
            return FitResult(eye=eye, error=e)
        return FitResult(eye=eye, calibration=fit.calibration, fit=fit)

    def get_projection_matrices(
        self,
        left_readings: list[CalibrationReading],
        right_readings: list[CalibrationReading],
    ) -> StereoCalibrationResult:
        if not self.is_ready:
            err = NotInitializedError("init must succeed before this call")
            return StereoCalibrationResult(
                grade=ConsistencyGrade.NONE,
                left=EyeOutcome(eye=Eye.LEFT, calibration=None, fitted=False, error=err),
                right=EyeOutcome(eye=Eye.RIGHT, calibration=None, fitted=False, error=err),
            )
        return evaluate_stereo(
            left_readings,
            right_readings,
            geometry=self.geometry,
            seeds={eye: self.default_params(eye) for eye in (Eye.LEFT, Eye.RIGHT)},
            options=self.options,
            policy=self.policy,
        )


def _validate_dimensions(
    surface_width: int, surface_height: int, target_width: float, target_height: float
) -> tuple[tuple[int, int], tuple[float, float]]:
    try:
        sw = int(surface_width)
        sh = int(surface_height)
        tw = float(target_width)
        th = float(target_height)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidConfigurationError(f"dimensions must be numeric: {e}") from e
    if sw != surface_width or sh != surface_height:
        raise InvalidConfigurationError("surface dimensions must be whole pixels")
    if sw <= 0 or sh <= 0:
        raise InvalidConfigurationError(f"surface must have positive area, got {sw}x{sh}")
    if not (np.isfinite(tw) and np.isfinite(th)) or tw <= 0.0 or th <= 0.0:
        raise InvalidConfigurationError(f"target dimensions must be > 0, got {tw}x{th}")
    if max(tw, th) < _METRES_THRESHOLD:
        logger.warning("target size %gx%g looks like metres; converting to millimetres", tw, th)
        tw *= 1000.0
        th *= 1000.0
    return (sw, sh), (tw, th)
