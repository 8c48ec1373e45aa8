"""
Stereo consistency: fit both eyes independently, then grade how much the fits
agree with each other and with themselves.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from eyecal.core.errors import CalibrationError
from eyecal.core.eye_model import EyeCalibration, EyeGeometry, EyeParams, camera_points, project
from eyecal.core.readings import CalibrationReading, Eye, split_interleaved
from eyecal.core.solver import EyeFit, SolverOptions, fit_eye

logger = logging.getLogger(__name__)


class ConsistencyGrade(enum.IntEnum):
    NONE = 0
    VERY_BAD = 1
    BAD = 2
    OK = 3
    GOOD = 4


@dataclass(frozen=True)
class GradePolicy:
    """
    Noise scales (normalised display units unless noted) and grade thresholds.

    Every score is a disagreement divided by its expected noise, so thresholds
    are in "sigmas". Smaller combined score -> higher grade.
    """

    residual_sigma: float = 0.01
    split_sigma: float = 0.01
    focal_sigma: float = 0.03
    vertical_sigma: float = 0.01
    good_max: float = 1.0
    ok_max: float = 2.5
    bad_max: float = 5.0

    def grade(self, score: float) -> ConsistencyGrade:
        score = float(score)
        if not np.isfinite(score):
            return ConsistencyGrade.VERY_BAD
        if score <= self.good_max:
            return ConsistencyGrade.GOOD
        if score <= self.ok_max:
            return ConsistencyGrade.OK
        if score <= self.bad_max:
            return ConsistencyGrade.BAD
        return ConsistencyGrade.VERY_BAD


@dataclass(frozen=True)
class EyeOutcome:
    """
    One side of a stereo result.

    `calibration` is the fitted one when `fitted`, otherwise the device default.
    It is None only for a session that was never initialised.
    """

    eye: Eye
    calibration: EyeCalibration | None
    fitted: bool
    error: CalibrationError | None = None
    fit: EyeFit | None = None


@dataclass(frozen=True)
class StereoCalibrationResult:
    grade: ConsistencyGrade
    left: EyeOutcome
    right: EyeOutcome
    metrics: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.grade is not ConsistencyGrade.NONE

    def outcome(self, eye: Eye | str) -> EyeOutcome:
        return self.left if Eye.parse(eye) is Eye.LEFT else self.right


def _rms(x: np.ndarray) -> float:
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    x = x[np.isfinite(x)]
    if x.size == 0:
        return float("inf")
    return float(np.sqrt(np.mean(x * x)))


def split_half_score(
    readings: list[CalibrationReading],
    *,
    geometry: EyeGeometry,
    seed: EyeParams,
    options: SolverOptions,
    policy: GradePolicy,
) -> float | None:
    """
    Disagreement between fits of the even and odd readings, or None when there
    are too few readings to fit both halves.
    """
    even, odd = split_interleaved(readings)
    if min(len(even), len(odd)) < int(options.min_readings):
        return None
    try:
        fit_a = fit_eye(even, geometry=geometry, seed=seed, options=options)
        fit_b = fit_eye(odd, geometry=geometry, seed=seed, options=options)
    except CalibrationError as e:
        logger.info("split-half fit failed (%s): %s", e.reason, e)
        return float("inf")
    XYZ = camera_points(readings, geometry)
    xy_a, _ = project(fit_a.params, geometry, XYZ)
    xy_b, _ = project(fit_b.params, geometry, XYZ)
    return _rms(xy_a - xy_b) / float(policy.split_sigma)


def symmetry_score(
    left: EyeFit,
    right: EyeFit,
    XYZ_cam: np.ndarray,
    *,
    geometry: EyeGeometry,
    policy: GradePolicy,
) -> float:
    """
    Cross-eye asymmetry: focal mismatch and vertical disparity of the same points.

    Horizontal disparity is expected (the eyes are apart), vertical is not.
    """
    xy_l, _ = project(left.params, geometry, XYZ_cam)
    xy_r, _ = project(right.params, geometry, XYZ_cam)
    vertical = _rms(xy_l[:, 1] - xy_r[:, 1]) / float(policy.vertical_sigma)
    focal = abs(left.params.focal_scale - right.params.focal_scale) / float(policy.focal_sigma)
    return float(np.hypot(focal, vertical))


def evaluate_stereo(
    left_readings: list[CalibrationReading],
    right_readings: list[CalibrationReading],
    *,
    geometry: EyeGeometry,
    seeds: dict[Eye, EyeParams],
    options: SolverOptions | None = None,
    policy: GradePolicy | None = None,
) -> StereoCalibrationResult:
    """
    Fit both eyes and grade the pair.

    Never raises `CalibrationError`: any failure yields grade NONE with both eyes
    at their default calibration and the failing eye's error recorded.
    """
    if options is None:
        options = SolverOptions()
    if policy is None:
        policy = GradePolicy()
    left_readings = list(left_readings)
    right_readings = list(right_readings)
    for eye, readings in ((Eye.LEFT, left_readings), (Eye.RIGHT, right_readings)):
        if any(r.eye is not eye for r in readings):
            raise ValueError(f"{eye.value} readings must all be tagged {eye.value}")

    defaults = {
        eye: EyeCalibration.from_params(
            eye, seeds[eye], geometry, near_mm=float(options.near_mm), far_mm=float(options.far_mm)
        )
        for eye in (Eye.LEFT, Eye.RIGHT)
    }

    def _fallback(errors: dict[Eye, CalibrationError]) -> StereoCalibrationResult:
        return StereoCalibrationResult(
            grade=ConsistencyGrade.NONE,
            left=EyeOutcome(eye=Eye.LEFT, calibration=defaults[Eye.LEFT], fitted=False, error=errors.get(Eye.LEFT)),
            right=EyeOutcome(eye=Eye.RIGHT, calibration=defaults[Eye.RIGHT], fitted=False, error=errors.get(Eye.RIGHT)),
        )

    if not left_readings or not right_readings:
        logger.info(
            "stereo fit skipped: %d left / %d right readings", len(left_readings), len(right_readings)
        )
        return _fallback({})

    fits: dict[Eye, EyeFit] = {}
    errors: dict[Eye, CalibrationError] = {}
    for eye, readings in ((Eye.LEFT, left_readings), (Eye.RIGHT, right_readings)):
        try:
            fits[eye] = fit_eye(readings, geometry=geometry, seed=seeds[eye], options=options)
        except CalibrationError as e:
            logger.warning("%s eye fit failed (%s): %s", eye.value, e.reason, e)
            errors[eye] = e
    if errors:
        return _fallback(errors)

    metrics: dict[str, float] = {}
    for eye, readings in ((Eye.LEFT, left_readings), (Eye.RIGHT, right_readings)):
        metrics[f"residual_{eye.value}"] = fits[eye].rms_residual / float(policy.residual_sigma)
        split = split_half_score(readings, geometry=geometry, seed=seeds[eye], options=options, policy=policy)
        if split is not None:
            metrics[f"split_{eye.value}"] = split

    XYZ_all = np.concatenate(
        [camera_points(left_readings, geometry), camera_points(right_readings, geometry)], axis=0
    )
    metrics["symmetry"] = symmetry_score(fits[Eye.LEFT], fits[Eye.RIGHT], XYZ_all, geometry=geometry, policy=policy)

    combined = max(metrics.values())
    metrics["combined"] = float(combined)
    grade = policy.grade(combined)
    logger.info("stereo consistency %s (score %.3g)", grade.name, combined)

    return StereoCalibrationResult(
        grade=grade,
        left=EyeOutcome(eye=Eye.LEFT, calibration=fits[Eye.LEFT].calibration, fitted=True, fit=fits[Eye.LEFT]),
        right=EyeOutcome(eye=Eye.RIGHT, calibration=fits[Eye.RIGHT].calibration, fitted=True, fit=fits[Eye.RIGHT]),
        metrics=metrics,
    )
