from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from eyecal.core.errors import IllConditionedError, InsufficientDataError, SolverDivergenceError
from eyecal.core.eye_model import (
    PARAM_NAMES,
    EyeCalibration,
    EyeGeometry,
    EyeParams,
    camera_points,
    eye_points,
    observed_corners,
    project,
    project_jacobian,
)
from eyecal.core.readings import CalibrationReading, Eye

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverOptions:
    min_readings: int = 3
    focal_scale_bounds: tuple[float, float] = (0.2, 5.0)
    principal_point_bound: float = 1.0
    lateral_bound_mm: float = 150.0
    depth_bound_mm: float = 100.0
    tol: float = 1e-10
    max_nfev: int = 500
    max_condition: float = 1e4
    min_depth_spread: float = 0.1
    min_scale_spread: float = 0.1
    bound_tol: float = 1e-4
    near_mm: float = 50.0
    far_mm: float = 5000.0

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        f_lo, f_hi = self.focal_scale_bounds
        pp = float(self.principal_point_bound)
        lat = float(self.lateral_bound_mm)
        dep = float(self.depth_bound_mm)
        lb = np.array([f_lo, -pp, -pp, -lat, -lat, -dep], dtype=np.float64)
        ub = np.array([f_hi, pp, pp, lat, lat, dep], dtype=np.float64)
        return lb, ub


@dataclass(frozen=True)
class EyeFit:
    calibration: EyeCalibration
    rms_residual: float
    condition_number: float
    n_readings: int
    diagnostics: dict[str, float] = field(default_factory=dict)

    @property
    def params(self) -> EyeParams:
        return self.calibration.params


def condition_number(J: np.ndarray) -> float:
    """
    Condition number of the column-normalised Jacobian.

    Column scaling removes the unit mismatch between parameters (mm vs unitless),
    so the value reflects parameter coupling rather than units.
    """
    J = np.asarray(J, dtype=np.float64)
    if J.ndim != 2 or J.shape[0] < J.shape[1] or not np.all(np.isfinite(J)):
        return float("inf")
    norms = np.linalg.norm(J, axis=0)
    if np.any(norms < 1e-12):
        return float("inf")
    s = np.linalg.svd(J / norms[None, :], compute_uv=False)
    if s[-1] <= 0.0:
        return float("inf")
    return float(s[0] / s[-1])


def _relative_spread(x: np.ndarray) -> float:
    x = np.abs(np.asarray(x, dtype=np.float64).reshape(-1))
    if x.size == 0 or not np.all(np.isfinite(x)) or x.max() <= 0.0:
        return 0.0
    return float((x.max() - x.min()) / x.max())


def reading_spread(
    readings: list[CalibrationReading], *, geometry: EyeGeometry, seed: EyeParams
) -> tuple[float, float]:
    """
    Relative range (max - min) / max of the target-centre eye depth and of the
    drawn scale across readings.

    Focal scale and depth offset only separate when readings span distinct
    depths; jittered repeats of one pose do not.
    """
    XYZ = camera_points(readings, geometry).reshape(-1, 4, 3).mean(axis=1)
    depth = eye_points(seed, geometry, XYZ)[:, 2]
    scale = np.array([r.shape_scale for r in readings], dtype=np.float64)
    return _relative_spread(depth), _relative_spread(scale)


def _single_eye(readings: list[CalibrationReading]) -> Eye:
    eyes = {r.eye for r in readings}
    if len(eyes) != 1:
        raise ValueError("readings must all belong to the same eye")
    return eyes.pop()


def fit_eye(
    readings: list[CalibrationReading],
    *,
    geometry: EyeGeometry,
    seed: EyeParams,
    options: SolverOptions | None = None,
) -> EyeFit:
    """
    Fit one eye's parameters from its alignment readings.

    We minimise, over (focal_scale, px, py, t), the squared distances between the
    projected target corners and the drawn shape corners:

      r_ij = proj(R0 X_ij + t) - s_ij

    seeded from the device default calibration. Raises a `CalibrationError`
    subclass on insufficient, degenerate or divergent inputs.
    """
    from scipy.optimize import least_squares  # type: ignore

    if options is None:
        options = SolverOptions()
    readings = list(readings)
    if len(readings) < int(options.min_readings):
        raise InsufficientDataError(f"need >= {options.min_readings} readings, got {len(readings)}")
    eye = _single_eye(readings)

    XYZ_cam = camera_points(readings, geometry)
    uv_obs = observed_corners(readings, geometry)

    lb, ub = options.bounds()
    # The initial guess must be strictly inside bounds.
    p0 = np.clip(seed.vector(), lb + 1e-12, ub - 1e-12)

    def fun(p: np.ndarray) -> np.ndarray:
        xy, _z = project(EyeParams.from_vector(p), geometry, XYZ_cam)
        return (xy - uv_obs).reshape(-1)

    def jac(p: np.ndarray) -> np.ndarray:
        return project_jacobian(EyeParams.from_vector(p), geometry, XYZ_cam)

    r0 = fun(p0)
    if not np.all(np.isfinite(r0)):
        raise SolverDivergenceError("target corners at or behind the eye for the default calibration")

    depth_spread, scale_spread = reading_spread(readings, geometry=geometry, seed=EyeParams.from_vector(p0))
    if depth_spread < float(options.min_depth_spread) or scale_spread < float(options.min_scale_spread):
        raise IllConditionedError(
            f"readings are too close to one pose (depth spread {depth_spread:.3g}, scale spread {scale_spread:.3g})"
        )

    cond0 = condition_number(jac(p0))
    if cond0 > float(options.max_condition):
        raise IllConditionedError(f"readings do not constrain the fit (condition number {cond0:.3g})")

    try:
        sol = least_squares(
            fun,
            p0,
            jac=jac,
            bounds=(lb, ub),
            method="trf",
            x_scale=np.array([0.1, 0.05, 0.05, 10.0, 10.0, 10.0], dtype=np.float64),
            ftol=float(options.tol),
            xtol=float(options.tol),
            gtol=float(options.tol),
            max_nfev=int(options.max_nfev),
        )
    except (ValueError, np.linalg.LinAlgError) as e:
        raise SolverDivergenceError(f"least-squares solve failed: {e}") from e

    if sol.status <= 0 or not np.all(np.isfinite(sol.x)) or not np.all(np.isfinite(sol.fun)):
        raise SolverDivergenceError(f"solver did not converge (status={sol.status}, nfev={sol.nfev})")

    gap = np.minimum(sol.x - lb, ub - sol.x)
    pinned = gap <= float(options.bound_tol) * (ub - lb)
    if np.any(pinned):
        names = ", ".join(n for n, p in zip(PARAM_NAMES, pinned) if p)
        raise SolverDivergenceError(f"fit stopped on a parameter bound ({names})")

    params = EyeParams.from_vector(sol.x)
    _xy, z_eye = project(params, geometry, XYZ_cam)
    if not np.all(z_eye > 0.0):
        raise SolverDivergenceError("fitted eye places target corners behind the eye")

    cond = condition_number(jac(sol.x))
    if cond > float(options.max_condition):
        raise IllConditionedError(f"fit is ill-conditioned at the solution (condition number {cond:.3g})")

    rms = float(np.sqrt(np.mean(sol.fun * sol.fun)))
    diag = {
        "opt_cost": float(sol.cost),
        "opt_nfev": float(sol.nfev),
        "opt_status": float(sol.status),
        "seed_condition": float(cond0),
        "depth_spread": float(depth_spread),
        "scale_spread": float(scale_spread),
    }
    logger.debug(
        "%s eye fit: n=%d rms=%.3g cond=%.3g nfev=%d", eye.value, len(readings), rms, cond, int(sol.nfev)
    )

    calibration = EyeCalibration.from_params(
        eye, params, geometry, near_mm=float(options.near_mm), far_mm=float(options.far_mm)
    )
    return EyeFit(
        calibration=calibration,
        rms_residual=rms,
        condition_number=cond,
        n_readings=len(readings),
        diagnostics=diag,
    )
