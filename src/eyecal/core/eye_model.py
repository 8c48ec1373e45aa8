from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from eyecal.core.geometry import compose_pose, opengl_projection, rvec_to_matrix, target_corners_mm, transform_points
from eyecal.core.readings import CalibrationReading, Eye

PARAM_NAMES = ("focal_scale", "px", "py", "tx_mm", "ty_mm", "tz_mm")


@dataclass(frozen=True)
class EyeParams:
    """
    Free parameters of one eye.

    - `focal_scale`: multiplier on the device's nominal normalised focal length
    - `px`, `py`: principal point offset (normalised display units, y down)
    - `tx_mm`, `ty_mm`, `tz_mm`: translation of the camera->eye pose
    """

    focal_scale: float = 1.0
    px: float = 0.0
    py: float = 0.0
    tx_mm: float = 0.0
    ty_mm: float = 0.0
    tz_mm: float = 0.0

    def vector(self) -> np.ndarray:
        return np.array([self.focal_scale, self.px, self.py, self.tx_mm, self.ty_mm, self.tz_mm], dtype=np.float64)

    @classmethod
    def from_vector(cls, p: np.ndarray) -> "EyeParams":
        p = np.asarray(p, dtype=np.float64).reshape(-1)
        if p.size != len(PARAM_NAMES):
            raise ValueError("invalid parameter vector size")
        return cls(*(float(v) for v in p.tolist()))

    @property
    def translation_mm(self) -> np.ndarray:
        return np.array([self.tx_mm, self.ty_mm, self.tz_mm], dtype=np.float64)

    def to_dict(self) -> dict[str, float]:
        return dict(zip(PARAM_NAMES, (float(v) for v in self.vector())))


@dataclass(frozen=True)
class EyeGeometry:
    """Fixed (non-fitted) quantities shared by every reading of a session."""

    focal_length: float
    aspect: float
    eye_rotation: np.ndarray  # (3,3)
    target_width_mm: float
    target_height_mm: float

    @classmethod
    def from_rvec(
        cls,
        *,
        focal_length: float,
        aspect: float,
        eye_rotation_rvec: tuple[float, float, float],
        target_width_mm: float,
        target_height_mm: float,
    ) -> "EyeGeometry":
        return cls(
            focal_length=float(focal_length),
            aspect=float(aspect),
            eye_rotation=rvec_to_matrix(np.asarray(eye_rotation_rvec, dtype=np.float64)),
            target_width_mm=float(target_width_mm),
            target_height_mm=float(target_height_mm),
        )

    def corners(self) -> tuple[np.ndarray, np.ndarray]:
        return target_corners_mm(self.target_width_mm, self.target_height_mm)

    def shape_half_height(self, scale: float | np.ndarray) -> float | np.ndarray:
        return scale * self.aspect * self.target_height_mm / self.target_width_mm


def camera_points(readings: list[CalibrationReading], geometry: EyeGeometry) -> np.ndarray:
    """Target corners of every reading in the camera frame, (4N,3)."""
    P, _signs = geometry.corners()
    if not readings:
        return np.zeros((0, 3), dtype=np.float64)
    return np.concatenate([transform_points(r.target_pose, P) for r in readings], axis=0)


def observed_corners(readings: list[CalibrationReading], geometry: EyeGeometry) -> np.ndarray:
    """Corners of the drawn calibration shape for every reading, (4N,2), normalised display units."""
    _P, signs = geometry.corners()
    out: list[np.ndarray] = []
    for r in readings:
        ox, oy = r.shape_offset
        hw = r.shape_scale
        hh = geometry.shape_half_height(r.shape_scale)
        out.append(np.stack([ox + signs[:, 0] * hw, oy + signs[:, 1] * hh], axis=1))
    if not out:
        return np.zeros((0, 2), dtype=np.float64)
    return np.concatenate(out, axis=0)


def eye_points(params: EyeParams, geometry: EyeGeometry, XYZ_cam: np.ndarray) -> np.ndarray:
    pose = compose_pose(geometry.eye_rotation, params.translation_mm)
    return transform_points(pose, XYZ_cam)


def project(params: EyeParams, geometry: EyeGeometry, XYZ_cam: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Camera-frame points -> normalised display coordinates.

    Returns (xy (M,2), Z_eye (M,)); xy is nan for points at or behind the eye.
    """
    E = eye_points(params, geometry, XYZ_cam)
    Z = E[:, 2]
    F = float(params.focal_scale) * float(geometry.focal_length)
    xy = np.full((E.shape[0], 2), np.nan, dtype=np.float64)
    good = np.isfinite(Z) & (Z > 1e-9)
    xy[good, 0] = F * E[good, 0] / Z[good] + float(params.px)
    xy[good, 1] = F * float(geometry.aspect) * E[good, 1] / Z[good] + float(params.py)
    return xy, Z


def project_jacobian(params: EyeParams, geometry: EyeGeometry, XYZ_cam: np.ndarray) -> np.ndarray:
    """
    d(xy)/d(params), shaped (2M,6) with rows ordered x0, y0, x1, y1, ...
    """
    E = eye_points(params, geometry, XYZ_cam)
    Ex, Ey, Ez = E[:, 0], E[:, 1], E[:, 2]
    F0 = float(geometry.focal_length)
    F = float(params.focal_scale) * F0
    a = float(geometry.aspect)
    M = E.shape[0]

    Jx = np.zeros((M, 6), dtype=np.float64)
    Jx[:, 0] = F0 * Ex / Ez
    Jx[:, 1] = 1.0
    Jx[:, 3] = F / Ez
    Jx[:, 5] = -F * Ex / (Ez * Ez)

    Jy = np.zeros((M, 6), dtype=np.float64)
    Jy[:, 0] = F0 * a * Ey / Ez
    Jy[:, 2] = 1.0
    Jy[:, 4] = F * a / Ez
    Jy[:, 5] = -F * a * Ey / (Ez * Ez)

    return np.stack([Jx, Jy], axis=1).reshape(2 * M, 6)


def default_eye_params(eye: Eye, *, eye_position_mm: np.ndarray, eye_rotation: np.ndarray) -> EyeParams:
    """Manufacturer default: nominal focal, centred principal point, eye at its nominal position."""
    t = -np.asarray(eye_rotation, dtype=np.float64).reshape(3, 3) @ np.asarray(eye_position_mm, dtype=np.float64).reshape(3)
    return EyeParams(focal_scale=1.0, px=0.0, py=0.0, tx_mm=float(t[0]), ty_mm=float(t[1]), tz_mm=float(t[2]))


@dataclass(frozen=True)
class EyeCalibration:
    """
    Per-eye result consumed by the rendering layer.

    - `camera_to_eye_pose`: (3,4), X_eye = R X_cam + t (mm)
    - `eye_projection`: (4,4) OpenGL projection with near/far planes
    """

    eye: Eye
    params: EyeParams
    camera_to_eye_pose: np.ndarray
    eye_projection: np.ndarray

    @classmethod
    def from_params(
        cls,
        eye: Eye,
        params: EyeParams,
        geometry: EyeGeometry,
        *,
        near_mm: float,
        far_mm: float,
    ) -> "EyeCalibration":
        pose = compose_pose(geometry.eye_rotation, params.translation_mm)
        proj = opengl_projection(
            focal=float(params.focal_scale) * float(geometry.focal_length),
            aspect=float(geometry.aspect),
            px=float(params.px),
            py=float(params.py),
            near_mm=near_mm,
            far_mm=far_mm,
        )
        return cls(eye=Eye.parse(eye), params=params, camera_to_eye_pose=pose, eye_projection=proj)
