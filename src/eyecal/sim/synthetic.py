"""
Synthetic calibration readings from known eye parameters.

Each reading places the target fronto-parallel to the eye at the depth where
its projection exactly fills the drawn shape, so a noiseless reading set is
matched exactly by the generating parameters.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from eyecal.core.eye_model import EyeGeometry, EyeParams
from eyecal.core.geometry import compose_pose
from eyecal.core.readings import CalibrationReading, Eye


def default_scales(min_scale: float, max_scale: float, n: int) -> np.ndarray:
    if n <= 0:
        raise ValueError("n must be > 0")
    if not (0.0 < min_scale <= max_scale <= 1.0):
        raise ValueError("scales must satisfy 0 < min <= max <= 1")
    return np.linspace(float(min_scale), float(max_scale), int(n), dtype=np.float64)


def default_offsets(n: int, radius: float = 0.1) -> np.ndarray:
    """Shape centres spread on a small circle around the display centre, (n,2)."""
    if n <= 0:
        raise ValueError("n must be > 0")
    theta = 2.0 * np.pi * np.arange(int(n), dtype=np.float64) / float(n)
    return float(radius) * np.stack([np.cos(theta), np.sin(theta)], axis=1)


def target_pose_for_shape(
    params: EyeParams,
    geometry: EyeGeometry,
    scale: float,
    offset: tuple[float, float],
) -> np.ndarray:
    """Target->camera pose (3,4) whose projection is the shape of `scale` at `offset`."""
    if not (0.0 < float(scale) <= 1.0):
        raise ValueError("scale must be in (0, 1]")
    F = float(params.focal_scale) * float(geometry.focal_length)
    z_eye = F * 0.5 * float(geometry.target_width_mm) / float(scale)
    x_eye = (float(offset[0]) - float(params.px)) * z_eye / F
    y_eye = (float(offset[1]) - float(params.py)) * z_eye / (F * float(geometry.aspect))
    c_eye = np.array([x_eye, y_eye, z_eye], dtype=np.float64)

    # Invert X_eye = R0 X_cam + t.
    R0 = np.asarray(geometry.eye_rotation, dtype=np.float64).reshape(3, 3)
    c_cam = R0.T @ (c_eye - params.translation_mm)
    return compose_pose(R0.T, c_cam)


def synthesize_readings(
    *,
    eye: Eye | str,
    params: EyeParams,
    geometry: EyeGeometry,
    scales: Sequence[float],
    offsets: Sequence[Sequence[float]] | None = None,
    noise_std: float = 0.0,
    seed: int | None = 0,
) -> list[CalibrationReading]:
    """
    Readings a perfect user would record, optionally perturbed.

    Noise (normalised display units) is added to the recorded scale and offset,
    i.e. to the user's judgement, not to the tracked pose. The same seed draws
    the same unit noise for every `noise_std`, so noise magnitudes can be
    compared on an equal footing.
    """
    eye = Eye.parse(eye)
    scales = np.asarray(scales, dtype=np.float64).reshape(-1)
    if offsets is None:
        offsets_arr = np.zeros((scales.size, 2), dtype=np.float64)
    else:
        offsets_arr = np.asarray(offsets, dtype=np.float64).reshape(-1, 2)
    if offsets_arr.shape[0] != scales.size:
        raise ValueError("scales and offsets must have the same length")
    if noise_std < 0:
        raise ValueError("noise_std must be >= 0")

    rng = np.random.default_rng(seed)
    unit_noise = rng.normal(size=(scales.size, 3))

    out: list[CalibrationReading] = []
    for s, off, z in zip(scales, offsets_arr, unit_noise):
        pose = target_pose_for_shape(params, geometry, float(s), (float(off[0]), float(off[1])))
        s_obs = float(np.clip(s + noise_std * z[0], 1e-3, 1.0))
        off_obs = (float(off[0] + noise_std * z[1]), float(off[1] + noise_std * z[2]))
        out.append(CalibrationReading(eye=eye, target_pose=pose, shape_scale=s_obs, shape_offset=off_obs))
    return out
