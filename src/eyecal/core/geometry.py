from __future__ import annotations

import numpy as np


def rvec_to_matrix(rvec: np.ndarray) -> np.ndarray:
    from scipy.spatial.transform import Rotation as R  # type: ignore

    return R.from_rotvec(np.asarray(rvec, dtype=np.float64).reshape(3)).as_matrix()


def compose_pose(rot: np.ndarray, t: np.ndarray) -> np.ndarray:
    """(3,3) rotation + (3,) translation -> (3,4) [R | t]."""
    rot = np.asarray(rot, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(3, 1)
    return np.hstack([rot, t])


def transform_points(pose: np.ndarray, P: np.ndarray) -> np.ndarray:
    """Apply a (3,4) pose to (N,3) points."""
    pose = np.asarray(pose, dtype=np.float64).reshape(3, 4)
    P = np.asarray(P, dtype=np.float64).reshape(-1, 3)
    return (pose[:, :3] @ P.T).T + pose[:, 3].reshape(1, 3)


def target_corners_mm(width_mm: float, height_mm: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Corners of a centred planar target (z = 0) and their signs.

    Returns (P_target_mm (4,3), signs (4,2)); corner order is
    top-left, top-right, bottom-right, bottom-left with y down.
    """
    signs = np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]], dtype=np.float64)
    P = np.zeros((4, 3), dtype=np.float64)
    P[:, 0] = signs[:, 0] * 0.5 * float(width_mm)
    P[:, 1] = signs[:, 1] * 0.5 * float(height_mm)
    return P, signs


def opengl_projection(
    focal: float,
    aspect: float,
    px: float,
    py: float,
    near_mm: float,
    far_mm: float,
) -> np.ndarray:
    """
    4x4 OpenGL projection for an eye looking down +z with y down.

    Normalised display coordinates are x = f X/Z + px, y = f a Y/Z + py (y down);
    the matrix flips y so that NDC follows the OpenGL y-up convention and maps
    Z = near -> -1, Z = far -> +1. Points with Z <= 0 get w <= 0 and are clipped.
    """
    if not (0.0 < near_mm < far_mm):
        raise ValueError("clip planes must satisfy 0 < near < far")
    n = float(near_mm)
    f = float(far_mm)
    M = np.zeros((4, 4), dtype=np.float64)
    M[0, 0] = float(focal)
    M[0, 2] = float(px)
    M[1, 1] = -float(focal) * float(aspect)
    M[1, 2] = -float(py)
    M[2, 2] = (f + n) / (f - n)
    M[2, 3] = -2.0 * f * n / (f - n)
    M[3, 2] = 1.0
    return M


def project_ndc(M: np.ndarray, XYZ_eye: np.ndarray) -> np.ndarray:
    """Apply a 4x4 projection to (N,3) eye-space points; returns (N,3) NDC (nan where w <= 0)."""
    XYZ_eye = np.asarray(XYZ_eye, dtype=np.float64).reshape(-1, 3)
    Xh = np.hstack([XYZ_eye, np.ones((XYZ_eye.shape[0], 1), dtype=np.float64)])
    clip = (np.asarray(M, dtype=np.float64).reshape(4, 4) @ Xh.T).T
    w = clip[:, 3:4]
    out = np.full((XYZ_eye.shape[0], 3), np.nan, dtype=np.float64)
    good = w[:, 0] > 1e-12
    out[good] = clip[good, :3] / w[good]
    return out
