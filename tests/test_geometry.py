import numpy as np
import pytest

from eyecal.core.eye_model import EyeCalibration, EyeGeometry, EyeParams, eye_points, project, project_jacobian
from eyecal.core.geometry import opengl_projection, project_ndc, target_corners_mm
from eyecal.core.readings import Eye


def _geometry() -> EyeGeometry:
    return EyeGeometry.from_rvec(
        focal_length=2.0,
        aspect=16.0 / 9.0,
        eye_rotation_rvec=(0.0, 0.0, 0.0),
        target_width_mm=80.0,
        target_height_mm=50.0,
    )


def test_target_corners_are_centred():
    P, signs = target_corners_mm(80.0, 50.0)
    assert P.shape == (4, 3)
    assert np.allclose(P.mean(axis=0), 0.0)
    assert np.allclose(np.abs(P[:, :2]), [40.0, 25.0])
    assert np.array_equal(np.sign(P[:, :2]), signs)


def test_opengl_projection_depth_range():
    M = opengl_projection(focal=2.0, aspect=1.5, px=0.0, py=0.0, near_mm=50.0, far_mm=5000.0)
    ndc = project_ndc(M, np.array([[0.0, 0.0, 50.0], [0.0, 0.0, 5000.0], [0.0, 0.0, -100.0]]))
    assert np.isclose(ndc[0, 2], -1.0)
    assert np.isclose(ndc[1, 2], 1.0)
    assert np.all(np.isnan(ndc[2]))


def test_opengl_projection_rejects_bad_planes():
    with pytest.raises(ValueError):
        opengl_projection(focal=2.0, aspect=1.0, px=0.0, py=0.0, near_mm=100.0, far_mm=10.0)


def test_projection_matrix_matches_display_model():
    geometry = _geometry()
    params = EyeParams(focal_scale=1.1, px=0.05, py=-0.03, tx_mm=30.0, ty_mm=-5.0, tz_mm=10.0)
    cal = EyeCalibration.from_params(Eye.LEFT, params, geometry, near_mm=50.0, far_mm=5000.0)

    rng = np.random.default_rng(0)
    XYZ_cam = np.stack(
        [rng.uniform(-100, 100, 50), rng.uniform(-80, 80, 50), rng.uniform(200, 900, 50)], axis=1
    )
    xy, _z = project(params, geometry, XYZ_cam)
    ndc = project_ndc(cal.eye_projection, eye_points(params, geometry, XYZ_cam))

    # NDC is y-up, display coordinates are y-down.
    assert np.allclose(ndc[:, 0], xy[:, 0], atol=1e-12)
    assert np.allclose(ndc[:, 1], -xy[:, 1], atol=1e-12)
    assert np.allclose(cal.camera_to_eye_pose[:, 3], params.translation_mm)


def test_project_jacobian_matches_finite_differences():
    geometry = _geometry()
    params = EyeParams(focal_scale=0.95, px=0.02, py=0.01, tx_mm=-20.0, ty_mm=4.0, tz_mm=-8.0)
    rng = np.random.default_rng(1)
    XYZ_cam = np.stack(
        [rng.uniform(-60, 60, 12), rng.uniform(-40, 40, 12), rng.uniform(250, 700, 12)], axis=1
    )
    J = project_jacobian(params, geometry, XYZ_cam)

    p0 = params.vector()
    steps = np.array([1e-6, 1e-6, 1e-6, 1e-4, 1e-4, 1e-4])
    J_fd = np.zeros_like(J)
    for k in range(p0.size):
        dp = np.zeros_like(p0)
        dp[k] = steps[k]
        plus, _ = project(EyeParams.from_vector(p0 + dp), geometry, XYZ_cam)
        minus, _ = project(EyeParams.from_vector(p0 - dp), geometry, XYZ_cam)
        J_fd[:, k] = (plus - minus).reshape(-1) / (2.0 * steps[k])

    assert np.allclose(J, J_fd, rtol=1e-5, atol=1e-8)


def test_project_marks_points_behind_eye():
    geometry = _geometry()
    xy, z = project(EyeParams(), geometry, np.array([[0.0, 0.0, -10.0], [0.0, 0.0, 300.0]]))
    assert np.all(np.isnan(xy[0]))
    assert np.all(np.isfinite(xy[1]))
    assert z[0] < 0 < z[1]
