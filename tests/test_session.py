import logging

import numpy as np
import pytest

from eyecal.api.session import CalibrationSession, SessionState
from eyecal.core.errors import InsufficientDataError, NotInitializedError
from eyecal.core.readings import CalibrationReading, Eye


def _pose(z: float) -> np.ndarray:
    pose = np.zeros((3, 4), dtype=np.float64)
    pose[:, :3] = np.eye(3)
    pose[2, 3] = z
    return pose


def _readings(n: int, eye: Eye = Eye.LEFT) -> list[CalibrationReading]:
    return [CalibrationReading(eye=eye, target_pose=_pose(300.0 + 50.0 * i), shape_scale=0.3) for i in range(n)]


@pytest.mark.parametrize(
    "dims",
    [(1920, 1080, 80.0, 50.0), (1280, 720, 200.0, 100.0), (960, 540, 0.08, 0.05), (1, 1, 1.0, 1.0), (4096, 64, 30.0, 300.0)],
)
@pytest.mark.parametrize("device", ["generic_mono", "generic_stereo", "generic_stereo_sbs"])
def test_init_and_hint_ranges(dims, device):
    s = CalibrationSession(device)
    assert s.init(*dims)
    assert s.state is SessionState.READY
    lo, hi = s.get_min_scale_hint(), s.get_max_scale_hint()
    assert 0.0 <= lo <= hi <= 1.0
    assert s.get_drawing_aspect_ratio() > 0.0
    # init succeeds exactly once.
    assert not s.init(*dims)


@pytest.mark.parametrize(
    "dims",
    [(0, 1080, 80.0, 50.0), (1920, -1, 80.0, 50.0), (1920, 1080, 0.0, 50.0), (1920, 1080, 80.0, -5.0), (1920.5, 1080, 80.0, 50.0)],
)
def test_init_rejects_invalid_dimensions(dims):
    s = CalibrationSession()
    assert not s.init(*dims)
    assert s.state is SessionState.UNINITIALIZED
    assert not s.is_ready


def test_init_converts_metres(caplog):
    s = CalibrationSession()
    with caplog.at_level(logging.WARNING, logger="eyecal"):
        assert s.init(1920, 1080, 0.08, 0.05)
    assert np.allclose(s.target_size_mm, (80.0, 50.0))
    assert "metres" in caplog.text


def test_queries_before_init_fail():
    s = CalibrationSession()
    with pytest.raises(NotInitializedError):
        s.get_min_scale_hint()
    with pytest.raises(NotInitializedError):
        s.get_max_scale_hint()
    with pytest.raises(NotInitializedError):
        s.get_drawing_aspect_ratio(1920, 1080)
    with pytest.raises(NotInitializedError):
        s.is_stereo_stretched()
    with pytest.raises(NotInitializedError):
        s.fit_eye(_readings(5))


def test_fit_before_init_reports_not_initialized():
    s = CalibrationSession()
    res = s.get_projection_matrix(_readings(5))
    assert not res.ok
    assert isinstance(res.error, NotInitializedError)
    assert res.calibration is None


def test_stereo_before_init_reports_none():
    s = CalibrationSession()
    res = s.get_projection_matrices(_readings(5, Eye.LEFT), _readings(5, Eye.RIGHT))
    assert not res.ok
    assert isinstance(res.left.error, NotInitializedError)
    assert isinstance(res.right.error, NotInitializedError)


def test_too_few_readings_is_insufficient_data():
    s = CalibrationSession()
    assert s.init(1280, 720, 80.0, 50.0)
    res = s.get_projection_matrix(_readings(2))
    assert isinstance(res.error, InsufficientDataError)
    assert res.error.reason == "insufficient_data"
    res = s.get_projection_matrix([])
    assert isinstance(res.error, InsufficientDataError)


def test_stretched_display_min_hint():
    s = CalibrationSession("generic_stereo_sbs")
    assert s.init(640, 360, 80.0, 50.0)
    assert s.is_stereo_stretched()
    # 64 px minimum shape on a 320 px wide eye view.
    assert np.isclose(s.get_min_scale_hint(), 0.2)


def test_default_calibration_is_ipd_apart():
    s = CalibrationSession("generic_stereo")
    assert s.init(1280, 720, 80.0, 50.0)
    left = s.default_calibration(Eye.LEFT)
    right = s.default_calibration(Eye.RIGHT)
    assert np.isclose(np.linalg.norm(left.camera_to_eye_pose[:, 3] - right.camera_to_eye_pose[:, 3]), 63.0)
    assert left.eye_projection.shape == (4, 4)
