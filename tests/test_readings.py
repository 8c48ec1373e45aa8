import numpy as np
import pytest

from eyecal.core.readings import CalibrationReading, Eye, split_interleaved


def _pose(z: float = 400.0) -> np.ndarray:
    pose = np.zeros((3, 4), dtype=np.float64)
    pose[:, :3] = np.eye(3)
    pose[2, 3] = z
    return pose


def test_reading_normalises_fields():
    full = np.eye(4)
    full[:3] = _pose(350.0)
    r = CalibrationReading(eye="LEFT", target_pose=full, shape_scale=0.3, shape_offset=[0.1, -0.2])
    assert r.eye is Eye.LEFT
    assert r.target_pose.shape == (3, 4)
    assert r.translation_mm[2] == 350.0
    assert r.shape_offset == (0.1, -0.2)
    assert not r.target_pose.flags.writeable


@pytest.mark.parametrize("scale", [0.0, -0.1, 1.5, float("nan")])
def test_reading_rejects_invalid_scale(scale):
    with pytest.raises(ValueError):
        CalibrationReading(eye=Eye.RIGHT, target_pose=_pose(), shape_scale=scale)


def test_reading_rejects_bad_pose():
    with pytest.raises(ValueError):
        CalibrationReading(eye=Eye.RIGHT, target_pose=np.zeros((2, 4)), shape_scale=0.3)
    bad = _pose()
    bad[0, 3] = np.inf
    with pytest.raises(ValueError):
        CalibrationReading(eye=Eye.RIGHT, target_pose=bad, shape_scale=0.3)


@pytest.mark.parametrize(
    "R",
    [
        1.01 * np.eye(3),
        np.diag([1.0, 1.0, -1.0]),
        [[1.0, 0.2, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
    ],
)
def test_reading_rejects_non_rigid_rotation(R):
    pose = _pose()
    pose[:, :3] = R
    with pytest.raises(ValueError):
        CalibrationReading(eye=Eye.LEFT, target_pose=pose, shape_scale=0.3)


def test_reading_does_not_alias_caller_pose():
    pose = _pose()
    r = CalibrationReading(eye=Eye.LEFT, target_pose=pose, shape_scale=0.3)
    pose[2, 3] = 1.0
    assert r.translation_mm[2] == 400.0


def test_eye_parse_rejects_unknown():
    with pytest.raises(ValueError):
        Eye.parse("center")


def test_split_interleaved_keeps_order():
    rs = [CalibrationReading(eye=Eye.LEFT, target_pose=_pose(300.0 + i), shape_scale=0.3) for i in range(5)]
    even, odd = split_interleaved(rs)
    assert [r.translation_mm[2] for r in even] == [300.0, 302.0, 304.0]
    assert [r.translation_mm[2] for r in odd] == [301.0, 303.0]
