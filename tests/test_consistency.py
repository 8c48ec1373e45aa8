import numpy as np
import pytest

from eyecal.api.session import CalibrationSession
from eyecal.core.consistency import ConsistencyGrade, GradePolicy, split_half_score
from eyecal.core.errors import IllConditionedError
from eyecal.core.eye_model import EyeParams
from eyecal.core.readings import Eye
from eyecal.sim.synthetic import default_offsets, synthesize_readings

LEFT = EyeParams(focal_scale=1.05, px=0.02, py=-0.01, tx_mm=33.0, ty_mm=-8.0, tz_mm=15.0)
# Mirror image of LEFT: same focal and vertical terms, opposite horizontal ones.
RIGHT = EyeParams(focal_scale=1.05, px=-0.02, py=-0.01, tx_mm=-33.0, ty_mm=-8.0, tz_mm=15.0)

N = 8


def _session() -> CalibrationSession:
    s = CalibrationSession("generic_stereo")
    assert s.init(1280, 720, 80.0, 50.0)
    return s


def _pair(s: CalibrationSession, *, left_noise: float = 0.0, right_noise: float = 0.0, n: int = N):
    kw = dict(geometry=s.geometry, scales=np.linspace(0.15, 0.45, n), offsets=default_offsets(n))
    left = synthesize_readings(eye=Eye.LEFT, params=LEFT, noise_std=left_noise, seed=11, **kw)
    right = synthesize_readings(eye=Eye.RIGHT, params=RIGHT, noise_std=right_noise, seed=12, **kw)
    return left, right


def test_grade_order():
    assert ConsistencyGrade.NONE < ConsistencyGrade.VERY_BAD < ConsistencyGrade.BAD
    assert ConsistencyGrade.BAD < ConsistencyGrade.OK < ConsistencyGrade.GOOD


def test_policy_grade_is_monotonic():
    policy = GradePolicy()
    scores = np.linspace(0.0, 10.0, 201)
    grades = [policy.grade(x) for x in scores]
    assert all(a >= b for a, b in zip(grades, grades[1:]))
    assert grades[0] is ConsistencyGrade.GOOD
    assert grades[-1] is ConsistencyGrade.VERY_BAD
    assert policy.grade(float("nan")) is ConsistencyGrade.VERY_BAD


def test_empty_eye_gives_none_and_defaults():
    s = _session()
    left, _right = _pair(s)
    res = s.get_projection_matrices(left, [])
    assert res.grade is ConsistencyGrade.NONE
    assert not res.ok
    for eye in (Eye.LEFT, Eye.RIGHT):
        out = res.outcome(eye)
        assert not out.fitted
        assert out.error is None
        default = s.default_calibration(eye)
        assert np.array_equal(out.calibration.eye_projection, default.eye_projection)
        assert np.array_equal(out.calibration.camera_to_eye_pose, default.camera_to_eye_pose)


def test_symmetric_noiseless_is_good():
    s = _session()
    left, right = _pair(s)
    res = s.get_projection_matrices(left, right)
    assert res.grade is ConsistencyGrade.GOOD
    assert res.left.fitted and res.right.fitted
    assert {"residual_left", "residual_right", "split_left", "split_right", "symmetry", "combined"} <= set(res.metrics)
    assert np.allclose(res.left.calibration.params.translation_mm, LEFT.translation_mm, atol=1e-3)
    assert np.allclose(res.right.calibration.params.translation_mm, RIGHT.translation_mm, atol=1e-3)


def test_asymmetric_noise_lowers_grade():
    s = _session()
    clean = s.get_projection_matrices(*_pair(s))
    noisy = s.get_projection_matrices(*_pair(s, right_noise=0.05))
    assert noisy.grade < clean.grade


def test_focal_asymmetry_lowers_grade():
    s = _session()
    kw = dict(geometry=s.geometry, scales=np.linspace(0.15, 0.45, N), offsets=default_offsets(N))
    left = synthesize_readings(eye=Eye.LEFT, params=LEFT, **kw)
    skewed = EyeParams(**{**RIGHT.to_dict(), "focal_scale": 1.25, "py": 0.05})
    right = synthesize_readings(eye=Eye.RIGHT, params=skewed, **kw)
    res = s.get_projection_matrices(left, right)
    assert res.left.fitted and res.right.fitted
    assert res.metrics["symmetry"] > GradePolicy().bad_max
    assert res.grade is ConsistencyGrade.VERY_BAD


def test_grade_is_monotonic_in_noise():
    s = _session()
    grades = []
    for sigma in (0.0, 0.001, 0.003, 0.01, 0.03):
        res = s.get_projection_matrices(*_pair(s, left_noise=sigma, right_noise=sigma))
        grades.append(res.grade)
    assert grades[0] is ConsistencyGrade.GOOD
    assert all(a >= b for a, b in zip(grades, grades[1:]))
    assert grades[-1] < ConsistencyGrade.GOOD


def test_failed_eye_gives_none_and_reports_error():
    s = _session()
    left, right = _pair(s)
    res = s.get_projection_matrices(left, [right[2]] * N)
    assert res.grade is ConsistencyGrade.NONE
    assert isinstance(res.right.error, IllConditionedError)
    assert res.left.error is None
    assert not res.left.fitted and not res.right.fitted
    assert np.array_equal(res.left.calibration.eye_projection, s.default_calibration(Eye.LEFT).eye_projection)


def test_degenerate_half_scores_inf_while_full_set_fits():
    s = _session()
    kw = dict(geometry=s.geometry, params=LEFT)
    spread = synthesize_readings(eye=Eye.LEFT, scales=[0.15, 0.3, 0.45], offsets=default_offsets(3), **kw)
    repeat = synthesize_readings(eye=Eye.LEFT, scales=[0.25], offsets=[(0.05, 0.0)], **kw)[0]
    # Even indices all repeat one pose; odd indices span depth.
    left = [r for pair in zip([repeat] * 3, spread) for r in pair]

    fit = s.fit_eye(left)
    assert fit.rms_residual < 1e-9
    score = split_half_score(
        left, geometry=s.geometry, seed=s.default_params(Eye.LEFT), options=s.options, policy=s.policy
    )
    assert score == float("inf")

    _left, right = _pair(s)
    res = s.get_projection_matrices(left, right)
    assert res.left.fitted and res.right.fitted
    assert res.metrics["split_left"] == float("inf")
    assert res.grade is ConsistencyGrade.VERY_BAD


def test_stereo_rejects_swapped_eyes():
    s = _session()
    left, right = _pair(s)
    with pytest.raises(ValueError):
        s.get_projection_matrices(right, left)


def test_stereo_is_deterministic():
    s = _session()
    pair = _pair(s, left_noise=0.004, right_noise=0.004)
    a = s.get_projection_matrices(*pair)
    b = s.get_projection_matrices(*pair)
    assert a.grade is b.grade
    assert a.metrics == b.metrics
    assert np.array_equal(a.left.calibration.eye_projection, b.left.calibration.eye_projection)
