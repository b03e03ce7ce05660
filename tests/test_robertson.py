from __future__ import annotations

import numpy as np
import pytest

from crfcalib.core.curves import RgbCurve, triangle_weight, uniform_weight
from crfcalib.core.sampling import GridSampleSelector, fisheye_mask
from crfcalib.errors import CalibrationStateError, DimensionMismatchError, InvalidConfigurationError
from crfcalib.hdr.robertson import CalibrationState, RobertsonCalibrate, calibrate

TIMES = [0.25, 1.0, 4.0]


def _const(z: int, h: int = 8, w: int = 8) -> np.ndarray:
    return np.full((h, w, 3), z, dtype=np.uint8)


def _linear_groups() -> tuple[list[list[np.ndarray]], list[list[float]]]:
    # Linear camera, constant radiance per group (32 and 8 in bin units at t=1).
    # The groups share bins 8 and 32, which ties their scales together.
    group_a = [_const(8), _const(32), _const(128)]
    group_b = [_const(2), _const(8), _const(32)]
    return [group_a, group_b], [TIMES, TIMES]


def _random_groups(seed: int = 0) -> tuple[list[list[np.ndarray]], list[list[float]]]:
    rng = np.random.default_rng(seed)
    group = [rng.integers(0, 256, size=(12, 10, 3)).astype(np.uint8) for _ in TIMES]
    return [group], [TIMES]


def test_defaults_and_accessors():
    cal = RobertsonCalibrate()
    assert cal.get_max_iteration() == 500
    assert cal.get_threshold() == 0.01
    cal.set_max_iteration(20)
    cal.set_threshold(0.5)
    assert cal.max_iteration == 20
    assert cal.threshold == 0.5
    assert cal.state is CalibrationState.UNINITIALIZED


def test_two_groups_linear_camera_recovers_linear_response():
    groups, times = _linear_groups()
    cal = RobertsonCalibrate(max_iteration=500, threshold=1e-9)
    response = cal.process(groups, 256, times, 16, False, uniform_weight(256))

    assert cal.state is CalibrationState.CONVERGED
    st = cal.iteration_state
    assert st is not None
    assert st.iterations < 100
    assert st.last_delta <= 1e-9
    assert response.size == 256
    assert np.all(response.table[128] == 1.0)
    for m in (2, 8, 32, 128):
        np.testing.assert_allclose(response.table[m], m / 128.0, atol=1e-4)

    np.testing.assert_allclose(cal.get_radiance(0), 32 / 128.0, rtol=1e-3)
    np.testing.assert_allclose(cal.get_radiance(1), 8 / 128.0, rtol=1e-3)


def test_huge_threshold_stops_after_one_iteration():
    groups, times = _random_groups()
    cal = RobertsonCalibrate(max_iteration=50, threshold=1e300)
    cal.process(groups, 256, times, 40, False, triangle_weight(256))
    assert cal.iteration_state.iterations == 1
    assert cal.state is CalibrationState.CONVERGED


def test_unreachable_threshold_runs_to_iteration_cap():
    groups, times = _random_groups()
    cal = RobertsonCalibrate(max_iteration=5, threshold=1e-300)
    response = cal.process(groups, 256, times, 40, False, triangle_weight(256))
    assert cal.iteration_state.iterations == 5
    assert len(cal.iteration_state.history) == 5
    assert cal.state is CalibrationState.ITERATION_LIMIT_REACHED
    assert response.size == 256
    assert np.all(response.table[128] == 1.0)


def test_saturated_group_gives_zero_radiance():
    groups = [[_const(255) for _ in TIMES]]
    cal = RobertsonCalibrate(max_iteration=10)
    response = cal.process(groups, 256, [TIMES], 10, False, triangle_weight(256))
    assert np.all(cal.get_radiance(0) == 0.0)
    assert np.all(np.isfinite(response.table))
    assert cal.state in (CalibrationState.CONVERGED, CalibrationState.ITERATION_LIMIT_REACHED)


def test_dimension_mismatch_fails_before_allocation():
    img_a = np.zeros((100, 100, 3), dtype=np.float32)
    img_b = np.zeros((101, 100, 3), dtype=np.float32)
    cal = RobertsonCalibrate()
    with pytest.raises(DimensionMismatchError):
        cal.process([[img_a, img_b]], 256, [[1.0, 2.0]], 10, False, uniform_weight(256))
    assert cal.state is CalibrationState.UNINITIALIZED
    assert cal.group_count == 0
    with pytest.raises(CalibrationStateError):
        cal.get_radiance(0)


def _weight_with(value: float) -> RgbCurve:
    table = np.ones((256, 3))
    table[7, 1] = value
    return RgbCurve(table)


def _no_points(images, nb_points, fisheye):
    return np.zeros((0, 2), dtype=np.int64)


@pytest.mark.parametrize(
    "kwargs,overrides",
    [
        ({}, {"q": 0}),
        ({"max_iteration": 0}, {}),
        ({"max_iteration": True}, {}),
        ({"threshold": 0.0}, {}),
        ({}, {"times": [[0.25, 1.0]]}),
        ({}, {"times": [[0.25, 1.0, -4.0]]}),
        ({}, {"nb_points": 0}),
        ({}, {"nb_points": True}),
        ({}, {"weight": uniform_weight(128)}),
        ({}, {"weight": _weight_with(-0.5)}),
        ({}, {"weight": _weight_with(float("nan"))}),
        ({}, {"weight": 42}),
        ({}, {"groups": [], "times": []}),
        ({}, {"groups": [[]], "times": [[]]}),
        ({"sample_selector": _no_points}, {}),
    ],
)
def test_invalid_configuration(kwargs, overrides):
    groups, times = _random_groups()
    args = {"groups": groups, "q": 256, "times": times, "nb_points": 10, "weight": uniform_weight(256)}
    args.update(overrides)
    cal = RobertsonCalibrate(**kwargs)
    with pytest.raises(InvalidConfigurationError):
        cal.process(args["groups"], args["q"], args["times"], args["nb_points"], False, args["weight"])
    assert cal.state is CalibrationState.UNINITIALIZED
    assert cal.group_count == 0


def test_fisheye_flag_reaches_selector_and_points_stay_in_disk():
    h, w = 21, 31
    rng = np.random.default_rng(8)
    group = [rng.integers(0, 256, size=(h, w, 3)).astype(np.uint8) for _ in TIMES]
    inner = GridSampleSelector()
    calls = []

    def recording_selector(images, nb_points, fisheye):
        pts = inner(images, nb_points, fisheye)
        calls.append((nb_points, fisheye, pts))
        return pts

    cal = RobertsonCalibrate(max_iteration=3, sample_selector=recording_selector)
    cal.process([group], 256, [TIMES], 60, True, triangle_weight(256))

    assert len(calls) == 1
    nb_points, fisheye, pts = calls[0]
    assert nb_points == 60
    assert fisheye is True
    mask = fisheye_mask(h, w, inner.margin)
    assert pts.shape[0] > 0
    assert np.all(mask[pts[:, 0], pts[:, 1]])
    assert not mask[0, 0]


def test_failed_call_keeps_previous_results():
    groups, times = _linear_groups()
    cal = RobertsonCalibrate(threshold=1e-6)
    cal.process(groups, 256, times, 16, False, uniform_weight(256))
    before = np.array(cal.get_radiance(1))
    with pytest.raises(InvalidConfigurationError):
        cal.process(groups, 256, [TIMES], 16, False, uniform_weight(256))
    assert cal.group_count == 2
    assert np.array_equal(cal.get_radiance(1), before)


def test_rerun_replaces_state_and_radiance_is_read_only():
    groups, times = _linear_groups()
    cal = RobertsonCalibrate(threshold=1e-6)
    cal.process(groups, 256, times, 16, False, uniform_weight(256))
    assert cal.group_count == 2

    single, single_times = _random_groups(1)
    cal.process(single, 256, single_times, 16, False, triangle_weight(256))
    assert cal.group_count == 1
    rad = cal.get_radiance(0)
    assert rad.shape == (12, 10, 3)
    with pytest.raises(ValueError):
        rad[0, 0, 0] = 1.0
    with pytest.raises(IndexError):
        cal.get_radiance(1)


def test_callable_weight_and_float_images():
    rng = np.random.default_rng(4)
    base = rng.uniform(0.05, 0.2, size=(10, 10, 3))
    group = [np.clip(base * t, 0.0, 1.0).astype(np.float32) for t in TIMES]
    cal = RobertsonCalibrate(max_iteration=30)
    response = cal.process([group], 64, [TIMES], 50, True, lambda z, c: 1.0 if 0 < z < 63 else 0.0)
    assert response.size == 64
    assert np.all(response.table[32] == 1.0)


def test_threaded_run_matches_sequential():
    groups, times = _random_groups(5)
    groups = groups + _random_groups(6)[0]
    times = times + [TIMES]
    seq = RobertsonCalibrate(max_iteration=8, threshold=1e-300)
    par = RobertsonCalibrate(max_iteration=8, threshold=1e-300, workers=3)
    r_seq = seq.process(groups, 256, times, 30, False, triangle_weight(256))
    r_par = par.process(groups, 256, times, 30, False, triangle_weight(256))
    np.testing.assert_allclose(r_par.table, r_seq.table)
    for g in range(2):
        np.testing.assert_allclose(par.get_radiance(g), seq.get_radiance(g))


def test_out_of_bounds_selector_is_rejected():
    groups, times = _random_groups()

    def bad_selector(images, nb_points, fisheye):
        return np.array([[0, 0], [100, 0]])

    cal = RobertsonCalibrate(sample_selector=bad_selector)
    with pytest.raises(InvalidConfigurationError):
        cal.process(groups, 256, times, 2, False, uniform_weight(256))


def test_calibrate_helper_returns_radiance_for_every_group():
    groups, times = _linear_groups()
    response, radiance = calibrate(groups, times, RgbCurve.flat(256), nb_points=16, threshold=1e-6)
    assert response.size == 256
    assert len(radiance) == 2
    assert radiance[0].shape == (8, 8, 3)
