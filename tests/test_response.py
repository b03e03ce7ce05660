import numpy as np

from crfcalib.core.curves import RgbCurve
from crfcalib.hdr.response import ResponseAccumulator, accumulate_group, combine, normalize_response


def test_accumulate_group_counts_every_sample_image_pair():
    q = 8
    quantized = [
        np.full((2, 2, 3), 1, dtype=np.uint16),
        np.full((2, 2, 3), 4, dtype=np.uint16),
    ]
    radiance = np.full((2, 2, 3), 0.5, dtype=np.float32)
    points = np.array([[0, 0], [1, 1], [0, 1]])

    acc = accumulate_group(quantized, [1.0, 2.0], radiance, points, q)

    assert acc.count[1].tolist() == [3, 3, 3]
    assert acc.count[4].tolist() == [3, 3, 3]
    assert acc.count.sum() == 3 * 2 * 3
    np.testing.assert_allclose(acc.numerator[1], 3 * 1.0 * 0.5)
    np.testing.assert_allclose(acc.numerator[4], 3 * 2.0 * 0.5)


def test_solve_keeps_previous_value_for_unobserved_bins():
    q = 4
    acc = ResponseAccumulator.empty(q)
    acc.numerator[2] = [6.0, 6.0, 6.0]
    acc.count[2] = [3, 3, 3]
    previous = RgbCurve(np.array([10.0, 11.0, 12.0, 13.0]))
    new = acc.solve(previous)
    assert new.table[:, 0].tolist() == [10.0, 11.0, 2.0, 13.0]


def test_combine_equals_sum_of_partials():
    rng = np.random.default_rng(2)
    parts = []
    for _ in range(3):
        parts.append(
            ResponseAccumulator(
                numerator=rng.uniform(size=(5, 3)),
                count=rng.integers(0, 4, size=(5, 3)),
            )
        )
    total = combine(parts, 5)
    np.testing.assert_allclose(total.numerator, sum(p.numerator for p in parts))
    assert np.array_equal(total.count, sum(p.count for p in parts))


def test_normalize_response_pivot_and_idempotence():
    rng = np.random.default_rng(3)
    curve = normalize_response(RgbCurve(rng.uniform(0.5, 4.0, size=(256, 3))))
    assert np.all(curve.table[128] == 1.0)
    assert np.array_equal(normalize_response(curve).table, curve.table)


def test_normalize_response_skips_channel_with_zero_pivot():
    table = np.ones((4, 3))
    table[:, 0] = [1.0, 2.0, 0.0, 3.0]
    table[:, 1] = 2.0
    curve = normalize_response(RgbCurve(table))
    assert curve.table[:, 0].tolist() == [1.0, 2.0, 0.0, 3.0]
    assert np.all(curve.table[:, 1] == 1.0)
