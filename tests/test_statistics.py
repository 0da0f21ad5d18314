import math

import pytest

from api.services.statistics import compute_summary_stats, median, percentile, percentile_rank


def test_median_even_and_odd():
    assert median([1, 2, 3, 4]) == 2.5
    assert median([1, 2, 3]) == 2


def test_median_ignores_order():
    assert median([4, 1, 3, 2]) == 2.5


def test_empty_input_gives_no_statistics():
    stats = compute_summary_stats([])
    assert stats.count == 0
    assert stats.average is None
    assert stats.min is None
    assert stats.max is None
    assert stats.median is None
    assert stats.q1 is None
    assert stats.q3 is None


def test_missing_values_are_dropped():
    stats = compute_summary_stats([None, 2.0, float("nan"), 4.0])
    assert stats.count == 2
    assert stats.average == 3.0


def test_quartiles_interpolate_linearly():
    stats = compute_summary_stats([1, 2, 3, 4])
    # index = p * (n - 1): q1 at 0.75, q3 at 2.25
    assert stats.q1 == pytest.approx(1.75)
    assert stats.q3 == pytest.approx(3.25)
    assert stats.min == 1
    assert stats.max == 4


def test_single_value():
    stats = compute_summary_stats([3.5])
    assert stats.count == 1
    assert stats.median == stats.q1 == stats.q3 == 3.5


def test_percentile_bounds():
    assert percentile([5, 1, 3], 0) == 1
    assert percentile([5, 1, 3], 1) == 5
    assert percentile([], 0.5) is None
    with pytest.raises(ValueError):
        percentile([1, 2], 1.5)


def test_percentile_rank():
    assert percentile_rank([4.5, 3.0, 4.5], 3.0) == pytest.approx(33.33)
    assert percentile_rank([4.5, 3.0, 4.5], 4.5) == 100.0
    assert percentile_rank([], 3.0) is None
    assert percentile_rank([1, 2], None) is None


def test_summary_stats_are_plain_floats():
    stats = compute_summary_stats([1, 2])
    assert isinstance(stats.median, float)
    assert not math.isnan(stats.average)
