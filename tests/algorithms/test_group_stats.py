"""Tests for grouped descriptive statistics and the shared quantile helpers."""

import math

import numpy as np
import pytest

from tracetool.algorithms.group_stats import (
    GROUP_STAT_COLUMNS,
    describe_group,
    group_statistics,
    group_stats_frame,
)
from tracetool.algorithms.quantiles import describe, quantiles
from tracetool.config.durations import TimeUnit
from tracetool.errors import ComputeError, InputError


def test_describe_known_sample():
    """All statistics of 1..5."""
    stats = describe([5, 1, 4, 2, 3])
    assert stats["count"] == 5
    assert stats["min"] == 1.0
    assert stats["max"] == 5.0
    assert stats["mean"] == 3.0
    assert stats["median"] == 3.0
    assert stats["q1"] == 2.0
    assert stats["q3"] == 4.0
    assert stats["iqr"] == 2.0
    assert stats["stddev"] == pytest.approx(math.sqrt(2.5))


def test_quantiles_match_numpy_linear():
    """Rank p*(n-1) with linear interpolation."""
    values = [7.0, 1.0, 3.0, 10.0]
    assert quantiles(values, (0.25, 0.5, 0.75)).tolist() == pytest.approx([2.5, 5.0, 7.75])


def test_quantiles_of_empty_sample_raise():
    with pytest.raises(ComputeError):
        quantiles([], (0.5,))


def test_single_sample_group_has_no_stddev():
    """count/min/max/mean are reported, stddev is NaN (not zero)."""
    row = describe_group(9, [42.0])
    assert (row.count, row.min, row.max, row.mean, row.median) == (1, 42.0, 42.0, 42.0, 42.0)
    assert math.isnan(row.stddev)


def test_rows_ordered_by_group_id():
    """Default order is ascending group id, whatever the input order."""
    rows, diagnostics = group_statistics({3: [1.0], 1: [2.0, 4.0], 2: [5.0]})
    assert [r.group_id for r in rows] == [1, 2, 3]
    assert diagnostics == []


def test_empty_group_is_excluded_with_diagnostic():
    """A group without samples cannot be described."""
    rows, diagnostics = group_statistics({1: [1.0, 2.0], 2: []})
    assert [r.group_id for r in rows] == [1]
    assert len(diagnostics) == 1
    assert diagnostics[0].kind == "ComputeError"
    assert diagnostics[0].key == 2


def test_sort_by_statistic_with_group_tie_break():
    """sort_by orders rows by the statistic, ties by group id."""
    samples = {1: [5.0, 6.0], 2: [1.0, 2.0], 3: [5.0, 6.0], 4: [0.5, 9.0]}
    rows, _ = group_statistics(samples, sort_by="q3")
    assert [r.group_id for r in rows] == [2, 1, 3, 4]
    rows, _ = group_statistics(samples, sort_by="q3", descending=True)
    assert [r.group_id for r in rows] == [4, 1, 3, 2]


def test_sort_by_stddev_puts_undefined_last():
    """NaN stddev sorts after every defined value, in both directions."""
    samples = {1: [1.0], 2: [1.0, 3.0], 3: [1.0, 9.0]}
    rows, _ = group_statistics(samples, sort_by="stddev")
    assert [r.group_id for r in rows] == [2, 3, 1]
    rows, _ = group_statistics(samples, sort_by="stddev", descending=True)
    assert [r.group_id for r in rows] == [3, 2, 1]


def test_unknown_sort_column_raises():
    with pytest.raises(InputError):
        group_statistics({1: [1.0]}, sort_by="p99")


def test_quantile_ordering_per_group():
    """q1 <= median <= q3 for every group."""
    rng = np.random.default_rng(1)
    samples = {g: rng.lognormal(size=int(rng.integers(1, 60))) for g in range(20)}
    rows, _ = group_statistics(samples)
    for row in rows:
        assert row.q1 <= row.median <= row.q3
        assert row.iqr == pytest.approx(row.q3 - row.q1)


def test_independent_of_worker_count():
    """Thread-pool fan-out gives the same rows in the same order."""
    rng = np.random.default_rng(2)
    samples = {g: rng.normal(100, 10, size=50) for g in range(12)}
    inline, _ = group_statistics(samples, max_workers=1)
    pooled, _ = group_statistics(samples, max_workers=4)
    assert inline == pooled


def test_frame_converts_to_unit():
    """Statistics in ns are converted for reporting; count is not."""
    rows, _ = group_statistics({1: [1_000_000.0, 3_000_000.0]})
    df = group_stats_frame(rows, TimeUnit.MILLISECONDS)
    assert list(df.columns) == list(GROUP_STAT_COLUMNS)
    assert df.loc[0, "count"] == 2
    assert df.loc[0, "mean"] == pytest.approx(2.0)
    assert df.loc[0, "max"] == pytest.approx(3.0)
