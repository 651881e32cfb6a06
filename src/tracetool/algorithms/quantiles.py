"""
Descriptive statistics shared by the resampler and the grouped statistics.

Quantile rule: for probability p over n sorted values the rank is p * (n - 1);
a fractional rank interpolates linearly between the two neighbouring order
statistics. This is numpy's "linear" method and the only one used anywhere in
tracetool, so bucketed and grouped figures agree for the same samples.

Sums use math.fsum (exactly rounded), which makes means independent of the
order in which samples arrive.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from tracetool.errors import ComputeError

STAT_NAMES = ("count", "min", "max", "mean", "median", "q1", "q3", "iqr", "stddev")


def quantiles(values: Sequence[float], probs: Sequence[float], *, presorted: bool = False) -> np.ndarray:
    """Linear-interpolation quantiles of `values` at each probability in `probs`.

    Raises:
        ComputeError: If `values` is empty.
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ComputeError("Quantile requested on an empty sample")
    if not presorted:
        arr = np.sort(arr, kind="stable")
    return np.quantile(arr, np.asarray(probs, dtype=float), method="linear")


def sample_stddev(values: np.ndarray, mean: float) -> float:
    """Sample (n - 1) standard deviation; NaN when fewer than two values."""
    n = len(values)
    if n < 2:
        return float("nan")
    return math.sqrt(math.fsum((v - mean) ** 2 for v in values.tolist()) / (n - 1))


def describe(values: Sequence[float]) -> dict[str, float]:
    """Full descriptive statistics of one sample (see STAT_NAMES).

    stddev is NaN for fewer than two values.

    Raises:
        ComputeError: If `values` is empty.
    """
    arr = np.sort(np.asarray(values, dtype=float), kind="stable")
    n = arr.size
    if n == 0:
        raise ComputeError("Statistics requested on an empty sample")
    mean = math.fsum(arr.tolist()) / n
    q1, median, q3 = quantiles(arr, (0.25, 0.5, 0.75), presorted=True).tolist()
    return {
        "count": n,
        "min": float(arr[0]),
        "max": float(arr[-1]),
        "mean": mean,
        "median": median,
        "q1": q1,
        "q3": q3,
        "iqr": q3 - q1,
        "stddev": sample_stddev(arr, mean),
    }
