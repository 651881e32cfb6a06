"""
Time-bucketed resampler, shared by the plotting and the reporting paths.

Assumptions:
  1. Ordering: timestamps arrive in non-decreasing order (the store reads
     them ordered). Out-of-order input raises InputError; the resampler
     never sorts, since bucket boundaries depend on the input order.
  2. Buckets are half-open [bucket_start, bucket_start + size) and aligned to
     the epoch: bucket_start = floor(ts / size) * size. Calendar units use
     their idealized lengths, so weekly buckets start on a Thursday (the
     weekday of 1970-01-01).
  3. Empty buckets produce no point. Gaps are neither filled nor
     interpolated; segment_points() splits a series at gaps for drawing.
  4. NaN values (NULL in the store) are missing samples and are dropped
     before bucketing.

Because the input is ordered, every bucket is one contiguous run of samples.
Each run is fed to a BucketAccumulator and flushed when the run ends.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from tracetool.algorithms.quantiles import quantiles
from tracetool.config.aggregation import Aggregation, AggregationMode
from tracetool.config.durations import Duration
from tracetool.errors import InputError
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

_QUANTILE_PROBS = {"q1": 0.25, "median": 0.5, "q3": 0.75}


@dataclass(frozen=True)
class AggregatedPoint:
    bucket_start: int
    value: float


class BucketAccumulator:
    """Accumulator for the currently open bucket.

    Streaming modes (mean, min, max, count, stddev) keep only running
    totals. Percentile modes buffer the bucket's samples until flush(),
    which sorts them once and discards the buffer.
    """

    def __init__(self, mode: AggregationMode):
        self.mode = mode
        self._buffer: list[np.ndarray] = []
        self._reset()

    def _reset(self) -> None:
        self.count = 0
        self._min = math.inf
        self._max = -math.inf
        self._sum = 0.0
        self._mean = 0.0
        self._m2 = 0.0
        self._buffer = []

    def extend(self, values: np.ndarray) -> None:
        """Add a run of samples that fall in the open bucket."""
        n = len(values)
        if n == 0:
            return
        if self.mode.needs_samples:
            self._buffer.append(values)
            self.count += n
            return

        run_sum = math.fsum(values.tolist())
        run_mean = run_sum / n
        run_m2 = math.fsum(((values - run_mean) ** 2).tolist())
        # Chan et al. pairwise update of (count, mean, M2)
        total = self.count + n
        delta = run_mean - self._mean
        self._m2 = self._m2 + run_m2 + delta * delta * self.count * n / total
        self._sum = math.fsum((self._sum, run_sum))
        self._mean = self._sum / total
        self.count = total
        self._min = min(self._min, float(values.min()))
        self._max = max(self._max, float(values.max()))

    def flush(self, min_count: Optional[int] = None) -> Optional[dict[str, float]]:
        """Close the bucket and return {statistic: value}, or None if it yields no point.

        A bucket yields no point when it is empty, holds fewer than
        `min_count` samples, or (stddev) holds fewer than two samples.
        """
        try:
            if self.count == 0 or (min_count is not None and self.count < min_count):
                return None
            return self._statistics()
        finally:
            self._reset()

    def _statistics(self) -> Optional[dict[str, float]]:
        mode = self.mode
        if mode.needs_samples:
            samples = np.sort(np.concatenate(self._buffer), kind="stable")
            if mode is AggregationMode.IQR:
                q1, q3 = quantiles(samples, (0.25, 0.75), presorted=True).tolist()
                return {"iqr": q3 - q1}
            names = mode.statistics
            values = quantiles(samples, [_QUANTILE_PROBS[n] for n in names], presorted=True).tolist()
            return dict(zip(names, values))
        if mode is AggregationMode.MEAN:
            return {"mean": self._mean}
        if mode is AggregationMode.MIN:
            return {"min": self._min}
        if mode is AggregationMode.MAX:
            return {"max": self._max}
        if mode is AggregationMode.COUNT:
            return {"count": float(self.count)}
        if mode is AggregationMode.STDDEV:
            if self.count < 2:
                return None
            return {"stddev": math.sqrt(self._m2 / (self.count - 1))}
        raise InputError(f"Unsupported aggregation mode {mode.value!r}")


def bucket_starts(timestamps: np.ndarray, size_ns: int) -> np.ndarray:
    """Epoch-aligned start of the bucket containing each timestamp."""
    ts = np.asarray(timestamps, dtype=np.int64)
    return np.floor_divide(ts, size_ns) * size_ns


def _size_ns(size: Union[Duration, str, int]) -> int:
    if isinstance(size, (int, np.integer)) and not isinstance(size, bool):
        if size <= 0:
            raise InputError(f"Bucket size must be positive, got {size}")
        return int(size)
    return Duration.parse(size).nanoseconds


def resample(
    timestamps: Sequence[int],
    values: Sequence[float],
    size: Union[Duration, str, int],
    mode: Union[AggregationMode, str],
    min_count: Optional[int] = None,
) -> dict[str, list[AggregatedPoint]]:
    """
    Aggregate an ordered series into time buckets.

    Args:
        timestamps: Epoch nanoseconds, non-decreasing.
        values: One value per timestamp.
        size: Bucket size as Duration, duration string or integer nanoseconds.
        mode: Statistic to compute per bucket.
        min_count: Buckets with fewer samples produce no point.

    Returns:
        {statistic: points} with one entry per statistic of the mode
        ("quartiles" yields "q1" and "q3"); points are ordered by bucket_start.

    Raises:
        InputError: On mismatched lengths, unordered timestamps or a bad size/mode.
    """
    mode = mode if isinstance(mode, AggregationMode) else AggregationMode.parse(mode)
    size_ns = _size_ns(size)
    ts = np.asarray(timestamps, dtype=np.int64)
    vals = np.asarray(values, dtype=float)
    if ts.shape != vals.shape:
        raise InputError(f"timestamps ({ts.size}) and values ({vals.size}) differ in length")

    keep = ~np.isnan(vals)
    if not keep.all():
        logger.debug(f"Dropping {int((~keep).sum())} missing values before resampling")
        ts, vals = ts[keep], vals[keep]

    out: dict[str, list[AggregatedPoint]] = {name: [] for name in mode.statistics}
    if ts.size == 0:
        return out
    if np.any(np.diff(ts) < 0):
        raise InputError("Timestamps must be in non-decreasing order to be resampled")

    starts = bucket_starts(ts, size_ns)
    boundaries = np.flatnonzero(np.diff(starts)) + 1
    edges = np.concatenate(([0], boundaries, [ts.size]))

    acc = BucketAccumulator(mode)
    for lo, hi in zip(edges[:-1].tolist(), edges[1:].tolist()):
        acc.extend(vals[lo:hi])
        stats = acc.flush(min_count)
        if stats is None:
            continue
        bucket_start = int(starts[lo])
        for name, value in stats.items():
            out[name].append(AggregatedPoint(bucket_start=bucket_start, value=value))

    logger.debug(
        f"Resampled {ts.size} samples into {len(edges) - 1} buckets of {size_ns} ns ({mode.value})"
    )
    return out


def resample_aggregation(
    timestamps: Sequence[int],
    values: Sequence[float],
    aggregation: Aggregation,
) -> dict[str, list[AggregatedPoint]]:
    """resample() driven by an Aggregation config value."""
    return resample(
        timestamps,
        values,
        aggregation.size,
        aggregation.mode,
        min_count=aggregation.min_count,
    )


def segment_points(points: Sequence[AggregatedPoint], size_ns: int) -> list[list[AggregatedPoint]]:
    """Split a series into runs of consecutive buckets.

    A new segment starts wherever the distance to the previous point exceeds
    one bucket, so a line plot never bridges missing buckets.
    """
    segments: list[list[AggregatedPoint]] = []
    current: list[AggregatedPoint] = []
    for point in points:
        if current and point.bucket_start - current[-1].bucket_start > size_ns:
            segments.append(current)
            current = []
        current.append(point)
    if current:
        segments.append(current)
    return segments
