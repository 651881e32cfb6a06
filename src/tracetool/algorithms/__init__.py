"""Analytics engines: overlap sweep, resampler, grouped statistics, correlation."""

from tracetool.algorithms.correlation import (
    CorrelationResult,
    correlate_groups,
    covariance_eigenvalues,
    variance_ratio,
)
from tracetool.algorithms.fanout import fan_out
from tracetool.algorithms.group_stats import GroupStatRow, group_statistics
from tracetool.algorithms.overlap import (
    ActiveCountPoint,
    Event,
    OverlapRecord,
    OverlapResult,
    compute_overlap,
    compute_overlap_partitioned,
    merge_overlap_results,
    overlap_to_percent,
)
from tracetool.algorithms.resample import AggregatedPoint, BucketAccumulator, resample, segment_points

__all__ = [
    "ActiveCountPoint",
    "AggregatedPoint",
    "BucketAccumulator",
    "CorrelationResult",
    "Event",
    "GroupStatRow",
    "OverlapRecord",
    "OverlapResult",
    "compute_overlap",
    "compute_overlap_partitioned",
    "correlate_groups",
    "covariance_eigenvalues",
    "fan_out",
    "group_statistics",
    "merge_overlap_results",
    "overlap_to_percent",
    "resample",
    "segment_points",
    "variance_ratio",
]
