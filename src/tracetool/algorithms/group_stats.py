"""
Grouped descriptive statistics, pure pandas/numpy.

One row per group id with count, min, max, mean, median, q1, q3, iqr and the
sample standard deviation. There is no time bucketing: every sample of a
group contributes. Quantiles follow the same linear interpolation rule as
the resampler (see tracetool.algorithms.quantiles).

Groups with a single sample still get a row; their stddev is NaN. A group
with no samples cannot be described and is excluded with a diagnostic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Hashable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from tracetool.algorithms.fanout import fan_out
from tracetool.algorithms.quantiles import STAT_NAMES, describe
from tracetool.config.durations import TimeUnit, nanoseconds_to_unit
from tracetool.errors import ComputeError, Diagnostic, InputError
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

# Statistics carrying the unit of the samples (count does not).
TIME_STATS = ("min", "max", "mean", "median", "q1", "q3", "iqr", "stddev")


@dataclass(frozen=True)
class GroupStatRow:
    group_id: Hashable
    count: int
    min: float
    max: float
    mean: float
    median: float
    q1: float
    q3: float
    iqr: float
    stddev: float  # NaN when count < 2

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


GROUP_STAT_COLUMNS = tuple(f.name for f in fields(GroupStatRow))


def describe_group(group_id: Hashable, values: Sequence[float]) -> GroupStatRow:
    """Describe one group's samples.

    Raises:
        ComputeError: If the group has no (non-NaN) samples.
    """
    arr = np.asarray(values, dtype=float)
    arr = arr[~np.isnan(arr)]
    try:
        stats = describe(arr)
    except ComputeError as e:
        raise ComputeError(f"Group {group_id!r} has no samples", details={"group_id": group_id}) from e
    return GroupStatRow(group_id=group_id, **stats)


def _sort_key(sort_by: str):
    def key(row: GroupStatRow):
        value = getattr(row, sort_by)
        # NaN (undefined stddev) sorts last; ties fall back to group id.
        missing = isinstance(value, float) and math.isnan(value)
        return (missing, 0.0 if missing else value, row.group_id)
    return key


def group_statistics(
    samples_by_group: Mapping[Hashable, Sequence[float]],
    *,
    sort_by: Optional[str] = None,
    descending: bool = False,
    max_workers: int = 1,
) -> tuple[list[GroupStatRow], list[Diagnostic]]:
    """
    Compute one GroupStatRow per group.

    Args:
        samples_by_group: {group_id: values}.
        sort_by: None (ascending group id) or one of STAT_NAMES.
        descending: Reverse the statistic order (ignored for group id order).
        max_workers: Thread count for the per-group fan-out.

    Returns:
        (rows, diagnostics). Rows are ordered by group id, or by `sort_by`
        with ties broken by group id.
    """
    if sort_by is not None and sort_by not in STAT_NAMES:
        raise InputError(f"Cannot sort by {sort_by!r}; expected one of {', '.join(STAT_NAMES)}")

    def _task(group_id: Hashable, values: Sequence[float]):
        try:
            return describe_group(group_id, values)
        except ComputeError as e:
            return e

    rows: list[GroupStatRow] = []
    diagnostics: list[Diagnostic] = []
    for group_id, outcome in fan_out(_task, samples_by_group, max_workers=max_workers):
        if isinstance(outcome, ComputeError):
            logger.warning(f"Excluding group {group_id!r}: {outcome}")
            diagnostics.append(Diagnostic.from_error(outcome, key=group_id))
            continue
        rows.append(outcome)

    if sort_by is not None:
        rows.sort(key=_sort_key(sort_by))
        if descending:
            defined = [r for r in rows if not _is_nan(getattr(r, sort_by))]
            undefined = [r for r in rows if _is_nan(getattr(r, sort_by))]
            rows = sorted(defined, key=lambda r: getattr(r, sort_by), reverse=True) + undefined
    logger.info(f"Computed statistics for {len(rows)} groups ({len(diagnostics)} excluded)")
    return rows, diagnostics


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def group_stats_frame(rows: Sequence[GroupStatRow], unit: Optional[TimeUnit] = None) -> pd.DataFrame:
    """Rows as a DataFrame, with nanosecond statistics converted to `unit` (seconds if None)."""
    df = pd.DataFrame([r.to_dict() for r in rows], columns=list(GROUP_STAT_COLUMNS))
    for col in TIME_STATS:
        df[col] = nanoseconds_to_unit(df[col].to_numpy(dtype=float), unit)
    return df
