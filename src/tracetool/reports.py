"""CSV report writers for grouped statistics and correlation results.

Undefined values (the stddev of a single-sample group) are written as empty
cells rather than zero or "nan".
"""

from __future__ import annotations

import sys
from typing import Optional, Sequence, TextIO

import pandas as pd

from tracetool.algorithms.correlation import CorrelationResult, correlation_frame
from tracetool.algorithms.group_stats import GroupStatRow, group_stats_frame
from tracetool.config.durations import TimeUnit

GROUP_STATS_HEADER = [
    "group ID", "count", "min", "max", "mean", "median",
    "Q1", "Q3", "IQR", "standard deviation",
]
CORRELATION_HEADER = ["group ID", "sample count", "Q3 (ms)", "variance ratio"]


def _write(df: pd.DataFrame, header: list[str], out: Optional[TextIO]) -> None:
    df = df.copy()
    df.columns = header
    df.to_csv(out if out is not None else sys.stdout, index=False, na_rep="", lineterminator="\n")


def write_group_statistics(
    rows: Sequence[GroupStatRow],
    unit: Optional[TimeUnit] = None,
    out: Optional[TextIO] = None,
) -> None:
    """Write one CSV row per group, durations expressed in `unit` (seconds if None)."""
    _write(group_stats_frame(rows, unit), GROUP_STATS_HEADER, out)


def write_correlation(results: Sequence[CorrelationResult], out: Optional[TextIO] = None) -> None:
    """Write correlation rows in the order given (ascending variance ratio)."""
    _write(correlation_frame(results), CORRELATION_HEADER, out)
