"""
Execution time vs overlap correlation, per group.

For each group the paired samples (execution_time_i, overlap_i) are centered.
The 2x2 sample covariance matrix

    | a  b |
    | b  c |

has eigenvalues tr/2 +- sqrt(((a - c) / 2)**2 + b**2) with tr = a + c, and the
variance ratio is lambda_max / (lambda_1 + lambda_2), which lies in [0.5, 1.0].
1.0 means execution time is fully explained by overlap with other queries;
0.5 means the two are unrelated and spread alike. On raw nanoseconds the
variable with the larger spread dominates; CorrelationConfig.standardize
scales both to unit variance first, which turns the covariance matrix into
the correlation matrix. Groups are reported lowest ratio first.

A group is excluded (ComputeError, reported as a Diagnostic) when it has
fewer than `min_samples` pairs or when either variable has zero variance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Hashable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from tracetool.algorithms.fanout import fan_out
from tracetool.algorithms.overlap import overlap_to_percent
from tracetool.algorithms.quantiles import quantiles
from tracetool.config.analysis_config import CorrelationConfig
from tracetool.config.durations import NS_PER_MS
from tracetool.errors import ComputeError, DataError, Diagnostic, InputError
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

CORRELATION_COLUMNS = ["group_id", "sample_count", "q3_exec_time_ms", "variance_ratio"]


@dataclass(frozen=True)
class CorrelationResult:
    group_id: Hashable
    sample_count: int
    q3_exec_time: float  # ns
    variance_ratio: float

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def covariance_eigenvalues(a: float, b: float, c: float) -> tuple[float, float]:
    """Eigenvalues (largest first) of the symmetric matrix [[a, b], [b, c]].

    Closed form from trace and determinant; no iterative solver.
    """
    half_trace = (a + c) / 2.0
    radius = math.sqrt(((a - c) / 2.0) ** 2 + b * b)
    return half_trace + radius, half_trace - radius


def _centered_sums(x: np.ndarray, y: np.ndarray) -> tuple[float, float, float]:
    n = len(x)
    dx = x - math.fsum(x.tolist()) / n
    dy = y - math.fsum(y.tolist()) / n
    sxx = math.fsum((dx * dx).tolist())
    syy = math.fsum((dy * dy).tolist())
    sxy = math.fsum((dx * dy).tolist())
    return sxx, sxy, syy


def variance_ratio(
    execution_time: Sequence[float],
    overlap: Sequence[float],
    *,
    standardize: bool = False,
) -> float:
    """Share of the total variance carried by the dominant principal component.

    Args:
        execution_time: First variable.
        overlap: Second variable, paired index by index with the first.
        standardize: Scale both variables to unit variance first. Without it
            (the default) the eigen analysis runs on the sample covariance and
            the ratio is dominated by whichever variable has the larger spread.

    Raises:
        ComputeError: On fewer than two pairs or zero variance in either variable.
    """
    x = np.asarray(execution_time, dtype=float)
    y = np.asarray(overlap, dtype=float)
    if x.shape != y.shape:
        raise InputError(f"Paired samples differ in length: {x.size} vs {y.size}")
    n = x.size
    if n < 2:
        raise ComputeError(f"Covariance needs at least 2 paired samples, got {n}")

    sxx, sxy, syy = _centered_sums(x, y)
    if sxx == 0.0 or syy == 0.0:
        which = "execution time" if sxx == 0.0 else "overlap"
        raise ComputeError(f"Zero variance in {which}")

    a, b, c = sxx / (n - 1), sxy / (n - 1), syy / (n - 1)
    if standardize:
        b = b / math.sqrt(a * c)
        a = c = 1.0

    lam_max, lam_min = covariance_eigenvalues(a, b, c)
    ratio = lam_max / (lam_max + lam_min)
    # rounding can push a perfectly correlated ratio a hair outside the range
    return min(1.0, max(0.5, ratio))


def correlate_group(
    group_id: Hashable,
    execution_time: Sequence[float],
    overlap: Sequence[float],
    config: Optional[CorrelationConfig] = None,
) -> tuple[CorrelationResult, list[Diagnostic]]:
    """Correlation result for one group.

    With config.overlap_as_percent, pairs whose execution time is zero have
    no defined percentage; they are dropped and reported as one DataError
    diagnostic for the group.

    Raises:
        ComputeError: If the group has too few pairs or a degenerate covariance.
    """
    config = config or CorrelationConfig()
    x = np.asarray(execution_time, dtype=float)
    y = np.asarray(overlap, dtype=float)
    diagnostics: list[Diagnostic] = []

    if config.overlap_as_percent:
        y = overlap_to_percent(x, y)
        undefined = np.isnan(y)
        if undefined.any():
            err = DataError(
                f"{int(undefined.sum())} sample(s) with zero execution time have no overlap percentage",
                details={"group_id": group_id},
            )
            logger.warning(f"Group {group_id!r}: {err}")
            diagnostics.append(Diagnostic.from_error(err, key=group_id))
            x, y = x[~undefined], y[~undefined]

    n = int(x.size)
    if n < config.min_samples:
        raise ComputeError(
            f"Group {group_id!r} has {n} paired samples, fewer than the minimum {config.min_samples}",
            details={"group_id": group_id, "sample_count": n},
        )
    try:
        ratio = variance_ratio(x, y, standardize=config.standardize)
    except ComputeError as e:
        raise ComputeError(f"Group {group_id!r}: {e}", details={"group_id": group_id}) from e

    q3 = float(quantiles(x, (0.75,))[0])
    result = CorrelationResult(group_id=group_id, sample_count=n, q3_exec_time=q3, variance_ratio=ratio)
    return result, diagnostics


def correlate_groups(
    pairs_by_group: Mapping[Hashable, tuple[Sequence[float], Sequence[float]]],
    config: Optional[CorrelationConfig] = None,
    *,
    max_workers: int = 1,
) -> tuple[list[CorrelationResult], list[Diagnostic]]:
    """
    Run the correlation analysis for every group.

    Args:
        pairs_by_group: {group_id: (execution_time, overlap)}.
        config: Thresholds and scaling; defaults to CorrelationConfig().
        max_workers: Thread count for the per-group fan-out.

    Returns:
        (results sorted ascending by variance_ratio then group_id, diagnostics
        in group id order).
    """
    config = config or CorrelationConfig()

    def _task(group_id: Hashable, pair: tuple[Sequence[float], Sequence[float]]):
        try:
            return correlate_group(group_id, pair[0], pair[1], config)
        except ComputeError as e:
            return e

    results: list[CorrelationResult] = []
    diagnostics: list[Diagnostic] = []
    for group_id, outcome in fan_out(_task, pairs_by_group, max_workers=max_workers):
        if isinstance(outcome, ComputeError):
            logger.warning(f"Excluding group {group_id!r} from correlation: {outcome}")
            diagnostics.append(Diagnostic.from_error(outcome, key=group_id))
            continue
        result, group_diagnostics = outcome
        results.append(result)
        diagnostics.extend(group_diagnostics)

    results.sort(key=lambda r: (r.variance_ratio, r.group_id))
    logger.info(f"Correlated {len(results)} groups ({len(pairs_by_group) - len(results)} excluded)")
    return results, diagnostics


def correlation_frame(results: Sequence[CorrelationResult]) -> pd.DataFrame:
    """Results as a report table, Q3 execution time in milliseconds."""
    return pd.DataFrame(
        [
            (r.group_id, r.sample_count, r.q3_exec_time / NS_PER_MS, r.variance_ratio)
            for r in results
        ],
        columns=CORRELATION_COLUMNS,
    )
