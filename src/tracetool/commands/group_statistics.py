"""`group-statistics`: descriptive statistics of one column per group."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, TextIO, Union

from tracetool.algorithms.group_stats import GroupStatRow, group_statistics
from tracetool.config.durations import TimeUnit
from tracetool.config.filter import Filter, WorkHours
from tracetool.errors import Diagnostic
from tracetool.reports import write_group_statistics
from tracetool.store.event_store import EventSchema, EventStore
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)


def group_statistics_command(
    database: Union[str, Path],
    *,
    column: Optional[str] = None,
    filter: Optional[Filter] = None,
    workhours: Optional[WorkHours] = None,
    unit: Optional[TimeUnit] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
    schema: Optional[EventSchema] = None,
    max_workers: int = 1,
    out: Optional[TextIO] = None,
) -> tuple[list[GroupStatRow], list[Diagnostic]]:
    """
    Compute statistics of `column` (the duration column by default) per group
    and write the CSV report.

    Args:
        database: SQLite event store.
        column: Column of the events table holding nanosecond values.
        filter: Time range, work hours and pass-through predicate.
        workhours: Business-hours window for filter.workhours.
        unit: Report unit for the statistics (seconds if None).
        sort_by: Statistic to order rows by; group id order if None.
        descending: Largest statistic first.
        schema: Table and column names.
        max_workers: Thread count for the per-group fan-out.
        out: Stream for the CSV (stdout if None).

    Returns:
        (rows, diagnostics) with rows in report order and values in nanoseconds.
    """
    with EventStore(database, schema) as store:
        samples = store.read_samples_by_group(column, filter, workhours)
    logger.info(f"Read samples for {len(samples)} groups")

    rows, diagnostics = group_statistics(
        samples, sort_by=sort_by, descending=descending, max_workers=max_workers
    )
    write_group_statistics(rows, unit, out)
    return rows, diagnostics
