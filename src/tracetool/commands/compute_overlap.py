"""`compute-overlap`: sweep the event store and persist the overlap tables."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional, Union

from tracetool.algorithms.overlap import (
    OverlapResult,
    compute_overlap,
    compute_overlap_partitioned,
    events_from_frame,
    merge_overlap_results,
)
from tracetool.store.event_store import EventSchema, EventStore
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)


def compute_overlap_command(
    database: Union[str, Path],
    *,
    schema: Optional[EventSchema] = None,
    per_group: bool = False,
    max_workers: int = 1,
) -> OverlapResult:
    """
    Compute overlap and active counts for every event with a group id.

    Args:
        database: SQLite event store.
        schema: Table and column names; defaults to EventSchema().
        per_group: Credit overlap only between events of the same group. The
            groups are swept independently (in parallel with max_workers > 1);
            the persisted active count still covers all groups.
        max_workers: Thread count for the per-group sweeps. The corpus-wide
            sweep is a single pass and ignores it.

    Returns:
        The persisted OverlapResult, including the diagnostics of skipped events.
    """
    if max_workers > 1 and not per_group:
        logger.warning(f"Ignoring max_workers={max_workers}: workers only apply to per-group sweeps")
    t0 = time.perf_counter()
    with EventStore(database, schema) as store:
        events = events_from_frame(store.read_events())
        logger.info(f"Read {len(events)} events from {store.path}")

        if per_group:
            by_group = compute_overlap_partitioned(events, max_workers=max_workers)
            result = merge_overlap_results(by_group.values())
        else:
            result = compute_overlap(events)

        store.write_overlap(result)

    if result.diagnostics:
        logger.warning(f"Skipped {len(result.diagnostics)} malformed event(s)")
    logger.info(
        f"compute-overlap: {len(result.records)} records, {len(result.active_counts)} "
        f"active-count points in {time.perf_counter() - t0:.2f}s"
    )
    return result
