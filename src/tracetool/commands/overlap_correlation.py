"""`overlap-correlation`: rank groups by how well overlap explains execution time."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, TextIO, Union

from tracetool.algorithms.correlation import CorrelationResult, correlate_groups
from tracetool.config.analysis_config import CorrelationConfig
from tracetool.config.filter import Filter, WorkHours
from tracetool.errors import Diagnostic
from tracetool.reports import write_correlation
from tracetool.store.event_store import EventSchema, EventStore
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)


def overlap_correlation_command(
    database: Union[str, Path],
    *,
    filter: Optional[Filter] = None,
    config: Optional[CorrelationConfig] = None,
    workhours: Optional[WorkHours] = None,
    schema: Optional[EventSchema] = None,
    max_workers: int = 1,
    out: Optional[TextIO] = None,
) -> tuple[list[CorrelationResult], list[Diagnostic]]:
    """Correlate execution time with overlap per group and write the CSV report.

    Requires the overlap table written by compute-overlap.
    """
    with EventStore(database, schema) as store:
        pairs = store.read_overlap_samples(filter, workhours=workhours)
    logger.info(f"Read paired samples for {len(pairs)} groups")

    results, diagnostics = correlate_groups(pairs, config, max_workers=max_workers)
    write_correlation(results, out)
    return results, diagnostics
