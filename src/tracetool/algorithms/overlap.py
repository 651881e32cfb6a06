"""
Overlap engine: sweep line over query execution intervals.

Each event is the half-open interval [start_ts, start_ts + duration). The
engine computes, per event, the total time it ran concurrently with other
events (overlap_ns) and how many other events it met (overlap_count), plus a
step function of the number of concurrently active events.

Algorithm:
  1. Arena: valid events are sorted by (start_ts, ordinal) and addressed by
     their position (a small integer id). Invalid events are skipped with a
     Diagnostic (negative duration, missing fields, duplicate identity).
  2. Event queue: one tagged tuple (ts, kind, id) per START and per END,
     sorted. END sorts before START at equal timestamps, so touching
     intervals never overlap; ties of the same kind fall back to id order.
  3. Sweep: on START of J, every active I receives
     min(end_I, end_J) - start_J, and so does J; both counts grow by one.
     J then joins the active set. On END the interval leaves the active set.
  4. After all queue entries of one timestamp are processed, the active
     count is emitted if it differs from the last emitted value.

Zero-duration intervals overlap nothing: they get an all-zero record and never
enter the sweep, so they never touch the active count.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Hashable, Iterable, Mapping

import numpy as np
import pandas as pd

from tracetool.algorithms.fanout import fan_out
from tracetool.errors import DataError, Diagnostic
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

OVERLAP_COLUMNS = ["timestamp", "ordinal", "overlap", "overlap_count"]
ACTIVE_COUNT_COLUMNS = ["timestamp", "count"]


@dataclass(frozen=True)
class Event:
    """One query execution, identified by (start_ts, ordinal)."""
    start_ts: int
    ordinal: int
    duration: int
    group_id: Hashable = None

    @property
    def end_ts(self) -> int:
        return self.start_ts + self.duration

    @property
    def key(self) -> tuple[int, int]:
        return (self.start_ts, self.ordinal)


@dataclass(frozen=True)
class OverlapRecord:
    timestamp: int
    ordinal: int
    overlap_ns: int
    overlap_count: int


@dataclass(frozen=True)
class ActiveCountPoint:
    timestamp: int
    count: int


@dataclass
class OverlapResult:
    """Output of one sweep.

    Attributes:
        records: One record per accepted event, ordered by (timestamp, ordinal).
        active_counts: Step function of concurrently active events.
        diagnostics: One entry per skipped input record.
    """
    records: list[OverlapRecord] = field(default_factory=list)
    active_counts: list[ActiveCountPoint] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def records_frame(self) -> pd.DataFrame:
        """Records as a DataFrame with the persisted overlap table's columns."""
        return pd.DataFrame(
            [(r.timestamp, r.ordinal, r.overlap_ns, r.overlap_count) for r in self.records],
            columns=OVERLAP_COLUMNS,
            dtype="int64",
        )

    def active_counts_frame(self) -> pd.DataFrame:
        """Active counts as a DataFrame with the persisted active-count table's columns."""
        return pd.DataFrame(
            [(p.timestamp, p.count) for p in self.active_counts],
            columns=ACTIVE_COUNT_COLUMNS,
            dtype="int64",
        )


class SweepKind(IntEnum):
    """Queue entry kind; the integer value is the tie-break order at equal timestamps."""
    END = 0
    START = 1


# -----------------------------------------------------------------------------
# Step 1: Validate input records
# -----------------------------------------------------------------------------


def _as_int(value: Any, name: str) -> int:
    if value is None or value is pd.NA or isinstance(value, bool):
        raise DataError(f"{name} is missing or not an integer: {value!r}")
    if isinstance(value, float):
        if math.isnan(value) or not value.is_integer():
            raise DataError(f"{name} is not an integer: {value!r}")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise DataError(f"{name} is not an integer: {value!r}") from e


def validate_event(raw: Any) -> Event:
    """Coerce an Event, mapping or (start_ts, ordinal, duration[, group_id]) tuple.

    Raises:
        DataError: If a field is missing, non-integer, or the duration is negative.
    """
    if isinstance(raw, Event):
        start, ordinal, duration, group_id = raw.start_ts, raw.ordinal, raw.duration, raw.group_id
    elif isinstance(raw, Mapping):
        start = raw.get("timestamp", raw.get("start_ts"))
        ordinal = raw.get("ordinal")
        duration = raw.get("duration")
        group_id = raw.get("group_id")
    else:
        try:
            start, ordinal, duration, *rest = raw
        except (TypeError, ValueError) as e:
            raise DataError(f"Malformed event record: {raw!r}") from e
        group_id = rest[0] if rest else None

    event = Event(
        start_ts=_as_int(start, "timestamp"),
        ordinal=_as_int(ordinal, "ordinal"),
        duration=_as_int(duration, "duration"),
        group_id=group_id,
    )
    if event.ordinal < 0:
        raise DataError(f"Negative ordinal {event.ordinal} for event at {event.start_ts}")
    if event.duration < 0:
        raise DataError(
            f"Negative duration {event.duration} for event ({event.start_ts}, {event.ordinal})"
        )
    return event


def build_arena(raw_events: Iterable[Any]) -> tuple[list[Event], list[Diagnostic]]:
    """Validate events and order them by (start_ts, ordinal).

    Invalid and duplicate records are skipped with a logged warning and a
    Diagnostic; the first occurrence of a duplicated identity wins.
    """
    seen: set[tuple[int, int]] = set()
    arena: list[Event] = []
    diagnostics: list[Diagnostic] = []
    for raw in raw_events:
        try:
            event = validate_event(raw)
            if event.key in seen:
                raise DataError(f"Duplicate event identity {event.key}")
        except DataError as e:
            key = _raw_key(raw)
            logger.warning(f"Skipping event {key}: {e}")
            diagnostics.append(Diagnostic.from_error(e, key=key))
            continue
        seen.add(event.key)
        arena.append(event)
    arena.sort(key=lambda ev: ev.key)
    return arena, diagnostics


def _raw_key(raw: Any) -> Hashable:
    if isinstance(raw, Event):
        return raw.key
    if isinstance(raw, Mapping):
        return (raw.get("timestamp", raw.get("start_ts")), raw.get("ordinal"))
    try:
        return (raw[0], raw[1])
    except (TypeError, IndexError, KeyError):
        return None


# -----------------------------------------------------------------------------
# Step 2-4: Sweep
# -----------------------------------------------------------------------------


def compute_overlap(raw_events: Iterable[Any]) -> OverlapResult:
    """Run the sweep over one set of events (a group or the whole corpus).

    Args:
        raw_events: Event objects, mappings with timestamp/ordinal/duration
            keys, or (timestamp, ordinal, duration[, group_id]) tuples.

    Returns:
        OverlapResult with records in (timestamp, ordinal) order.
    """
    arena, diagnostics = build_arena(raw_events)
    n = len(arena)
    starts = [ev.start_ts for ev in arena]
    ends = [ev.end_ts for ev in arena]

    queue: list[tuple[int, int, int]] = []
    for i in range(n):
        if ends[i] > starts[i]:
            queue.append((starts[i], SweepKind.START, i))
            queue.append((ends[i], SweepKind.END, i))
    queue.sort()

    overlap = [0] * n
    overlap_count = [0] * n
    active: dict[int, int] = {}  # id -> end_ts, insertion ordered
    active_counts: list[ActiveCountPoint] = []
    last_count = 0

    pos = 0
    while pos < len(queue):
        ts = queue[pos][0]
        while pos < len(queue) and queue[pos][0] == ts:
            _, kind, j = queue[pos]
            pos += 1
            if kind == SweepKind.END:
                del active[j]
                continue
            end_j = ends[j]
            for i, end_i in active.items():
                ov = (end_i if end_i < end_j else end_j) - ts
                overlap[i] += ov
                overlap[j] += ov
                overlap_count[i] += 1
                overlap_count[j] += 1
            active[j] = end_j
        if len(active) != last_count:
            last_count = len(active)
            active_counts.append(ActiveCountPoint(timestamp=ts, count=last_count))

    records = [
        OverlapRecord(
            timestamp=arena[i].start_ts,
            ordinal=arena[i].ordinal,
            overlap_ns=overlap[i],
            overlap_count=overlap_count[i],
        )
        for i in range(n)
    ]
    logger.debug(
        f"Overlap sweep: {n} events, {len(queue)} queue entries, "
        f"{len(active_counts)} active-count points, {len(diagnostics)} skipped"
    )
    return OverlapResult(records=records, active_counts=active_counts, diagnostics=diagnostics)


def compute_overlap_partitioned(
    raw_events: Iterable[Any],
    *,
    max_workers: int = 1,
) -> dict[Hashable, OverlapResult]:
    """Run one independent sweep per group id, optionally in parallel.

    Records that fail validation are reported under the group they claim, or
    under None when the group cannot be read.

    Returns:
        Mapping group_id -> OverlapResult, inserted in ascending group order.
    """
    by_group: dict[Hashable, list[Any]] = {}
    for raw in raw_events:
        by_group.setdefault(_raw_group(raw), []).append(raw)
    ungrouped = by_group.pop(None, [])

    results = dict(fan_out(lambda _g, evs: compute_overlap(evs), by_group, max_workers=max_workers))
    if ungrouped:
        diagnostics = []
        for raw in ungrouped:
            key = _raw_key(raw)
            logger.warning(f"Skipping event {key}: no group id")
            diagnostics.append(Diagnostic.from_error(DataError("Event has no group id"), key=key))
        results[None] = OverlapResult(diagnostics=diagnostics)
    return results


def merge_overlap_results(results: Iterable[OverlapResult]) -> OverlapResult:
    """Combine per-group sweeps into one result.

    Records are concatenated and re-sorted by (timestamp, ordinal). Active
    counts are summed: the number of events open at an instant over all
    groups is the sum of the per-group counts at that instant.
    """
    results = list(results)
    records = sorted((r for res in results for r in res.records), key=lambda r: (r.timestamp, r.ordinal))
    diagnostics = [d for res in results for d in res.diagnostics]

    deltas: dict[int, int] = {}
    for res in results:
        previous = 0
        for point in res.active_counts:
            deltas[point.timestamp] = deltas.get(point.timestamp, 0) + point.count - previous
            previous = point.count

    active_counts: list[ActiveCountPoint] = []
    running = 0
    for ts in sorted(deltas):
        running += deltas[ts]
        if not active_counts or active_counts[-1].count != running:
            if active_counts or running != 0:
                active_counts.append(ActiveCountPoint(timestamp=ts, count=running))
    return OverlapResult(records=records, active_counts=active_counts, diagnostics=diagnostics)


def _raw_group(raw: Any) -> Hashable:
    if isinstance(raw, Event):
        return raw.group_id
    if isinstance(raw, Mapping):
        return raw.get("group_id")
    try:
        return raw[3]
    except (TypeError, IndexError, KeyError):
        return None


def events_from_frame(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Rows of an events DataFrame (timestamp, ordinal, duration[, group_id]) as mappings.

    Values are left unvalidated; the sweep validates and reports them.
    Missing values (NaN from numpy columns, pd.NA from nullable ones) become None.
    """
    cols = [c for c in ("timestamp", "ordinal", "duration", "group_id") if c in df.columns]
    out = []
    for row in df[cols].itertuples(index=False, name=None):
        rec = dict(zip(cols, row))
        for k, v in rec.items():
            if v is pd.NA:
                rec[k] = None
            elif isinstance(v, np.generic):
                rec[k] = v.item()
        out.append(rec)
    return out


def overlap_to_percent(execution_time: np.ndarray, overlap: np.ndarray) -> np.ndarray:
    """Overlap as a percentage of the event's own execution time.

    100% is equivalent to running alongside exactly one other query for the
    whole execution. Zero execution time yields NaN.
    """
    execution_time = np.asarray(execution_time, dtype=float)
    overlap = np.asarray(overlap, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        pct = overlap / execution_time * 100.0
    return np.where(execution_time > 0, pct, np.nan)
