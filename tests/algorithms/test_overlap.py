"""Tests for the overlap sweep (records, active counts, skipped records)."""

import numpy as np
import pytest

from tracetool.algorithms.overlap import (
    ActiveCountPoint,
    Event,
    OverlapRecord,
    compute_overlap,
    compute_overlap_partitioned,
    events_from_frame,
    merge_overlap_results,
    overlap_to_percent,
    validate_event,
)
from tracetool.errors import DataError


def _points(result):
    return [(p.timestamp, p.count) for p in result.active_counts]


def _by_key(result):
    return {(r.timestamp, r.ordinal): r for r in result.records}


def _random_events(seed: int, n: int = 200, groups: int = 4):
    rng = np.random.default_rng(seed)
    starts = rng.integers(0, 10_000, size=n)
    durations = rng.integers(0, 800, size=n)
    group_ids = rng.integers(1, groups + 1, size=n)
    events = []
    seen = set()
    for s, d, g in zip(starts.tolist(), durations.tolist(), group_ids.tolist()):
        ordinal = 0
        while (s, ordinal) in seen:
            ordinal += 1
        seen.add((s, ordinal))
        events.append(Event(start_ts=s, ordinal=ordinal, duration=d, group_id=g))
    return events


def _brute_force(events):
    """Pairwise overlap per event, straight from the interval definition."""
    out = {}
    for a in events:
        total = 0
        count = 0
        for b in events:
            if a is b:
                continue
            ov = min(a.end_ts, b.end_ts) - max(a.start_ts, b.start_ts)
            if ov > 0 and a.duration > 0 and b.duration > 0:
                total += ov
                count += 1
        out[a.key] = (total, count)
    return out


def test_two_overlapping_intervals():
    """[0,10) and [5,15) overlap by 5 ns; timeline 0->1, 5->2, 10->1, 15->0."""
    result = compute_overlap([(0, 0, 10), (5, 0, 10)])
    assert result.records == [
        OverlapRecord(timestamp=0, ordinal=0, overlap_ns=5, overlap_count=1),
        OverlapRecord(timestamp=5, ordinal=0, overlap_ns=5, overlap_count=1),
    ]
    assert _points(result) == [(0, 1), (5, 2), (10, 1), (15, 0)]
    assert result.diagnostics == []


def test_touching_intervals_do_not_overlap():
    """[0,10) and [10,20) only touch: no overlap and no active-count point at 10."""
    result = compute_overlap([(0, 0, 10), (10, 0, 10)])
    assert [(r.overlap_ns, r.overlap_count) for r in result.records] == [(0, 0), (0, 0)]
    assert _points(result) == [(0, 1), (20, 0)]


def test_negative_duration_is_skipped_with_diagnostic():
    """A duration of -1 is reported; the other events are unaffected."""
    clean = [(0, 0, 10), (5, 0, 10)]
    result = compute_overlap(clean + [(3, 0, -1)])
    baseline = compute_overlap(clean)

    assert result.records == baseline.records
    assert result.active_counts == baseline.active_counts
    assert len(result.diagnostics) == 1
    diag = result.diagnostics[0]
    assert diag.kind == "DataError"
    assert diag.key == (3, 0)
    assert "Negative duration" in diag.message


def test_malformed_fields_are_skipped():
    """Missing or non-integer fields are skipped, never fatal."""
    result = compute_overlap([
        {"timestamp": 0, "ordinal": 0, "duration": 10},
        {"timestamp": 2, "ordinal": 0, "duration": None},
        {"timestamp": 4, "ordinal": 0, "duration": float("nan")},
        {"timestamp": "x", "ordinal": 0, "duration": 5},
        (6, 0),
    ])
    assert [r.timestamp for r in result.records] == [0]
    assert len(result.diagnostics) == 4
    assert all(d.kind == "DataError" for d in result.diagnostics)


def test_duplicate_identity_keeps_first():
    """The second record with the same (timestamp, ordinal) is skipped."""
    result = compute_overlap([(0, 0, 10), (0, 0, 99), (0, 1, 10)])
    assert [(r.timestamp, r.ordinal) for r in result.records] == [(0, 0), (0, 1)]
    assert _by_key(result)[(0, 0)].overlap_ns == 10
    assert len(result.diagnostics) == 1
    assert "Duplicate" in result.diagnostics[0].message


def test_zero_duration_interval_overlaps_nothing():
    """A zero-length event inside another gets a zero record and no timeline point."""
    result = compute_overlap([(0, 0, 10), (5, 0, 0)])
    records = _by_key(result)
    assert (records[(5, 0)].overlap_ns, records[(5, 0)].overlap_count) == (0, 0)
    assert (records[(0, 0)].overlap_ns, records[(0, 0)].overlap_count) == (0, 0)
    assert _points(result) == [(0, 1), (10, 0)]


def test_nested_and_identical_starts():
    """Nested intervals and equal starts are credited with the shorter overlap."""
    result = compute_overlap([(0, 0, 100), (0, 1, 30), (10, 0, 20)])
    records = _by_key(result)
    # (0,0) overlaps (0,1) by 30 and (10,0) by 20
    assert (records[(0, 0)].overlap_ns, records[(0, 0)].overlap_count) == (50, 2)
    # (0,1) overlaps (0,0) by 30 and (10,0) by 20
    assert (records[(0, 1)].overlap_ns, records[(0, 1)].overlap_count) == (50, 2)
    assert (records[(10, 0)].overlap_ns, records[(10, 0)].overlap_count) == (40, 2)
    assert _points(result) == [(0, 2), (10, 3), (30, 1), (100, 0)]


def test_records_ordered_by_identity_regardless_of_input_order():
    """Output order is (timestamp, ordinal) even when input is shuffled."""
    result = compute_overlap([(5, 1, 1), (5, 0, 1), (1, 0, 1)])
    assert [(r.timestamp, r.ordinal) for r in result.records] == [(1, 0), (5, 0), (5, 1)]


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_matches_pairwise_definition(seed):
    """Every record equals the brute-force pairwise sum (symmetric by construction)."""
    events = _random_events(seed)
    result = compute_overlap(events)
    expected = _brute_force(events)
    got = {k: (r.overlap_ns, r.overlap_count) for k, r in _by_key(result).items()}
    assert got == expected


def test_symmetry_of_pairwise_contribution():
    """Total overlap credited is twice the sum of pairwise overlaps."""
    events = _random_events(7, n=80)
    result = compute_overlap(events)
    pairwise = 0
    pairs = 0
    for i, a in enumerate(events):
        for b in events[i + 1:]:
            ov = min(a.end_ts, b.end_ts) - max(a.start_ts, b.start_ts)
            if ov > 0 and a.duration > 0 and b.duration > 0:
                pairwise += ov
                pairs += 1
    assert sum(r.overlap_ns for r in result.records) == 2 * pairwise
    assert sum(r.overlap_count for r in result.records) == 2 * pairs


@pytest.mark.parametrize("window", [(0, 11_000), (2_500, 6_000), (9_990, 10_400)])
def test_active_count_conservation(window):
    """Integral of the step function over a window equals the clipped interval lengths."""
    lo, hi = window
    events = _random_events(3)
    result = compute_overlap(events)

    points = result.active_counts
    integral = 0
    for p, nxt in zip(points, points[1:]):
        a, b = max(p.timestamp, lo), min(nxt.timestamp, hi)
        if b > a:
            integral += p.count * (b - a)

    direct = sum(max(0, min(e.end_ts, hi) - max(e.start_ts, lo)) for e in events)
    assert integral == direct


def test_active_counts_change_at_every_point():
    """Consecutive points never repeat a count; the timeline ends at zero."""
    result = compute_overlap(_random_events(11))
    counts = [p.count for p in result.active_counts]
    assert all(a != b for a, b in zip(counts, counts[1:]))
    assert all(c >= 0 for c in counts)
    assert counts[-1] == 0


def test_deterministic_across_runs():
    """Same input, same output."""
    events = _random_events(5)
    assert compute_overlap(events) == compute_overlap(list(reversed(events)))


def test_partitioned_is_independent_of_worker_count():
    """Per-group sweeps give identical results inline and on a thread pool."""
    events = _random_events(9, groups=6)
    inline = compute_overlap_partitioned(events, max_workers=1)
    pooled = compute_overlap_partitioned(events, max_workers=4)
    assert list(inline) == sorted(inline)
    assert inline == pooled


def test_partitioned_only_credits_overlap_within_group():
    """Events of different groups never overlap each other in partitioned mode."""
    events = [Event(0, 0, 10, group_id=1), Event(5, 0, 10, group_id=2)]
    results = compute_overlap_partitioned(events)
    assert all(r.overlap_ns == 0 for res in results.values() for r in res.records)


def test_merged_active_counts_equal_corpus_sweep():
    """Summing per-group step functions reproduces the corpus-wide timeline."""
    events = _random_events(13, groups=5)
    merged = merge_overlap_results(compute_overlap_partitioned(events, max_workers=3).values())
    corpus = compute_overlap(events)
    assert merged.active_counts == corpus.active_counts
    assert [(r.timestamp, r.ordinal) for r in merged.records] == [
        (r.timestamp, r.ordinal) for r in corpus.records
    ]


def test_partitioned_reports_events_without_group():
    """Events without a group id are reported under the None key."""
    results = compute_overlap_partitioned([(0, 0, 10, 1), (1, 0, 10)])
    assert results[None].records == []
    assert len(results[None].diagnostics) == 1


def test_result_frames():
    """records_frame/active_counts_frame use the persisted column names."""
    result = compute_overlap([(0, 0, 10), (5, 0, 10)])
    df = result.records_frame()
    assert list(df.columns) == ["timestamp", "ordinal", "overlap", "overlap_count"]
    assert df["overlap"].tolist() == [5, 5]
    assert result.active_counts_frame()["count"].tolist() == [1, 2, 1, 0]


def test_events_from_frame_converts_numpy_scalars():
    """Frame rows become plain Python values."""
    import pandas as pd

    df = pd.DataFrame({"timestamp": [1, 2], "ordinal": [0, 0], "duration": [3, 4], "group_id": [7, 8]})
    events = events_from_frame(df)
    assert events == [
        {"timestamp": 1, "ordinal": 0, "duration": 3, "group_id": 7},
        {"timestamp": 2, "ordinal": 0, "duration": 4, "group_id": 8},
    ]
    assert type(events[0]["timestamp"]) is int


def test_validate_event_rejects_negative_ordinal():
    """Ordinals start at 0."""
    with pytest.raises(DataError):
        validate_event((0, -1, 5))


def test_overlap_to_percent():
    """Overlap relative to execution time; zero execution time is NaN."""
    pct = overlap_to_percent(np.array([10.0, 20.0, 0.0]), np.array([5.0, 40.0, 3.0]))
    assert pct[0] == pytest.approx(50.0)
    assert pct[1] == pytest.approx(200.0)
    assert np.isnan(pct[2])


def test_active_count_point_value_type():
    """ActiveCountPoint is a plain value."""
    assert ActiveCountPoint(1, 2) == ActiveCountPoint(timestamp=1, count=2)
