"""Tests for duration grammar, partial dates, work hours and filters."""

import numpy as np
import pandas as pd
import pytest

from tracetool.config.aggregation import Aggregation, AggregationMode
from tracetool.config.durations import (
    NS_PER_DAY,
    NS_PER_S,
    Duration,
    TimeUnit,
    nanoseconds_epoch_to_plotly_time,
    nanoseconds_to_unit,
)
from tracetool.config.filter import (
    Filter,
    WorkHours,
    apply_workhours,
    format_timestamp,
    parse_datetime_ceil,
    parse_datetime_floor,
    select_workhours,
)
from tracetool.errors import InputError

JAN_1_2024 = 1_704_067_200 * NS_PER_S  # Monday


@pytest.mark.parametrize(
    "text, expected_ns",
    [
        ("1ns", 1),
        ("250 us", 250_000),
        ("15ms", 15_000_000),
        ("2s", 2 * NS_PER_S),
        ("15m", 15 * 60 * NS_PER_S),
        ("1h", 3_600 * NS_PER_S),
        ("1D", NS_PER_DAY),
        ("2W", 14 * NS_PER_DAY),
        ("1M", 30 * NS_PER_DAY),
        ("1Y", 365 * NS_PER_DAY),
        ("3 hours", 3 * 3_600 * NS_PER_S),
        ("1 Day", NS_PER_DAY),
        ("  10 minutes ", 600 * NS_PER_S),
    ],
)
def test_duration_parse(text, expected_ns):
    """Short and long units with idealized calendar lengths."""
    assert Duration.parse(text).nanoseconds == expected_ns


def test_minutes_and_months_differ_by_case():
    assert TimeUnit.parse("m") is TimeUnit.MINUTES
    assert TimeUnit.parse("M") is TimeUnit.MONTHS


@pytest.mark.parametrize("text", ["", "h", "1", "1.5h", "-1h", "0s", "3 fortnights", "1d"])
def test_invalid_durations_raise(text):
    with pytest.raises(InputError):
        Duration.parse(text)


def test_duration_str_round_trips():
    assert str(Duration.parse("15 minutes")) == "15m"
    assert Duration.parse(Duration(2, TimeUnit.HOURS)) == Duration(2, TimeUnit.HOURS)


def test_unit_conversion_defaults_to_seconds():
    assert nanoseconds_to_unit([1.5 * NS_PER_S]).tolist() == [1.5]
    assert nanoseconds_to_unit([2_000_000], TimeUnit.MILLISECONDS).tolist() == [2.0]
    assert nanoseconds_epoch_to_plotly_time([JAN_1_2024]).tolist() == [JAN_1_2024 / 1e6]


@pytest.mark.parametrize(
    "text, floor_iso, ceil_iso",
    [
        ("2024", "2024-01-01 00:00:00+00:00", "2024-12-31 23:59:59.999999999+00:00"),
        ("2023-02", "2023-02-01 00:00:00+00:00", "2023-02-28 23:59:59.999999999+00:00"),
        ("2023-12", "2023-12-01 00:00:00+00:00", "2023-12-31 23:59:59.999999999+00:00"),
        ("2024-01-05", "2024-01-05 00:00:00+00:00", "2024-01-05 23:59:59.999999999+00:00"),
        ("2024-01-05 13", "2024-01-05 13:00:00+00:00", "2024-01-05 13:59:59.999999999+00:00"),
        ("2024-01-05 13:07:09", "2024-01-05 13:07:09+00:00", "2024-01-05 13:07:09.999999999+00:00"),
    ],
)
def test_partial_dates(text, floor_iso, ceil_iso):
    """start floors and end ceils to the period named by the prefix."""
    assert format_timestamp(parse_datetime_floor(text)) == floor_iso
    assert format_timestamp(parse_datetime_ceil(text)) == ceil_iso


def test_partial_date_floor_value():
    assert parse_datetime_floor("2024") == JAN_1_2024


@pytest.mark.parametrize("text", ["24", "2024-13", "2024-02-30", "2024/01/01", "2024-01-01T10"])
def test_invalid_dates_raise(text):
    with pytest.raises(InputError):
        parse_datetime_floor(text)


def test_workhours_mask():
    """Default window: 08-17 UTC, Monday to Friday."""
    hour = 3_600 * NS_PER_S
    ts = np.array([
        JAN_1_2024 + 7 * hour,              # Mon 07:00
        JAN_1_2024 + 8 * hour,              # Mon 08:00
        JAN_1_2024 + 17 * hour - 1,         # Mon 16:59:59.999999999
        JAN_1_2024 + 17 * hour,             # Mon 17:00
        JAN_1_2024 + 5 * 24 * hour + 10 * hour,  # Sat 10:00
    ])
    assert WorkHours().mask(ts).tolist() == [False, True, True, False, False]


def test_workhours_time_zone():
    """The window is local to the configured zone."""
    hour = 3_600 * NS_PER_S
    ts = np.array([JAN_1_2024 + 7 * hour])  # 07:00 UTC == 08:00 Europe/Paris in winter
    assert WorkHours(timezone="Europe/Paris").mask(ts).tolist() == [True]
    assert WorkHours().mask(ts).tolist() == [False]


def test_workhours_validation_and_dict():
    with pytest.raises(InputError):
        WorkHours(start_hour=17, end_hour=8)
    with pytest.raises(InputError):
        WorkHours(weekdays=[7])
    wh = WorkHours.from_dict({"start_hour": 9, "end_hour": 18, "weekdays": ["mon", "Tuesday", 2]})
    assert wh.weekdays == [0, 1, 2]
    assert WorkHours.from_dict(wh.to_dict()) == wh


def test_apply_workhours_only_when_requested():
    hour = 3_600 * NS_PER_S
    ts = np.array([JAN_1_2024 + 3 * hour, JAN_1_2024 + 9 * hour])
    values = np.array([1.0, 2.0])
    kept_ts, kept_values = apply_workhours(ts, values, Filter(workhours=True))
    assert kept_values.tolist() == [2.0]
    same_ts, same_values = apply_workhours(ts, values, Filter())
    assert same_values.tolist() == [1.0, 2.0]


def test_select_workhours_on_frames():
    """Frame rows are kept by their timestamp column, with a custom window and zone."""
    hour = 3_600 * NS_PER_S
    df = pd.DataFrame({
        "ts": [JAN_1_2024 + 3 * hour, JAN_1_2024 + 9 * hour, JAN_1_2024 + 20 * hour],
        "value": [1.0, 2.0, 3.0],
    })
    # 20:00 UTC is 15:00 in New York; 09:00 UTC is 04:00 there
    ny = WorkHours(start_hour=8, end_hour=17, timezone="America/New_York")
    assert select_workhours(df, Filter(workhours=True), ny)["value"].tolist() == [3.0]
    assert select_workhours(df, Filter(workhours=True))["value"].tolist() == [2.0]
    assert select_workhours(df, None) is df
    renamed = df.rename(columns={"ts": "timestamp"})
    assert select_workhours(renamed, Filter(workhours=True), column="timestamp")["value"].tolist() == [2.0]


def test_filter_validates_dates_and_round_trips():
    with pytest.raises(InputError):
        Filter(start="yesterday")
    f = Filter(start="2024-01", end="2024-01", workhours=True, where="kind = 'query'")
    assert f.start_ns == JAN_1_2024
    assert f.end_ns == parse_datetime_ceil("2024-01")
    assert Filter.from_dict(f.to_dict()) == f
    assert Filter.from_dict(None) == Filter()


def test_aggregation_modes_and_dict():
    assert AggregationMode.QUARTILES.statistics == ("q1", "q3")
    assert AggregationMode.MEAN.statistics == ("mean",)
    assert AggregationMode.MEDIAN.needs_samples
    assert not AggregationMode.STDDEV.needs_samples
    agg = Aggregation.from_dict({"mode": "Median", "size": "1 day", "mincount": 3})
    assert agg == Aggregation(AggregationMode.MEDIAN, Duration(1, TimeUnit.DAYS), 3)
    assert Aggregation.from_dict(agg.to_dict()) == agg
    with pytest.raises(InputError):
        Aggregation.from_dict({"mode": "mean"})
    with pytest.raises(InputError):
        AggregationMode.parse("p99")
