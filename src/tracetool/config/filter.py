"""Sample filters: time range, business hours and pass-through predicate.

Partial dates
-------------
`start` and `end` accept any prefix of "YYYY-MM-DD HH:MM:SS", interpreted in
UTC. `start` is floored to the first instant of the given period and `end` is
ceiled to its last nanosecond, so "2023" as `start` means 2023-01-01 00:00:00
and "2023-02" as `end` means the last nanosecond of February 2023. Both bounds
are inclusive.

Work hours
----------
The business-hours window is explicit configuration (start hour, end hour,
time zone, weekdays) and is applied in memory after the samples are read,
because it needs a time zone conversion the store does not perform.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from tracetool.errors import InputError
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

DATE_REGEX = re.compile(
    r"""
    ^(?P<year>\d{4})
    (?:-(?P<month>\d{2})
        (?:-(?P<day>\d{2})
            (?:\s(?P<hour>\d{2})
                (?::(?P<minute>\d{2})
                    (?::(?P<second>\d{2}))?
                )?
            )?
        )?
    )?$
    """,
    re.VERBOSE,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _datetime_to_ns(dt: datetime) -> int:
    delta = dt - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


def _parse_partial(date_str: str) -> tuple[datetime, str]:
    """Parse a partial date; return the floored datetime and its finest field name."""
    m = DATE_REGEX.match(date_str.strip())
    if m is None:
        raise InputError(
            f"Invalid date {date_str!r}; expected a prefix of 'YYYY-MM-DD HH:MM:SS'",
            details={"date": date_str},
        )
    parts = m.groupdict()
    precision = "year"
    for name in ("month", "day", "hour", "minute", "second"):
        if parts[name] is None:
            break
        precision = name
    try:
        dt = datetime(
            int(parts["year"]),
            int(parts["month"] or 1),
            int(parts["day"] or 1),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise InputError(f"Invalid date {date_str!r}: {e}", details={"date": date_str}) from e
    return dt, precision


def parse_datetime_floor(date_str: str) -> int:
    """First nanosecond (epoch, UTC) of the period named by a partial date."""
    dt, _ = _parse_partial(date_str)
    return _datetime_to_ns(dt)


def parse_datetime_ceil(date_str: str) -> int:
    """Last nanosecond (epoch, UTC) of the period named by a partial date."""
    dt, precision = _parse_partial(date_str)
    if precision == "year":
        nxt = dt.replace(year=dt.year + 1)
    elif precision == "month":
        nxt = dt.replace(year=dt.year + dt.month // 12, month=dt.month % 12 + 1)
    else:
        step = {
            "day": timedelta(days=1),
            "hour": timedelta(hours=1),
            "minute": timedelta(minutes=1),
            "second": timedelta(seconds=1),
        }[precision]
        nxt = dt + step
    return _datetime_to_ns(nxt) - 1


def format_timestamp(ns: int) -> str:
    """Epoch nanoseconds as an ISO-like UTC string with nanosecond precision."""
    return str(pd.Timestamp(int(ns), unit="ns", tz="UTC"))


@dataclass
class WorkHours:
    """Business-hours window: [start_hour, end_hour) on the given weekdays, local to `timezone`."""
    start_hour: int = 8
    end_hour: int = 17
    timezone: str = "UTC"
    weekdays: list[int] = field(default_factory=lambda: [0, 1, 2, 3, 4])  # Monday == 0

    def __post_init__(self) -> None:
        if not (0 <= self.start_hour <= 23 and 1 <= self.end_hour <= 24):
            raise InputError(
                f"Work hours must lie within 0-24, got {self.start_hour}-{self.end_hour}"
            )
        if self.start_hour >= self.end_hour:
            raise InputError(
                f"Work hours start ({self.start_hour}) must be before end ({self.end_hour})"
            )
        if any(d not in range(7) for d in self.weekdays):
            raise InputError(f"Weekdays must be 0 (Monday) .. 6 (Sunday), got {self.weekdays}")

    def mask(self, timestamps: Sequence[int]) -> np.ndarray:
        """Boolean mask selecting the epoch-ns timestamps that fall inside the window."""
        ts = np.asarray(timestamps, dtype=np.int64)
        if ts.size == 0:
            return np.zeros(0, dtype=bool)
        try:
            local = pd.DatetimeIndex(pd.to_datetime(ts, unit="ns", utc=True)).tz_convert(self.timezone)
        except Exception as e:
            raise InputError(f"Unknown time zone {self.timezone!r}: {e}") from e
        hours = np.asarray(local.hour)
        days = np.asarray(local.dayofweek)
        return (hours >= self.start_hour) & (hours < self.end_hour) & np.isin(days, self.weekdays)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_hour": self.start_hour,
            "end_hour": self.end_hour,
            "timezone": self.timezone,
            "weekdays": list(self.weekdays),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkHours":
        weekdays = data.get("weekdays", [0, 1, 2, 3, 4])
        return cls(
            start_hour=int(data.get("start_hour", 8)),
            end_hour=int(data.get("end_hour", 17)),
            timezone=str(data.get("timezone", "UTC")),
            weekdays=[_parse_weekday(d) for d in weekdays],
        )


def _parse_weekday(value: Any) -> int:
    if isinstance(value, str):
        key = value.strip().lower()[:3]
        if key not in WEEKDAY_NAMES:
            raise InputError(f"Unknown weekday {value!r}")
        return WEEKDAY_NAMES.index(key)
    return int(value)


@dataclass
class Filter:
    """Sample selection shared by the plotting and reporting paths.

    `where` is an opaque predicate forwarded verbatim to the event store.
    """
    start: Optional[str] = None
    end: Optional[str] = None
    workhours: bool = False
    where: Optional[str] = None

    def __post_init__(self) -> None:
        # Fail early on malformed dates rather than at query time.
        if self.start is not None:
            parse_datetime_floor(self.start)
        if self.end is not None:
            parse_datetime_ceil(self.end)

    @property
    def start_ns(self) -> Optional[int]:
        return None if self.start is None else parse_datetime_floor(self.start)

    @property
    def end_ns(self) -> Optional[int]:
        return None if self.end is None else parse_datetime_ceil(self.end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "workhours": self.workhours,
            "where": self.where,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Filter":
        if not data:
            return cls()
        known = {"start", "end", "workhours", "where"}
        for key in data:
            if key not in known:
                logger.warning(f"Unknown key '{key}' in filter, ignoring")
        start = data.get("start")
        end = data.get("end")
        return cls(
            start=None if start is None else str(start),
            end=None if end is None else str(end),
            workhours=bool(data.get("workhours", False)),
            where=data.get("where"),
        )


def apply_workhours(
    timestamps: np.ndarray,
    values: np.ndarray,
    filter: Optional[Filter],
    workhours: Optional[WorkHours] = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Drop samples outside work hours when the filter asks for it."""
    if filter is None or not filter.workhours:
        return timestamps, values
    keep = _workhours_keep(timestamps, workhours)
    return np.asarray(timestamps)[keep], np.asarray(values)[keep]


def select_workhours(
    df: pd.DataFrame,
    filter: Optional[Filter],
    workhours: Optional[WorkHours] = None,
    *,
    column: str = "ts",
) -> pd.DataFrame:
    """Rows of `df` whose `column` timestamp lies inside work hours, when the filter asks for it."""
    if filter is None or not filter.workhours:
        return df
    return df[_workhours_keep(df[column].to_numpy(dtype=np.int64), workhours)]


def _workhours_keep(timestamps: Sequence[int], workhours: Optional[WorkHours]) -> np.ndarray:
    keep = (workhours or WorkHours()).mask(timestamps)
    logger.debug(f"Work hours filter kept {int(keep.sum())} of {len(keep)} samples")
    return keep
