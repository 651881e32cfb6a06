"""Duration grammar and time units.

A duration is an integer quantity followed by a unit, e.g. "1D", "15 m",
"2 hours". Calendar units use idealized lengths: a day is exactly 86,400 s
(no leap seconds), a week 7 days, a month 30 days and a year 365 days.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Union

import numpy as np

from tracetool.errors import InputError

NS_PER_US = 1_000
NS_PER_MS = 1_000_000
NS_PER_S = 1_000_000_000
NS_PER_DAY = 86_400 * NS_PER_S

DURATION_REGEX = re.compile(r"^\s*(\d+)\s*([A-Za-z]+)\s*$")


class TimeUnit(Enum):
    """Time units accepted in durations, keyed by their short symbol."""
    NANOSECONDS = "ns"
    MICROSECONDS = "us"
    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"
    DAYS = "D"
    WEEKS = "W"
    MONTHS = "M"
    YEARS = "Y"

    @property
    def nanoseconds(self) -> int:
        return _UNIT_NANOSECONDS[self]

    @classmethod
    def parse(cls, text: str) -> "TimeUnit":
        """Parse a short symbol ("ms", "D") or a long form ("milliseconds", "day").

        Short symbols are case sensitive since "m" (minutes) and "M" (months)
        differ only by case. Long forms are case insensitive, singular or plural.

        Raises:
            InputError: If the unit is unknown.
        """
        s = text.strip()
        for unit in cls:
            if unit.value == s:
                return unit
        unit = _LONG_FORMS.get(s.lower())
        if unit is None:
            raise InputError(f"Unknown time unit {text!r}", details={"unit": text})
        return unit


_UNIT_NANOSECONDS = {
    TimeUnit.NANOSECONDS: 1,
    TimeUnit.MICROSECONDS: NS_PER_US,
    TimeUnit.MILLISECONDS: NS_PER_MS,
    TimeUnit.SECONDS: NS_PER_S,
    TimeUnit.MINUTES: 60 * NS_PER_S,
    TimeUnit.HOURS: 3_600 * NS_PER_S,
    TimeUnit.DAYS: NS_PER_DAY,
    TimeUnit.WEEKS: 7 * NS_PER_DAY,
    TimeUnit.MONTHS: 30 * NS_PER_DAY,
    TimeUnit.YEARS: 365 * NS_PER_DAY,
}

_LONG_FORMS = {}
for _unit in TimeUnit:
    _singular = _unit.name.lower()[:-1]
    _LONG_FORMS[_singular] = _unit
    _LONG_FORMS[_unit.name.lower()] = _unit
del _unit, _singular


@dataclass(frozen=True)
class Duration:
    """A positive integer quantity of a time unit."""
    quantity: int
    unit: TimeUnit

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise InputError(
                f"Duration quantity must be positive, got {self.quantity}",
                details={"quantity": self.quantity},
            )

    @property
    def nanoseconds(self) -> int:
        return self.quantity * self.unit.nanoseconds

    @classmethod
    def parse(cls, text: Union[str, "Duration"]) -> "Duration":
        """Parse "<integer><unit>" (whitespace allowed around both parts).

        Raises:
            InputError: If the text does not match the grammar or the unit is unknown.
        """
        if isinstance(text, Duration):
            return text
        m = DURATION_REGEX.match(str(text))
        if m is None:
            raise InputError(f"Invalid duration {text!r}; expected e.g. '1h' or '30 days'")
        return cls(quantity=int(m.group(1)), unit=TimeUnit.parse(m.group(2)))

    def __str__(self) -> str:
        return f"{self.quantity}{self.unit.value}"


def nanoseconds_to_unit(values: Sequence[float], unit: TimeUnit | None = None) -> np.ndarray:
    """Convert nanosecond durations to `unit` (seconds when unit is None)."""
    denominator = float((unit or TimeUnit.SECONDS).nanoseconds)
    return np.asarray(values, dtype=float) / denominator


def nanoseconds_epoch_to_plotly_time(timestamps: Sequence[int]) -> np.ndarray:
    """Epoch nanoseconds to the epoch milliseconds plotly uses for date axes."""
    return np.asarray(timestamps, dtype=float) / NS_PER_MS
