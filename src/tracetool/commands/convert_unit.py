"""`convert-unit`: translate dates, durations and timestamps to nanoseconds and back.

- a partial date ("2023-02") prints the first and last nanosecond of the period
- a duration such as "15m" prints its length in nanoseconds
- a bare integer is an epoch nanosecond timestamp and prints as UTC
"""

from __future__ import annotations

import re

from tracetool.config.durations import DURATION_REGEX, Duration
from tracetool.config.filter import DATE_REGEX, format_timestamp, parse_datetime_ceil, parse_datetime_floor
from tracetool.errors import InputError

TIMESTAMP_REGEX = re.compile(r"^\s*(\d+)\s*$")


def convert_unit(value: str) -> list[str]:
    """Lines describing `value`.

    Raises:
        InputError: If the value is neither a partial date, a duration nor a timestamp.
    """
    text = value.strip()
    if DATE_REGEX.match(text):
        start = parse_datetime_floor(text)
        end = parse_datetime_ceil(text)
        return [
            f"{start} - {end}",
            f"({format_timestamp(start)} - {format_timestamp(end)})",
        ]
    if DURATION_REGEX.match(text):
        return [f"{Duration.parse(text).nanoseconds} nanoseconds"]
    if TIMESTAMP_REGEX.match(text):
        return [format_timestamp(int(text))]
    raise InputError(f"Unable to parse {value!r} as a date, a duration or a timestamp")
