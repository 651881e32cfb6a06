"""Aggregation settings consumed by the time-bucketed resampler."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from tracetool.config.durations import Duration
from tracetool.errors import InputError


class AggregationMode(Enum):
    """Statistic computed per bucket."""
    MEAN = "mean"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    STDDEV = "stddev"
    Q1 = "q1"
    Q3 = "q3"
    IQR = "iqr"
    QUARTILES = "quartiles"

    @property
    def statistics(self) -> tuple[str, ...]:
        """Names of the series this mode produces (quartiles yields two)."""
        if self is AggregationMode.QUARTILES:
            return ("q1", "q3")
        return (self.value,)

    @property
    def needs_samples(self) -> bool:
        """True for percentile based modes, which retain every sample of a bucket."""
        return self in (
            AggregationMode.MEDIAN,
            AggregationMode.Q1,
            AggregationMode.Q3,
            AggregationMode.IQR,
            AggregationMode.QUARTILES,
        )

    @classmethod
    def parse(cls, text: str) -> "AggregationMode":
        try:
            return cls(str(text).strip().lower())
        except ValueError as e:
            choices = ", ".join(m.value for m in cls)
            raise InputError(f"Unknown aggregation mode {text!r}; expected one of {choices}") from e


@dataclass(frozen=True)
class Aggregation:
    """Bucket size plus statistic; buckets with fewer than min_count samples are dropped."""
    mode: AggregationMode
    size: Duration
    min_count: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"mode": self.mode.value, "size": str(self.size)}
        if self.min_count is not None:
            d["mincount"] = self.min_count
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Aggregation":
        if "mode" not in data or "size" not in data:
            raise InputError("Aggregation requires both 'mode' and 'size'", details=dict(data))
        min_count = data.get("mincount", data.get("min_count"))
        return cls(
            mode=AggregationMode.parse(data["mode"]),
            size=Duration.parse(data["size"]),
            min_count=None if min_count is None else int(min_count),
        )
