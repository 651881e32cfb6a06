"""Typed configuration values consumed by the analytics engines and commands."""

from tracetool.config.aggregation import Aggregation, AggregationMode
from tracetool.config.analysis_config import (
    AnalysisConfig,
    AnalysisConfigFile,
    CorrelationConfig,
    LayoutConfig,
    PlotDefinition,
    PlotType,
    ScatterMode,
)
from tracetool.config.durations import Duration, TimeUnit
from tracetool.config.filter import Filter, WorkHours

__all__ = [
    "Aggregation",
    "AggregationMode",
    "AnalysisConfig",
    "AnalysisConfigFile",
    "CorrelationConfig",
    "Duration",
    "Filter",
    "LayoutConfig",
    "PlotDefinition",
    "PlotType",
    "ScatterMode",
    "TimeUnit",
    "WorkHours",
]
