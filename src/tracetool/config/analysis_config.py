"""
Analysis configuration for tracetool (platformdirs + JSON).

Persisted items (schema v1):
- source: path to the SQLite event store (relative paths resolve against the
  config file's directory)
- layout: figure title and size
- plots: list of PlotDefinition dicts
- correlation: CorrelationConfig dict
- workhours: WorkHours dict
- max_workers: thread count for per-group fan-out

Behavior:
- Unknown keys are ignored with warnings
- A missing, unreadable or ill-typed file raises InputError: a batch command
  never silently continues on defaults
- schema_version mismatch raises InputError

Design:
- Dataclasses hold JSON-friendly data with to_dict()/from_dict()
- AnalysisConfigFile manager provides explicit load/save
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from platformdirs import user_config_dir

from tracetool.config.aggregation import Aggregation
from tracetool.config.durations import TimeUnit
from tracetool.config.filter import Filter, WorkHours
from tracetool.errors import InputError
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

# Increment when you make a breaking change to the on-disk JSON schema.
SCHEMA_VERSION: int = 1


class PlotType(Enum):
    """Enumeration of available plot types."""
    TIME_SCATTER = "time_scatter"
    COUNT_SCATTER = "count_scatter"
    OVERLAP = "overlap"


class ScatterMode(Enum):
    """Plotly scatter drawing modes."""
    LINES = "lines"
    MARKERS = "markers"
    LINES_MARKERS = "lines+markers"


def _warn_unknown(data: dict[str, Any], known: set[str], where: str) -> None:
    for key in data:
        if key not in known:
            logger.warning(f"Unknown key '{key}' in {where}, ignoring")


@dataclass
class PlotDefinition:
    """Configuration of one plotted series.

    time_scatter and count_scatter read `column` from `table` and resample it
    with `aggregation`; overlap draws the execution-time vs overlap heatmap
    of one `group_id`.
    """
    plot: PlotType
    name: str
    table: Optional[str] = None
    column: Optional[str] = None
    group_id: Optional[int] = None
    unit: Optional[TimeUnit] = None       # display unit for time_scatter values (seconds if None)
    filter: Filter = field(default_factory=Filter)
    aggregation: Optional[Aggregation] = None
    mode: ScatterMode = ScatterMode.LINES
    line_color: Optional[str] = None      # None: next colour of the palette
    x_bins: int = 256                     # overlap heatmap only
    y_bins: int = 256                     # overlap heatmap only

    def __post_init__(self) -> None:
        if self.plot in (PlotType.TIME_SCATTER, PlotType.COUNT_SCATTER):
            if not self.table or not self.column:
                raise InputError(f"Plot {self.name!r} of type {self.plot.value} requires 'table' and 'column'")
        if self.plot == PlotType.OVERLAP and self.group_id is None:
            raise InputError(f"Overlap plot {self.name!r} requires 'group_id'")
        if self.x_bins <= 0 or self.y_bins <= 0:
            raise InputError(f"Plot {self.name!r}: x_bins and y_bins must be positive")

    def to_dict(self) -> dict[str, Any]:
        return {
            "plot": self.plot.value,
            "name": self.name,
            "table": self.table,
            "column": self.column,
            "group_id": self.group_id,
            "unit": None if self.unit is None else self.unit.value,
            "filter": self.filter.to_dict(),
            "aggregation": None if self.aggregation is None else self.aggregation.to_dict(),
            "mode": self.mode.value,
            "line_color": self.line_color,
            "x_bins": self.x_bins,
            "y_bins": self.y_bins,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlotDefinition":
        if not isinstance(data, dict):
            raise InputError(f"Plot definition must be an object, got {type(data).__name__}")
        _warn_unknown(data, {
            "plot", "name", "table", "column", "group_id", "unit", "filter",
            "aggregation", "mode", "line_color", "x_bins", "y_bins",
        }, "plot definition")
        try:
            plot = PlotType(data.get("plot", ""))
        except ValueError as e:
            choices = ", ".join(p.value for p in PlotType)
            raise InputError(f"Unknown plot type {data.get('plot')!r}; expected one of {choices}") from e
        try:
            mode = ScatterMode(data.get("mode", ScatterMode.LINES.value))
        except ValueError as e:
            raise InputError(f"Unknown scatter mode {data.get('mode')!r}") from e
        unit = data.get("unit")
        aggregation = data.get("aggregation")
        group_id = data.get("group_id")
        return cls(
            plot=plot,
            name=str(data.get("name", "")),
            table=data.get("table"),
            column=data.get("column"),
            group_id=None if group_id is None else int(group_id),
            unit=None if unit is None else TimeUnit.parse(unit),
            filter=Filter.from_dict(data.get("filter")),
            aggregation=None if aggregation is None else Aggregation.from_dict(aggregation),
            mode=mode,
            line_color=data.get("line_color"),
            x_bins=int(data.get("x_bins", 256)),
            y_bins=int(data.get("y_bins", 256)),
        )


@dataclass
class LayoutConfig:
    """Figure-level settings."""
    title: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    yaxis_title: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "width": self.width,
            "height": self.height,
            "yaxis_title": self.yaxis_title,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "LayoutConfig":
        if not data:
            return cls()
        _warn_unknown(data, {"title", "width", "height", "yaxis_title"}, "layout")
        width = data.get("width")
        height = data.get("height")
        if (width is not None and int(width) <= 0) or (height is not None and int(height) <= 0):
            raise InputError("Layout width and height must be positive")
        return cls(
            title=data.get("title"),
            width=None if width is None else int(width),
            height=None if height is None else int(height),
            yaxis_title=data.get("yaxis_title"),
        )


@dataclass
class CorrelationConfig:
    """Parameters of the execution-time vs overlap correlation analysis.

    Attributes:
        min_samples: Groups with fewer paired samples are excluded.
        standardize: Scale both variables to unit variance before the
            eigen analysis (off by default: the ratio is computed on the raw
            sample covariance). Standardizing makes the ratio measure
            correlation rather than the relative magnitude of the two units.
        overlap_as_percent: Use overlap as a percentage of execution time
            instead of raw nanoseconds.
    """
    min_samples: int = 20
    standardize: bool = False
    overlap_as_percent: bool = False

    def __post_init__(self) -> None:
        if self.min_samples < 2:
            raise InputError(f"min_samples must be at least 2, got {self.min_samples}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_samples": self.min_samples,
            "standardize": self.standardize,
            "overlap_as_percent": self.overlap_as_percent,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "CorrelationConfig":
        if not data:
            return cls()
        _warn_unknown(data, {"min_samples", "standardize", "overlap_as_percent"}, "correlation")
        return cls(
            min_samples=int(data.get("min_samples", 20)),
            standardize=bool(data.get("standardize", False)),
            overlap_as_percent=bool(data.get("overlap_as_percent", False)),
        )


@dataclass
class AnalysisConfig:
    """JSON-serializable analysis configuration payload."""
    schema_version: int = SCHEMA_VERSION
    source: str = "trace.sqlite"
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    plots: list[PlotDefinition] = field(default_factory=list)
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    workhours: WorkHours = field(default_factory=WorkHours)
    max_workers: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "source": self.source,
            "layout": self.layout.to_dict(),
            "plots": [p.to_dict() for p in self.plots],
            "correlation": self.correlation.to_dict(),
            "workhours": self.workhours.to_dict(),
            "max_workers": self.max_workers,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "AnalysisConfig":
        _warn_unknown(d, {
            "schema_version", "source", "layout", "plots", "correlation", "workhours", "max_workers",
        }, "analysis config")
        plots_raw = d.get("plots", [])
        if not isinstance(plots_raw, list):
            raise InputError("'plots' must be a list")
        try:
            max_workers = int(d.get("max_workers", 1))
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid max_workers {d.get('max_workers')!r}") from e
        return cls(
            schema_version=int(d.get("schema_version", SCHEMA_VERSION)),
            source=str(d.get("source", "trace.sqlite")),
            layout=LayoutConfig.from_dict(d.get("layout")),
            plots=[PlotDefinition.from_dict(p) for p in plots_raw],
            correlation=CorrelationConfig.from_dict(d.get("correlation")),
            workhours=WorkHours.from_dict(d.get("workhours") or {}),
            max_workers=max(1, max_workers),
        )


class AnalysisConfigFile:
    """
    Manager for loading/saving AnalysisConfig to disk.
    """

    def __init__(self, *, path: Path, data: Optional[AnalysisConfig] = None):
        self.path = path
        self.data = data if data is not None else AnalysisConfig()

    @staticmethod
    def default_config_path(
        app_name: str = "tracetool",
        filename: str = "analysis.json",
        app_author: str | None = None,
    ) -> Path:
        """
        Determine OS-appropriate per-user config path.

        macOS:   ~/Library/Application Support/tracetool/analysis.json
        Linux:   ~/.config/tracetool/analysis.json
        Windows: %APPDATA%\\tracetool\\analysis.json
        """
        return Path(user_config_dir(app_name, app_author)) / filename

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        schema_version: int = SCHEMA_VERSION,
    ) -> "AnalysisConfigFile":
        """Load config from disk.

        Raises:
            InputError: If the file is missing, not valid JSON, not an object,
                has a different schema_version, or contains invalid values.
        """
        path = Path(config_path) if config_path is not None else cls.default_config_path()
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise InputError(f"Cannot read analysis config {path}: {e}") from e
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InputError(f"Analysis config {path} is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise InputError(f"Analysis config {path} does not contain a JSON object")

        try:
            data = AnalysisConfig.from_dict(parsed)
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid value in analysis config {path}: {e}") from e
        if data.schema_version != schema_version:
            raise InputError(
                f"Analysis config schema version mismatch: loaded={data.schema_version}, "
                f"expected={schema_version}"
            )
        logger.debug(f"Loaded analysis config from {path} with {len(data.plots)} plot(s)")
        return cls(path=path, data=data)

    def save(self) -> None:
        """Write config to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            json_str = json.dumps(self.data.to_dict(), indent=2)
            self.path.write_text(json_str, encoding="utf-8")
            logger.info(f"Saved analysis config to {self.path}")
        except Exception as e:
            logger.error(f"Error saving analysis config to {self.path}: {e}")
            raise

    def source_path(self) -> Path:
        """Event store path, resolved against the config file's directory."""
        source = Path(self.data.source).expanduser()
        if source.is_absolute():
            return source
        return self.path.parent / source
