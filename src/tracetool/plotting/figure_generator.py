"""Plotly figure generation for the `plot` command.

This module provides the FigureGenerator class for building a Plotly figure
dictionary from an AnalysisConfig: time and count scatter plots fed by the
resampler, and the execution-time vs overlap heatmap of one group.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import plotly.graph_objects as go

from tracetool.algorithms.overlap import overlap_to_percent
from tracetool.algorithms.resample import resample_aggregation, segment_points
from tracetool.config.analysis_config import AnalysisConfig, LayoutConfig, PlotDefinition, PlotType
from tracetool.config.durations import nanoseconds_epoch_to_plotly_time, nanoseconds_to_unit
from tracetool.config.filter import WorkHours
from tracetool.store.event_store import EventStore
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

# Plotly's default qualitative palette. Colours are assigned per series, not
# per trace, so every segment of one series is drawn in the same colour.
DEFAULT_COLORS = [
    "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd",
    "#8c564b", "#e377c2", "#7f7f7f", "#bcbd22", "#17becf",
]

# Black for empty cells, then white -> orange -> red on log(1 + count).
OVERLAP_COLORSCALE = [
    [0.0, "black"],
    [1e-6, "black"],
    [1e-5, "white"],
    [0.5, "orange"],
    [1.0, "red"],
]


class ColorCycle:
    """Cycles through DEFAULT_COLORS."""

    def __init__(self, colors: Optional[list[str]] = None) -> None:
        self.colors = list(colors or DEFAULT_COLORS)
        self._index = 0

    def next(self) -> str:
        color = self.colors[self._index]
        self._index = (self._index + 1) % len(self.colors)
        return color


@dataclass
class Segment:
    """One contiguous run of a series, in plot units."""
    x: np.ndarray  # epoch milliseconds
    y: np.ndarray


def make_2d_histogram(
    x: np.ndarray,
    y: np.ndarray,
    x_bins: int,
    y_bins: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Count (x, y) pairs on a regular grid spanning their min..max.

    Returns:
        (x_labels, y_labels, z) where the labels are the lower bin edges and
        z has shape (y_bins, x_bins), the row-major layout plotly heatmaps use.
        Empty input yields three empty arrays.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"x and y must have the same length ({x.size} != {y.size})")
    if x.size == 0:
        return np.array([]), np.array([]), np.zeros((0, 0))
    counts, x_edges, y_edges = np.histogram2d(x, y, bins=[x_bins, y_bins])
    return x_edges[:-1], y_edges[:-1], counts.T


class FigureGenerator:
    """Generates Plotly figure dictionaries from an AnalysisConfig.

    Attributes:
        store: EventStore the samples are read from.
        workhours: Business-hours window used by filters with workhours=True.
    """

    def __init__(self, store: EventStore, workhours: Optional[WorkHours] = None) -> None:
        self.store = store
        self.workhours = workhours or WorkHours()

    def make_figure(self, config: AnalysisConfig) -> dict:
        """Build the figure for every plot definition of `config`.

        Returns:
            Plotly figure dictionary.
        """
        logger.info(f"FigureGenerator.make_figure: {len(config.plots)} plot(s)")
        colors = ColorCycle()
        fig = go.Figure()
        has_time_axis = False
        for plot in config.plots:
            if plot.plot == PlotType.OVERLAP:
                traces = self._traces_overlap(plot)
            else:
                traces = self._traces_scatter(plot, colors)
                has_time_axis = True
            for trace in traces:
                fig.add_trace(trace)

        fig.update_layout(**self._layout(config.layout, has_time_axis))
        logger.debug(f"Figure generated: {len(fig.data)} traces")
        return fig.to_dict()

    def _layout(self, layout: LayoutConfig, has_time_axis: bool) -> dict:
        out: dict = dict(
            margin=dict(l=40, r=20, t=40, b=40),
            showlegend=True,
        )
        if layout.title:
            out["title"] = layout.title
        if layout.width:
            out["width"] = layout.width
        if layout.height:
            out["height"] = layout.height
        if layout.yaxis_title:
            out["yaxis_title"] = layout.yaxis_title
        if has_time_axis:
            out["xaxis"] = dict(type="date")
        return out

    # ------------------------------------------------------------------
    # Scatter plots
    # ------------------------------------------------------------------

    def series_segments(self, plot: PlotDefinition) -> dict[str, list[Segment]]:
        """Read, filter, resample and segment one scatter plot definition.

        Returns:
            {series name: segments}. Without an aggregation the raw samples
            form a single segment; with one, each statistic of the mode is a
            series split at gaps wider than one bucket.
        """
        ts, values = self.store.read_samples(plot.table, plot.column, plot.filter, self.workhours)
        convert = plot.plot == PlotType.TIME_SCATTER

        def to_y(v: np.ndarray) -> np.ndarray:
            return nanoseconds_to_unit(v, plot.unit) if convert else np.asarray(v, dtype=float)

        if plot.aggregation is None:
            keep = ~np.isnan(values)
            ts, values = ts[keep], values[keep]
            if ts.size == 0:
                return {plot.name: []}
            return {plot.name: [Segment(x=nanoseconds_epoch_to_plotly_time(ts), y=to_y(values))]}

        size_ns = plot.aggregation.size.nanoseconds
        series = resample_aggregation(ts, values, plot.aggregation)
        out: dict[str, list[Segment]] = {}
        for stat, points in series.items():
            name = plot.name if len(series) == 1 else f"{plot.name} {stat}"
            out[name] = [
                Segment(
                    x=nanoseconds_epoch_to_plotly_time([p.bucket_start for p in seg]),
                    y=to_y(np.array([p.value for p in seg], dtype=float)),
                )
                for seg in segment_points(points, size_ns)
            ]
        return out

    def _traces_scatter(self, plot: PlotDefinition, colors: ColorCycle) -> list[go.Scatter]:
        traces: list[go.Scatter] = []
        for name, segments in self.series_segments(plot).items():
            color = plot.line_color or colors.next()
            for i, seg in enumerate(segments):
                traces.append(go.Scatter(
                    x=np.asarray(seg.x).tolist(),
                    y=np.asarray(seg.y).tolist(),
                    mode=plot.mode.value,
                    name=name,
                    legendgroup=name,
                    showlegend=(i == 0),
                    line=dict(color=color),
                    marker=dict(color=color),
                ))
            if not segments:
                logger.warning(f"Plot {name!r} has no samples")
        return traces

    # ------------------------------------------------------------------
    # Overlap heatmap
    # ------------------------------------------------------------------

    def _traces_overlap(self, plot: PlotDefinition) -> list[go.Heatmap]:
        """Heatmap of execution time (s) vs overlap (% of execution time)."""
        samples = self.store.read_overlap_samples(plot.filter, group_id=plot.group_id, workhours=self.workhours)
        exec_time, overlap = samples.get(plot.group_id, (np.array([]), np.array([])))
        pct = overlap_to_percent(exec_time, overlap)
        keep = ~np.isnan(pct)
        if not keep.all():
            logger.warning(f"Overlap plot {plot.name!r}: {int((~keep).sum())} zero-duration samples left out")
        seconds = nanoseconds_to_unit(exec_time[keep])
        x_labels, y_labels, z = make_2d_histogram(seconds, pct[keep], plot.x_bins, plot.y_bins)
        if z.size == 0:
            logger.warning(f"Overlap plot {plot.name!r} has no samples for group {plot.group_id}")
            return []
        return [go.Heatmap(
            x=x_labels.tolist(),
            y=y_labels.tolist(),
            z=np.log1p(z).tolist(),
            name=plot.name,
            colorscale=OVERLAP_COLORSCALE,
        )]
