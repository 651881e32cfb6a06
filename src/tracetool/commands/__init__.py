"""Batch commands: store -> engine -> report/figure."""

from tracetool.commands.compute_overlap import compute_overlap_command
from tracetool.commands.convert_unit import convert_unit
from tracetool.commands.group_statistics import group_statistics_command
from tracetool.commands.overlap_correlation import overlap_correlation_command
from tracetool.commands.plot import plot_command

__all__ = [
    "compute_overlap_command",
    "convert_unit",
    "group_statistics_command",
    "overlap_correlation_command",
    "plot_command",
]
