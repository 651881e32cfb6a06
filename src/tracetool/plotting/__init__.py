"""Plotly presentation adapter."""

from tracetool.plotting.figure_generator import ColorCycle, FigureGenerator, make_2d_histogram

__all__ = ["ColorCycle", "FigureGenerator", "make_2d_histogram"]
