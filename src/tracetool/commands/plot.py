"""`plot`: render the plots of an analysis config to HTML."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import plotly.io as pio

from tracetool.config.analysis_config import AnalysisConfigFile
from tracetool.plotting.figure_generator import FigureGenerator
from tracetool.store.event_store import EventStore
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)


def plot_command(
    config_path: Optional[Union[str, Path]] = None,
    *,
    output: Optional[Union[str, Path]] = None,
) -> dict:
    """Build the figure described by an analysis config.

    Args:
        config_path: JSON analysis config; the per-user default when None.
        output: HTML file to write. When None the figure is opened in a browser.

    Returns:
        Plotly figure dictionary.
    """
    cfg_file = AnalysisConfigFile.load(config_path=None if config_path is None else Path(config_path))
    cfg = cfg_file.data
    with EventStore(cfg_file.source_path()) as store:
        fig = FigureGenerator(store, cfg.workhours).make_figure(cfg)

    if output is None:
        pio.show(fig)
    else:
        output = Path(output)
        pio.write_html(fig, file=str(output), auto_open=False)
        logger.info(f"Wrote figure to {output}")
    return fig
