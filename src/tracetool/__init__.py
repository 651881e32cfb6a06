"""
tracetool: overlap, aggregation and correlation analytics for query traces.

This package provides:
- An overlap sweep that records, per query execution, the time it ran
  alongside other queries, plus the number of concurrently active queries
- A time-bucketed resampler shared by plots and reports
- Grouped descriptive statistics and an execution-time vs overlap
  correlation ranking
- A SQLite event store adapter, plotly figures, CSV reports and a CLI

For logging configuration in standalone scripts:
    ```python
    from tracetool.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```

When used as a library (imported by other applications), logging is
automatically handled by the parent application's configuration.
"""

import logging

from tracetool.utils.logging import configure_logging, get_logger

from tracetool.errors import ComputeError, DataError, Diagnostic, InputError, StoreError, TracetoolError

# Ensure tracetool logger has NullHandler so logs don't propagate to root
# when no application has configured logging. The CLI calls
# configure_logging() to add a real handler.
_logger = logging.getLogger("tracetool")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "ComputeError",
    "DataError",
    "Diagnostic",
    "InputError",
    "StoreError",
    "TracetoolError",
    "configure_logging",
    "get_logger",
]

__version__ = "0.1.0"
