"""Command line entry point: `tracetool <command> ...`.

Reports (CSV) go to stdout, logs and error messages to stderr. Exit status:
0 on success, 2 for invalid input, 3 for event store failures, 1 for any
other tracetool error.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from tracetool import __version__
from tracetool.algorithms.quantiles import STAT_NAMES
from tracetool.commands import (
    compute_overlap_command,
    convert_unit,
    group_statistics_command,
    overlap_correlation_command,
    plot_command,
)
from tracetool.config.analysis_config import AnalysisConfig, AnalysisConfigFile, CorrelationConfig
from tracetool.config.durations import TimeUnit
from tracetool.config.filter import Filter, WorkHours
from tracetool.errors import InputError, StoreError, TracetoolError
from tracetool.store.event_store import EventSchema
from tracetool.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_STORE_ERROR = 3


def _schema_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    defaults = EventSchema()
    parser.add_argument("--table", default=defaults.table, help="Events table (default: %(default)s)")
    parser.add_argument("--group-column", default=defaults.group_column, help="Group id column (default: %(default)s)")
    parser.add_argument("--duration-column", default=defaults.duration_column, help="Duration column (default: %(default)s)")
    parser.add_argument(
        "-j", "--workers", type=int,
        help="Worker threads for per-group work (default: max_workers of --config, else 1)",
    )
    return parser


def _filter_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--start", help="Inclusive start, partial date 'YYYY[-MM[-DD[ HH[:MM[:SS]]]]]' (UTC)")
    parser.add_argument("--end", help="Inclusive end, partial date (UTC)")
    parser.add_argument("--where", help="SQL predicate forwarded to the event store")
    parser.add_argument("--workhours", action="store_true", help="Keep only samples inside work hours")
    parser.add_argument("--hours", metavar="START-END",
                        help="Work hours window (default: workhours of --config, else 8-17)")
    parser.add_argument("--timezone", help="Work hours time zone (default: workhours of --config, else UTC)")
    parser.add_argument("--config", help="Analysis config JSON supplying correlation, workhours and max_workers")
    return parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracetool",
        description="Overlap, aggregation and correlation analytics over a query event store.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only")

    subparsers = parser.add_subparsers(dest="command", required=True)
    schema = _schema_parser()
    filters = _filter_parser()

    p = subparsers.add_parser("compute-overlap", parents=[schema], help="Compute and persist overlap tables")
    p.add_argument("database", help="SQLite event store")
    p.add_argument("--per-group", action="store_true",
                   help="Only credit overlap within a group; --workers is only used with this option")
    p.set_defaults(func=_run_compute_overlap)

    p = subparsers.add_parser(
        "overlap-correlation", parents=[schema, filters],
        help="Rank groups by execution time vs overlap correlation",
    )
    p.add_argument("database", help="SQLite event store")
    p.add_argument("--min-samples", type=int,
                   help=f"Minimum paired samples per group (default: {CorrelationConfig.min_samples})")
    p.add_argument("--standardize", action="store_true",
                   help="Scale both variables to unit variance before the eigen analysis")
    p.add_argument("--percent", action="store_true", help="Use overlap as a percentage of execution time")
    p.set_defaults(func=_run_overlap_correlation)

    p = subparsers.add_parser("group-statistics", parents=[schema, filters], help="Descriptive statistics per group")
    p.add_argument("database", help="SQLite event store")
    p.add_argument("--column", help="Column to describe (default: the duration column)")
    p.add_argument("--unit", default="s", help="Report unit (default: %(default)s)")
    p.add_argument("--sort-by", choices=STAT_NAMES, help="Order rows by this statistic")
    p.add_argument("--descending", action="store_true", help="Largest first with --sort-by")
    p.set_defaults(func=_run_group_statistics)

    p = subparsers.add_parser("plot", help="Render the plots of an analysis config")
    p.add_argument("config", nargs="?", help="Analysis config JSON (default: per-user config)")
    p.add_argument("-o", "--output", help="HTML output file (default: open in a browser)")
    p.set_defaults(func=_run_plot)

    p = subparsers.add_parser("convert-unit", help="Convert a date, duration or timestamp")
    p.add_argument("value", help="Partial date, duration (e.g. '15m') or epoch nanoseconds")
    p.set_defaults(func=_run_convert_unit)

    return parser


def _schema_from_args(args: argparse.Namespace) -> EventSchema:
    return EventSchema(
        table=args.table,
        group_column=args.group_column,
        duration_column=args.duration_column,
    )


def _analysis_config(args: argparse.Namespace) -> AnalysisConfig:
    """The --config analysis config, or the built-in defaults without one."""
    if not args.config:
        return AnalysisConfig()
    return AnalysisConfigFile.load(config_path=Path(args.config)).data


def _workers(args: argparse.Namespace, cfg: Optional[AnalysisConfig] = None) -> int:
    if args.workers is not None:
        return args.workers
    return cfg.max_workers if cfg is not None else 1


def _filter_from_args(args: argparse.Namespace, cfg: AnalysisConfig) -> tuple[Filter, WorkHours]:
    """Filter from the command line; --hours/--timezone override the config's work hours."""
    base = cfg.workhours
    start_hour, end_hour = base.start_hour, base.end_hour
    if args.hours is not None:
        try:
            start_hour, end_hour = (int(h) for h in args.hours.split("-"))
        except ValueError as e:
            raise InputError(f"Invalid --hours {args.hours!r}; expected START-END, e.g. 8-17") from e
    workhours = WorkHours(
        start_hour=start_hour,
        end_hour=end_hour,
        timezone=args.timezone if args.timezone is not None else base.timezone,
        weekdays=list(base.weekdays),
    )
    return Filter(start=args.start, end=args.end, workhours=args.workhours, where=args.where), workhours


def _run_compute_overlap(args: argparse.Namespace) -> None:
    compute_overlap_command(
        args.database,
        schema=_schema_from_args(args),
        per_group=args.per_group,
        max_workers=_workers(args),
    )


def _run_overlap_correlation(args: argparse.Namespace) -> None:
    cfg = _analysis_config(args)
    filter, workhours = _filter_from_args(args, cfg)
    # flags only switch options on; the config file supplies the rest
    config = CorrelationConfig(
        min_samples=args.min_samples if args.min_samples is not None else cfg.correlation.min_samples,
        standardize=args.standardize or cfg.correlation.standardize,
        overlap_as_percent=args.percent or cfg.correlation.overlap_as_percent,
    )
    overlap_correlation_command(
        args.database,
        filter=filter,
        config=config,
        workhours=workhours,
        schema=_schema_from_args(args),
        max_workers=_workers(args, cfg),
    )


def _run_group_statistics(args: argparse.Namespace) -> None:
    cfg = _analysis_config(args)
    filter, workhours = _filter_from_args(args, cfg)
    group_statistics_command(
        args.database,
        column=args.column,
        filter=filter,
        workhours=workhours,
        unit=TimeUnit.parse(args.unit),
        sort_by=args.sort_by,
        descending=args.descending,
        schema=_schema_from_args(args),
        max_workers=_workers(args, cfg),
    )


def _run_plot(args: argparse.Namespace) -> None:
    plot_command(args.config, output=args.output)


def _run_convert_unit(args: argparse.Namespace) -> None:
    for line in convert_unit(args.value):
        print(line)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = "DEBUG" if args.verbose else "WARNING" if args.quiet else None
    configure_logging(level=level)

    try:
        args.func(args)
    except InputError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except StoreError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_STORE_ERROR
    except TracetoolError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
