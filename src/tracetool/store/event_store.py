"""SQLite event store access for the analytics commands.

The store is produced by an external import step. It holds one events table
(group id, timestamp, ordinal, duration and arbitrary extra columns) and,
after `compute-overlap`, the overlap and active-count tables.

Filter handling
---------------
- `start`/`end` become bound parameters on the timestamp column.
- `where` is forwarded verbatim, wrapped in parentheses. It is never parsed
  here; SQLite reports its errors, which surface as InputError.
- Work hours need a time zone conversion and are applied in memory after
  reading (see tracetool.config.filter.WorkHours).

Persisting overlap results replaces both output tables inside a single
transaction. pysqlite does not emit BEGIN for DDL on its own, so the engine
is configured to emit it explicitly; a failure at any point rolls back the
drops as well and leaves the previous tables untouched.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Hashable, Iterator, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from tracetool.algorithms.overlap import OverlapResult
from tracetool.config.filter import Filter, WorkHours, apply_workhours, select_workhours
from tracetool.errors import InputError, StoreError, TracetoolError
from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

# SQLite messages that point at the forwarded predicate rather than the store.
_PREDICATE_ERROR_MARKERS = (
    "syntax error",
    "no such column",
    "unrecognized token",
    "no such function",
    "incomplete input",
    "ambiguous column name",
)


@dataclass(frozen=True)
class EventSchema:
    """Table and column names of the event store."""
    table: str = "events"
    group_column: str = "group_id"
    timestamp_column: str = "timestamp"
    ordinal_column: str = "ordinal"
    duration_column: str = "duration"
    overlap_table: str = "events_overlap"
    active_count_table: str = "active_query_count"


def quote_identifier(name: str) -> str:
    """Quote a table or column name for SQLite."""
    return '"' + str(name).replace('"', '""') + '"'


def build_criteria(
    filter: Optional[Filter],
    timestamp_column: str,
) -> tuple[list[str], dict[str, Any]]:
    """SQL conditions and bound parameters for a Filter (work hours excluded)."""
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if filter is None:
        return clauses, params
    ts = quote_identifier(timestamp_column)
    if filter.start_ns is not None:
        clauses.append(f"{ts} >= :start_ns")
        params["start_ns"] = filter.start_ns
    if filter.end_ns is not None:
        clauses.append(f"{ts} <= :end_ns")
        params["end_ns"] = filter.end_ns
    if filter.where:
        clauses.append(f"({filter.where})")
    return clauses, params


def _where_sql(clauses: Sequence[str]) -> str:
    return " WHERE " + " AND ".join(clauses) if clauses else ""


def _configure_transactional_ddl(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # hand transaction control to SQLAlchemy
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class EventStore:
    """Read events and samples from, and persist overlap tables to, a SQLite file.

    Args:
        path: Existing SQLite database file.
        schema: Table and column names; defaults to EventSchema().

    Raises:
        StoreError: If the database file does not exist.
    """

    def __init__(self, path: Union[str, Path], schema: Optional[EventSchema] = None):
        self.path = Path(path).expanduser()
        self.schema = schema or EventSchema()
        if not self.path.is_file():
            raise StoreError(f"Event store {self.path} does not exist", details={"path": str(self.path)})
        self.engine: Engine = create_engine(
            f"sqlite:///{self.path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        _configure_transactional_ddl(self.engine)
        logger.debug(f"Opened event store {self.path}")

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "EventStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Error translation and schema checks
    # ------------------------------------------------------------------

    @contextmanager
    def _translate_errors(self, action: str, predicate: Optional[str] = None) -> Iterator[None]:
        try:
            yield
        except pd.errors.DatabaseError as e:
            # pandas wraps the driver error raised while running the query
            cause = e.__cause__ if isinstance(e.__cause__, SQLAlchemyError) else e
            raise self._classify_error(cause, action, predicate) from e
        except SQLAlchemyError as e:
            raise self._classify_error(e, action, predicate) from e

    def _classify_error(self, error: Exception, action: str, predicate: Optional[str]) -> TracetoolError:
        """InputError when SQLite rejects the forwarded predicate, StoreError otherwise."""
        orig = getattr(error, "orig", None)
        msg = str(orig) if orig is not None else str(error)
        rejected_sql = isinstance(error, OperationalError) or not isinstance(error, SQLAlchemyError)
        if predicate and rejected_sql and any(marker in msg for marker in _PREDICATE_ERROR_MARKERS):
            return InputError(f"Invalid filter predicate {predicate!r}: {msg}", details={"where": predicate})
        return StoreError(f"Cannot {action}: {msg}", details={"path": str(self.path)})

    def table_exists(self, table: str) -> bool:
        with self._translate_errors(f"inspect table {table}"):
            return inspect(self.engine).has_table(table)

    def _require_columns(self, table: str, columns: Sequence[str]) -> None:
        with self._translate_errors(f"inspect table {table}"):
            insp = inspect(self.engine)
            if not insp.has_table(table):
                raise StoreError(f"Table {table!r} not found in {self.path}", details={"table": table})
            present = {c["name"] for c in insp.get_columns(table)}
        missing = [c for c in columns if c not in present]
        if missing:
            raise StoreError(
                f"Table {table!r} has no column(s) {', '.join(missing)}",
                details={"table": table, "missing": missing},
            )

    def _query_frame(
        self,
        sql: str,
        params: dict[str, Any],
        *,
        action: str,
        predicate: Optional[str],
        dtype_backend: Optional[str] = None,
    ) -> pd.DataFrame:
        logger.debug(f"SQL: {sql} params={params}")
        t0 = time.perf_counter()
        kwargs = {} if dtype_backend is None else {"dtype_backend": dtype_backend}
        with self._translate_errors(action, predicate):
            with self.engine.connect() as conn:
                df = pd.read_sql_query(text(sql), conn, params=params, **kwargs)
        logger.debug(f"{action}: {len(df)} rows in {time.perf_counter() - t0:.3f}s")
        return df

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_events(self, filter: Optional[Filter] = None) -> pd.DataFrame:
        """Events with a group id, ordered by (timestamp, ordinal).

        Columns come back as nullable integers: a NULL in one row must not
        turn the column into float64, which cannot hold nanosecond
        timestamps exactly. Missing values are pd.NA and are rejected by the
        sweep's validation.

        Returns:
            DataFrame with columns timestamp, ordinal, duration, group_id.
        """
        s = self.schema
        self._require_columns(
            s.table, [s.group_column, s.timestamp_column, s.ordinal_column, s.duration_column]
        )
        clauses, params = build_criteria(filter, s.timestamp_column)
        clauses.insert(0, f"{quote_identifier(s.group_column)} IS NOT NULL")
        sql = (
            f"SELECT {quote_identifier(s.timestamp_column)} AS timestamp, "
            f"{quote_identifier(s.ordinal_column)} AS ordinal, "
            f"{quote_identifier(s.duration_column)} AS duration, "
            f"{quote_identifier(s.group_column)} AS group_id "
            f"FROM {quote_identifier(s.table)}{_where_sql(clauses)} "
            f"ORDER BY {quote_identifier(s.timestamp_column)}, {quote_identifier(s.ordinal_column)}"
        )
        return self._query_frame(
            sql,
            params,
            action="read events",
            predicate=filter.where if filter else None,
            dtype_backend="numpy_nullable",
        )

    def read_samples(
        self,
        table: str,
        column: str,
        filter: Optional[Filter] = None,
        workhours: Optional[WorkHours] = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Timestamps and values of one column, ordered by timestamp.

        Rows whose value is NULL come back as NaN; the resampler drops them.
        """
        s = self.schema
        self._require_columns(table, [s.timestamp_column, column])
        clauses, params = build_criteria(filter, s.timestamp_column)
        clauses.insert(0, f"{quote_identifier(s.timestamp_column)} IS NOT NULL")
        sql = (
            f"SELECT {quote_identifier(s.timestamp_column)} AS ts, {quote_identifier(column)} AS value "
            f"FROM {quote_identifier(table)}{_where_sql(clauses)} "
            f"ORDER BY {quote_identifier(s.timestamp_column)}"
        )
        df = self._query_frame(
            sql, params, action=f"read {table}.{column}", predicate=filter.where if filter else None
        )
        ts = df["ts"].to_numpy(dtype=np.int64)
        values = pd.to_numeric(df["value"], errors="coerce").to_numpy(dtype=float)
        return apply_workhours(ts, values, filter, workhours)

    def read_samples_by_group(
        self,
        column: Optional[str] = None,
        filter: Optional[Filter] = None,
        workhours: Optional[WorkHours] = None,
    ) -> dict[Hashable, np.ndarray]:
        """Values of `column` (duration by default) per group id, ascending group order."""
        s = self.schema
        column = column or s.duration_column
        self._require_columns(s.table, [s.group_column, s.timestamp_column, column])
        clauses, params = build_criteria(filter, s.timestamp_column)
        clauses.insert(0, f"{quote_identifier(s.timestamp_column)} IS NOT NULL")
        clauses.insert(0, f"{quote_identifier(s.group_column)} IS NOT NULL")
        sql = (
            f"SELECT {quote_identifier(s.group_column)} AS group_id, "
            f"{quote_identifier(s.timestamp_column)} AS ts, {quote_identifier(column)} AS value "
            f"FROM {quote_identifier(s.table)}{_where_sql(clauses)} "
            f"ORDER BY {quote_identifier(s.group_column)}, {quote_identifier(s.timestamp_column)}"
        )
        df = self._query_frame(
            sql, params, action=f"read {column} by group", predicate=filter.where if filter else None
        )
        df["value"] = pd.to_numeric(df["value"], errors="coerce")
        df = select_workhours(df, filter, workhours)
        return {
            _plain(group_id): grp["value"].to_numpy(dtype=float)
            for group_id, grp in df.groupby("group_id", sort=True)
        }

    def read_overlap_samples(
        self,
        filter: Optional[Filter] = None,
        group_id: Optional[Hashable] = None,
        workhours: Optional[WorkHours] = None,
    ) -> dict[Hashable, tuple[np.ndarray, np.ndarray]]:
        """Paired (execution time, overlap) samples per group.

        Events are joined with the overlap table on (timestamp, ordinal). The
        filter applies to the events table.

        Raises:
            StoreError: If the overlap table has not been computed yet.
        """
        s = self.schema
        self._require_columns(
            s.table, [s.group_column, s.timestamp_column, s.ordinal_column, s.duration_column]
        )
        if not self.table_exists(s.overlap_table):
            raise StoreError(
                f"Table {s.overlap_table!r} not found in {self.path}; run compute-overlap first",
                details={"table": s.overlap_table},
            )
        clauses, params = build_criteria(filter, s.timestamp_column)
        clauses.insert(0, f"{quote_identifier(s.timestamp_column)} IS NOT NULL")
        clauses.insert(0, f"{quote_identifier(s.group_column)} IS NOT NULL")
        if group_id is not None:
            clauses.append(f"{quote_identifier(s.group_column)} = :group_id")
            params["group_id"] = group_id
        sql = (
            "SELECT e.group_id, e.ts, e.duration, o.overlap FROM ("
            f"SELECT {quote_identifier(s.group_column)} AS group_id, "
            f"{quote_identifier(s.timestamp_column)} AS ts, "
            f"{quote_identifier(s.ordinal_column)} AS ord, "
            f"{quote_identifier(s.duration_column)} AS duration "
            f"FROM {quote_identifier(s.table)}{_where_sql(clauses)}"
            f") AS e JOIN {quote_identifier(s.overlap_table)} AS o "
            "ON o.timestamp = e.ts AND o.ordinal = e.ord "
            "ORDER BY e.group_id, e.ts, e.ord"
        )
        df = self._query_frame(
            sql, params, action="read overlap samples", predicate=filter.where if filter else None
        )
        df = df.dropna(subset=["duration", "overlap"])
        df = select_workhours(df, filter, workhours)
        return {
            _plain(gid): (grp["duration"].to_numpy(dtype=float), grp["overlap"].to_numpy(dtype=float))
            for gid, grp in df.groupby("group_id", sort=True)
        }

    def read_active_counts(self) -> pd.DataFrame:
        """The persisted active-count step function, ordered by timestamp."""
        s = self.schema
        self._require_columns(s.active_count_table, ["timestamp", "count"])
        sql = f'SELECT timestamp, "count" FROM {quote_identifier(s.active_count_table)} ORDER BY timestamp'
        return self._query_frame(sql, {}, action="read active counts", predicate=None)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_overlap(self, result: OverlapResult) -> None:
        """Replace the overlap and active-count tables with `result`, atomically."""
        s = self.schema
        overlap_rows = [
            {"timestamp": r.timestamp, "ordinal": r.ordinal, "overlap": r.overlap_ns, "overlap_count": r.overlap_count}
            for r in result.records
        ]
        count_rows = [{"timestamp": p.timestamp, "count": p.count} for p in result.active_counts]

        t0 = time.perf_counter()
        with self._translate_errors("write overlap tables"):
            with self.engine.begin() as conn:
                self._replace_tables(conn)
                self._insert_rows(conn, s.overlap_table, ["timestamp", "ordinal", "overlap", "overlap_count"], overlap_rows)
                self._insert_rows(conn, s.active_count_table, ["timestamp", "count"], count_rows)
        logger.info(
            f"Wrote {len(overlap_rows)} overlap rows and {len(count_rows)} active-count rows "
            f"in {time.perf_counter() - t0:.3f}s"
        )

    def _replace_tables(self, conn: Connection) -> None:
        s = self.schema
        overlap = quote_identifier(s.overlap_table)
        counts = quote_identifier(s.active_count_table)
        for stmt in (
            f"DROP TABLE IF EXISTS {overlap}",
            f"DROP TABLE IF EXISTS {counts}",
            f"CREATE TABLE {overlap} ("
            "timestamp INTEGER NOT NULL, ordinal INTEGER NOT NULL, "
            "overlap INTEGER NOT NULL, overlap_count INTEGER NOT NULL, "
            "PRIMARY KEY (timestamp, ordinal))",
            f'CREATE TABLE {counts} (timestamp INTEGER PRIMARY KEY, "count" INTEGER NOT NULL)',
        ):
            logger.debug(f"SQL: {stmt}")
            conn.exec_driver_sql(stmt)

    def _insert_rows(self, conn: Connection, table: str, columns: Sequence[str], rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        cols = ", ".join(quote_identifier(c) for c in columns)
        values = ", ".join(f":{c}" for c in columns)
        stmt = f"INSERT INTO {quote_identifier(table)} ({cols}) VALUES ({values})"
        logger.debug(f"SQL: {stmt} x {len(rows)}")
        conn.execute(text(stmt), rows)


def _plain(value: Any) -> Any:
    """numpy scalar -> Python scalar, so group ids compare and print naturally."""
    return value.item() if isinstance(value, np.generic) else value
