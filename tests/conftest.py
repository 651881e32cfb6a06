# tests/conftest.py
"""Pytest configuration and shared fixtures for tracetool tests."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Iterable, Optional

import pytest


def pytest_configure() -> None:
    # Ensure `src/` is importable when running tests from the repo root.
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if src_dir.exists() and str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


NS_PER_S = 1_000_000_000
NS_PER_DAY = 86_400 * NS_PER_S

# 2024-01-01 00:00:00 UTC (a Monday)
MONDAY_2024 = 1_704_067_200 * NS_PER_S

EventRow = tuple  # (group_id, timestamp, ordinal, duration[, extra])


@pytest.fixture
def make_event_store(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing an `events` table to a fresh SQLite file.

    Rows are (group_id, timestamp, ordinal, duration) or
    (group_id, timestamp, ordinal, duration, kind); `kind` fills an extra
    text column usable from pass-through predicates.
    """
    from sqlalchemy import create_engine, text

    def _make(rows: Iterable[EventRow], name: str = "trace.sqlite", extra_tables: Optional[dict] = None) -> Path:
        path = tmp_path / name
        engine = create_engine(f"sqlite:///{path}")
        with engine.begin() as conn:
            conn.exec_driver_sql(
                "CREATE TABLE events (group_id INTEGER, timestamp INTEGER, "
                "ordinal INTEGER, duration INTEGER, kind TEXT)"
            )
            payload = []
            for row in rows:
                group_id, ts, ordinal, duration = row[:4]
                kind = row[4] if len(row) > 4 else "query"
                payload.append(
                    {"g": group_id, "ts": ts, "o": ordinal, "d": duration, "k": kind}
                )
            if payload:
                conn.execute(
                    text("INSERT INTO events (group_id, timestamp, ordinal, duration, kind) VALUES (:g, :ts, :o, :d, :k)"),
                    payload,
                )
            for stmt in (extra_tables or {}).values():
                conn.exec_driver_sql(stmt)
        engine.dispose()
        return path

    return _make
