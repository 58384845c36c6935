"""SQLite-backed row sources for the spreadsheet export job.

Each ``*_rows`` function returns the rows for one logical sheet as lists of
strings.  The first cell is the identity key used to match rows that were
written by an earlier run: the entity id for plain tables and a composite
``"<dimensions> <window>"`` key for the weekly summaries so that re-running a
week overwrites its rows instead of appending them again.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, List, Sequence, Tuple

from exporter.reporting_window import period_label, window_label

logger = logging.getLogger(__name__)

Rows = List[List[str]]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
SCHEMA_STATEMENTS: Tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS stores (
        id TEXT PRIMARY KEY,
        store_hash TEXT NOT NULL UNIQUE,
        access_token TEXT NOT NULL DEFAULT '',
        installed_at TEXT NOT NULL,
        published INTEGER NOT NULL DEFAULT 0,
        uninstalled INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS unpublish_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        store_hash TEXT NOT NULL,
        unpublished_at TEXT NOT NULL,
        reason TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS general_feedback (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        message TEXT NOT NULL,
        submitted_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS charity_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        store_hash TEXT NOT NULL,
        charity TEXT NOT NULL,
        event_type TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS widget_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        store_hash TEXT NOT NULL,
        event_type TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
)


def ensure_schema(conn: sqlite3.Connection) -> None:
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)


def get_connection(path: str | Path) -> sqlite3.Connection:
    """Open the storefront database at ``path`` with name-addressable rows."""

    logger.debug("Opening database %s", path)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def connection(path: str | Path) -> Iterator[sqlite3.Connection]:
    conn = get_connection(path)
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------
def db_timestamp(value: datetime) -> str:
    """Render ``value`` the way timestamps are stored in the database."""

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return db_timestamp(value)
    return str(value)


def _flag(value: Any) -> str:
    if isinstance(value, str):
        return "true" if value.strip().lower() in {"1", "true", "t", "yes"} else "false"
    return "true" if value else "false"


# ---------------------------------------------------------------------------
# Row sources
# ---------------------------------------------------------------------------
def store_status_rows(conn: sqlite3.Connection) -> Rows:
    cursor = conn.execute(
        "SELECT id, store_hash, installed_at, published, uninstalled FROM stores ORDER BY installed_at, id"
    )
    return [
        [
            _cell(row["id"]),
            _cell(row["store_hash"]),
            _cell(row["installed_at"]),
            _flag(row["published"]),
            _flag(row["uninstalled"]),
        ]
        for row in cursor.fetchall()
    ]


def uninstall_feedback_rows(conn: sqlite3.Connection) -> Rows:
    cursor = conn.execute(
        "SELECT id, store_hash, unpublished_at, reason FROM unpublish_events ORDER BY unpublished_at, id"
    )
    return [
        [_cell(row["id"]), _cell(row["store_hash"]), _cell(row["unpublished_at"]), _cell(row["reason"])]
        for row in cursor.fetchall()
    ]


def general_feedback_rows(conn: sqlite3.Connection) -> Rows:
    cursor = conn.execute(
        "SELECT id, submitted_at, name, email, message FROM general_feedback ORDER BY submitted_at, id"
    )
    return [
        [
            _cell(row["id"]),
            _cell(row["submitted_at"]),
            _cell(row["name"]),
            _cell(row["email"]),
            _cell(row["message"]),
        ]
        for row in cursor.fetchall()
    ]


def charity_event_summary_rows(conn: sqlite3.Connection, start: datetime, end: datetime) -> Rows:
    """Weekly event counts per charity, preceded by the period separator row."""

    window = window_label(start, end)
    cursor = conn.execute(
        """
        SELECT charity, event_type, count(*) AS count
        FROM charity_events
        WHERE created_at >= ? AND created_at <= ?
        GROUP BY event_type, charity
        ORDER BY event_type, charity
        """,
        (db_timestamp(start), db_timestamp(end)),
    )
    rows: Rows = [[period_label(start, end)]]
    for row in cursor.fetchall():
        charity = _cell(row["charity"])
        event_type = _cell(row["event_type"])
        rows.append([f"{charity}:{event_type} {window}", charity, event_type, _cell(row["count"])])
    return rows


def widget_event_summary_rows(conn: sqlite3.Connection, start: datetime, end: datetime) -> Rows:
    """Weekly widget event counts, preceded by the period separator row."""

    window = window_label(start, end)
    cursor = conn.execute(
        """
        SELECT event_type, count(*) AS count
        FROM widget_events
        WHERE created_at >= ? AND created_at <= ?
        GROUP BY event_type
        ORDER BY event_type
        """,
        (db_timestamp(start), db_timestamp(end)),
    )
    rows: Rows = [[period_label(start, end)]]
    for row in cursor.fetchall():
        event_type = _cell(row["event_type"])
        rows.append([f"{event_type} {window}", event_type, _cell(row["count"])])
    return rows


@dataclass(frozen=True)
class SheetSource:
    """A logical sheet and the query producing its rows."""

    sheet_name: str
    fetch_rows: Callable[[sqlite3.Connection, datetime, datetime], Rows]


SHEET_SOURCES: Sequence[SheetSource] = (
    SheetSource("stores", lambda conn, start, end: store_status_rows(conn)),
    SheetSource("uninstall-feedback", lambda conn, start, end: uninstall_feedback_rows(conn)),
    SheetSource("general-feedback", lambda conn, start, end: general_feedback_rows(conn)),
    SheetSource("charity-events", charity_event_summary_rows),
    SheetSource("widget-events", widget_event_summary_rows),
)


__all__ = [
    "SHEET_SOURCES",
    "SheetSource",
    "charity_event_summary_rows",
    "connection",
    "db_timestamp",
    "ensure_schema",
    "general_feedback_rows",
    "get_connection",
    "store_status_rows",
    "uninstall_feedback_rows",
    "widget_event_summary_rows",
]
