"""
SQLite database utilities and schema initialisation.

Design goals:
- Reliable: every write runs in an explicit IMMEDIATE transaction so
  check-then-act sequences are serialised across connections.
- Maintainable: single place for schema and connection behaviour.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

import config

logger = logging.getLogger(__name__)


def get_connection(db_path: Optional[str] = None, timeout: Optional[float] = None) -> sqlite3.Connection:
    """
    Creates a SQLite connection with consistent settings.

    - Row factory enabled for dict-like access
    - Busy timeout so concurrent writers wait for the lock instead of failing

    A connection belongs to one thread; concurrent callers open their own.
    """
    conn = sqlite3.connect(
        db_path or config.get_db_path(),
        timeout=timeout if timeout is not None else config.DB_TIMEOUT_SEC,
    )
    # Access rows like dicts: row["column_name"].
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Creates tables if they do not already exist."""
    # One executescript keeps schema creation simple and repeatable.
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS components (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            display_name       TEXT NOT NULL,
            normalized_key     TEXT NOT NULL,
            description        TEXT NOT NULL DEFAULT '',
            category           TEXT NOT NULL DEFAULT 'General',
            quantity_available INTEGER NOT NULL DEFAULT 0 CHECK (quantity_available >= 0),
            created_at         TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at         TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- Not UNIQUE: intake serialises lookup+insert instead.
        CREATE INDEX IF NOT EXISTS idx_components_normalized_key
            ON components(normalized_key);

        -- No foreign key on component_id: removing a component leaves
        -- existing requests pointing at a missing row.
        CREATE TABLE IF NOT EXISTS requests (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            requester_id     TEXT NOT NULL,
            component_id     INTEGER NOT NULL,
            quantity         INTEGER NOT NULL CHECK (quantity > 0),
            reason           TEXT,
            status           TEXT NOT NULL DEFAULT 'pending'
                             CHECK (status IN ('pending', 'approved', 'rejected')),
            rejection_reason TEXT,
            reviewer_id      TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at       TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_requests_requester_time
            ON requests(requester_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_requests_component
            ON requests(component_id);
        """
    )
    conn.commit()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Runs the block as one unit of work.

    Opens `BEGIN IMMEDIATE` (takes the write lock up front) and commits on
    success. Any exception, including one raised by the commit itself, rolls
    the transaction back and propagates. If a transaction is already open on
    this connection the block joins it and the outer owner commits.
    """
    if conn.in_transaction:
        yield conn
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        # A failed COMMIT (e.g. SQLITE_BUSY) leaves the transaction open, so it rolls back too.
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
