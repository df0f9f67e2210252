"""
Database connection, initialization and transactions.
"""
from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from league_backend import config

from .schema import all_schema_sql

_db_path: Path | None = None
_savepoint_ids = itertools.count(1)


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using the configured one."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return config.DB_PATH


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection in autocommit mode.
    Multi-statement writes go through transaction(). Ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    # isolation_level=None: we issue BEGIN/COMMIT ourselves
    conn = sqlite3.connect(str(path), isolation_level=None, timeout=config.DB_BUSY_TIMEOUT_MS / 1000)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(config.DB_BUSY_TIMEOUT_MS)};")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection, *, write: bool = True) -> Iterator[sqlite3.Connection]:
    """
    Outermost: BEGIN IMMEDIATE (write) or BEGIN (read); COMMIT on success, ROLLBACK on error.
    Nested: SAVEPOINT / RELEASE, rolled back to the savepoint on error.

    BEGIN IMMEDIATE takes the database write lock up front, so a read-count-then-write
    inside it cannot interleave with another writer.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name};")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name};")
            conn.execute(f"RELEASE SAVEPOINT {name};")
            raise
        else:
            conn.execute(f"RELEASE SAVEPOINT {name};")
        return

    conn.execute("BEGIN IMMEDIATE;" if write else "BEGIN;")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist. Enables WAL so readers do not block the writer."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), isolation_level=None)
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.executescript(all_schema_sql())
    finally:
        conn.close()
