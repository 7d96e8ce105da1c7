"""
SQLite connection management.

``get_connection()`` yields a connection that:
  - Enforces foreign keys (OFF by default in SQLite).
  - Runs in WAL journal mode so request handlers can read while the
    scheduler writes.
  - Waits ``busy_timeout_ms`` on lock contention instead of failing at once.
  - Uses ``sqlite3.Row`` so rows behave like dicts.
  - Commits on clean exit, rolls back on exception.

One connection is one unit of work: an upgrade apply writes the portfolio,
its holdings and the history record through repositories that share the
same connection, so either all of it lands or none of it does.

Usage::

    from stock_optimizer.db.connection import get_connection

    with get_connection(config.database.db_path) as conn:
        PortfolioRepository(conn).save(portfolio)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    The database file (and any parent directories) are created if they do
    not already exist.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.
        wal_mode: If ``True``, enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait when the database is locked.

    Yields:
        An open, configured ``sqlite3.Connection``.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
        if wal_mode and db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()

    except Exception:
        logger.debug("Rolling back transaction on %s", db_path)
        conn.rollback()
        raise

    finally:
        conn.close()

