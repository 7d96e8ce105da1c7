"""
Base repository providing shared SQLite execution helpers.

All repositories inherit from ``BaseRepository`` and receive a
``sqlite3.Connection`` at construction time. The connection is opened and
committed by the caller (typically via ``get_connection()``); repositories
never commit on their own.

Design:
  - No ORM; all SQL is explicit and lives in repository methods.
  - Repositories speak Pydantic models, not raw dicts.
  - Multi-statement writes run inside ``savepoint()`` so a failure halfway
    leaves the rows as they were, even when the caller keeps the
    connection open for further work.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Generator, Optional

logger = logging.getLogger(__name__)


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> sqlite3.Cursor:
        """Execute a single SQL statement with ``?`` or ``:name`` placeholders."""
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(
        self,
        sql: str,
        params_list: list[tuple[Any, ...] | dict[str, Any]],
    ) -> sqlite3.Cursor:
        """Execute a SQL statement for each element in ``params_list``."""
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def fetchone(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        return self.execute(sql, params).fetchall()

    def last_insert_rowid(self) -> int:
        """Return the rowid of the last successful INSERT."""
        row = self.fetchone("SELECT last_insert_rowid() AS rowid;")
        assert row is not None
        return int(row["rowid"])

    @contextmanager
    def savepoint(self, name: str = "repo_write") -> Generator[None, None, None]:
        """Run the enclosed statements atomically inside a SQLite SAVEPOINT.

        Nested use is fine; SQLite savepoints stack.
        """
        self.conn.execute(f"SAVEPOINT {name};")
        try:
            yield
        except Exception:
            self.conn.execute(f"ROLLBACK TO SAVEPOINT {name};")
            self.conn.execute(f"RELEASE SAVEPOINT {name};")
            raise
        else:
            self.conn.execute(f"RELEASE SAVEPOINT {name};")


# ── Column converters ─────────────────────────────────────────────────────────


def to_iso(value: date | datetime | None) -> Optional[str]:
    """Serialize a date/datetime for a TEXT column (``None`` passes through)."""
    return value.isoformat() if value is not None else None


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` column value."""
    return date.fromisoformat(value[:10]) if value else None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp column value (``Z`` suffix accepted)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
