"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent:
safe to call on an already-initialized database (e.g. at every CLI start
or in test fixtures).

Table creation order respects foreign key dependencies:
  1. price_bars            (no FKs)
  2. technical_indicators  (no FKs; one row per symbol/date)
  3. stock_predictions     (no FKs)
  4. portfolios            (no FKs)
  5. portfolio_holdings    (→ portfolios, cascade on delete)
  6. portfolio_history     (no FK: the audit trail outlives its portfolio)
  7. run_metadata          (no FKs)

Dates are ISO-8601 ``TEXT`` (``YYYY-MM-DD``); timestamps are ISO-8601 UTC.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_PRICE_BARS = """
CREATE TABLE IF NOT EXISTS price_bars (
    bar_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol      TEXT    NOT NULL,
    bar_date    TEXT    NOT NULL,
    open        REAL    NOT NULL,
    high        REAL    NOT NULL,
    low         REAL    NOT NULL,
    close       REAL    NOT NULL,
    volume      INTEGER NOT NULL DEFAULT 0,
    adj_close   REAL,
    UNIQUE (symbol, bar_date)
);
CREATE INDEX IF NOT EXISTS idx_price_bars_symbol_date ON price_bars (symbol, bar_date);
"""

_DDL_TECHNICAL_INDICATORS = """
CREATE TABLE IF NOT EXISTS technical_indicators (
    indicator_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol            TEXT    NOT NULL,
    indicator_date    TEXT    NOT NULL,
    price             REAL    NOT NULL,
    sma20             REAL,
    sma50             REAL,
    sma200            REAL,
    rsi14             REAL,
    macd_line         REAL,
    macd_signal       REAL,
    macd_histogram    REAL,
    bollinger_upper   REAL,
    bollinger_middle  REAL,
    bollinger_lower   REAL,
    computed_at       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE (symbol, indicator_date)
);
CREATE INDEX IF NOT EXISTS idx_indicators_symbol_date
    ON technical_indicators (symbol, indicator_date);
"""

_DDL_STOCK_PREDICTIONS = """
CREATE TABLE IF NOT EXISTS stock_predictions (
    prediction_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol                TEXT    NOT NULL,
    prediction_date       TEXT    NOT NULL,
    target_date           TEXT    NOT NULL,
    current_price         REAL    NOT NULL,
    predicted_price       REAL    NOT NULL,
    predicted_change_pct  REAL    NOT NULL,
    confidence_score      REAL    NOT NULL,
    actual_price          REAL,
    actual_change_pct     REAL,
    verified              INTEGER NOT NULL DEFAULT 0,
    model_version         TEXT    NOT NULL DEFAULT 'trend_v1',
    created_at            TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_predictions_symbol_date
    ON stock_predictions (symbol, prediction_date);
CREATE INDEX IF NOT EXISTS idx_predictions_unverified
    ON stock_predictions (verified, target_date);
"""

_DDL_PORTFOLIOS = """
CREATE TABLE IF NOT EXISTS portfolios (
    portfolio_id                 TEXT    PRIMARY KEY,
    user_id                      TEXT    NOT NULL,
    name                         TEXT    NOT NULL,
    total_value                  REAL    NOT NULL DEFAULT 0,
    total_return                 REAL    NOT NULL DEFAULT 0,
    total_return_pct             REAL    NOT NULL DEFAULT 0,
    risk_score                   REAL,
    optimization_status          TEXT    NOT NULL DEFAULT 'NOT_OPTIMIZED',
    last_optimized_at            TEXT,
    has_ai_recommendations       INTEGER NOT NULL DEFAULT 0,
    last_ai_recommendation_date  TEXT,
    ai_recommendation_type       TEXT,
    created_at                   TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at                   TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_portfolios_user ON portfolios (user_id);
"""

_DDL_PORTFOLIO_HOLDINGS = """
CREATE TABLE IF NOT EXISTS portfolio_holdings (
    holding_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    portfolio_id    TEXT    NOT NULL REFERENCES portfolios(portfolio_id) ON DELETE CASCADE,
    position        INTEGER NOT NULL,
    symbol          TEXT    NOT NULL,
    company_name    TEXT,
    shares          REAL    NOT NULL,
    entry_price     REAL    NOT NULL,
    entry_date      TEXT,
    current_price   REAL    NOT NULL,
    weight          REAL    NOT NULL DEFAULT 0,
    return_value    REAL    NOT NULL DEFAULT 0,
    return_pct      REAL    NOT NULL DEFAULT 0,
    UNIQUE (portfolio_id, symbol)
);
CREATE INDEX IF NOT EXISTS idx_holdings_symbol ON portfolio_holdings (symbol);
"""

_DDL_PORTFOLIO_HISTORY = """
CREATE TABLE IF NOT EXISTS portfolio_history (
    history_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    portfolio_id          TEXT    NOT NULL,
    user_id               TEXT    NOT NULL,
    change_type           TEXT    NOT NULL,
    change_date           TEXT    NOT NULL,
    previous_allocations  TEXT    NOT NULL DEFAULT '{}',
    new_allocations       TEXT    NOT NULL DEFAULT '{}',
    previous_value        REAL,
    new_value             REAL,
    risk_tolerance        REAL,
    change_source         TEXT    NOT NULL,
    change_reason         TEXT,
    ai_model_version      TEXT
);
CREATE INDEX IF NOT EXISTS idx_history_portfolio_date
    ON portfolio_history (portfolio_id, change_date);
"""

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'started',
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
"""

_ALL_DDL: list[str] = [
    _DDL_PRICE_BARS,
    _DDL_TECHNICAL_INDICATORS,
    _DDL_STOCK_PREDICTIONS,
    _DDL_PORTFOLIOS,
    _DDL_PORTFOLIO_HOLDINGS,
    _DDL_PORTFOLIO_HISTORY,
    _DDL_RUN_METADATA,
]

ALL_TABLE_NAMES: list[str] = [
    "price_bars",
    "technical_indicators",
    "stock_predictions",
    "portfolios",
    "portfolio_holdings",
    "portfolio_history",
    "run_metadata",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they do not already exist.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of table names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' "
        "ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
