"""Tests for the SQLite schema: idempotency, table creation and FK enforcement."""

from __future__ import annotations

import sqlite3

import pytest

from stock_optimizer.db.schema import ALL_TABLE_NAMES, apply_schema, get_existing_tables


class TestApplySchema:
    def test_all_tables_created(self, in_memory_db):
        tables = get_existing_tables(in_memory_db)
        for expected_table in ALL_TABLE_NAMES:
            assert expected_table in tables, (
                f"Expected table '{expected_table}' not found in database. "
                f"Found: {tables}"
            )

    def test_idempotent_double_apply(self, in_memory_db):
        """apply_schema() called twice must not raise errors."""
        apply_schema(in_memory_db)
        tables = get_existing_tables(in_memory_db)
        assert len(tables) >= len(ALL_TABLE_NAMES)

    def test_key_indexes_created(self, in_memory_db):
        indexes = {
            row["name"]
            for row in in_memory_db.execute(
                "SELECT name FROM sqlite_master WHERE type='index';"
            ).fetchall()
        }
        for idx in (
            "idx_price_bars_symbol_date",
            "idx_indicators_symbol_date",
            "idx_predictions_unverified",
            "idx_history_portfolio_date",
        ):
            assert idx in indexes


class TestForeignKeyEnforcement:
    def test_fk_enforcement_is_on(self, in_memory_db):
        row = in_memory_db.execute("PRAGMA foreign_keys;").fetchone()
        assert row[0] == 1, "PRAGMA foreign_keys should be 1 (enabled)"

    def test_holding_without_portfolio_rejected(self, in_memory_db):
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                """
                INSERT INTO portfolio_holdings (
                    portfolio_id, position, symbol, shares, entry_price, current_price
                ) VALUES ('missing', 0, 'AAPL', 1, 100, 100);
                """
            )


class TestTableStructure:
    def test_price_bar_unique_per_symbol_and_date(self, in_memory_db):
        in_memory_db.execute(
            "INSERT INTO price_bars (symbol, bar_date, open, high, low, close) "
            "VALUES ('AAPL', '2024-01-02', 1, 1, 1, 1);"
        )
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                "INSERT INTO price_bars (symbol, bar_date, open, high, low, close) "
                "VALUES ('AAPL', '2024-01-02', 2, 2, 2, 2);"
            )

    def test_history_has_no_portfolio_fk(self, in_memory_db):
        in_memory_db.execute(
            """
            INSERT INTO portfolio_history (
                portfolio_id, user_id, change_type, change_date, change_source
            ) VALUES ('gone', 'u-1', 'CREATION', '2024-01-02T00:00:00+00:00', 'USER');
            """
        )
        row = in_memory_db.execute("SELECT COUNT(*) FROM portfolio_history;").fetchone()
        assert row[0] == 1
