"""
CSV import parsers for price history and portfolio holdings.

Both formats are comma delimited with a header row. All rows are validated
before any are returned; if any row fails, one ``ValueError`` lists the
first 10 failures.

Price bars
  Required: symbol, date, close
  Optional: open, high, low (default to close), volume (default 0), adj_close

Holdings
  Required: symbol, shares, entry_price
  Optional: current_price (defaults to entry_price), entry_date, company_name

Dates are YYYY-MM-DD.
"""

from __future__ import annotations

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Callable, Optional, TypeVar

from pydantic import ValidationError

from stock_optimizer.models.market import PriceBar
from stock_optimizer.models.portfolio import Holding

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRICE_CSV_COLUMNS = frozenset({"symbol", "date", "close"})
HOLDINGS_CSV_COLUMNS = frozenset({"symbol", "shares", "entry_price"})

_MAX_ERRORS_SHOWN = 10


def parse_price_csv(path: Path) -> list[PriceBar]:
    """Parse a CSV of daily bars into validated :class:`PriceBar` objects.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If required columns are missing or any row fails validation.
    """
    return _parse(path, PRICE_CSV_COLUMNS, _row_to_bar, "price bars")


def parse_holdings_csv(path: Path) -> list[Holding]:
    """Parse a CSV of positions into validated :class:`Holding` objects.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If required columns are missing, any row fails
            validation, or a symbol appears twice.
    """
    holdings = _parse(path, HOLDINGS_CSV_COLUMNS, _row_to_holding, "holdings")
    seen: set[str] = set()
    for h in holdings:
        if h.symbol in seen:
            raise ValueError(f"Duplicate symbol {h.symbol} in {path.name}.")
        seen.add(h.symbol)
    return holdings


# ── Private helpers ────────────────────────────────────────────────────────────

def _parse(
    path: Path,
    required: frozenset[str],
    convert: Callable[[dict[str, str]], T],
    label: str,
) -> list[T]:
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ValueError(f"CSV file is empty or has no header row: {path}")

        actual_cols = {c.strip() for c in reader.fieldnames}
        missing = required - actual_cols
        if missing:
            raise ValueError(
                f"CSV missing required columns: {sorted(missing)}\n"
                f"Found columns: {sorted(actual_cols)}"
            )
        rows = [{k.strip(): (v or "") for k, v in row.items() if k} for row in reader]

    if not rows:
        logger.warning("CSV is empty (header only): %s", path)
        return []

    parsed: list[T] = []
    errors: list[tuple[int, str]] = []
    for i, row in enumerate(rows):
        line_no = i + 2  # 1-based, skip header row
        try:
            parsed.append(convert(row))
        except (ValueError, ValidationError) as exc:
            errors.append((line_no, str(exc)))

    if errors:
        detail = "\n".join(f"  Row {ln}: {msg}" for ln, msg in errors[:_MAX_ERRORS_SHOWN])
        suffix = (
            f"\n  … and {len(errors) - _MAX_ERRORS_SHOWN} more"
            if len(errors) > _MAX_ERRORS_SHOWN else ""
        )
        raise ValueError(f"{len(errors)} row(s) failed validation in {path.name}:\n{detail}{suffix}")

    logger.info("Parsed %d %s from %s", len(parsed), label, path.name)
    return parsed


def _row_to_bar(row: dict[str, str]) -> PriceBar:
    close = _req_float(row, "close")
    return PriceBar(
        symbol=_req(row, "symbol"),
        bar_date=_parse_date(row, "date", required=True),
        open=_opt_float(row, "open") or close,
        high=_opt_float(row, "high") or close,
        low=_opt_float(row, "low") or close,
        close=close,
        volume=int(_opt_float(row, "volume") or 0),
        adj_close=_opt_float(row, "adj_close"),
    )


def _row_to_holding(row: dict[str, str]) -> Holding:
    entry_price = _req_float(row, "entry_price")
    return Holding(
        symbol=_req(row, "symbol"),
        company_name=_opt(row, "company_name"),
        shares=_req_float(row, "shares"),
        entry_price=entry_price,
        entry_date=_parse_date(row, "entry_date"),
        current_price=_opt_float(row, "current_price") or entry_price,
    )


def _req(row: dict[str, str], key: str) -> str:
    """Return a required string field, stripped; raise if empty."""
    v = row.get(key, "").strip()
    if not v:
        raise ValueError(f"Required field '{key}' is empty.")
    return v


def _opt(row: dict[str, str], key: str) -> Optional[str]:
    v = row.get(key, "").strip()
    return v if v else None


def _req_float(row: dict[str, str], key: str) -> float:
    v = _req(row, key)
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"Invalid number for '{key}': '{v}'.")


def _opt_float(row: dict[str, str], key: str) -> Optional[float]:
    v = _opt(row, key)
    if v is None:
        return None
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"Invalid number for '{key}': '{v}'.")


def _parse_date(row: dict[str, str], key: str, required: bool = False) -> Optional[date]:
    """Parse an ISO date string (YYYY-MM-DD) from a CSV row field."""
    v = _opt(row, key)
    if v is None:
        if required:
            raise ValueError(f"Required date field '{key}' is empty.")
        return None
    try:
        return date.fromisoformat(v)
    except ValueError:
        raise ValueError(f"Invalid date for '{key}': '{v}'. Expected YYYY-MM-DD format.")
