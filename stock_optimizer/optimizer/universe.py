"""
Candidate universe: which symbols an upgrade may consider, plus display names.

Expansion candidates come from the known-symbol catalog (every symbol with
price history or held in any portfolio), minus what the portfolio already
holds. They are ranked by confidence-weighted predicted return, highest
first, ties broken alphabetically. A candidate whose prediction fails is
skipped and reported, never fatal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from stock_optimizer.errors import OptimizerError
from stock_optimizer.models.prediction import Prediction
from stock_optimizer.protocols import PredictionOracle

logger = logging.getLogger(__name__)

COMPANY_NAMES: dict[str, str] = {
    "AAPL": "Apple Inc.",
    "MSFT": "Microsoft Corporation",
    "GOOGL": "Alphabet Inc.",
    "AMZN": "Amazon.com, Inc.",
    "META": "Meta Platforms, Inc.",
    "TSLA": "Tesla, Inc.",
    "NVDA": "NVIDIA Corporation",
    "JPM": "JPMorgan Chase & Co.",
    "V": "Visa Inc.",
    "JNJ": "Johnson & Johnson",
    "WMT": "Walmart Inc.",
    "PG": "Procter & Gamble Company",
    "MA": "Mastercard Incorporated",
    "HD": "The Home Depot, Inc.",
    "BAC": "Bank of America Corporation",
    "DIS": "The Walt Disney Company",
    "NFLX": "Netflix, Inc.",
    "INTC": "Intel Corporation",
    "VZ": "Verizon Communications Inc.",
}


def company_name(symbol: str) -> str:
    """Display name for ``symbol``; ``"<SYMBOL> Corp"`` when unknown."""
    return COMPANY_NAMES.get(symbol, f"{symbol} Corp")


@dataclass
class ExpansionResult:
    """Ranked candidates with the predictions fetched while ranking them."""

    symbols: list[str] = field(default_factory=list)
    predictions: dict[str, Prediction] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)


def select_expansion_candidates(
    catalog: Iterable[str],
    held: Iterable[str],
    oracle: PredictionOracle,
    limit: int,
) -> ExpansionResult:
    """Pick up to ``limit`` unheld symbols ranked by predicted return × confidence."""
    result = ExpansionResult()
    if limit <= 0:
        return result

    held_set = set(held)
    scored: list[tuple[float, str]] = []
    for symbol in sorted(set(catalog) - held_set):
        try:
            prediction = oracle.predict(symbol)
        except OptimizerError as exc:
            result.failures[symbol] = exc.message
            logger.debug("Expansion candidate %s skipped: %s", symbol, exc.message)
            continue
        except Exception as exc:
            error = OptimizerError.prediction_failed(symbol, exc)
            result.failures[symbol] = error.message
            logger.warning("Expansion candidate %s skipped: %s", symbol, error.message,
                           extra={"symbol": symbol})
            continue
        result.predictions[symbol] = prediction
        scored.append((prediction.predicted_change_pct * prediction.confidence_fraction, symbol))

    scored.sort(key=lambda item: (-item[0], item[1]))
    result.symbols = [symbol for _, symbol in scored[:limit]]
    logger.info(
        "Universe expansion: %d candidates ranked, %d selected",
        len(scored), len(result.symbols),
    )
    return result
