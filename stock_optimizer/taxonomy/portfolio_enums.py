"""
Closed vocabularies for portfolio state, history and recommendations.

Values are the strings stored in SQLite and shown to API consumers, so
renaming a member is a data migration.

This module has NO imports from any other ``stock_optimizer`` package.
"""

from enum import StrEnum


class OptimizationStatus(StrEnum):
    """Lifecycle of a portfolio with respect to optimization runs.

    ``NOT_OPTIMIZED → OPTIMIZING → {OPTIMIZED | UPGRADED_WITH_AI}``, and
    back to ``OPTIMIZING`` whenever a new run starts.
    """

    NOT_OPTIMIZED = "NOT_OPTIMIZED"
    OPTIMIZING = "OPTIMIZING"
    OPTIMIZED = "OPTIMIZED"
    """A recommendation was generated; holdings are unchanged."""

    UPGRADED_WITH_AI = "UPGRADED_WITH_AI"
    """A recommendation was applied to the holdings."""


class ChangeType(StrEnum):
    """What kind of change a history record describes."""

    CREATION = "CREATION"
    UPDATE = "UPDATE"
    AI_RECOMMENDATION = "AI_RECOMMENDATION"
    REBALANCE = "REBALANCE"


class ChangeSource(StrEnum):
    """Who initiated a recorded change."""

    USER = "USER"
    AI = "AI"
    SCHEDULED = "SCHEDULED"


class TradeAction(StrEnum):
    """Per-symbol action in a recommendation."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class RecommendationType(StrEnum):
    """Flavour of an applied recommendation, derived from risk tolerance."""

    RISK_OPTIMIZED = "RISK_OPTIMIZED"
    BALANCED = "BALANCED"
    RETURN_OPTIMIZED = "RETURN_OPTIMIZED"


class TrendDirection(StrEnum):
    """Short-vs-medium moving average regime."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


def recommendation_type_for(risk_tolerance: float) -> RecommendationType:
    """Bucket a risk tolerance into a ``RecommendationType``."""
    if risk_tolerance < 0.33:
        return RecommendationType.RISK_OPTIMIZED
    if risk_tolerance < 0.67:
        return RecommendationType.BALANCED
    return RecommendationType.RETURN_OPTIMIZED
