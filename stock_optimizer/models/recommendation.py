"""
Recommendation, tracking and reporting models.

``UpgradeRecommendation`` is the preview returned by ``generate_upgrade``;
nothing in it has been applied. ``RecommendationMetrics`` lives in the
process-local metrics store from the moment an upgrade is applied until
the tracker retires it. ``PerformanceReport`` and ``AggregateStats`` are
the read-side views over that store.

Weights in this module are fractions (0..1); returns and changes are
percentages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from stock_optimizer.taxonomy.portfolio_enums import RecommendationType, TradeAction


class RecommendedAction(BaseModel):
    """A concrete trade implied by moving from current to target weight.

    ``share_delta`` is ``target_shares - current_shares`` where
    ``target_shares`` is rounded toward zero. ``estimated_impact`` is the
    dollar value of the trade (negative for sells).
    """

    model_config = ConfigDict(frozen=True)

    action: TradeAction
    symbol: str
    company_name: str
    current_weight: float
    target_weight: float
    current_shares: float
    target_shares: int
    share_delta: float
    price: float
    estimated_impact: float
    confidence_score: float
    reason: str


class ExpectedPerformance(BaseModel):
    """Forward-looking figures for one allocation (percentages except scores)."""

    model_config = ConfigDict(frozen=True)

    expected_return: float
    expected_volatility: float
    sharpe_ratio: float
    max_drawdown: float
    diversification_score: float
    number_of_positions: int
    average_position_size: float


class ImprovementMetrics(BaseModel):
    """How a recommended allocation compares with the current one."""

    model_config = ConfigDict(frozen=True)

    return_improvement: float
    risk_reduction: float
    sharpe_improvement: float
    diversification_improvement: float
    turnover_pct: float
    overall_score: float


class UpgradeRecommendation(BaseModel):
    """A generated, not yet applied, reallocation for one portfolio."""

    model_config = ConfigDict(frozen=True)

    portfolio_id: str
    risk_tolerance: float
    universe_expanded: bool
    recommendation_type: RecommendationType
    current_allocations: dict[str, float]
    recommended_allocations: dict[str, float]
    recommended_actions: list[RecommendedAction]
    excluded_symbols: dict[str, str] = {}
    current_performance: Optional[ExpectedPerformance] = None
    expected_performance: Optional[ExpectedPerformance] = None
    improvement: Optional[ImprovementMetrics] = None
    ai_confidence_score: float = 0.0
    iterations_used: int = 0
    converged: bool = True
    generated_at: datetime


class RecommendationMetrics(BaseModel):
    """Tracked outcome of one applied recommendation (one per portfolio)."""

    model_config = ConfigDict(frozen=True)

    portfolio_id: str
    application_date: datetime
    allocations: dict[str, float]
    initial_value: float
    latest_value: float
    latest_value_change: float = 0.0
    latest_pct_change: float = 0.0
    days_since_application: int = 0
    last_tracked_date: Optional[datetime] = None


class PerformanceReport(BaseModel):
    """Answer to a performance query; ``found=False`` carries only a message."""

    model_config = ConfigDict(frozen=True)

    found: bool
    portfolio_id: str
    message: Optional[str] = None
    application_date: Optional[datetime] = None
    allocations: Optional[dict[str, float]] = None
    initial_value: Optional[float] = None
    current_value: Optional[float] = None
    value_change: Optional[float] = None
    percentage_change: Optional[float] = None
    days_since_application: Optional[int] = None
    last_tracked_date: Optional[datetime] = None
    benchmark_symbol: Optional[str] = None
    benchmark_return: Optional[float] = None
    outperformance: Optional[float] = None


class AggregateStats(BaseModel):
    """Summary over every tracked recommendation.

    Everything except ``recommendation_count`` is ``None`` when nothing is
    tracked.
    """

    model_config = ConfigDict(frozen=True)

    recommendation_count: int
    positive_count: Optional[int] = None
    positive_performance_pct: Optional[float] = None
    average_performance: Optional[float] = None
    best_performance: Optional[float] = None
    worst_performance: Optional[float] = None
