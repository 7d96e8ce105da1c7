"""
Portfolio and holding models.

Both are frozen: services derive an updated copy with ``model_copy`` and
hand it to the store, so a failed operation can never leave a half-mutated
object behind.

Weights on ``Holding`` are percentages of portfolio value (summing to ~100);
allocation maps handed to and returned from the optimizer are fractions
(summing to ~1). ``Portfolio.allocations()`` converts between the two.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from stock_optimizer.taxonomy.portfolio_enums import OptimizationStatus, RecommendationType


class Holding(BaseModel):
    """One stock position inside a portfolio."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    company_name: Optional[str] = None
    shares: float
    entry_price: float
    entry_date: Optional[date] = None
    current_price: float
    weight: float = 0.0
    return_value: float = 0.0
    return_pct: float = 0.0

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("shares")
    @classmethod
    def validate_shares(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"shares must be non-negative, got {v}.")
        return v

    @property
    def market_value(self) -> float:
        return self.shares * self.current_price

    @property
    def cost_basis(self) -> float:
        return self.shares * self.entry_price


class Portfolio(BaseModel):
    """A user's portfolio of holdings plus its optimization state.

    Attributes:
        portfolio_id: Opaque identifier.
        user_id: Owning user; a portfolio has exactly one owner.
        name: Display name.
        holdings: Positions in display order. Order is significant: it is the
            tie-break order for equally scored symbols.
        total_value: Sum of holding market values.
        total_return: ``total_value`` minus total cost basis.
        total_return_pct: ``total_return`` as a percentage of cost basis.
        risk_score: 0–100 volatility score, ``None`` until computed.
        optimization_status: Position in the optimization state machine.
        last_optimized_at: UTC time of the last generate or apply.
        has_ai_recommendations: Whether a recommendation was ever applied.
        last_ai_recommendation_date: UTC time of the last apply.
        ai_recommendation_type: Flavour of the last applied recommendation.
    """

    model_config = ConfigDict(frozen=True)

    portfolio_id: str
    user_id: str
    name: str
    holdings: list[Holding] = []
    total_value: float = 0.0
    total_return: float = 0.0
    total_return_pct: float = 0.0
    risk_score: Optional[float] = None
    optimization_status: OptimizationStatus = OptimizationStatus.NOT_OPTIMIZED
    last_optimized_at: Optional[datetime] = None
    has_ai_recommendations: bool = False
    last_ai_recommendation_date: Optional[datetime] = None
    ai_recommendation_type: Optional[RecommendationType] = None

    @field_validator("holdings")
    @classmethod
    def validate_unique_symbols(cls, v: list[Holding]) -> list[Holding]:
        symbols = [h.symbol for h in v]
        if len(symbols) != len(set(symbols)):
            raise ValueError(f"Duplicate symbols in holdings: {symbols}.")
        return v

    @property
    def symbols(self) -> list[str]:
        return [h.symbol for h in self.holdings]

    def holding(self, symbol: str) -> Optional[Holding]:
        """Return the holding for ``symbol``, or ``None``."""
        for h in self.holdings:
            if h.symbol == symbol:
                return h
        return None

    def allocations(self) -> dict[str, float]:
        """Current value-weighted allocation as fractions summing to ~1.

        Empty when the portfolio has no value.
        """
        total = sum(h.market_value for h in self.holdings)
        if total <= 0:
            return {}
        return {h.symbol: h.market_value / total for h in self.holdings}

    def recalculated(self) -> "Portfolio":
        """Return a copy with per-holding and portfolio-level figures recomputed.

        Holding ``weight`` is the percentage of total value; returns are
        measured against entry price.
        """
        total_value = sum(h.market_value for h in self.holdings)
        total_cost = sum(h.cost_basis for h in self.holdings)

        holdings = []
        for h in self.holdings:
            ret = h.market_value - h.cost_basis
            holdings.append(
                h.model_copy(
                    update={
                        "weight": h.market_value / total_value * 100 if total_value > 0 else 0.0,
                        "return_value": ret,
                        "return_pct": ret / h.cost_basis * 100 if h.cost_basis > 0 else 0.0,
                    }
                )
            )

        total_return = total_value - total_cost
        return self.model_copy(
            update={
                "holdings": holdings,
                "total_value": total_value,
                "total_return": total_return,
                "total_return_pct": total_return / total_cost * 100 if total_cost > 0 else 0.0,
            }
        )

    def revalued(self, prices: Mapping[str, float]) -> "Portfolio":
        """Return a recalculated copy with ``current_price`` taken from ``prices``.

        Holdings whose symbol is missing from ``prices`` keep their stored price.
        """
        holdings = [
            h.model_copy(update={"current_price": prices[h.symbol]}) if h.symbol in prices else h
            for h in self.holdings
        ]
        return self.model_copy(update={"holdings": holdings}).recalculated()

    def with_status(
        self,
        status: OptimizationStatus,
        optimized_at: Optional[datetime] = None,
    ) -> "Portfolio":
        """Return a copy in ``status``; ``optimized_at`` also stamps ``last_optimized_at``."""
        update: dict = {"optimization_status": status}
        if optimized_at is not None:
            update["last_optimized_at"] = optimized_at
        return self.model_copy(update=update)
