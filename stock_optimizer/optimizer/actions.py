"""
Turn target weights into concrete per-symbol trades.

For each symbol:
    target_shares = floor(total_value * target_weight / price)
    share_delta   = target_shares - current_shares
    action        = HOLD  if share_delta == 0 or |Δweight| < 1 percentage point
                    BUY   if share_delta > 0
                    SELL  otherwise

Current holdings come first in portfolio order, then new positions in target
order; new positions that would buy less than one share are dropped. The
final list is sorted by absolute dollar impact, largest first (stable).
"""

from __future__ import annotations

import logging
import math
from typing import Mapping, Optional

from stock_optimizer.models.portfolio import Portfolio
from stock_optimizer.models.recommendation import RecommendedAction
from stock_optimizer.optimizer.analysis import SymbolAnalysis
from stock_optimizer.optimizer.universe import company_name
from stock_optimizer.taxonomy.portfolio_enums import TradeAction, TrendDirection

logger = logging.getLogger(__name__)

HOLD_THRESHOLD = 0.01
DEFAULT_ACTION_CONFIDENCE = 60.0
# Keeps floor() from dropping a share to float noise when target == current.
_SHARE_EPSILON = 1e-9


def target_share_count(total_value: float, weight: float, price: float) -> int:
    """Whole shares worth ``weight`` of ``total_value`` at ``price``, rounded toward zero."""
    if price <= 0 or weight <= 0:
        return 0
    return int(math.floor(total_value * weight / price + _SHARE_EPSILON))


def build_actions(
    portfolio: Portfolio,
    target_weights: Mapping[str, float],
    analyses: Mapping[str, SymbolAnalysis],
    prices: Mapping[str, float],
) -> list[RecommendedAction]:
    """Build the ordered action list for moving ``portfolio`` to ``target_weights``.

    Args:
        portfolio: Portfolio as it is now.
        target_weights: Symbol → target fraction.
        analyses: Analyses used for reasons and confidence (may be partial).
        prices: Latest known price per symbol; holdings fall back to their
            stored ``current_price``.
    """
    total = portfolio.total_value
    if total <= 0:
        logger.warning("Portfolio %s has no value; no actions built.", portfolio.portfolio_id)
        return []

    actions: list[RecommendedAction] = []

    for holding in portfolio.holdings:
        symbol = holding.symbol
        price = prices.get(symbol, holding.current_price)
        current_weight = holding.market_value / total
        target_weight = target_weights.get(symbol, 0.0)
        target_shares = target_share_count(total, target_weight, price)
        delta = target_shares - holding.shares
        analysis = analyses.get(symbol)

        if delta == 0 or abs(target_weight - current_weight) < HOLD_THRESHOLD:
            action = TradeAction.HOLD
            reason = "Current position is close to optimal allocation"
        elif delta > 0:
            action = TradeAction.BUY
            reason = _buy_reason(analysis)
        else:
            action = TradeAction.SELL
            reason = _sell_reason(analysis)

        actions.append(
            _make_action(action, symbol, holding.company_name, current_weight, target_weight,
                         holding.shares, target_shares, price, analysis, reason)
        )

    held = set(portfolio.symbols)
    for symbol, target_weight in target_weights.items():
        if symbol in held:
            continue
        price = prices.get(symbol)
        if price is None:
            logger.warning("No price for new position %s; action skipped.", symbol,
                           extra={"symbol": symbol})
            continue
        target_shares = target_share_count(total, target_weight, price)
        if target_shares < 1:
            continue
        analysis = analyses.get(symbol)
        actions.append(
            _make_action(TradeAction.BUY, symbol, None, 0.0, target_weight, 0.0,
                         target_shares, price, analysis, _new_position_reason(analysis))
        )

    actions.sort(key=lambda a: abs(a.estimated_impact), reverse=True)
    return actions


# ── Internal helpers ───────────────────────────────────────────────────────────


def _make_action(
    action: TradeAction,
    symbol: str,
    name: Optional[str],
    current_weight: float,
    target_weight: float,
    current_shares: float,
    target_shares: int,
    price: float,
    analysis: Optional[SymbolAnalysis],
    reason: str,
) -> RecommendedAction:
    delta = target_shares - current_shares
    return RecommendedAction(
        action=action,
        symbol=symbol,
        company_name=name or company_name(symbol),
        current_weight=current_weight,
        target_weight=target_weight,
        current_shares=current_shares,
        target_shares=target_shares,
        share_delta=delta,
        price=price,
        estimated_impact=delta * price,
        confidence_score=(
            analysis.prediction.confidence_score if analysis else DEFAULT_ACTION_CONFIDENCE
        ),
        reason=reason,
    )


def _buy_reason(analysis: Optional[SymbolAnalysis]) -> str:
    if analysis is None:
        return "Increase allocation for portfolio optimization"
    if analysis.trend.trend is TrendDirection.BULLISH:
        return "Bullish trend with positive momentum"
    if analysis.predicted_return > 0.1:
        return "High expected return in the near term"
    if analysis.sharpe_ratio > 1:
        return "Strong risk-adjusted return profile"
    return "Portfolio diversification benefits"


def _sell_reason(analysis: Optional[SymbolAnalysis]) -> str:
    if analysis is None:
        return "Decrease allocation for portfolio optimization"
    if analysis.trend.trend is TrendDirection.BEARISH:
        return "Bearish trend with negative momentum"
    if analysis.predicted_return < -0.05:
        return "Negative expected return in the near term"
    if analysis.sharpe_ratio < 0:
        return "Poor risk-adjusted return profile"
    return "Better opportunities elsewhere in portfolio"


def _new_position_reason(analysis: Optional[SymbolAnalysis]) -> str:
    if analysis is None:
        return "New position: Enhances portfolio balance"
    if analysis.trend.trend is TrendDirection.BULLISH:
        return "New position: Bullish trend with positive outlook"
    if analysis.predicted_return > 0.1:
        return "New position: High expected return potential"
    if analysis.sharpe_ratio > 1:
        return "New position: Strong risk-adjusted return profile"
    return "New position: Improves portfolio diversification"
