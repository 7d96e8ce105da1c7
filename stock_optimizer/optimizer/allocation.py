"""
Constrained allocation solver.

Given strictly positive desirability scores, find weights with

    min_weight <= w[s] <= max_weight   for every symbol
    sum(w) == 1                        (within ``tolerance``)

How it works
------------
1.  Pinned symbols (existing holdings kept at their previous weight) are
    clamped into the bounds and taken out of the problem; the free symbols
    share ``target = 1 - sum(pinned)``.
2.  Feasibility check: ``n * min <= target <= n * max`` for ``n`` free
    symbols, otherwise INVALID_ALLOCATION. No clamping can fix an
    infeasible problem, so we fail before iterating.
3.  Start from weights proportional to score.
4.  Each refinement pass clamps every weight into the bounds, hands the
    clamped excess (or deficit) to the symbols that can still absorb it in
    proportion to their current weight, and renormalizes to ``target``.
5.  Stop when no weight moved more than ``epsilon`` in a pass, or after
    ``iterations`` passes.
6.  If the pass budget ran out before the bounds were met, one final
    headroom-proportional projection lands the weights inside the bounds
    (always possible once step 2 passed). The result is then validated.

Determinism: no randomness anywhere; the output map is ordered by weight
descending, ties keeping the caller's symbol order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from stock_optimizer.errors import OptimizerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    weights: dict[str, float]
    iterations: int
    converged: bool


def solve_allocation(
    scores: dict[str, float],
    min_weight: float,
    max_weight: float,
    *,
    pinned: Optional[dict[str, float]] = None,
    order: Optional[Sequence[str]] = None,
    iterations: int = 1000,
    epsilon: float = 1e-9,
    tolerance: float = 1e-6,
) -> AllocationResult:
    """Solve for bounded weights summing to 1.

    Args:
        scores: Free symbol → strictly positive desirability.
        min_weight: Lower bound per symbol.
        max_weight: Upper bound per symbol.
        pinned: Symbol → fixed weight (clamped into the bounds).
        order: Tie-break order for the output; defaults to pinned symbols
            followed by ``scores`` in insertion order.
        iterations: Hard cap on refinement passes.
        epsilon: Convergence threshold on the largest per-symbol change.
        tolerance: Slack allowed on bounds and on the sum.

    Raises:
        ValueError: On a non-positive score or invalid bounds.
        OptimizerError: INVALID_ALLOCATION when no feasible assignment exists.
    """
    if not 0.0 < min_weight <= max_weight <= 1.0:
        raise ValueError(f"Invalid bounds: min={min_weight}, max={max_weight}.")
    if any(v <= 0 for v in scores.values()):
        raise ValueError("All scores must be strictly positive.")

    fixed = {s: _clamp(w, min_weight, max_weight) for s, w in (pinned or {}).items()}
    free = {s: v for s, v in scores.items() if s not in fixed}
    if not free and not fixed:
        raise OptimizerError.invalid_allocation("No symbols left to allocate.")

    target = 1.0 - sum(fixed.values())
    n = len(free)
    if n == 0:
        if abs(target) > tolerance:
            raise OptimizerError.invalid_allocation(
                f"Kept holdings sum to {1.0 - target:.6f} and no other symbol can absorb the rest."
            )
        return AllocationResult(_ordered(fixed, order), 0, True)

    if n * min_weight > target + tolerance or n * max_weight < target - tolerance:
        raise OptimizerError.invalid_allocation(
            f"{n} symbols cannot share {target:.6f} within "
            f"[{min_weight}, {max_weight}] each."
        )

    total_score = sum(free.values())
    weights = {s: v / total_score * target for s, v in free.items()}

    used = 0
    converged = False
    for used in range(1, iterations + 1):
        refined = _refine(weights, min_weight, max_weight, target)
        delta = max(abs(refined[s] - weights[s]) for s in weights)
        weights = refined
        if delta < epsilon:
            converged = True
            break

    if not _within_bounds(weights, min_weight, max_weight, tolerance):
        logger.debug("Refinement stopped outside bounds after %d passes; projecting.", used)
        weights = _project(weights, min_weight, max_weight, target)

    combined = {**fixed, **{s: _clamp(w, min_weight, max_weight) for s, w in weights.items()}}
    total = sum(combined.values())
    if abs(total - 1.0) > tolerance:
        raise OptimizerError.invalid_allocation(
            f"Weights sum to {total:.6f} after {used} passes; no feasible allocation found."
        )

    logger.debug("Allocation solved: %d symbols, %d passes, converged=%s", len(combined), used, converged)
    return AllocationResult(_ordered(combined, order), used, converged)


# ── Internal helpers ───────────────────────────────────────────────────────────


def _refine(weights: dict[str, float], lo: float, hi: float, target: float) -> dict[str, float]:
    """One clamp → redistribute → renormalize pass."""
    out = {s: _clamp(w, lo, hi) for s, w in weights.items()}
    diff = target - sum(out.values())

    if diff > 0:
        absorbers = [s for s, w in out.items() if w < hi]
    elif diff < 0:
        absorbers = [s for s, w in out.items() if w > lo]
    else:
        absorbers = []

    base = sum(out[s] for s in absorbers)
    if absorbers and base > 0:
        for s in absorbers:
            out[s] += diff * out[s] / base

    total = sum(out.values())
    if total > 0:
        scale = target / total
        out = {s: w * scale for s, w in out.items()}
    return out


def _project(weights: dict[str, float], lo: float, hi: float, target: float) -> dict[str, float]:
    """Clamp, then spread the remainder in proportion to each symbol's headroom."""
    out = {s: _clamp(w, lo, hi) for s, w in weights.items()}
    diff = target - sum(out.values())
    if diff > 0:
        room = {s: hi - w for s, w in out.items()}
    else:
        room = {s: w - lo for s, w in out.items()}
    total_room = sum(room.values())
    if total_room > 0:
        for s in out:
            out[s] += diff * room[s] / total_room
    return out


def _within_bounds(weights: dict[str, float], lo: float, hi: float, tol: float) -> bool:
    return all(lo - tol <= w <= hi + tol for w in weights.values())


def _ordered(weights: dict[str, float], order: Optional[Sequence[str]]) -> dict[str, float]:
    rank = {s: i for i, s in enumerate(order or ())}
    fallback = len(rank)
    keys = sorted(
        weights,
        key=lambda s: (-round(weights[s], 12), rank.get(s, fallback)),
    )
    return {s: weights[s] for s in keys}


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
