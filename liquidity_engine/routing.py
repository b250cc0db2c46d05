"""
Route optimizer.

Splits one order across several markets of the same token. Markets are
ranked by their best price and filled greedily, best market first, each up
to its full ladder. The ranking ignores how steep each market's own slippage
curve is, so the split is price-priority rather than a joint cost optimum.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from liquidity_engine.errors import EmptyLadder, InsufficientAggregateLiquidity, InsufficientLiquidity, InvalidOrderSize
from liquidity_engine.models import MarketLadder, PriceLevel, Route, RouteAllocation, Side
from liquidity_engine.slippage import calculate_slippage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Candidate:
    market_id: str
    ladder: Sequence[PriceLevel]
    max_liquidity: float
    base_price: float


def find_optimal_route(
    token: str,
    total_amount: float,
    side: Side,
    markets: Sequence[MarketLadder],
) -> Route:
    """
    Find an execution route for ``total_amount`` across ``markets``.

    Args:
        token: Token being traded, carried onto the route
        total_amount: Quantity to fill, strictly positive
        side: Order side; buy ranks cheapest markets first, sell the richest
        markets: Candidate markets with the ladder the order would consume

    Returns:
        Route with per-market allocations, blended price and savings versus
        filling everything in the best single market

    Raises:
        InvalidOrderSize: total_amount <= 0
        InsufficientAggregateLiquidity: all markets together hold less than total_amount
    """
    if total_amount <= 0:
        raise InvalidOrderSize(total_amount)

    candidates = [
        _Candidate(
            market_id=market.market_id,
            ladder=market.ladder,
            max_liquidity=sum(level.quantity for level in market.ladder),
            base_price=side.best_price(market.ladder) or 0.0,
        )
        for market in markets
    ]
    ranked = sorted(candidates, key=lambda c: side.sort_key(c.base_price))

    remaining = total_amount
    allocations: List[RouteAllocation] = []

    for candidate in ranked:
        if remaining <= 0:
            break
        if candidate.max_liquidity <= 0:
            continue

        amount = min(remaining, candidate.max_liquidity)
        try:
            result = calculate_slippage(candidate.ladder, amount, side)
        except (InsufficientLiquidity, EmptyLadder) as e:
            logger.warning(f"Skipping market {candidate.market_id} in route for {token}: {e}")
            continue

        allocations.append(
            RouteAllocation(
                market_id=candidate.market_id,
                amount=amount,
                price=result.actual_price,
                slippage_percent=result.slippage_percent,
            )
        )
        remaining -= amount

    if remaining > 0:
        raise InsufficientAggregateLiquidity(missing=remaining, requested=total_amount)

    total_cost = sum(a.amount * a.price for a in allocations)
    average_price = total_cost / total_amount
    weighted_slippage = sum(a.slippage_percent * a.amount / total_amount for a in allocations)

    single_market_cost = _single_market_cost(ranked[0], total_amount, side, fallback=total_cost)

    return Route(
        token=token,
        side=side,
        allocations=allocations,
        total_amount=total_amount,
        average_price=average_price,
        total_slippage=weighted_slippage,
        savings=max(single_market_cost - total_cost, 0.0),
    )


def _single_market_cost(best: _Candidate, total_amount: float, side: Side, fallback: float) -> float:
    """Cost of filling the whole order in the best-ranked market, or ``fallback`` if it cannot."""
    try:
        return calculate_slippage(best.ladder, total_amount, side).total_cost
    except (InsufficientLiquidity, EmptyLadder):
        return fallback
