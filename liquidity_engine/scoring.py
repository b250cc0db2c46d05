"""
Liquidity scorer.

Composite 0-100 health score built from three order book dimensions:
- depth: quantity resting near the top of the book (40%)
- spread: relative distance between best bid and best ask (40%)
- distribution: how evenly quantity is spread across levels (20%)
"""

from typing import Sequence

from liquidity_engine.models import LiquidityScore, PriceLevel, Side

DEPTH_LEVELS = 10
DEPTH_NORMALIZATION = 100_000
EMPTY_SIDE_SPREAD = 100.0

DEPTH_WEIGHT = 0.4
SPREAD_WEIGHT = 0.4
CONCENTRATION_WEIGHT = 0.2


def calculate_score(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> LiquidityScore:
    """
    Score the liquidity of one order book.

    Args:
        bids: Bid ladder, any order
        asks: Ask ladder, any order

    Returns:
        LiquidityScore; resilience is always 0 since it needs historical data
    """
    depth = calculate_depth(bids, asks)
    spread = calculate_spread(bids, asks)
    concentration = calculate_concentration(bids, asks)

    depth_score = min(depth / DEPTH_NORMALIZATION * 100, 100)
    spread_score = max(100 - spread * 100, 0)
    concentration_score = (1 - concentration) * 100

    overall = (
        depth_score * DEPTH_WEIGHT
        + spread_score * SPREAD_WEIGHT
        + concentration_score * CONCENTRATION_WEIGHT
    )

    return LiquidityScore(
        overall=round(overall, 2),
        depth=depth,
        spread=spread,
        concentration=concentration,
        resilience=0,
    )


def calculate_depth(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> float:
    """Mean of the quantity in the best 10 bid levels and the best 10 ask levels."""
    top_bids = Side.SELL.sort_levels(bids)[:DEPTH_LEVELS]
    top_asks = Side.BUY.sort_levels(asks)[:DEPTH_LEVELS]

    bid_depth = sum(level.quantity for level in top_bids)
    ask_depth = sum(level.quantity for level in top_asks)

    return (bid_depth + ask_depth) / 2


def calculate_spread(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> float:
    """Relative spread (best_ask - best_bid) / best_bid, or 100 if a side is empty."""
    if not bids or not asks:
        return EMPTY_SIDE_SPREAD

    best_bid = Side.SELL.best_price(bids)
    best_ask = Side.BUY.best_price(asks)

    return (best_ask - best_bid) / best_bid


def calculate_concentration(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> float:
    """
    Gini coefficient of level quantities, 0 = evenly spread, 1 = concentrated.

    Bid and ask levels are pooled into one distribution, so an imbalanced
    book reads as concentrated even when each side is even on its own.
    """
    quantities = sorted(level.quantity for level in [*bids, *asks])
    n = len(quantities)
    if n == 0:
        return 1.0

    total = sum(quantities)
    if total == 0:
        return 1.0

    gini = sum((2 * (i + 1) - n - 1) * q for i, q in enumerate(quantities))
    return gini / (n * total)
