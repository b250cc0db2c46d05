"""
Slippage engine.

Simulates walking an order book ladder to fill a given size and reports the
realized average price against the best quoted price.
"""

import logging
from typing import List, Sequence

from liquidity_engine.errors import EmptyLadder, InsufficientLiquidity, InvalidOrderSize
from liquidity_engine.models import PriceLevel, Side, SlippageEstimate, SlippageResult

logger = logging.getLogger(__name__)

DEFAULT_LADDER_SIZES: List[float] = [100, 500, 1000, 5000, 10000]

# Residue left by float subtraction when an order equals the ladder's total quantity
FILL_TOLERANCE = 1e-12


def calculate_slippage(
    ladder: Sequence[PriceLevel],
    order_size: float,
    side: Side,
) -> SlippageResult:
    """
    Fill ``order_size`` against ``ladder`` and measure the slippage.

    The ladder may arrive in any order; a best-price-first copy is walked
    and the caller's sequence is left untouched.

    Args:
        ladder: Price levels of the book side the order consumes
        order_size: Quantity to fill, strictly positive
        side: Order side, decides the sort direction

    Returns:
        SlippageResult with best price, average fill price and total cost

    Raises:
        InvalidOrderSize: order_size <= 0
        EmptyLadder: ladder has no levels
        InsufficientLiquidity: ladder holds less than order_size
    """
    if order_size <= 0:
        raise InvalidOrderSize(order_size)
    if not ladder:
        raise EmptyLadder()

    sorted_levels = side.sort_levels(ladder)
    best_price = sorted_levels[0].price

    remaining = order_size
    total_cost = 0.0
    filled = 0.0

    for level in sorted_levels:
        if remaining <= 0:
            break
        consumed = min(remaining, level.quantity)
        total_cost += consumed * level.price
        filled += consumed
        remaining -= consumed

    if remaining > order_size * FILL_TOLERANCE:
        raise InsufficientLiquidity(filled=filled, requested=order_size)

    actual_price = total_cost / filled
    slippage_percent = abs((actual_price - best_price) / best_price) * 100

    return SlippageResult(
        expected_price=best_price,
        actual_price=actual_price,
        slippage_percent=slippage_percent,
        price_impact=slippage_percent,
        total_cost=total_cost,
    )


def calculate_slippage_ladder(
    ladder: Sequence[PriceLevel],
    side: Side,
    sizes: Sequence[float] = DEFAULT_LADDER_SIZES,
) -> List[SlippageEstimate]:
    """
    Slippage at several order sizes.

    Each size is filled independently. A size the ladder cannot serve gets
    ``slippage=None`` and the remaining sizes are still computed.
    """
    estimates = []
    for size in sizes:
        try:
            result = calculate_slippage(ladder, size, side)
        except (InsufficientLiquidity, EmptyLadder, InvalidOrderSize) as e:
            logger.debug(f"No fill for size {size}: {e}")
            result = None
        estimates.append(SlippageEstimate(order_size=size, slippage=result))
    return estimates
