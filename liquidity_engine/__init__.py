"""
Liquidity Signals

Order book analytics: slippage, liquidity scoring, cross-market arbitrage
and multi-market order routing.
"""

from liquidity_engine.arbitrage import check_arbitrage, find_opportunities
from liquidity_engine.errors import (
    EmptyLadder,
    InsufficientAggregateLiquidity,
    InsufficientLiquidity,
    InvalidOrderSize,
    LiquidityError,
    NotFound,
)
from liquidity_engine.models import (
    ArbitrageOpportunity,
    LiquidityScore,
    MarketLadder,
    MarketSummary,
    PriceLevel,
    Route,
    RouteAllocation,
    Side,
    SlippageEstimate,
    SlippageResult,
)
from liquidity_engine.routing import find_optimal_route
from liquidity_engine.scoring import calculate_score
from liquidity_engine.slippage import calculate_slippage, calculate_slippage_ladder

__version__ = "1.0.0"

__all__ = [
    "calculate_slippage",
    "calculate_slippage_ladder",
    "calculate_score",
    "find_opportunities",
    "check_arbitrage",
    "find_optimal_route",
    "Side",
    "PriceLevel",
    "SlippageResult",
    "SlippageEstimate",
    "LiquidityScore",
    "MarketSummary",
    "ArbitrageOpportunity",
    "MarketLadder",
    "RouteAllocation",
    "Route",
    "LiquidityError",
    "InvalidOrderSize",
    "EmptyLadder",
    "InsufficientLiquidity",
    "InsufficientAggregateLiquidity",
    "NotFound",
]
