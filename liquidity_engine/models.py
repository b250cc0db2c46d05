"""
Data models for liquidity analytics.

Uses Pydantic for type-safe, immutable value objects. Attributes are
snake_case in Python and serialize with camelCase aliases, which are the
field names response bodies carry (``model_dump(by_alias=True)``).
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Side(str, Enum):
    """
    Order side, and the price ordering that goes with it.

    Buy orders consume asks, best price is the lowest. Sell orders consume
    bids, best price is the highest.
    """

    BUY = "buy"
    SELL = "sell"

    @property
    def book_side(self) -> str:
        """Which ladder of an order book this side trades against."""
        return "asks" if self is Side.BUY else "bids"

    def ranks_before(self, price_a: float, price_b: float) -> bool:
        """True if ``price_a`` is strictly better than ``price_b`` for this side."""
        if self is Side.BUY:
            return price_a < price_b
        return price_a > price_b

    def sort_key(self, price: float) -> float:
        return price if self is Side.BUY else -price

    def sort_levels(self, levels: Iterable["PriceLevel"]) -> List["PriceLevel"]:
        """Return a best-price-first copy of ``levels``. The input is not touched."""
        return sorted(levels, key=lambda level: self.sort_key(level.price))

    def best_price(self, levels: Iterable["PriceLevel"]) -> Optional[float]:
        best = None
        for level in levels:
            if best is None or self.ranks_before(level.price, best):
                best = level.price
        return best


class ValueModel(BaseModel):
    """Frozen model with camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PriceLevel(ValueModel):
    """Single resting rung of an order book ladder."""

    price: float = Field(..., gt=0, description="Price level")
    quantity: float = Field(..., ge=0, description="Resting quantity at this price")

    @property
    def total_value(self) -> float:
        return self.price * self.quantity


class SlippageResult(ValueModel):
    """Outcome of filling one order against one ladder."""

    expected_price: float = Field(..., description="Best price on the ladder")
    actual_price: float = Field(..., description="Volume weighted average fill price")
    slippage_percent: float = Field(..., ge=0, description="Relative deviation of the fill from the best price, in %")
    price_impact: float = Field(..., ge=0, description="Mirrors slippage_percent")
    total_cost: float = Field(..., description="Sum of consumed quantity times level price")


class SlippageEstimate(ValueModel):
    """One slot of a slippage ladder; ``slippage`` is None when the size cannot be filled."""

    order_size: float
    slippage: Optional[SlippageResult] = None


class LiquidityScore(ValueModel):
    """Composite 0-100 liquidity health score and its components."""

    overall: float = Field(..., description="Weighted composite score, 0-100")
    depth: float = Field(..., ge=0, description="Mean quantity resting in the best 10 levels per side")
    spread: float = Field(..., description="Relative bid-ask spread, 100 when a side is empty")
    concentration: float = Field(..., description="Gini coefficient of level quantities")
    resilience: float = Field(default=0, description="Recovery speed; needs historical data, always 0")


class MarketSummary(ValueModel):
    """Top-of-book view of one market, the input of the arbitrage scanner."""

    market_id: str
    token: str
    best_bid: float = Field(..., ge=0)
    best_ask: float = Field(..., ge=0)
    bid_quantity: float = Field(..., ge=0)
    ask_quantity: float = Field(..., ge=0)


class ArbitrageOpportunity(ValueModel):
    """Profitable buy-here, sell-there spread for a single token."""

    buy_market: str
    sell_market: str
    buy_price: float
    sell_price: float
    spread: float
    spread_percent: float
    max_profitable_size: float
    estimated_profit: float
    token: str


class MarketLadder(ValueModel):
    """One candidate market for routing: its id and the ladder an order would consume."""

    market_id: str
    ladder: List[PriceLevel] = Field(default_factory=list)


class RouteAllocation(ValueModel):
    market_id: str
    amount: float
    price: float = Field(..., description="Average fill price inside this market")
    slippage_percent: float


class Route(ValueModel):
    """Split of one order across several markets."""

    token: str
    side: Side
    allocations: List[RouteAllocation] = Field(default_factory=list)
    total_amount: float
    average_price: float
    total_slippage: float = Field(..., description="Amount weighted slippage across allocations, in %")
    savings: float = Field(..., ge=0, description="Cost saved versus filling in the best single market")


# ---------------------------------------------------------------------------
# Service layer records
# ---------------------------------------------------------------------------


class OrderBookSnapshot(ValueModel):
    """Order book snapshot of one market as fetched from a venue."""

    market_id: str = Field(..., description="Registry id, '<exchange>:<BASE/QUOTE>'")
    exchange: str
    symbol: str
    token: str = Field(..., description="Base asset symbol")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    bids: List[PriceLevel] = Field(default_factory=list)
    asks: List[PriceLevel] = Field(default_factory=list)

    latency_ms: Optional[float] = Field(None, description="Fetch latency of the snapshot")
    circuit_state: Optional[str] = Field(None, description="Venue circuit breaker state at fetch time")

    def ladder_for(self, side: Side) -> List[PriceLevel]:
        """Ladder an order on ``side`` would consume."""
        return self.asks if side is Side.BUY else self.bids

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        if not self.bids:
            return None
        return Side.SELL.sort_levels(self.bids)[0]

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        if not self.asks:
            return None
        return Side.BUY.sort_levels(self.asks)[0]

    def summary(self) -> MarketSummary:
        """Top-of-book summary; missing sides report zero price and quantity."""
        best_bid = self.best_bid
        best_ask = self.best_ask
        return MarketSummary(
            market_id=self.market_id,
            token=self.token,
            best_bid=best_bid.price if best_bid else 0.0,
            best_ask=best_ask.price if best_ask else 0.0,
            bid_quantity=best_bid.quantity if best_bid else 0.0,
            ask_quantity=best_ask.quantity if best_ask else 0.0,
        )


class OrderBookDepth(ValueModel):
    bids: List[PriceLevel] = Field(default_factory=list)
    asks: List[PriceLevel] = Field(default_factory=list)


class SlippagePoint(ValueModel):
    order_size: float
    slippage_percent: float
    price_impact: float


class MarketAnalysis(ValueModel):
    """Liquidity analysis of a single market."""

    market_id: str
    token: str
    liquidity_score: LiquidityScore
    orderbook: OrderBookDepth = Field(..., description="Top 10 levels per side")
    slippage_estimates: List[SlippagePoint] = Field(
        default_factory=list, description="Buy-side slippage for the sizes the book can fill"
    )
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ArbitrageScan(ValueModel):
    opportunities: List[ArbitrageOpportunity] = Field(default_factory=list)
    count: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RouteQuote(Route):
    """Route stamped with the time it was computed."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MarketScore(ValueModel):
    market_id: str
    score: float


class TokenComparison(ValueModel):
    """Per-token comparison row; ``error`` is set instead of metrics when the token failed."""

    token: str
    market_count: Optional[int] = None
    average_liquidity_score: Optional[float] = None
    markets: Optional[List[MarketScore]] = None
    error: Optional[str] = None


class MarketComparison(ValueModel):
    comparison: List[TokenComparison] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
