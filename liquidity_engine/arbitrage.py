"""
Arbitrage scanner.

Finds cross-market price gaps for the same token: buy at the best ask of one
market, sell at the best bid of another.

Markets are grouped by token and every pair inside a group is checked in
both directions, so a scan costs O(T * M_t^2) where M_t is the number of
markets quoting token t. Token groups are small, which keeps the quadratic
pair scan cheap.
"""

from typing import Dict, List, Optional, Sequence

from liquidity_engine.models import ArbitrageOpportunity, MarketSummary

DEFAULT_MIN_SPREAD_PERCENT = 0.5

# Combined taker fee of both legs (0.1% each side)
ROUND_TRIP_FEE_RATE = 0.002


def find_opportunities(
    markets: Sequence[MarketSummary],
    min_spread_percent: float = DEFAULT_MIN_SPREAD_PERCENT,
) -> List[ArbitrageOpportunity]:
    """
    Scan markets for profitable cross-market spreads.

    Args:
        markets: Top-of-book summaries; markets of different tokens may be mixed
        min_spread_percent: Minimum spread, in percent of the buy price

    Returns:
        Opportunities across all tokens, highest estimated profit first
    """
    opportunities: List[ArbitrageOpportunity] = []

    for token_markets in group_by_token(markets).values():
        for i in range(len(token_markets)):
            for j in range(i + 1, len(token_markets)):
                first = token_markets[i]
                second = token_markets[j]

                forward = check_arbitrage(first, second, min_spread_percent)
                if forward:
                    opportunities.append(forward)

                # Bid and ask differ, so the reverse leg is a separate check
                reverse = check_arbitrage(second, first, min_spread_percent)
                if reverse:
                    opportunities.append(reverse)

    return sorted(opportunities, key=lambda o: o.estimated_profit, reverse=True)


def check_arbitrage(
    buy_market: MarketSummary,
    sell_market: MarketSummary,
    min_spread_percent: float = DEFAULT_MIN_SPREAD_PERCENT,
) -> Optional[ArbitrageOpportunity]:
    """
    Check buying on ``buy_market`` and selling on ``sell_market``.

    Returns:
        The opportunity, or None if the spread is absent, too small, or eaten by fees
    """
    buy_price = buy_market.best_ask
    sell_price = sell_market.best_bid

    # A zero ask means the market has no sellers
    if buy_price <= 0 or buy_price >= sell_price:
        return None

    spread = sell_price - buy_price
    spread_percent = spread / buy_price * 100

    if spread_percent < min_spread_percent:
        return None

    max_size = min(buy_market.ask_quantity, sell_market.bid_quantity)

    profit_per_unit = spread - (buy_price + sell_price) * ROUND_TRIP_FEE_RATE
    estimated_profit = profit_per_unit * max_size

    if estimated_profit <= 0:
        return None

    return ArbitrageOpportunity(
        buy_market=buy_market.market_id,
        sell_market=sell_market.market_id,
        buy_price=buy_price,
        sell_price=sell_price,
        spread=spread,
        spread_percent=spread_percent,
        max_profitable_size=max_size,
        estimated_profit=estimated_profit,
        token=buy_market.token,
    )


def group_by_token(markets: Sequence[MarketSummary]) -> Dict[str, List[MarketSummary]]:
    """Group markets by exact token symbol into a new dict."""
    groups: Dict[str, List[MarketSummary]] = {}
    for market in markets:
        groups.setdefault(market.token, []).append(market)
    return groups
