"""
Liquidity service.

Async orchestration around the pure analytics core:
1.  Resolve a token to markets through the MarketRegistry.
2.  Fetch order book snapshots in parallel, dropping markets that fail.
3.  Hand the ladders to the slippage engine, scorer, scanner or router.
4.  Cache the result for a few seconds, keyed by the request parameters.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

import logfire
from pydantic import BaseModel

from config import settings
from liquidity_engine.arbitrage import find_opportunities
from liquidity_engine.cache import CacheManager, cache_manager
from liquidity_engine.errors import InvalidOrderSize
from liquidity_engine.exchange import MarketRegistry
from liquidity_engine.models import (
    ArbitrageScan,
    MarketAnalysis,
    MarketComparison,
    MarketLadder,
    MarketScore,
    OrderBookDepth,
    OrderBookSnapshot,
    RouteQuote,
    Side,
    SlippagePoint,
    TokenComparison,
)
from liquidity_engine.routing import find_optimal_route
from liquidity_engine.scoring import calculate_score
from liquidity_engine.slippage import calculate_slippage_ladder

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

TOP_LEVELS = 10

ARBITRAGE_OPPORTUNITIES_GAUGE = logfire.metric_gauge(
    "arbitrage_opportunities_found",
    unit="1",
    description="Number of arbitrage opportunities found by the last scan"
)
ROUTE_SAVINGS_GAUGE = logfire.metric_gauge(
    "route_savings",
    unit="quote",
    description="Cost saved by a split route versus the best single market"
)


class LiquidityService:
    """Market-level liquidity queries backed by live order books."""

    def __init__(
        self,
        registry: Optional[MarketRegistry] = None,
        cache: Optional[CacheManager] = None,
    ):
        self.registry = registry or MarketRegistry()
        self.cache = cache or cache_manager

    async def close(self):
        await self.registry.close_all()

    async def find_best_route(self, token: str, amount: float, side: Union[Side, str]) -> RouteQuote:
        """
        Best way to split an order for ``token`` across its markets.

        Args:
            token: Base asset symbol
            amount: Quantity to buy or sell
            side: 'buy' consumes asks, 'sell' consumes bids

        Raises:
            InvalidOrderSize: amount <= 0
            NotFound: no market trades the token
            InsufficientAggregateLiquidity: all markets together cannot fill amount
        """
        side = Side(side)
        token = token.upper()
        if amount <= 0:
            raise InvalidOrderSize(amount)

        async def compute() -> RouteQuote:
            with logfire.span("find_best_route:{token}", token=token, amount=amount, side=side.value):
                market_ids = await self.registry.resolve_token(token)
                books = await self._fetch_books(market_ids)
                markets = [
                    MarketLadder(market_id=book.market_id, ladder=book.ladder_for(side))
                    for book in books
                ]
                route = find_optimal_route(token, amount, side, markets)

            logger.info(
                f"Route for {amount} {token} ({side.value}): {len(route.allocations)} allocation(s), "
                f"savings {route.savings:.4f}"
            )
            if settings.logfire_token:
                ROUTE_SAVINGS_GAUGE.set(route.savings, {"token": token, "side": side.value})
            return RouteQuote(**route.model_dump())

        return await self._cached(
            "route", settings.route_cache_ttl, RouteQuote, compute,
            token=token, amount=amount, side=side.value,
        )

    async def analyze_market(self, market_id: str) -> MarketAnalysis:
        """
        Liquidity score, top of book and buy-side slippage estimates for one market.

        Raises:
            NotFound: malformed market id or unknown exchange
        """
        async def compute() -> MarketAnalysis:
            with logfire.span("analyze_market:{market_id}", market_id=market_id):
                book = await self.registry.fetch_order_book(market_id)
                return _analyze(book)

        return await self._cached(
            "analysis", settings.analysis_cache_ttl, MarketAnalysis, compute, market_id=market_id,
        )

    async def find_arbitrage_opportunities(
        self,
        min_spread: Optional[float] = None,
        tokens: Optional[Sequence[str]] = None,
    ) -> ArbitrageScan:
        """
        Scan registered markets for cross-market arbitrage.

        Only tokens listed on at least two markets are fetched, since a
        single market cannot form a pair.

        Args:
            min_spread: Minimum spread in percent (default settings.default_min_spread_percent)
            tokens: Restrict the scan to these base assets
        """
        min_spread = settings.default_min_spread_percent if min_spread is None else min_spread
        wanted = sorted({t.upper() for t in tokens}) if tokens else None

        async def compute() -> ArbitrageScan:
            with logfire.span("find_arbitrage_opportunities", min_spread=min_spread):
                listed = await self.registry.list_markets()

                by_token: Dict[str, List[str]] = defaultdict(list)
                for market_id, token in listed:
                    if wanted is None or token in wanted:
                        by_token[token].append(market_id)
                market_ids = [m for ids in by_token.values() if len(ids) > 1 for m in ids]

                books = await self._fetch_books(market_ids)
                summaries = [
                    summary
                    for summary in (book.summary() for book in books)
                    if summary.best_bid > 0 and summary.best_ask > 0
                ]
                opportunities = find_opportunities(summaries, min_spread)

            logger.info(f"Arbitrage scan over {len(summaries)} market(s): {len(opportunities)} opportunity(ies)")
            if settings.logfire_token:
                ARBITRAGE_OPPORTUNITIES_GAUGE.set(len(opportunities), {"min_spread": min_spread})
            return ArbitrageScan(opportunities=opportunities, count=len(opportunities))

        return await self._cached(
            "arbitrage", settings.arbitrage_cache_ttl, ArbitrageScan, compute,
            min_spread=min_spread, tokens=wanted,
        )

    async def compare_markets(self, tokens: Sequence[str]) -> MarketComparison:
        """
        Compare average liquidity scores across tokens.

        A token that cannot be resolved or analyzed gets a row with ``error``
        set; the other tokens are still compared.
        """
        token_list = [t.strip().upper() for t in tokens if t.strip()]

        async def compute() -> MarketComparison:
            with logfire.span("compare_markets", tokens=token_list):
                rows = await asyncio.gather(*[self._compare_token(token) for token in token_list])
            return MarketComparison(comparison=list(rows))

        return await self._cached(
            "comparison", settings.comparison_cache_ttl, MarketComparison, compute, tokens=token_list,
        )

    async def _compare_token(self, token: str) -> TokenComparison:
        try:
            market_ids = await self.registry.resolve_token(token)
            books = await asyncio.gather(*[self.registry.fetch_order_book(m) for m in market_ids])
        except Exception as e:
            logger.warning(f"Comparison failed for {token}: {e}")
            return TokenComparison(token=token, error=str(e))

        scores = [MarketScore(market_id=book.market_id, score=_analyze(book).liquidity_score.overall) for book in books]
        return TokenComparison(
            token=token,
            market_count=len(scores),
            average_liquidity_score=sum(s.score for s in scores) / len(scores),
            markets=scores,
        )

    async def _fetch_books(self, market_ids: Sequence[str]) -> List[OrderBookSnapshot]:
        """Fetch snapshots concurrently; markets that fail are logged and dropped."""
        results = await asyncio.gather(
            *[self.registry.fetch_order_book(market_id) for market_id in market_ids],
            return_exceptions=True,
        )

        books = []
        for market_id, result in zip(market_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to fetch order book for {market_id}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            books.append(result)
        return books

    async def _cached(
        self,
        prefix: str,
        ttl: int,
        model: Type[M],
        compute: Callable[[], Awaitable[M]],
        **params,
    ) -> M:
        key = self.cache.make_key(prefix, **params)
        hit = await self.cache.get(key)
        if hit is not None:
            return model.model_validate(hit)

        result = await compute()
        await self.cache.set(key, result.model_dump(mode="json", by_alias=True), ttl=ttl)
        return result


def _analyze(book: OrderBookSnapshot) -> MarketAnalysis:
    score = calculate_score(book.bids, book.asks)
    ladder = calculate_slippage_ladder(book.asks, Side.BUY, settings.slippage_ladder_sizes)

    return MarketAnalysis(
        market_id=book.market_id,
        token=book.token,
        liquidity_score=score,
        orderbook=OrderBookDepth(
            bids=Side.SELL.sort_levels(book.bids)[:TOP_LEVELS],
            asks=Side.BUY.sort_levels(book.asks)[:TOP_LEVELS],
        ),
        slippage_estimates=[
            SlippagePoint(
                order_size=estimate.order_size,
                slippage_percent=estimate.slippage.slippage_percent,
                price_impact=estimate.slippage.price_impact,
            )
            for estimate in ladder
            if estimate.slippage is not None
        ],
    )
