import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from config import settings
from liquidity_engine.cache import CacheManager
from liquidity_engine.errors import InsufficientAggregateLiquidity, InvalidOrderSize, NotFound
from liquidity_engine.models import OrderBookSnapshot, PriceLevel, RouteQuote, Side
from liquidity_engine.service import LiquidityService


def snapshot(market_id, bids=(), asks=(), token="SOL"):
    exchange, _, symbol = market_id.partition(":")
    return OrderBookSnapshot(
        market_id=market_id,
        exchange=exchange,
        symbol=symbol,
        token=token,
        bids=[PriceLevel(price=p, quantity=q) for p, q in bids],
        asks=[PriceLevel(price=p, quantity=q) for p, q in asks],
    )


BOOKS = {
    "binance:SOL/USDT": snapshot("binance:SOL/USDT", bids=[(15.20, 100)], asks=[(15.25, 100), (15.30, 200)]),
    "kraken:SOL/USDT": snapshot("kraken:SOL/USDT", bids=[(15.35, 100)], asks=[(15.40, 100)]),
    "okx:ETH/USDT": snapshot("okx:ETH/USDT", bids=[(3000, 5)], asks=[(3001, 5)], token="ETH"),
}


class TestLiquidityService(unittest.IsolatedAsyncioTestCase):
    """Tests for the async orchestration layer."""

    async def asyncSetUp(self):
        self.registry = MagicMock()
        self.registry.resolve_token = AsyncMock(side_effect=self._resolve)
        self.registry.fetch_order_book = AsyncMock(side_effect=self._fetch)
        self.registry.list_markets = AsyncMock(return_value=[
            ("binance:SOL/USDT", "SOL"),
            ("kraken:SOL/USDT", "SOL"),
            ("okx:ETH/USDT", "ETH"),
        ])
        self.registry.close_all = AsyncMock()
        self.failing = set()

        self.cache = CacheManager(use_redis=False)
        self.service = LiquidityService(registry=self.registry, cache=self.cache)

    async def _resolve(self, token):
        ids = [m for m, book in BOOKS.items() if book.token == token]
        if not ids:
            raise NotFound("markets", f"token {token}")
        return ids

    async def _fetch(self, market_id, limit=None):
        if market_id in self.failing:
            raise ConnectionError(f"{market_id} unreachable")
        return BOOKS[market_id]

    # ========== Routing ==========

    async def test_find_best_route_splits_across_markets(self):
        route = await self.service.find_best_route("sol", 350, "buy")

        self.assertIsInstance(route, RouteQuote)
        self.assertEqual(route.token, "SOL")
        self.assertEqual(route.side, Side.BUY)
        self.assertEqual(
            [(a.market_id, a.amount) for a in route.allocations],
            [("binance:SOL/USDT", 300), ("kraken:SOL/USDT", 50)],
        )
        self.registry.resolve_token.assert_awaited_once_with("SOL")

    async def test_find_best_route_is_cached(self):
        first = await self.service.find_best_route("SOL", 100, Side.SELL)
        second = await self.service.find_best_route("SOL", 100, Side.SELL)

        self.assertEqual(first.allocations, second.allocations)
        self.assertEqual(first.savings, second.savings)
        self.registry.resolve_token.assert_awaited_once()

    async def test_find_best_route_drops_failing_market(self):
        self.failing.add("kraken:SOL/USDT")

        route = await self.service.find_best_route("SOL", 50, "sell")
        self.assertEqual([a.market_id for a in route.allocations], ["binance:SOL/USDT"])

    async def test_find_best_route_errors(self):
        with self.assertRaises(InvalidOrderSize):
            await self.service.find_best_route("SOL", 0, "buy")
        with self.assertRaises(NotFound):
            await self.service.find_best_route("NOPE", 1, "buy")
        with self.assertRaises(InsufficientAggregateLiquidity):
            await self.service.find_best_route("SOL", 10_000, "buy")
        with self.assertRaises(ValueError):
            await self.service.find_best_route("SOL", 1, "hold")

    # ========== Analysis ==========

    async def test_analyze_market(self):
        with patch.object(settings, "slippage_ladder_sizes", [50, 250, 1000]):
            analysis = await self.service.analyze_market("binance:SOL/USDT")

        self.assertEqual(analysis.market_id, "binance:SOL/USDT")
        self.assertEqual(analysis.token, "SOL")
        self.assertEqual(analysis.liquidity_score.resilience, 0)
        self.assertEqual([p.order_size for p in analysis.slippage_estimates], [50, 250])
        self.assertEqual(analysis.slippage_estimates[0].slippage_percent, 0)
        self.assertEqual(analysis.orderbook.asks[0].price, 15.25)

        dumped = analysis.model_dump(by_alias=True)
        self.assertIn("liquidityScore", dumped)
        self.assertIn("slippageEstimates", dumped)

    # ========== Arbitrage ==========

    async def test_find_arbitrage_opportunities(self):
        scan = await self.service.find_arbitrage_opportunities(min_spread=0.5)

        self.assertEqual(scan.count, 1)
        opp = scan.opportunities[0]
        self.assertEqual(opp.buy_market, "binance:SOL/USDT")
        self.assertEqual(opp.sell_market, "kraken:SOL/USDT")

        # ETH is listed on one market only and is never fetched
        fetched = [c.args[0] for c in self.registry.fetch_order_book.await_args_list]
        self.assertNotIn("okx:ETH/USDT", fetched)

    async def test_find_arbitrage_skips_failed_markets(self):
        self.failing.add("kraken:SOL/USDT")

        scan = await self.service.find_arbitrage_opportunities(min_spread=0.5)
        self.assertEqual(scan.count, 0)
        self.assertEqual(scan.opportunities, [])

    async def test_find_arbitrage_token_filter(self):
        scan = await self.service.find_arbitrage_opportunities(min_spread=0.5, tokens=["eth"])

        self.assertEqual(scan.count, 0)
        self.registry.fetch_order_book.assert_not_awaited()

    # ========== Comparison ==========

    async def test_compare_markets_reports_errors_per_token(self):
        result = await self.service.compare_markets(["SOL", " nope ", ""])

        self.assertEqual([row.token for row in result.comparison], ["SOL", "NOPE"])
        sol, nope = result.comparison

        self.assertEqual(sol.market_count, 2)
        self.assertEqual(
            sol.average_liquidity_score,
            sum(m.score for m in sol.markets) / 2,
        )
        self.assertIsNone(sol.error)

        self.assertIsNone(nope.market_count)
        self.assertIn("No markets found for token NOPE", nope.error)

    async def test_close(self):
        await self.service.close()
        self.registry.close_all.assert_awaited_once()


if __name__ == '__main__':
    unittest.main()
