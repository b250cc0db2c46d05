import asyncio
import sys

from liquidity_engine.cache import cache_manager
from liquidity_engine.observability import configure_observability
from liquidity_engine.service import LiquidityService


async def scan(tokens):
    service = LiquidityService()
    await cache_manager.connect()
    try:
        result = await service.find_arbitrage_opportunities(tokens=tokens or None)
        print(f"{result.count} opportunity(ies) at {result.timestamp.isoformat()}")
        for opp in result.opportunities:
            print(
                f"{opp.token}: buy {opp.buy_market} @ {opp.buy_price} -> sell {opp.sell_market} @ {opp.sell_price} "
                f"| spread {opp.spread_percent:.3f}% | size {opp.max_profitable_size} | profit {opp.estimated_profit:.4f}"
            )
    finally:
        await service.close()
        await cache_manager.disconnect()


if __name__ == "__main__":
    configure_observability()
    asyncio.run(scan(sys.argv[1:]))
