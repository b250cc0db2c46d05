"""
Market data collaborator backed by CCXT.

Provides:
- ExchangeClient: async order book snapshots for one venue, with retries and
  a circuit breaker
- MarketRegistry: resolves a token symbol to markets across the configured
  venues and fetches snapshots by market id
"""

import asyncio
import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import ccxt.async_support as ccxt
import logfire

from config import settings
from liquidity_engine.circuit_breaker import CircuitBreaker, CircuitState
from liquidity_engine.errors import NotFound
from liquidity_engine.models import OrderBookSnapshot, PriceLevel

logger = logging.getLogger(__name__)

REQUEST_LATENCY_HISTOGRAM = logfire.metric_histogram(
    "exchange_request_duration_seconds",
    unit="s",
    description="Duration of order book requests to exchanges"
)

MARKET_ID_SEPARATOR = ":"


def make_market_id(exchange_id: str, symbol: str) -> str:
    return f"{exchange_id}{MARKET_ID_SEPARATOR}{symbol}"


def parse_market_id(market_id: str) -> Tuple[str, str]:
    """Split '<exchange>:<BASE/QUOTE>' into its parts."""
    exchange_id, sep, symbol = market_id.partition(MARKET_ID_SEPARATOR)
    if not sep or not exchange_id or not symbol:
        raise NotFound("market", market_id)
    return exchange_id, symbol


def with_retry(retries: int = 3, backoff: float = 1.0):
    """
    Decorator for CCXT request retries.

    Rate limits and DDoS protection sleep 10s, network errors back off
    exponentially, anything else is raised immediately.
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            last_error = None
            for attempt in range(retries):
                try:
                    return await func(self, *args, **kwargs)
                except (ccxt.RateLimitExceeded, ccxt.DDoSProtection) as e:
                    last_error = e
                    delay = 10.0
                    logger.warning(
                        f"Rate limit hit on {self.exchange_id}, sleeping {delay}s (attempt {attempt + 1}/{retries})"
                    )
                    await asyncio.sleep(delay)
                except (ccxt.NetworkError, ccxt.RequestTimeout) as e:
                    last_error = e
                    delay = backoff * (2 ** attempt)
                    logger.warning(f"Network error on {self.exchange_id}, retrying in {delay}s... ({e})")
                    await asyncio.sleep(delay)
            raise last_error
        return wrapper
    return decorator


class ExchangeClient:
    """
    Async wrapper around one CCXT exchange.

    Handles:
    - Market metadata loading (once per client)
    - Order book snapshots converted to PriceLevel ladders
    - Retry and circuit breaker protection
    """

    def __init__(
        self,
        exchange_id: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
    ):
        """
        Args:
            exchange_id: CCXT exchange identifier (e.g., 'binance', 'kraken')
            api_key: Optional API key for authenticated requests
            api_secret: Optional API secret
        """
        self.exchange_id = exchange_id
        self.api_key = api_key or settings.exchange_api_key
        self.api_secret = api_secret or settings.exchange_api_secret
        self._markets_loaded = False

        exchange_class = getattr(ccxt, self.exchange_id)
        config = {
            "enableRateLimit": True,
            "adjustForTimeDifference": True,
        }
        if self.api_key and self.api_secret:
            config["apiKey"] = self.api_key
            config["secret"] = self.api_secret

        self.exchange: ccxt.Exchange = exchange_class(config)
        self.circuit_breaker = CircuitBreaker(venue=self.exchange_id)

    @property
    def status(self) -> dict:
        """Connection health of this venue."""
        state = self.circuit_breaker.state
        return {
            "name": self.exchange_id,
            "state": state.value,
            "failures": self.circuit_breaker.failures,
            "is_healthy": state is CircuitState.CLOSED,
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.exchange.close()
        logger.info(f"Connection closed for {self.exchange_id}")

    async def ensure_markets_loaded(self):
        if not self._markets_loaded:
            logger.info(f"Loading markets for {self.exchange_id}...")
            await self.circuit_breaker.call(self.exchange.load_markets)
            self._markets_loaded = True

    async def token_symbols(self, token: str, quotes: Sequence[str]) -> List[str]:
        """
        Spot symbols whose base asset is ``token`` and whose quote is in ``quotes``.

        Args:
            token: Base asset symbol, case-insensitive
            quotes: Accepted quote assets; empty accepts any quote
        """
        await self.ensure_markets_loaded()
        token_upper = token.upper()
        accepted = {q.upper() for q in quotes}

        return [
            market["symbol"]
            for market in (self.exchange.markets or {}).values()
            if market.get("spot", True)
            and market.get("active") is not False
            and str(market.get("base", "")).upper() == token_upper
            and (not accepted or str(market.get("quote", "")).upper() in accepted)
        ]

    async def spot_markets(self, quotes: Sequence[str]) -> List[Tuple[str, str]]:
        """All (symbol, base token) pairs trading against ``quotes``."""
        await self.ensure_markets_loaded()
        accepted = {q.upper() for q in quotes}
        return [
            (market["symbol"], str(market.get("base", "")).upper())
            for market in (self.exchange.markets or {}).values()
            if market.get("spot", True)
            and market.get("active") is not False
            and (not accepted or str(market.get("quote", "")).upper() in accepted)
        ]

    @with_retry()
    async def fetch_order_book(self, symbol: str, limit: Optional[int] = None) -> OrderBookSnapshot:
        """
        Fetch an order book snapshot.

        Args:
            symbol: Trading pair symbol (e.g., 'INJ/USDT')
            limit: Number of levels per side (default settings.order_book_depth)

        Returns:
            OrderBookSnapshot with bid and ask ladders
        """
        limit = limit or settings.order_book_depth

        with logfire.span("fetch_order_book:{symbol}@{exchange}", symbol=symbol, exchange=self.exchange_id) as span:
            await self.ensure_markets_loaded()
            start_time = time.perf_counter()
            try:
                raw = await self.circuit_breaker.call(self.exchange.fetch_order_book, symbol, limit)
            except Exception as e:
                span.record_exception(e)
                raise
            duration = time.perf_counter() - start_time
            if settings.logfire_token:
                REQUEST_LATENCY_HISTOGRAM.record(
                    duration, {"exchange": self.exchange_id, "operation": "fetch_order_book"}
                )

        market = (self.exchange.markets or {}).get(symbol) or {}
        token = str(market.get("base") or symbol.split("/")[0]).upper()

        return OrderBookSnapshot(
            market_id=make_market_id(self.exchange_id, symbol),
            exchange=self.exchange_id,
            symbol=symbol,
            token=token,
            bids=_to_levels(raw.get("bids", [])),
            asks=_to_levels(raw.get("asks", [])),
            latency_ms=duration * 1000,
            circuit_state=self.circuit_breaker.state.value,
        )


def _to_levels(raw_levels: Sequence[Sequence[Any]]) -> List[PriceLevel]:
    """Convert CCXT [price, amount, ...] rows, dropping rows with a non-positive price."""
    return [
        PriceLevel(price=float(row[0]), quantity=float(row[1]))
        for row in raw_levels
        if float(row[0]) > 0
    ]


class MarketRegistry:
    """
    Token to market resolution across the configured venues.

    Keeps one pooled ExchangeClient per venue so rate limit buckets and
    circuit breakers persist across requests.
    """

    def __init__(
        self,
        exchanges: Optional[Sequence[str]] = None,
        quote_currencies: Optional[Sequence[str]] = None,
    ):
        self.exchanges = list(exchanges if exchanges is not None else settings.exchanges)
        self.quote_currencies = list(quote_currencies if quote_currencies is not None else settings.quote_currencies)
        self._clients: Dict[str, ExchangeClient] = {}

    def get_client(self, exchange_id: str) -> ExchangeClient:
        """Pooled client for ``exchange_id``; unconfigured venues and ids ccxt does not know raise NotFound."""
        if exchange_id not in self.exchanges or exchange_id not in ccxt.exchanges:
            raise NotFound("exchange", exchange_id)
        if exchange_id not in self._clients:
            logger.info(f"Initializing pooled client for {exchange_id}")
            self._clients[exchange_id] = ExchangeClient(exchange_id)
        return self._clients[exchange_id]

    async def resolve_token(self, token: str) -> List[str]:
        """
        Market ids trading ``token`` on any configured venue.

        Venues that fail to load their markets are skipped.

        Raises:
            NotFound: no venue lists the token
        """
        results = await asyncio.gather(
            *[self._token_symbols(ex, token) for ex in self.exchanges],
            return_exceptions=True,
        )

        market_ids = []
        for exchange_id, result in zip(self.exchanges, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to load markets for {exchange_id}: {result}")
                continue
            market_ids.extend(make_market_id(exchange_id, symbol) for symbol in result)

        if not market_ids:
            raise NotFound("markets", f"token {token}")
        return market_ids

    async def list_markets(self) -> List[Tuple[str, str]]:
        """(market id, token) for every market on every reachable venue."""
        results = await asyncio.gather(
            *[self._spot_markets(ex) for ex in self.exchanges],
            return_exceptions=True,
        )

        markets = []
        for exchange_id, result in zip(self.exchanges, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to load markets for {exchange_id}: {result}")
                continue
            markets.extend((make_market_id(exchange_id, symbol), token) for symbol, token in result)
        return markets

    # Client lookup happens inside the coroutine so a bad venue fails only its own gather slot
    async def _token_symbols(self, exchange_id: str, token: str) -> List[str]:
        return await self.get_client(exchange_id).token_symbols(token, self.quote_currencies)

    async def _spot_markets(self, exchange_id: str) -> List[Tuple[str, str]]:
        return await self.get_client(exchange_id).spot_markets(self.quote_currencies)

    async def fetch_order_book(self, market_id: str, limit: Optional[int] = None) -> OrderBookSnapshot:
        exchange_id, symbol = parse_market_id(market_id)
        return await self.get_client(exchange_id).fetch_order_book(symbol, limit)

    def status(self) -> List[dict]:
        return [client.status for client in self._clients.values()]

    async def close_all(self):
        """Close all pooled exchange connections."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
