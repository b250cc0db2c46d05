"""
Configuration management for liquidity signals.

Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Venues scanned by the market registry
    exchanges: List[str] = ["binance", "kraken", "okx"]
    quote_currencies: List[str] = ["USDT"]
    order_book_depth: int = 50

    # Exchange API (optional, for authenticated endpoints)
    exchange_api_key: Optional[str] = None
    exchange_api_secret: Optional[str] = None

    # Circuit breaker per venue
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: int = 30

    # Cache
    redis_url: str = "redis://localhost:6379"
    cache_enabled: bool = True
    cache_default_ttl: int = 60

    # Response TTLs in seconds, per query type
    route_cache_ttl: int = 5
    analysis_cache_ttl: int = 10
    arbitrage_cache_ttl: int = 3
    comparison_cache_ttl: int = 15

    # Analytics defaults
    default_min_spread_percent: float = 0.5
    slippage_ladder_sizes: List[float] = [100, 500, 1000, 5000, 10000]

    # Observability (Logfire)
    logfire_token: Optional[str] = None
    logfire_service_name: str = "liquidity-signals"
    logfire_environment: str = "development"
    logfire_console_level: str = "info"  # 'info', 'warn', 'error'

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
