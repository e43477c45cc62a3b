"""
Normalized Data Schemas

This module defines Pydantic models for all market data types.
These schemas provide a unified, provider-agnostic data format.

Key Principle:
    Regardless of which provider the data comes from (CoinGecko, CoinMarketCap,
    CryptoCompare, ...), it gets normalized into these standardized schemas.
    Every field carries a default so a transformer can always emit a complete
    record even when its provider omits a value.

Models:
    - ProviderDescriptor: Static description of a market data provider
    - CoinMarket: One row of the ranked market listing (prices, caps, volume)
    - GlobalStats: Aggregate market statistics
    - TrendingCoin / TrendingResult: Trending assets
    - CoinListEntry: One entry in the full coin catalogue
    - CoinDetails: Profile and market snapshot for one coin
    - MarketChart: Price, market cap and volume history for one coin
    - FetchResult: Result envelope returned by the fetch layer
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


SYNTHETIC_PROVIDER = "synthetic"


# ============================================
# Provider Descriptor
# ============================================

class ProviderDescriptor(BaseModel):
    """
    Immutable description of a third-party market data provider.

    Attributes:
        name: Unique provider key (lowercase)
        base_url: Base endpoint all provider paths are appended to
        priority: Lower values are tried first
        rate_limit_per_minute: Request budget per rate-limit window
        timeout_seconds: Timeout applied to each request
        headers: Authentication and content headers sent with every request

    Example:
        >>> ProviderDescriptor(
        ...     name="coingecko",
        ...     base_url="https://api.coingecko.com/api/v3",
        ...     priority=1,
        ...     rate_limit_per_minute=50,
        ... )
    """

    name: str = Field(..., description="Unique provider identifier", examples=["coingecko"])
    base_url: str = Field(..., description="Base endpoint URL")
    priority: int = Field(default=100, description="Lower is tried first")
    rate_limit_per_minute: int = Field(default=60, ge=1, description="Request budget per window")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Request timeout")
    headers: Dict[str, str] = Field(default_factory=dict, description="Auth/content headers")

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure provider name is lowercase"""
        return v.lower()

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# ============================================
# Coin Market Listing
# ============================================

class Sparkline(BaseModel):
    """Seven-day price history (hourly points when the provider has them)."""

    price: List[float] = Field(default_factory=list)


class CoinMarket(BaseModel):
    """
    Canonical market row for one asset.

    The field names follow the CoinGecko listing shape because that is the
    format the dashboard consumes. Providers that cannot supply a value leave
    the default in place:
        - numeric fields default to 0.0 (or 0 for the rank)
        - optional supply / valuation fields default to None
        - string fields default to ""
        - the sparkline defaults to an empty series

    Example:
        >>> CoinMarket(id="bitcoin", symbol="btc", name="Bitcoin", current_price=43250.67)
    """

    id: str = ""
    symbol: str = ""
    name: str = ""
    image: str = ""
    current_price: float = 0.0
    market_cap: float = 0.0
    market_cap_rank: int = 0
    fully_diluted_valuation: Optional[float] = None
    total_volume: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
    price_change_24h: float = 0.0
    price_change_percentage_24h: float = 0.0
    market_cap_change_24h: float = 0.0
    market_cap_change_percentage_24h: float = 0.0
    circulating_supply: float = 0.0
    total_supply: Optional[float] = None
    max_supply: Optional[float] = None
    ath: float = 0.0
    ath_change_percentage: float = 0.0
    ath_date: str = ""
    atl: float = 0.0
    atl_change_percentage: float = 0.0
    atl_date: str = ""
    last_updated: str = ""
    sparkline_in_7d: Sparkline = Field(default_factory=Sparkline)
    price_change_percentage_7d_in_currency: float = 0.0

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "bitcoin",
                "symbol": "btc",
                "name": "Bitcoin",
                "current_price": 43250.67,
                "market_cap": 847123456789,
                "market_cap_rank": 1,
                "total_volume": 23456789012,
                "price_change_percentage_24h": 2.98,
                "sparkline_in_7d": {"price": [43000.0, 43120.5]},
            }
        }
    )


# ============================================
# Global Market Statistics
# ============================================

class GlobalStats(BaseModel):
    """
    Aggregate statistics for the whole crypto market.

    Monetary maps are keyed by lowercase currency code ("usd"), the dominance
    map by lowercase asset symbol ("btc", "eth").
    """

    active_cryptocurrencies: int = 0
    upcoming_icos: int = 0
    ongoing_icos: int = 0
    ended_icos: int = 0
    markets: int = 0
    total_market_cap: Dict[str, float] = Field(default_factory=dict)
    total_volume: Dict[str, float] = Field(default_factory=dict)
    market_cap_percentage: Dict[str, float] = Field(default_factory=dict)
    market_cap_change_percentage_24h_usd: float = 0.0
    updated_at: int = 0


# ============================================
# Trending Coins
# ============================================

class TrendingCoin(BaseModel):
    """One trending asset. Rank is synthesized from list position when missing."""

    id: str = ""
    name: str = ""
    symbol: str = ""
    market_cap_rank: int = 0
    thumb: str = ""
    score: int = 0


class TrendingResult(BaseModel):
    """Trending assets in provider order."""

    coins: List[TrendingCoin] = Field(default_factory=list)


# ============================================
# Coin Catalogue
# ============================================

class CoinListEntry(BaseModel):
    """Identifier triple for one listed coin."""

    id: str = ""
    symbol: str = ""
    name: str = ""


# ============================================
# Coin Details and Price History
# ============================================

class CoinDetails(BaseModel):
    """
    Profile and market snapshot for a single coin.

    Monetary values are quoted in the requested currency (`vs_currency`).
    """

    id: str = ""
    symbol: str = ""
    name: str = ""
    description: str = ""
    homepage: str = ""
    image: str = ""
    categories: List[str] = Field(default_factory=list)
    genesis_date: str = ""
    market_cap_rank: int = 0
    current_price: float = 0.0
    market_cap: float = 0.0
    total_volume: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
    price_change_percentage_24h: float = 0.0
    price_change_percentage_7d: float = 0.0
    circulating_supply: float = 0.0
    total_supply: Optional[float] = None
    max_supply: Optional[float] = None
    ath: float = 0.0
    atl: float = 0.0
    last_updated: str = ""


class MarketChart(BaseModel):
    """
    Price history for one coin. Each point is [epoch milliseconds, value].

    Example:
        >>> MarketChart(prices=[[1704067200000, 42283.6]])
    """

    prices: List[List[float]] = Field(default_factory=list)
    market_caps: List[List[float]] = Field(default_factory=list)
    total_volumes: List[List[float]] = Field(default_factory=list)


# ============================================
# Fetch Result Envelope
# ============================================

class FetchResult(BaseModel):
    """
    Result envelope returned by the fetch layer.

    Attributes:
        success: Always True for fallback results; False only for raw attempts
        data: Canonical payload (list of CoinMarket, GlobalStats, ...)
        error: Last provider error when the synthetic fallback was used
        provider: Name of the provider that served the data, or "synthetic"
        retry_after: Seconds until a rate-limited provider may be retried

    Example:
        >>> result = await orchestrator.fetch_with_fallback("global")
        >>> if result.is_synthetic:
        ...     print(f"Placeholder data: {result.error}")
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    provider: Optional[str] = None
    retry_after: Optional[float] = None

    @property
    def is_synthetic(self) -> bool:
        """True when the payload is a locally generated placeholder."""
        return self.provider == SYNTHETIC_PROVIDER
