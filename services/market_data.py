"""
Market Data Service - Query-Level API Over the Cache and Orchestrator

Each query checks the TTL cache first and only calls the fetch orchestrator
on a miss. Results come back as FetchResult envelopes so callers can see
which provider served them, and whether the data is a synthetic placeholder.

Cache TTLs (seconds, from settings):
    prices        30  (also the curated meme and DeFi lists)
    trending      60
    global        120
    coin list     600
    coin details  60
    chart         300
    synthetic     5   (placeholders are cached briefly so a recovering
                       provider is retried soon; 0 disables)

Every query accepts `force_refresh=True` to skip the cache lookup.

Usage:
    service = MarketDataService()
    prices = await service.get_coin_prices(per_page=50)
    if prices.is_synthetic:
        logger.warning(prices.error)
    await service.shutdown()
"""

import asyncio
from typing import Any, Dict, Optional

from core.config import Settings, settings as default_settings
from core.logging import get_logger
from core.provider_interface import (
    ENDPOINT_COIN_DETAILS,
    ENDPOINT_COINS_LIST,
    ENDPOINT_GLOBAL,
    ENDPOINT_MARKET_CHART,
    ENDPOINT_MARKETS,
    ENDPOINT_TRENDING,
    Transformer,
)
from core.schemas import FetchResult
from services.fetch_orchestrator import FetchOrchestrator
from storage.cache import TTLCache, make_cache_key

logger = get_logger(__name__)


# Chain symbol -> CoinGecko coin id, used by wallet views to look up prices
COIN_IDS: Dict[str, str] = {
    "BITCOIN": "bitcoin",
    "ETHEREUM": "ethereum",
    "TON": "the-open-network",
    "DOGECOIN": "dogecoin",
    "USDT": "tether",
}

# Curated coins/markets lists (CoinGecko ids)
MEME_COIN_IDS = "dogecoin,shiba-inu,pepe,floki,bonk,dogwifcoin,meme,wojak,safe-moon,kishu-inu"
DEFI_COIN_IDS = (
    "uniswap,chainlink,aave,compound-governance-token,maker,curve-dao-token,"
    "yearn-finance,1inch,havven,balancer"
)
CURATED_PAGE_SIZE = 20

MIN_CHART_DAYS = 1
MAX_CHART_DAYS = 365


class MarketDataService:
    """
    Cached market data queries.

    Attributes:
        orchestrator: FetchOrchestrator used on cache misses
        cache: Shared TTLCache holding FetchResult envelopes
        config: Settings (per-family TTLs)
    """

    def __init__(
        self,
        orchestrator: Optional[FetchOrchestrator] = None,
        cache: Optional[TTLCache] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config if config is not None else default_settings
        self.orchestrator = (
            orchestrator if orchestrator is not None else FetchOrchestrator(config=self.config)
        )
        # TTLCache defines __len__, so an empty injected cache is falsy
        self.cache = cache if cache is not None else TTLCache(default_ttl=self.config.prices_cache_ttl)

    async def initialize(self) -> None:
        await self.orchestrator.initialize()

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()

    # ============================================
    # Cached Fetch
    # ============================================

    async def _cached_fetch(
        self,
        endpoint: str,
        params: Dict[str, Any],
        ttl: float,
        force_refresh: bool = False,
        transformers: Optional[Dict[str, Transformer]] = None,
    ) -> FetchResult:
        key = make_cache_key(endpoint, params)

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        result = await self.orchestrator.fetch_with_fallback(
            endpoint, transformers=transformers, params=params
        )

        if result.success:
            entry_ttl = self.config.synthetic_cache_ttl if result.is_synthetic else ttl
            if entry_ttl > 0:
                self.cache.set(key, result, ttl=entry_ttl)

        if result.is_synthetic:
            logger.warning(f"{endpoint} served synthetic data: {result.error}")
        else:
            logger.info(f"{endpoint} fetched via {result.provider}")

        return result

    # ============================================
    # Queries
    # ============================================

    async def get_coin_prices(
        self,
        per_page: int = 100,
        page: int = 1,
        vs_currency: str = "usd",
        force_refresh: bool = False,
    ) -> FetchResult:
        """
        Ranked market listing with 7-day sparkline.

        Example:
            >>> result = await service.get_coin_prices(per_page=10)
            >>> [coin.symbol for coin in result.data][:3]
            ['btc', 'eth', 'usdt']
        """
        params = {
            "vs_currency": vs_currency.lower(),
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": page,
            "sparkline": True,
            "price_change_percentage": "1h,24h,7d",
        }
        return await self._cached_fetch(
            ENDPOINT_MARKETS, params, self.config.prices_cache_ttl, force_refresh
        )

    async def get_global_stats(self, force_refresh: bool = False) -> FetchResult:
        return await self._cached_fetch(
            ENDPOINT_GLOBAL, {}, self.config.global_cache_ttl, force_refresh
        )

    async def get_trending_coins(self, force_refresh: bool = False) -> FetchResult:
        return await self._cached_fetch(
            ENDPOINT_TRENDING, {}, self.config.trending_cache_ttl, force_refresh
        )

    async def get_all_coins(self, force_refresh: bool = False) -> FetchResult:
        return await self._cached_fetch(
            ENDPOINT_COINS_LIST, {}, self.config.coins_list_cache_ttl, force_refresh
        )

    async def get_top_meme_coins(self, vs_currency: str = "usd", force_refresh: bool = False) -> FetchResult:
        """Curated meme coin listing (MEME_COIN_IDS)."""
        return await self._curated_markets(MEME_COIN_IDS, vs_currency, force_refresh)

    async def get_top_defi_coins(self, vs_currency: str = "usd", force_refresh: bool = False) -> FetchResult:
        """Curated DeFi coin listing (DEFI_COIN_IDS)."""
        return await self._curated_markets(DEFI_COIN_IDS, vs_currency, force_refresh)

    async def _curated_markets(self, ids: str, vs_currency: str, force_refresh: bool) -> FetchResult:
        # Providers that ignore "ids" would return the generic top list
        params = {
            "vs_currency": vs_currency.lower(),
            "ids": ids,
            "order": "market_cap_desc",
            "per_page": CURATED_PAGE_SIZE,
            "page": 1,
            "sparkline": True,
            "price_change_percentage": "24h,7d",
        }
        transformers = self.orchestrator.registry.get_transformers(ENDPOINT_MARKETS, filters_by_id=True)
        return await self._cached_fetch(
            ENDPOINT_MARKETS, params, self.config.prices_cache_ttl, force_refresh, transformers
        )

    async def get_coin_details(
        self,
        coin_id: str,
        vs_currency: str = "usd",
        force_refresh: bool = False,
    ) -> FetchResult:
        """
        Profile and market snapshot for one coin.

        Example:
            >>> result = await service.get_coin_details("bitcoin")
            >>> result.data.name
            'Bitcoin'
        """
        params = {"id": coin_id.lower(), "vs_currency": vs_currency.lower()}
        return await self._cached_fetch(
            ENDPOINT_COIN_DETAILS, params, self.config.coin_details_cache_ttl, force_refresh
        )

    async def get_historical_data(
        self,
        coin_id: str,
        days: int = 7,
        vs_currency: str = "usd",
        force_refresh: bool = False,
    ) -> FetchResult:
        """
        Price, market cap and volume history over the last `days` (1-365).

        Raises:
            ValueError: If days is outside 1-365
        """
        if not MIN_CHART_DAYS <= days <= MAX_CHART_DAYS:
            raise ValueError(f"days must be between {MIN_CHART_DAYS} and {MAX_CHART_DAYS} (got {days})")
        params = {"id": coin_id.lower(), "vs_currency": vs_currency.lower(), "days": days}
        return await self._cached_fetch(
            ENDPOINT_MARKET_CHART, params, self.config.chart_cache_ttl, force_refresh
        )

    async def get_market_overview(self, force_refresh: bool = False) -> Dict[str, FetchResult]:
        """Prices, global stats and trending coins, fetched concurrently."""
        prices, global_stats, trending = await asyncio.gather(
            self.get_coin_prices(force_refresh=force_refresh),
            self.get_global_stats(force_refresh=force_refresh),
            self.get_trending_coins(force_refresh=force_refresh),
        )
        return {"prices": prices, "global": global_stats, "trending": trending}

    @staticmethod
    def get_coin_id_by_symbol(symbol: str) -> Optional[str]:
        """
        Map a chain symbol to its coin id, or None when unknown.

        Example:
            >>> MarketDataService.get_coin_id_by_symbol("ton")
            'the-open-network'
        """
        return COIN_IDS.get(symbol.upper())

    async def check_api_health(self) -> Dict[str, Any]:
        """Provider availability plus cache statistics."""
        return {
            "providers": self.orchestrator.check_provider_health(),
            "cache": self.cache.stats(),
        }
