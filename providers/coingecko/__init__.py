"""
CoinGecko Provider Connector

CoinGecko is the primary source; its listing format doubles as the canonical
schema, so URL building passes logical endpoints and parameters through
unchanged. The per-coin endpoints put the coin id into the path.

API Documentation:
    https://docs.coingecko.com/reference/introduction

Endpoints Used:
    - GET /coins/markets            - Ranked market listing with sparkline
                                      (optionally restricted with `ids`)
    - GET /global                   - Aggregate market statistics
    - GET /search/trending          - Trending coins
    - GET /coins/list               - Full coin catalogue
    - GET /coins/{id}               - Coin profile and market snapshot
    - GET /coins/{id}/market_chart  - Price, market cap and volume history

Rate Limits:
    ~30-50 calls per minute on the public tier (configurable).
"""

from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from core.config import Settings
from core.provider_interface import (
    ENDPOINT_COIN_DETAILS,
    ENDPOINT_COINS_LIST,
    ENDPOINT_GLOBAL,
    ENDPOINT_MARKET_CHART,
    ENDPOINT_MARKETS,
    ENDPOINT_TRENDING,
    ProviderInterface,
)
from core.schemas import ProviderDescriptor
from core.utils.parsing import to_int
from .transformers import (
    transform_coin_details,
    transform_coins_list,
    transform_global,
    transform_market_chart,
    transform_markets,
    transform_trending,
)

# Only the sections CoinDetails uses; tickers and community data are large
COIN_DETAILS_QUERY = {
    "localization": False,
    "tickers": False,
    "market_data": True,
    "community_data": False,
    "developer_data": False,
    "sparkline": False,
}


class CoinGeckoProvider(ProviderInterface):
    """
    CoinGecko connector.

    Example:
        >>> provider = CoinGeckoProvider.from_settings(settings)
        >>> provider.build_url("coins/markets", {"vs_currency": "usd", "sparkline": True})
        ('https://api.coingecko.com/api/v3/coins/markets', {'vs_currency': 'usd', 'sparkline': 'true'})
        >>> provider.build_url("coins/market_chart", {"id": "bitcoin", "vs_currency": "usd", "days": 7})
        ('https://api.coingecko.com/api/v3/coins/bitcoin/market_chart', {'vs_currency': 'usd', 'days': '7', 'interval': 'daily'})
    """

    name = "coingecko"

    transformers = {
        ENDPOINT_MARKETS: transform_markets,
        ENDPOINT_GLOBAL: transform_global,
        ENDPOINT_TRENDING: transform_trending,
        ENDPOINT_COINS_LIST: transform_coins_list,
        ENDPOINT_COIN_DETAILS: transform_coin_details,
        ENDPOINT_MARKET_CHART: transform_market_chart,
    }

    filters_by_id = True

    @classmethod
    def from_settings(cls, config: Settings) -> "CoinGeckoProvider":
        return cls(ProviderDescriptor(
            name=cls.name,
            base_url=config.coingecko_base_url,
            priority=config.coingecko_priority,
            rate_limit_per_minute=config.coingecko_rate_limit,
            timeout_seconds=config.provider_timeout_seconds,
            headers=config.get_coingecko_headers(),
        ))

    def build_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Tuple[str, Dict[str, str]]:
        params = dict(params or {})

        if endpoint == ENDPOINT_COIN_DETAILS:
            coin_id = quote(str(params.get("id", "")), safe="")
            return f"{self.base_url}/coins/{coin_id}", self._clean_params(COIN_DETAILS_QUERY)

        if endpoint == ENDPOINT_MARKET_CHART:
            coin_id = quote(str(params.get("id", "")), safe="")
            days = to_int(params.get("days"), 7)
            query = {
                "vs_currency": params.get("vs_currency", "usd"),
                "days": days,
                # Finer granularity is chosen automatically for a single day
                "interval": "daily" if days > 1 else None,
            }
            return f"{self.base_url}/coins/{coin_id}/market_chart", self._clean_params(query)

        return f"{self.base_url}/{endpoint.lstrip('/')}", self._clean_params(params)
