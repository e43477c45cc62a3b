"""
CoinMarketCap Provider Connector

This module implements ProviderInterface for the CoinMarketCap Pro API.

API Documentation:
    https://coinmarketcap.com/api/documentation/v1/

Endpoint Mapping (logical -> CoinMarketCap):
    - coins/markets   -> /cryptocurrency/listings/latest
    - global          -> /global-metrics/quotes/latest
    - search/trending -> /cryptocurrency/trending/latest
    - coins/list      -> /cryptocurrency/map

Parameter Mapping:
    vs_currency -> convert (uppercase)
    per_page    -> limit
    page        -> start = (page - 1) * per_page + 1   (CMC offsets are 1-based)

Authentication:
    X-CMC_PRO_API_KEY header (see Settings.get_coinmarketcap_headers)
"""

from typing import Any, Dict, Optional, Tuple

from core.config import Settings
from core.provider_interface import (
    ENDPOINT_COINS_LIST,
    ENDPOINT_GLOBAL,
    ENDPOINT_MARKETS,
    ENDPOINT_TRENDING,
    ProviderInterface,
)
from core.schemas import ProviderDescriptor
from core.utils.parsing import to_int
from .transformers import (
    transform_coins_list,
    transform_global,
    transform_markets,
    transform_trending,
)


ENDPOINT_PATHS = {
    ENDPOINT_MARKETS: "cryptocurrency/listings/latest",
    ENDPOINT_GLOBAL: "global-metrics/quotes/latest",
    ENDPOINT_TRENDING: "cryptocurrency/trending/latest",
    ENDPOINT_COINS_LIST: "cryptocurrency/map",
}


class CoinMarketCapProvider(ProviderInterface):
    """
    CoinMarketCap connector.

    Example:
        >>> provider.build_url("coins/markets", {"vs_currency": "usd", "per_page": 50, "page": 3})
        ('https://pro-api.coinmarketcap.com/v1/cryptocurrency/listings/latest',
         {'convert': 'USD', 'limit': '50', 'start': '101'})
    """

    name = "coinmarketcap"

    transformers = {
        ENDPOINT_MARKETS: transform_markets,
        ENDPOINT_GLOBAL: transform_global,
        ENDPOINT_TRENDING: transform_trending,
        ENDPOINT_COINS_LIST: transform_coins_list,
    }

    @classmethod
    def from_settings(cls, config: Settings) -> "CoinMarketCapProvider":
        return cls(ProviderDescriptor(
            name=cls.name,
            base_url=config.coinmarketcap_base_url,
            priority=config.coinmarketcap_priority,
            rate_limit_per_minute=config.coinmarketcap_rate_limit,
            timeout_seconds=config.provider_timeout_seconds,
            headers=config.get_coinmarketcap_headers(),
        ))

    def build_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Tuple[str, Dict[str, str]]:
        params = params or {}
        path = ENDPOINT_PATHS.get(endpoint, endpoint.lstrip("/"))

        query: Dict[str, Any] = {}
        # Only the quote endpoints accept a conversion currency
        if endpoint in (ENDPOINT_MARKETS, ENDPOINT_GLOBAL) and params.get("vs_currency"):
            query["convert"] = str(params["vs_currency"]).upper()

        if endpoint == ENDPOINT_MARKETS:
            per_page = to_int(params.get("per_page"), 100) or 100
            query["limit"] = per_page
            if params.get("page"):
                page = max(to_int(params["page"], 1), 1)
                query["start"] = (page - 1) * per_page + 1

        return f"{self.base_url}/{path}", self._clean_params(query)
