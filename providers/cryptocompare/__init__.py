"""
CryptoCompare Provider Connector

This module implements ProviderInterface for the CryptoCompare min-api.

API Documentation:
    https://min-api.cryptocompare.com/documentation

Endpoint Mapping (logical -> CryptoCompare):
    - coins/markets   -> /top/mktcapfull
    - global          -> /stats/general
    - search/trending -> /top/totalvolfull   (top 10 by 24h volume)
    - coins/list      -> /all/coinlist

Parameter Mapping:
    vs_currency -> tsym (uppercase)
    per_page    -> limit
    page        -> page (CryptoCompare pages are zero-based)

Authentication:
    Authorization: Apikey <key> header (see Settings.get_cryptocompare_headers)
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
    TRENDING_LIMIT,
    transform_coins_list,
    transform_global,
    transform_markets,
    transform_trending,
)


ENDPOINT_PATHS = {
    ENDPOINT_MARKETS: "top/mktcapfull",
    ENDPOINT_GLOBAL: "stats/general",
    ENDPOINT_TRENDING: "top/totalvolfull",
    ENDPOINT_COINS_LIST: "all/coinlist",
}


class CryptoCompareProvider(ProviderInterface):
    """
    CryptoCompare connector.

    Example:
        >>> provider.build_url("coins/markets", {"vs_currency": "eur", "per_page": 20, "page": 2})
        ('https://min-api.cryptocompare.com/data/top/mktcapfull',
         {'tsym': 'EUR', 'limit': '20', 'page': '1'})
    """

    name = "cryptocompare"

    transformers = {
        ENDPOINT_MARKETS: transform_markets,
        ENDPOINT_GLOBAL: transform_global,
        ENDPOINT_TRENDING: transform_trending,
        ENDPOINT_COINS_LIST: transform_coins_list,
    }

    @classmethod
    def from_settings(cls, config: Settings) -> "CryptoCompareProvider":
        return cls(ProviderDescriptor(
            name=cls.name,
            base_url=config.cryptocompare_base_url,
            priority=config.cryptocompare_priority,
            rate_limit_per_minute=config.cryptocompare_rate_limit,
            timeout_seconds=config.provider_timeout_seconds,
            headers=config.get_cryptocompare_headers(),
        ))

    def build_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Tuple[str, Dict[str, str]]:
        params = params or {}
        path = ENDPOINT_PATHS.get(endpoint, endpoint.lstrip("/"))

        query: Dict[str, Any] = {}
        if endpoint == ENDPOINT_MARKETS:
            query["tsym"] = str(params.get("vs_currency") or "usd").upper()
            query["limit"] = to_int(params.get("per_page"), 100) or 100
            query["page"] = max(to_int(params.get("page"), 1), 1) - 1
        elif endpoint == ENDPOINT_TRENDING:
            query["tsym"] = str(params.get("vs_currency") or "usd").upper()
            query["limit"] = TRENDING_LIMIT

        return f"{self.base_url}/{path}", self._clean_params(query)
