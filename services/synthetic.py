"""
Synthetic Fallback Payloads

Placeholders returned when every provider failed for a logical call. They are
deterministic (no random prices), conform to the canonical schema, and are
always served tagged with provider "synthetic" so callers can tell them apart.

    coins/markets       -> `per_page` placeholder rows ranked 1..N, or one
                           row per requested id when `ids` is given
    global              -> GlobalStats with zero totals
    search/trending     -> 10 placeholder entries
    coins/list          -> empty list
    coins/detail        -> CoinDetails carrying only the requested id
    coins/market_chart  -> empty MarketChart
"""

from typing import Any, Dict, List, Optional

from core.provider_interface import (
    ENDPOINT_COIN_DETAILS,
    ENDPOINT_COINS_LIST,
    ENDPOINT_GLOBAL,
    ENDPOINT_MARKET_CHART,
    ENDPOINT_MARKETS,
    ENDPOINT_TRENDING,
)
from core.schemas import (
    CoinDetails,
    CoinMarket,
    GlobalStats,
    MarketChart,
    TrendingCoin,
    TrendingResult,
)
from core.utils.parsing import to_int, to_str

DEFAULT_PAGE_SIZE = 100
TRENDING_PLACEHOLDERS = 10


def synthetic_markets(per_page: int = DEFAULT_PAGE_SIZE, page: int = 1) -> List[CoinMarket]:
    offset = (max(page, 1) - 1) * per_page
    return [
        CoinMarket(
            id=f"synthetic-coin-{offset + i}",
            symbol=f"syn{offset + i}",
            name=f"Synthetic Coin {offset + i}",
            market_cap_rank=offset + i,
        )
        for i in range(1, per_page + 1)
    ]


def synthetic_markets_for_ids(ids: List[str], per_page: int = DEFAULT_PAGE_SIZE) -> List[CoinMarket]:
    """Placeholder rows for a curated id list, in the order given."""
    return [
        CoinMarket(id=coin_id, name=coin_id.replace("-", " ").title(), market_cap_rank=rank)
        for rank, coin_id in enumerate(ids[:per_page], start=1)
    ]


def synthetic_trending() -> TrendingResult:
    return TrendingResult(coins=[
        TrendingCoin(
            id=f"synthetic-trending-{i}",
            name=f"Synthetic Trending {i}",
            symbol=f"SYN{i}",
            market_cap_rank=i,
            score=i - 1,
        )
        for i in range(1, TRENDING_PLACEHOLDERS + 1)
    ])


def build_synthetic_payload(endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """
    Placeholder payload for a logical endpoint.

    Unknown endpoints yield an empty dict.

    Example:
        >>> len(build_synthetic_payload("coins/markets", {"per_page": 25}))
        25
        >>> [c.id for c in build_synthetic_payload("coins/markets", {"ids": "pepe,bonk"})]
        ['pepe', 'bonk']
    """
    params = params or {}

    if endpoint == ENDPOINT_MARKETS:
        per_page = max(to_int(params.get("per_page"), DEFAULT_PAGE_SIZE), 0)
        ids = [coin_id.strip() for coin_id in to_str(params.get("ids")).split(",") if coin_id.strip()]
        if ids:
            return synthetic_markets_for_ids(ids, per_page)
        return synthetic_markets(per_page, to_int(params.get("page"), 1))
    if endpoint == ENDPOINT_GLOBAL:
        return GlobalStats()
    if endpoint == ENDPOINT_TRENDING:
        return synthetic_trending()
    if endpoint == ENDPOINT_COINS_LIST:
        return []
    if endpoint == ENDPOINT_COIN_DETAILS:
        return CoinDetails(id=to_str(params.get("id")))
    if endpoint == ENDPOINT_MARKET_CHART:
        return MarketChart()
    return {}
