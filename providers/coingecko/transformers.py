"""
CoinGecko Response Transformers

CoinGecko payloads already use the canonical field names, so these functions
mostly validate: every value is coerced to its canonical type and anything
missing or malformed falls back to the schema default.
"""

from typing import Any, Dict, List

from core.schemas import (
    CoinDetails,
    CoinListEntry,
    CoinMarket,
    GlobalStats,
    MarketChart,
    Sparkline,
    TrendingCoin,
    TrendingResult,
)
from core.utils.parsing import (
    safe_get,
    safe_transform,
    to_float,
    to_float_map,
    to_int,
    to_optional_float,
    to_str,
)


def _sparkline(row: Dict[str, Any]) -> Sparkline:
    prices = safe_get(row, "sparkline_in_7d.price", [])
    if not isinstance(prices, list):
        return Sparkline()
    return Sparkline(price=[to_float(p) for p in prices if to_optional_float(p) is not None])


def _market_row(row: Dict[str, Any], rank: int) -> CoinMarket:
    return CoinMarket(
        id=to_str(row.get("id")),
        symbol=to_str(row.get("symbol")).lower(),
        name=to_str(row.get("name")),
        image=to_str(row.get("image")),
        current_price=to_float(row.get("current_price")),
        market_cap=to_float(row.get("market_cap")),
        market_cap_rank=to_int(row.get("market_cap_rank"), rank) or rank,
        fully_diluted_valuation=to_optional_float(row.get("fully_diluted_valuation")),
        total_volume=to_float(row.get("total_volume")),
        high_24h=to_float(row.get("high_24h")),
        low_24h=to_float(row.get("low_24h")),
        price_change_24h=to_float(row.get("price_change_24h")),
        price_change_percentage_24h=to_float(row.get("price_change_percentage_24h")),
        market_cap_change_24h=to_float(row.get("market_cap_change_24h")),
        market_cap_change_percentage_24h=to_float(row.get("market_cap_change_percentage_24h")),
        circulating_supply=to_float(row.get("circulating_supply")),
        total_supply=to_optional_float(row.get("total_supply")),
        max_supply=to_optional_float(row.get("max_supply")),
        ath=to_float(row.get("ath")),
        ath_change_percentage=to_float(row.get("ath_change_percentage")),
        ath_date=to_str(row.get("ath_date")),
        atl=to_float(row.get("atl")),
        atl_change_percentage=to_float(row.get("atl_change_percentage")),
        atl_date=to_str(row.get("atl_date")),
        last_updated=to_str(row.get("last_updated")),
        sparkline_in_7d=_sparkline(row),
        price_change_percentage_7d_in_currency=to_float(
            row.get("price_change_percentage_7d_in_currency")
        ),
    )


@safe_transform(list)
def transform_markets(raw: Any, params: Dict[str, Any]) -> List[CoinMarket]:
    """coins/markets -> [CoinMarket]. Accepts a bare list or {"data": [...]}."""
    rows = raw if isinstance(raw, list) else safe_get(raw, "data", [])
    if not isinstance(rows, list):
        return []

    offset = (max(to_int(params.get("page"), 1), 1) - 1) * to_int(params.get("per_page"), len(rows))
    return [
        _market_row(row, offset + index + 1)
        for index, row in enumerate(rows)
        if isinstance(row, dict)
    ]


@safe_transform(GlobalStats)
def transform_global(raw: Any, params: Dict[str, Any]) -> GlobalStats:
    """global -> GlobalStats. CoinGecko wraps the object in {"data": {...}}."""
    data = safe_get(raw, "data", {})
    if not isinstance(data, dict):
        return GlobalStats()

    return GlobalStats(
        active_cryptocurrencies=to_int(data.get("active_cryptocurrencies")),
        upcoming_icos=to_int(data.get("upcoming_icos")),
        ongoing_icos=to_int(data.get("ongoing_icos")),
        ended_icos=to_int(data.get("ended_icos")),
        markets=to_int(data.get("markets")),
        total_market_cap=to_float_map(data.get("total_market_cap")),
        total_volume=to_float_map(data.get("total_volume")),
        market_cap_percentage=to_float_map(data.get("market_cap_percentage")),
        market_cap_change_percentage_24h_usd=to_float(data.get("market_cap_change_percentage_24h_usd")),
        updated_at=to_int(data.get("updated_at")),
    )


@safe_transform(TrendingResult)
def transform_trending(raw: Any, params: Dict[str, Any]) -> TrendingResult:
    """search/trending -> TrendingResult. Entries are wrapped as {"item": {...}}."""
    entries = safe_get(raw, "coins", [])
    if not isinstance(entries, list):
        return TrendingResult()

    coins = []
    for index, entry in enumerate(entries):
        item = safe_get(entry, "item", {})
        if not isinstance(item, dict):
            continue
        coins.append(TrendingCoin(
            id=to_str(item.get("id")),
            name=to_str(item.get("name")),
            symbol=to_str(item.get("symbol")),
            market_cap_rank=to_int(item.get("market_cap_rank")),
            thumb=to_str(item.get("thumb")),
            score=to_int(item.get("score"), index),
        ))
    return TrendingResult(coins=coins)


@safe_transform(list)
def transform_coins_list(raw: Any, params: Dict[str, Any]) -> List[CoinListEntry]:
    if not isinstance(raw, list):
        return []
    return [
        CoinListEntry(
            id=to_str(row.get("id")),
            symbol=to_str(row.get("symbol")),
            name=to_str(row.get("name")),
        )
        for row in raw
        if isinstance(row, dict)
    ]


def _quoted(market_data: Dict[str, Any], field: str, currency: str) -> float:
    """Per-currency value from a detail payload, e.g. market_data.current_price.usd."""
    return to_float(safe_get(market_data, f"{field}.{currency}"))


@safe_transform(CoinDetails)
def transform_coin_details(raw: Any, params: Dict[str, Any]) -> CoinDetails:
    """coins/{id} -> CoinDetails, quoted in params["vs_currency"] (default usd)."""
    if not isinstance(raw, dict):
        return CoinDetails()

    currency = to_str(params.get("vs_currency"), "usd").lower() or "usd"
    market_data = raw.get("market_data") if isinstance(raw.get("market_data"), dict) else {}
    homepages = safe_get(raw, "links.homepage", [])
    homepage = next((to_str(url) for url in homepages if to_str(url)), "") if isinstance(homepages, list) else ""
    categories = raw.get("categories") if isinstance(raw.get("categories"), list) else []

    return CoinDetails(
        id=to_str(raw.get("id")),
        symbol=to_str(raw.get("symbol")).lower(),
        name=to_str(raw.get("name")),
        description=to_str(safe_get(raw, "description.en")),
        homepage=homepage,
        image=to_str(safe_get(raw, "image.large")),
        categories=[to_str(c) for c in categories if to_str(c)],
        genesis_date=to_str(raw.get("genesis_date")),
        market_cap_rank=to_int(raw.get("market_cap_rank")),
        current_price=_quoted(market_data, "current_price", currency),
        market_cap=_quoted(market_data, "market_cap", currency),
        total_volume=_quoted(market_data, "total_volume", currency),
        high_24h=_quoted(market_data, "high_24h", currency),
        low_24h=_quoted(market_data, "low_24h", currency),
        price_change_percentage_24h=to_float(market_data.get("price_change_percentage_24h")),
        price_change_percentage_7d=to_float(market_data.get("price_change_percentage_7d")),
        circulating_supply=to_float(market_data.get("circulating_supply")),
        total_supply=to_optional_float(market_data.get("total_supply")),
        max_supply=to_optional_float(market_data.get("max_supply")),
        ath=_quoted(market_data, "ath", currency),
        atl=_quoted(market_data, "atl", currency),
        last_updated=to_str(raw.get("last_updated")),
    )


def _series(points: Any) -> List[List[float]]:
    # Keep only well-formed [timestamp, value] pairs
    if not isinstance(points, list):
        return []
    series = []
    for point in points:
        if isinstance(point, list) and len(point) >= 2:
            timestamp, value = to_optional_float(point[0]), to_optional_float(point[1])
            if timestamp is not None and value is not None:
                series.append([timestamp, value])
    return series


@safe_transform(MarketChart)
def transform_market_chart(raw: Any, params: Dict[str, Any]) -> MarketChart:
    """coins/{id}/market_chart -> MarketChart."""
    if not isinstance(raw, dict):
        return MarketChart()
    return MarketChart(
        prices=_series(raw.get("prices")),
        market_caps=_series(raw.get("market_caps")),
        total_volumes=_series(raw.get("total_volumes")),
    )
