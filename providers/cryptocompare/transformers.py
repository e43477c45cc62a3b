"""
CryptoCompare Response Transformers

CryptoCompare returns each coin as {"CoinInfo": {...}, "RAW": {TSYM: {...}},
"DISPLAY": {TSYM: {...}}}. RAW carries numbers; DISPLAY carries formatted
strings such as "$ 847.12 B". Numeric RAW values are preferred and DISPLAY
strings are parsed with the compact-number suffix table when RAW is missing.

Listings are unranked, so rank is synthesized from list position.
"""

from typing import Any, Dict, List

from core.schemas import (
    CoinListEntry,
    CoinMarket,
    GlobalStats,
    TrendingCoin,
    TrendingResult,
)
from core.utils.parsing import (
    parse_compact_number,
    safe_get,
    safe_transform,
    to_float,
    to_int,
    to_optional_float,
    to_str,
)
from core.utils.time import epoch_to_iso

IMAGE_BASE_URL = "https://www.cryptocompare.com"
TRENDING_LIMIT = 10


def _tsym(params: Dict[str, Any]) -> str:
    return to_str(params.get("vs_currency"), "usd").upper() or "USD"


def _image(info: Dict[str, Any]) -> str:
    path = to_str(info.get("ImageUrl"))
    return f"{IMAGE_BASE_URL}{path}" if path else ""


def _value(coin: Dict[str, Any], tsym: str, field: str) -> float:
    """RAW numeric value for a field, else the parsed DISPLAY string, else 0."""
    raw = to_optional_float(safe_get(coin, f"RAW.{tsym}.{field}"))
    if raw is not None:
        return raw
    return parse_compact_number(safe_get(coin, f"DISPLAY.{tsym}.{field}"))


def _last_updated(coin: Dict[str, Any], tsym: str) -> str:
    timestamp = to_int(safe_get(coin, f"RAW.{tsym}.LASTUPDATE"))
    if timestamp <= 0:
        return ""
    try:
        return epoch_to_iso(timestamp)
    except ValueError:
        return ""


@safe_transform(list)
def transform_markets(raw: Any, params: Dict[str, Any]) -> List[CoinMarket]:
    """top/mktcapfull -> [CoinMarket]"""
    rows = safe_get(raw, "Data", [])
    if not isinstance(rows, list):
        return []

    tsym = _tsym(params)
    offset = (max(to_int(params.get("page"), 1), 1) - 1) * to_int(params.get("per_page"), len(rows))

    markets = []
    for index, coin in enumerate(rows):
        if not isinstance(coin, dict):
            continue
        info = safe_get(coin, "CoinInfo", {})
        if not isinstance(info, dict):
            info = {}
        symbol = to_str(info.get("Name")).lower()

        markets.append(CoinMarket(
            id=symbol,
            symbol=symbol,
            name=to_str(info.get("FullName")),
            image=_image(info),
            current_price=_value(coin, tsym, "PRICE"),
            market_cap=_value(coin, tsym, "MKTCAP"),
            market_cap_rank=offset + index + 1,
            total_volume=_value(coin, tsym, "TOTALVOLUME24HTO"),
            high_24h=_value(coin, tsym, "HIGH24HOUR"),
            low_24h=_value(coin, tsym, "LOW24HOUR"),
            price_change_24h=_value(coin, tsym, "CHANGE24HOUR"),
            price_change_percentage_24h=_value(coin, tsym, "CHANGEPCT24HOUR"),
            circulating_supply=_value(coin, tsym, "CIRCULATINGSUPPLY") or _value(coin, tsym, "SUPPLY"),
            last_updated=_last_updated(coin, tsym),
        ))
    return markets


@safe_transform(GlobalStats)
def transform_global(raw: Any, params: Dict[str, Any]) -> GlobalStats:
    """stats/general -> GlobalStats (USD totals only)"""
    data = safe_get(raw, "Data", {})
    if not isinstance(data, dict):
        return GlobalStats()

    return GlobalStats(
        active_cryptocurrencies=to_int(data.get("TotalCoins")),
        markets=to_int(data.get("TotalExchanges")),
        total_market_cap={"usd": to_float(data.get("TotalMarketCapUsd"))},
        total_volume={"usd": to_float(data.get("Total24HVolumeUsd"))},
    )


@safe_transform(TrendingResult)
def transform_trending(raw: Any, params: Dict[str, Any]) -> TrendingResult:
    """top/totalvolfull -> TrendingResult (first ten by volume)"""
    rows = safe_get(raw, "Data", [])
    if not isinstance(rows, list):
        return TrendingResult()

    coins = []
    for index, coin in enumerate(rows[:TRENDING_LIMIT]):
        info = safe_get(coin, "CoinInfo", {})
        if not isinstance(info, dict):
            continue
        coins.append(TrendingCoin(
            id=to_str(info.get("Name")).lower(),
            name=to_str(info.get("FullName")),
            symbol=to_str(info.get("Name")),
            market_cap_rank=index + 1,
            thumb=_image(info),
            score=index,
        ))
    return TrendingResult(coins=coins)


@safe_transform(list)
def transform_coins_list(raw: Any, params: Dict[str, Any]) -> List[CoinListEntry]:
    """all/coinlist -> [CoinListEntry]. Data is keyed by symbol."""
    data = safe_get(raw, "Data", {})
    if not isinstance(data, dict):
        return []

    entries = []
    for key, coin in data.items():
        if not isinstance(coin, dict):
            continue
        symbol = to_str(coin.get("Symbol")) or to_str(key)
        entries.append(CoinListEntry(
            id=symbol.lower(),
            symbol=symbol.lower(),
            name=to_str(coin.get("CoinName")) or to_str(coin.get("FullName")),
        ))
    return entries
