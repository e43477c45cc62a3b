"""
CoinMarketCap Response Transformers

CoinMarketCap nests prices under quote.<CURRENCY> and identifies coins by
numeric id plus slug. The canonical id is the slug; images are derived from
the numeric id. Fields CoinMarketCap does not publish (24h high/low, ATH/ATL,
sparkline) keep their schema defaults.
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
    safe_get,
    safe_transform,
    to_float,
    to_int,
    to_optional_float,
    to_str,
)
from core.utils.time import iso_to_epoch

IMAGE_URL = "https://s2.coinmarketcap.com/static/img/coins/64x64/{id}.png"


def _currency(params: Dict[str, Any]) -> str:
    return to_str(params.get("vs_currency"), "usd").upper() or "USD"


def _quote(obj: Dict[str, Any], currency: str) -> Dict[str, Any]:
    """Quote block for `currency`, else the only quote present, else {}."""
    quotes = safe_get(obj, "quote", {})
    if not isinstance(quotes, dict):
        return {}
    quote = quotes.get(currency)
    if quote is None and len(quotes) == 1:
        quote = next(iter(quotes.values()))
    return quote if isinstance(quote, dict) else {}


def _image(coin: Dict[str, Any]) -> str:
    coin_id = coin.get("id")
    return IMAGE_URL.format(id=coin_id) if coin_id is not None else ""


def _coin_id(coin: Dict[str, Any]) -> str:
    return to_str(coin.get("slug")) or to_str(coin.get("symbol")).lower()


def _absolute_change(price: float, percent: float) -> float:
    """Absolute 24h change from the current price and the percentage change."""
    if percent <= -100.0:
        return 0.0
    return price * percent / (100.0 + percent)


@safe_transform(list)
def transform_markets(raw: Any, params: Dict[str, Any]) -> List[CoinMarket]:
    """cryptocurrency/listings/latest -> [CoinMarket]"""
    rows = safe_get(raw, "data", [])
    if not isinstance(rows, list):
        return []

    currency = _currency(params)
    offset = (max(to_int(params.get("page"), 1), 1) - 1) * to_int(params.get("per_page"), len(rows))

    markets = []
    for index, coin in enumerate(rows):
        if not isinstance(coin, dict):
            continue
        quote = _quote(coin, currency)
        price = to_float(quote.get("price"))
        percent_24h = to_float(quote.get("percent_change_24h"))

        markets.append(CoinMarket(
            id=_coin_id(coin),
            symbol=to_str(coin.get("symbol")).lower(),
            name=to_str(coin.get("name")),
            image=_image(coin),
            current_price=price,
            market_cap=to_float(quote.get("market_cap")),
            market_cap_rank=to_int(coin.get("cmc_rank")) or offset + index + 1,
            fully_diluted_valuation=to_optional_float(quote.get("fully_diluted_market_cap")),
            total_volume=to_float(quote.get("volume_24h")),
            price_change_24h=_absolute_change(price, percent_24h),
            price_change_percentage_24h=percent_24h,
            circulating_supply=to_float(coin.get("circulating_supply")),
            total_supply=to_optional_float(coin.get("total_supply")),
            max_supply=to_optional_float(coin.get("max_supply")),
            last_updated=to_str(quote.get("last_updated")) or to_str(coin.get("last_updated")),
            price_change_percentage_7d_in_currency=to_float(quote.get("percent_change_7d")),
        ))
    return markets


@safe_transform(GlobalStats)
def transform_global(raw: Any, params: Dict[str, Any]) -> GlobalStats:
    """global-metrics/quotes/latest -> GlobalStats"""
    data = safe_get(raw, "data", {})
    if not isinstance(data, dict):
        return GlobalStats()

    currency = _currency(params)
    quote = _quote(data, currency)
    key = currency.lower()

    return GlobalStats(
        active_cryptocurrencies=to_int(data.get("active_cryptocurrencies")),
        markets=to_int(data.get("active_market_pairs")),
        total_market_cap={key: to_float(quote.get("total_market_cap"))},
        total_volume={key: to_float(quote.get("total_volume_24h"))},
        market_cap_percentage={
            "btc": to_float(data.get("btc_dominance")),
            "eth": to_float(data.get("eth_dominance")),
        },
        market_cap_change_percentage_24h_usd=to_float(
            quote.get("total_market_cap_yesterday_percentage_change")
        ),
        updated_at=iso_to_epoch(to_str(data.get("last_updated"))),
    )


@safe_transform(TrendingResult)
def transform_trending(raw: Any, params: Dict[str, Any]) -> TrendingResult:
    """cryptocurrency/trending/latest -> TrendingResult (rank from list position)"""
    rows = safe_get(raw, "data", [])
    if not isinstance(rows, list):
        return TrendingResult()

    coins = [
        TrendingCoin(
            id=_coin_id(coin),
            name=to_str(coin.get("name")),
            symbol=to_str(coin.get("symbol")),
            market_cap_rank=to_int(coin.get("cmc_rank")) or index + 1,
            thumb=_image(coin),
            score=index,
        )
        for index, coin in enumerate(rows)
        if isinstance(coin, dict)
    ]
    return TrendingResult(coins=coins)


@safe_transform(list)
def transform_coins_list(raw: Any, params: Dict[str, Any]) -> List[CoinListEntry]:
    """cryptocurrency/map -> [CoinListEntry]"""
    rows = safe_get(raw, "data", [])
    if not isinstance(rows, list):
        return []
    return [
        CoinListEntry(
            id=_coin_id(coin),
            symbol=to_str(coin.get("symbol")).lower(),
            name=to_str(coin.get("name")),
        )
        for coin in rows
        if isinstance(coin, dict)
    ]
