#!/usr/bin/env python3
"""
Check each market data provider directly, without fallback.

For every selected provider and endpoint, one live request is made through
the same URL building and transformer code the server uses, and the outcome
is printed (Success / RateLimited / Failure / Unavailable).

Checks performed on Success:
- coins/markets: non-empty list, ranks ascending, prices non-negative
- global: non-zero active_cryptocurrencies or market cap
- search/trending: at least one coin
- coins/list: at least one entry

Usage examples:
  python -m scripts.check_providers
  python -m scripts.check_providers --provider coingecko --endpoint coins/markets --per-page 10
  python -m scripts.check_providers --provider cryptocompare --print-sample 3
"""

import argparse
import asyncio
import sys
from typing import Any, List, Tuple

from core.outcomes import Success
from core.provider_interface import (
    ENDPOINT_COINS_LIST,
    ENDPOINT_GLOBAL,
    ENDPOINT_MARKETS,
    ENDPOINT_TRENDING,
    LOGICAL_ENDPOINTS,
)
from core.schemas import CoinMarket
from core.utils.formatting import format_market_cap, format_percentage, format_price, format_volume
from services.fetch_orchestrator import FetchOrchestrator


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Live check of market data providers.")
    p.add_argument("--provider", action="append", help="Provider name (repeatable; default: all)")
    p.add_argument("--endpoint", action="append", choices=LOGICAL_ENDPOINTS,
                   help="Logical endpoint (repeatable; default: all)")
    p.add_argument("--per-page", type=int, default=10, help="Page size for coins/markets")
    p.add_argument("--vs-currency", default="usd", help="Quote currency (default: usd)")
    p.add_argument("--retries", type=int, default=1, help="Attempts per provider (default: 1)")
    p.add_argument("--print-sample", type=int, default=0, help="Print first N items for visual inspection")
    return p.parse_args()


def validate(endpoint: str, data: Any) -> Tuple[bool, str]:
    if endpoint == ENDPOINT_MARKETS:
        if not data:
            return False, "empty listing"
        ranks = [coin.market_cap_rank for coin in data]
        if ranks != sorted(ranks):
            return False, f"ranks not ascending: {ranks[:10]}"
        if any(coin.current_price < 0 for coin in data):
            return False, "negative price"
    elif endpoint == ENDPOINT_GLOBAL:
        if not data.active_cryptocurrencies and not any(data.total_market_cap.values()):
            return False, "global stats are all zero"
    elif endpoint == ENDPOINT_TRENDING:
        if not data.coins:
            return False, "no trending coins"
    elif endpoint == ENDPOINT_COINS_LIST:
        if not data:
            return False, "empty coin list"
    return True, ""


def describe_coin(coin: CoinMarket) -> str:
    return (
        f"#{coin.market_cap_rank} {coin.symbol.upper()} {format_price(coin.current_price)} "
        f"{format_percentage(coin.price_change_percentage_24h)} "
        f"cap {format_market_cap(coin.market_cap)} vol {format_volume(coin.total_volume)}"
    )


def sample(endpoint: str, data: Any, n: int) -> List[Any]:
    if endpoint == ENDPOINT_MARKETS:
        return [describe_coin(coin) for coin in data[:n]]
    if endpoint == ENDPOINT_TRENDING:
        return data.coins[:n]
    if endpoint == ENDPOINT_GLOBAL:
        return [data]
    return list(data[:n])


async def run(args: argparse.Namespace) -> int:
    failures = 0
    params = {"vs_currency": args.vs_currency, "per_page": args.per_page, "page": 1}

    async with FetchOrchestrator() as orchestrator:
        names = args.provider or orchestrator.registry.list_providers()
        endpoints = args.endpoint or list(LOGICAL_ENDPOINTS)

        for name in names:
            try:
                provider = orchestrator.registry.get_provider(name)
            except ValueError as e:
                print(f"[Error] {e}")
                return 2

            for endpoint in endpoints:
                transformer = provider.get_transformer(endpoint)
                if transformer is None:
                    print(f"[Skip] {name} {endpoint}: not supported")
                    continue

                outcome = await orchestrator.fetch_from_provider(
                    provider, endpoint, transformer, params, max_retries=args.retries
                )
                if not isinstance(outcome, Success):
                    failures += 1
                    print(f"[Error] {name} {endpoint}: {outcome}")
                    continue

                ok, msg = validate(endpoint, outcome.data)
                if not ok:
                    failures += 1
                    print(f"[Error] {name} {endpoint}: {msg}")
                    continue

                print(f"[OK] {name} {endpoint}")
                if args.print_sample > 0:
                    for item in sample(endpoint, outcome.data, args.print_sample):
                        print(f"    {item}")

    return 1 if failures else 0


def main() -> int:
    return asyncio.run(run(parse_args()))


if __name__ == "__main__":
    sys.exit(main())
