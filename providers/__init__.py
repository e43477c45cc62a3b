"""
Market Data Providers Package

This package contains one connector per third-party market data provider.
Each provider (CoinGecko, CoinMarketCap, CryptoCompare) has its own subfolder with:
- __init__.py: Provider class implementing ProviderInterface (URL building)
- transformers.py: Pure functions mapping raw payloads to canonical schemas

The modular design allows adding providers without touching the orchestrator.
"""

from typing import List

from core.config import Settings, settings as default_settings
from core.provider_interface import ProviderInterface


def default_providers(config: Settings = None) -> List[ProviderInterface]:
    """
    Build the built-in providers from settings, in declaration order.

    Example:
        >>> [p.name for p in default_providers()]
        ['coingecko', 'coinmarketcap', 'cryptocompare']
    """
    from providers.coingecko import CoinGeckoProvider
    from providers.coinmarketcap import CoinMarketCapProvider
    from providers.cryptocompare import CryptoCompareProvider

    config = config or default_settings
    return [
        CoinGeckoProvider.from_settings(config),
        CoinMarketCapProvider.from_settings(config),
        CryptoCompareProvider.from_settings(config),
    ]
