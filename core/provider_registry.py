"""
Provider Registry - Central Registry for Market Data Providers

This module provides the ordered, immutable registry of provider connectors.
The fetch orchestrator and the availability tracker both read from it; neither
knows provider names in advance.

Design Benefits:
    - Single source of truth for configured providers
    - Declaration order is preserved and used to break priority ties
    - Adding a provider means registering one ProviderInterface subclass
    - Frozen after construction, so priority ordering never changes at runtime

Example Usage:
    registry = ProviderRegistry()            # CoinGecko, CoinMarketCap, CryptoCompare
    registry.list_providers()
    ['coingecko', 'coinmarketcap', 'cryptocompare']

    transformers = registry.get_transformers("coins/markets")
    result = await orchestrator.fetch_with_fallback("coins/markets", transformers, params)
"""

from typing import Dict, Iterable, List, Optional

from core.logging import get_logger
from core.provider_interface import ProviderInterface, Transformer

logger = get_logger(__name__)


class ProviderRegistry:
    """
    Ordered registry of provider connectors.

    Attributes:
        providers: Providers in declaration order (read-only list copy)

    Example:
        >>> registry = ProviderRegistry([gecko, cmc])
        >>> registry.get_provider("coingecko")
        <CoinGeckoProvider(name='coingecko', priority=1)>
        >>> registry.register(other)
        RuntimeError: ProviderRegistry is frozen
    """

    def __init__(self, providers: Optional[Iterable[ProviderInterface]] = None):
        """
        Build the registry.

        Args:
            providers: Provider instances in declaration order. When omitted,
                       the three built-in providers are created from settings.

        Raises:
            ValueError: If two providers share a name
        """
        self._providers: Dict[str, ProviderInterface] = {}
        self._frozen = False

        if providers is None:
            # Import here to avoid circular imports
            # (provider packages import from core)
            from providers import default_providers
            providers = default_providers()

        for provider in providers:
            self.register(provider)

        self._frozen = True
        logger.info(
            f"ProviderRegistry initialized with {len(self._providers)} provider(s): "
            f"{', '.join(self._providers.keys())}"
        )

    def register(self, provider: ProviderInterface) -> None:
        """
        Add a provider. Only allowed while the registry is being built.

        Raises:
            RuntimeError: If called after construction
            ValueError: If the name is already registered
        """
        if self._frozen:
            raise RuntimeError("ProviderRegistry is frozen; providers are fixed at startup")
        if provider.name in self._providers:
            raise ValueError(f"Provider '{provider.name}' is already registered")
        self._providers[provider.name] = provider

    # ============================================
    # Provider Retrieval Methods
    # ============================================

    def get_provider(self, name: str) -> ProviderInterface:
        """
        Get a provider by name (case-insensitive).

        Raises:
            ValueError: If the provider is not registered
        """
        name = name.lower()

        if name not in self._providers:
            available = ", ".join(self._providers.keys())
            raise ValueError(
                f"Provider '{name}' is not registered. "
                f"Available providers: {available}"
            )

        return self._providers[name]

    def has_provider(self, name: str) -> bool:
        return name.lower() in self._providers

    def list_providers(self) -> List[str]:
        """Provider names in declaration order."""
        return list(self._providers.keys())

    @property
    def providers(self) -> List[ProviderInterface]:
        """Provider instances in declaration order."""
        return list(self._providers.values())

    # ============================================
    # Capability Queries
    # ============================================

    def get_transformers(self, endpoint: str, filters_by_id: bool = False) -> Dict[str, Transformer]:
        """
        Build the provider -> transformer map for a logical endpoint.

        Providers that do not support the endpoint are left out. With
        `filters_by_id=True` only providers that can restrict a listing to
        given coin ids are kept.

        Example:
            >>> registry.get_transformers("search/trending").keys()
            dict_keys(['coingecko', 'coinmarketcap', 'cryptocompare'])
        """
        transformers = {}
        for name, provider in self._providers.items():
            if filters_by_id and not provider.filters_by_id:
                continue
            transformer = provider.get_transformer(endpoint)
            if transformer is not None:
                transformers[name] = transformer
        return transformers

    def providers_supporting(self, endpoint: str) -> List[str]:
        supporting = [name for name, p in self._providers.items() if p.supports(endpoint)]
        logger.debug(f"Endpoint '{endpoint}' supported by: {', '.join(supporting) or 'none'}")
        return supporting

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self) -> str:
        return f"<ProviderRegistry(providers={list(self._providers.keys())})>"

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: str) -> bool:
        return self.has_provider(name)
