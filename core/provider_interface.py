"""
Provider Interface - Capability Contract for All Market Data Providers

This module defines the abstract base class that every provider connector must implement.
By enforcing a consistent interface, we ensure:
- The fetch orchestrator never branches on provider names
- Adding a provider means registering one class, not editing if/else chains
- Graceful handling of endpoints a provider does not support

Each provider supplies two capabilities:
    build_url(endpoint, params)     -> provider-specific URL and query string
    transform(endpoint, raw, params) -> canonical schema (via its transformer table)

Example:
    class CoinGeckoProvider(ProviderInterface):
        name = "coingecko"
        transformers = {
            "coins/markets": transform_markets,
            "global": transform_global,
        }

        def build_url(self, endpoint, params):
            return f"{self.base_url}/{endpoint}", dict(params)

    provider = CoinGeckoProvider(descriptor)
    url, query = provider.build_url("coins/markets", {"vs_currency": "usd"})
    data = provider.transform("coins/markets", raw_payload, params)
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from core.schemas import ProviderDescriptor
from core.utils.parsing import to_float


Transformer = Callable[[Any, Optional[Dict[str, Any]]], Any]
"""Pure function mapping (raw payload, params) to the canonical schema."""


# Logical endpoints understood by the fetch layer
ENDPOINT_MARKETS = "coins/markets"
ENDPOINT_GLOBAL = "global"
ENDPOINT_TRENDING = "search/trending"
ENDPOINT_COINS_LIST = "coins/list"

LOGICAL_ENDPOINTS = (ENDPOINT_MARKETS, ENDPOINT_GLOBAL, ENDPOINT_TRENDING, ENDPOINT_COINS_LIST)

# Per-coin endpoints; params carry the coin "id". Only some providers serve them.
ENDPOINT_COIN_DETAILS = "coins/detail"
ENDPOINT_MARKET_CHART = "coins/market_chart"


class ProviderInterface(ABC):
    """
    Abstract Base Class for Provider Connectors

    Class Attributes:
        name: Unique identifier for the provider (lowercase, e.g., "coingecko")
        transformers: Mapping of logical endpoint -> transformer function.
                      An endpoint missing from this table is unsupported.
        filters_by_id: Whether coins/markets can be restricted to given coin ids

    Instance Attributes:
        descriptor: Immutable ProviderDescriptor (base URL, priority, budget,
                    timeout, headers)

    Abstract Methods (MUST be implemented by all providers):
        - build_url: Map a logical endpoint + params onto the provider's wire format
    """

    name: str
    """Unique provider identifier (lowercase). Example: "coingecko" """

    transformers: Dict[str, Transformer] = {}
    """Endpoint -> transformer table; doubles as the capability list"""

    filters_by_id: bool = False
    """True when coins/markets honours an "ids" filter (curated lists such as meme coins)"""

    def __init__(self, descriptor: ProviderDescriptor):
        """
        Args:
            descriptor: Static provider configuration. Its name must match the
                        class-level `name` when the subclass declares one.
        """
        declared = getattr(type(self), "name", None)
        if declared and declared != descriptor.name:
            raise ValueError(
                f"Descriptor name '{descriptor.name}' does not match provider '{declared}'"
            )
        self.descriptor = descriptor
        self.name = descriptor.name

    # ============================================
    # Descriptor Shortcuts
    # ============================================

    @property
    def base_url(self) -> str:
        return self.descriptor.base_url

    @property
    def priority(self) -> int:
        return self.descriptor.priority

    @property
    def rate_limit_per_minute(self) -> int:
        return self.descriptor.rate_limit_per_minute

    @property
    def timeout_seconds(self) -> float:
        return self.descriptor.timeout_seconds

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.descriptor.headers)

    # ============================================
    # Capabilities
    # ============================================

    @abstractmethod
    def build_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Tuple[str, Dict[str, str]]:
        """
        Build the provider-specific request for a logical endpoint.

        Args:
            endpoint: Logical endpoint (e.g., "coins/markets")
            params: Logical parameter bag (vs_currency, per_page, page, ...)

        Returns:
            Tuple of (absolute URL, query parameters as strings)

        Notes:
            - Parameter names differ between providers (per_page vs limit vs
              limit/start); the mapping belongs here, not in the orchestrator
            - None values must be dropped
        """
        ...

    def get_transformer(self, endpoint: str) -> Optional[Transformer]:
        """Return the transformer for an endpoint, or None if unsupported."""
        return self.transformers.get(endpoint)

    def supports(self, endpoint: str) -> bool:
        """
        Check if this provider can serve a logical endpoint.

        Example:
            >>> provider.supports("search/trending")
            True
        """
        return endpoint in self.transformers

    def transform(self, endpoint: str, raw: Any, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Normalize a raw payload for an endpoint into the canonical schema.

        Raises:
            ValueError: If the endpoint is not supported by this provider
        """
        transformer = self.get_transformer(endpoint)
        if transformer is None:
            raise ValueError(f"{self.name} does not support endpoint '{endpoint}'")
        return transformer(raw, params or {})

    def parse_retry_after(self, headers: Mapping[str, str], default: float, now: float) -> float:
        """
        Extract the rate-limit hold (seconds) from 429 response headers.

        Looks at Retry-After first, then X-RateLimit-Reset. Values that look
        like absolute epoch timestamps (seconds or milliseconds) are converted
        to a delta from `now`. Missing or unparseable values yield `default`.

        Args:
            headers: Response headers with lowercase keys
            default: Fallback hold in seconds
            now: Current epoch seconds

        Example:
            >>> provider.parse_retry_after({"retry-after": "30"}, 60.0, now)
            30.0
        """
        raw = headers.get("retry-after") or headers.get("x-ratelimit-reset")
        value = to_float(raw, -1.0)
        if value < 0:
            return default

        if value > 1e12:
            value = value / 1000.0 - now
        elif value > 1e9:
            value = value - now

        return value if value > 0 else default

    # ============================================
    # Helpers
    # ============================================

    @staticmethod
    def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Drop None values and stringify the rest (booleans as true/false)."""
        query: Dict[str, str] = {}
        for key, value in (params or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                query[key] = "true" if value else "false"
            else:
                query[key] = str(value)
        return query

    def __repr__(self) -> str:
        """String representation of the provider."""
        return f"<{self.__class__.__name__}(name='{self.name}', priority={self.priority})>"
