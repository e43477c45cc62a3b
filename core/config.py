"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates provider budgets, timeouts and cache TTLs
- Provides type-safe access to configuration values
- Builds per-provider authentication headers
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.coingecko_base_url)
    print(settings.prices_cache_ttl)
"""

from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the application.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        coingecko_*: CoinGecko endpoint, key, priority and per-minute budget
        coinmarketcap_*: CoinMarketCap endpoint, key, priority and per-minute budget
        cryptocompare_*: CryptoCompare endpoint, key, priority and per-minute budget
        provider_timeout_seconds: Timeout applied to every provider request
        provider_backoff_seconds: How long a failed provider stays out of rotation
        default_retry_after_seconds: Rate-limit hold used when a 429 carries no hint
        rate_limit_window_seconds: Length of the request-budget window
        max_retries_per_provider: Attempts per provider before moving on
        retry_base_delay_seconds: Multiplier for the 2**attempt retry backoff
        fetch_deadline_seconds: Optional time budget for one logical fetch
        *_cache_ttl: Cache time-to-live per query family, in seconds
        synthetic_cache_ttl: TTL for placeholder results (0 disables caching them)
        app_host: Host address for FastAPI server
        app_port: Port number for FastAPI server
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
        log_level: Logging level
        cors_origins: Comma-separated list of allowed CORS origins
    """

    # ============================================
    # CoinGecko Configuration
    # ============================================

    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="CoinGecko public API base URL"
    )

    coingecko_api_key: str = Field(
        default="",
        description="CoinGecko demo API key (optional)"
    )

    coingecko_priority: int = Field(
        default=1,
        description="Provider priority (lower is tried first)"
    )

    coingecko_rate_limit: int = Field(
        default=50,
        description="Requests per minute allowed on the free tier"
    )

    # ============================================
    # CoinMarketCap Configuration
    # ============================================

    coinmarketcap_base_url: str = Field(
        default="https://pro-api.coinmarketcap.com/v1",
        description="CoinMarketCap Pro API base URL"
    )

    coinmarketcap_api_key: str = Field(
        default="",
        description="CoinMarketCap API key (required for real responses)"
    )

    coinmarketcap_priority: int = Field(
        default=2,
        description="Provider priority (lower is tried first)"
    )

    coinmarketcap_rate_limit: int = Field(
        default=333,
        description="Requests per minute (10,000 per month on the basic plan)"
    )

    # ============================================
    # CryptoCompare Configuration
    # ============================================

    cryptocompare_base_url: str = Field(
        default="https://min-api.cryptocompare.com/data",
        description="CryptoCompare min-api base URL"
    )

    cryptocompare_api_key: str = Field(
        default="",
        description="CryptoCompare API key (optional)"
    )

    cryptocompare_priority: int = Field(
        default=3,
        description="Provider priority (lower is tried first)"
    )

    cryptocompare_rate_limit: int = Field(
        default=100,
        description="Requests per minute"
    )

    # ============================================
    # Fetch Resilience
    # ============================================

    provider_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP request timeout in seconds"
    )

    provider_backoff_seconds: float = Field(
        default=300.0,
        description="Time a failed provider is kept out of rotation (5 minutes)"
    )

    default_retry_after_seconds: float = Field(
        default=60.0,
        description="Rate-limit hold when a 429 response has no Retry-After header"
    )

    rate_limit_window_seconds: float = Field(
        default=60.0,
        description="Length of the per-provider request budget window"
    )

    max_retries_per_provider: int = Field(
        default=3,
        description="Attempts per provider before falling through to the next one"
    )

    retry_base_delay_seconds: float = Field(
        default=1.0,
        description="Retry backoff is retry_base_delay_seconds * 2**attempt"
    )

    fetch_deadline_seconds: Optional[float] = Field(
        default=None,
        description="Optional time budget for one logical fetch (None = unbounded)"
    )

    # ============================================
    # Caching Configuration
    # ============================================

    prices_cache_ttl: float = Field(
        default=30.0,
        description="TTL for coin market prices (seconds)"
    )

    trending_cache_ttl: float = Field(
        default=60.0,
        description="TTL for trending coins (seconds)"
    )

    global_cache_ttl: float = Field(
        default=120.0,
        description="TTL for global market statistics (seconds)"
    )

    coins_list_cache_ttl: float = Field(
        default=600.0,
        description="TTL for the full coin catalogue (seconds)"
    )

    coin_details_cache_ttl: float = Field(
        default=60.0,
        description="TTL for single-coin details (seconds)"
    )

    chart_cache_ttl: float = Field(
        default=300.0,
        description="TTL for historical chart data (seconds)"
    )

    synthetic_cache_ttl: float = Field(
        default=5.0,
        description="TTL for synthetic fallback results (0 = never cache them)"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Example:
            >>> settings.cors_origins_list
            ['http://localhost:3000', 'http://localhost:5173']
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_coingecko_headers(self) -> Dict[str, str]:
        """Headers for CoinGecko requests (demo key only when configured)."""
        headers = {"Accept": "application/json"}
        if self.coingecko_api_key:
            headers["x-cg-demo-api-key"] = self.coingecko_api_key
        return headers

    def get_coinmarketcap_headers(self) -> Dict[str, str]:
        """Headers for CoinMarketCap requests."""
        headers = {"Accept": "application/json"}
        if self.coinmarketcap_api_key:
            headers["X-CMC_PRO_API_KEY"] = self.coinmarketcap_api_key
        return headers

    def get_cryptocompare_headers(self) -> Dict[str, str]:
        """Headers for CryptoCompare requests."""
        headers = {"Accept": "application/json"}
        if self.cryptocompare_api_key:
            headers["Authorization"] = f"Apikey {self.cryptocompare_api_key}"
        return headers


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
# This ensures configuration is loaded once and reused
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Optional[Settings] = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global instance)

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    config = config or settings

    # Validate provider budgets
    for name in ("coingecko", "coinmarketcap", "cryptocompare"):
        budget = getattr(config, f"{name}_rate_limit")
        if budget < 1:
            raise ValueError(
                f"{name.upper()}_RATE_LIMIT must be at least 1 request per minute (got {budget})"
            )
        base_url = getattr(config, f"{name}_base_url")
        if not base_url.startswith("http"):
            raise ValueError(f"{name.upper()}_BASE_URL must be an http(s) URL (got '{base_url}')")

    if config.provider_timeout_seconds <= 0:
        raise ValueError("PROVIDER_TIMEOUT_SECONDS must be positive")

    if config.max_retries_per_provider < 1:
        raise ValueError("MAX_RETRIES_PER_PROVIDER must be at least 1")

    if config.rate_limit_window_seconds <= 0:
        raise ValueError("RATE_LIMIT_WINDOW_SECONDS must be positive")

    if config.fetch_deadline_seconds is not None and config.fetch_deadline_seconds <= 0:
        raise ValueError("FETCH_DEADLINE_SECONDS must be positive when set")

    # Validate cache TTLs
    for field_name in ("prices_cache_ttl", "trending_cache_ttl", "global_cache_ttl",
                       "coins_list_cache_ttl", "coin_details_cache_ttl", "chart_cache_ttl",
                       "synthetic_cache_ttl"):
        if getattr(config, field_name) < 0:
            raise ValueError(f"{field_name.upper()} cannot be negative")

    # Validate port number
    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    # Validate log level
    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    # Log successful validation
    logger.info("Configuration validated successfully")
    logger.info(
        f"Provider priorities: coingecko={config.coingecko_priority}, "
        f"coinmarketcap={config.coinmarketcap_priority}, "
        f"cryptocompare={config.cryptocompare_priority}"
    )
    logger.info(
        f"Cache TTLs: prices={config.prices_cache_ttl}s, trending={config.trending_cache_ttl}s, "
        f"global={config.global_cache_ttl}s, synthetic={config.synthetic_cache_ttl}s"
    )
    logger.info(f"Server: {config.app_host}:{config.app_port}")
    logger.info(f"Log level: {config.log_level.upper()}")
