"""
Fetch Orchestrator - Priority Fallback Across Market Data Providers

This module tries providers one at a time in priority order and always
returns a usable FetchResult:

    1. Ask the availability tracker for available providers (priority order)
    2. For each candidate with a transformer for the endpoint:
         Success      -> record_success, return the data
         RateLimited  -> record_rate_limited, try the next provider
         Failure      -> record_failure, remember the error, try the next provider
         Unavailable  -> skip (budget used up between selection and dispatch)
    3. Nothing worked -> synthetic placeholder tagged provider="synthetic"

Per provider, failed attempts (network errors, timeouts, HTTP >= 400, bad
JSON, payloads the transformer rejects) are retried with exponential
backoff. A 429 is never retried against the same provider; it moves on
immediately.

An optional deadline bounds a whole logical call: in-flight requests are cut
off at the remaining time, and no further attempts start once it expires.

Usage:
    async with FetchOrchestrator() as orchestrator:
        result = await orchestrator.fetch_with_fallback(
            "coins/markets",
            params={"vs_currency": "usd", "per_page": 100, "page": 1},
        )
        print(result.provider, len(result.data))
"""

import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp

from core.availability import AvailabilityTracker
from core.config import Settings, settings as default_settings
from core.logging import get_logger, log_api_request, log_api_response
from core.outcomes import (
    Failure,
    HttpResponse,
    ProviderOutcome,
    RateLimited,
    Success,
    Unavailable,
)
from core.provider_interface import ProviderInterface, Transformer
from core.provider_registry import ProviderRegistry
from core.schemas import FetchResult, SYNTHETIC_PROVIDER
from services.synthetic import build_synthetic_payload

logger = get_logger(__name__)

# Marker for "deadline not given": use fetch_deadline_seconds from settings
DEFAULT_DEADLINE = object()


class FetchOrchestrator:
    """
    Sequential, priority-ordered provider fallback with retry and backoff.

    Attributes:
        registry: Provider registry
        tracker: Shared availability tracker
        config: Settings (retry counts, backoff base, default deadline)
        session: aiohttp ClientSession (created lazily when not supplied)

    Example:
        >>> orchestrator = FetchOrchestrator()
        >>> result = await orchestrator.fetch_with_fallback("global")
        >>> result.provider
        'coingecko'
        >>> await orchestrator.shutdown()
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        tracker: Optional[AvailabilityTracker] = None,
        config: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config if config is not None else default_settings

        # ProviderRegistry defines __len__, so compare against None explicitly
        if registry is None:
            registry = tracker.registry if tracker is not None else ProviderRegistry()
        self.registry = registry

        if tracker is None:
            tracker = AvailabilityTracker(
                self.registry,
                backoff_seconds=self.config.provider_backoff_seconds,
                default_retry_after_seconds=self.config.default_retry_after_seconds,
                window_seconds=self.config.rate_limit_window_seconds,
            )
        self.tracker = tracker
        self.session = session
        self._owns_session = session is None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def initialize(self) -> None:
        """Create the HTTP session up front (optional; it is also created lazily)."""
        await self._get_session()

    async def shutdown(self) -> None:
        """Close the HTTP session if this orchestrator created it."""
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
            logger.debug("FetchOrchestrator session closed")
        if self._owns_session:
            self.session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
            logger.debug("FetchOrchestrator session created")
        return self.session

    # ============================================
    # Fallback Across Providers
    # ============================================

    async def fetch_with_fallback(
        self,
        endpoint: str,
        transformers: Optional[Dict[str, Transformer]] = None,
        params: Optional[Dict[str, Any]] = None,
        max_retries: Optional[int] = None,
        deadline: Any = DEFAULT_DEADLINE,
    ) -> FetchResult:
        """
        Fetch a logical endpoint from the best available provider.

        Args:
            endpoint: Logical endpoint ("coins/markets", "global", ...)
            transformers: provider name -> transformer. Defaults to every
                          registered provider that supports the endpoint.
            params: Logical parameter bag
            max_retries: Attempts per provider (default from settings)
            deadline: Seconds allowed for the whole call. Omitted means the
                      settings value; None means unbounded.

        Returns:
            FetchResult with success=True. `provider` names the source, or is
            "synthetic" with `error` holding the last provider error.
        """
        if transformers is None:
            transformers = self.registry.get_transformers(endpoint)
        if max_retries is None:
            max_retries = self.config.max_retries_per_provider
        if deadline is DEFAULT_DEADLINE:
            deadline = self.config.fetch_deadline_seconds

        params = dict(params or {})
        expires_at = self._now() + deadline if deadline is not None else None

        candidates = [
            p for p in self.tracker.sorted_available_providers()
            if p.name in transformers
        ]
        if not candidates:
            logger.warning(f"No available providers for {endpoint}")

        last_error: Optional[str] = None
        retry_after: Optional[float] = None

        for provider in candidates:
            remaining = self._remaining(expires_at)
            if remaining is not None and remaining <= 0:
                last_error = f"Deadline of {deadline}s exceeded before trying {provider.name}"
                logger.warning(last_error)
                break

            logger.info(f"Trying {provider.name} for {endpoint}")
            outcome = await self.fetch_from_provider(
                provider, endpoint, transformers[provider.name], params, max_retries, expires_at
            )

            if isinstance(outcome, Success):
                self.tracker.record_success(provider.name)
                logger.info(f"{provider.name} succeeded for {endpoint}")
                return FetchResult(success=True, data=outcome.data, provider=provider.name)

            if isinstance(outcome, RateLimited):
                self.tracker.record_rate_limited(provider.name, outcome.retry_after)
                last_error = f"{provider.name}: rate limited"
                retry_after = (
                    outcome.retry_after if retry_after is None else min(retry_after, outcome.retry_after)
                )
                logger.info(f"{provider.name} rate limited, trying next provider")

            elif isinstance(outcome, Failure):
                last_error = f"{provider.name}: {outcome.error}"
                if not outcome.deadline_exceeded:
                    self.tracker.record_failure(provider.name, outcome.error)
                logger.warning(f"{provider.name} failed for {endpoint}: {outcome.error}")

            elif isinstance(outcome, Unavailable):
                logger.info(f"{provider.name} skipped for {endpoint}: {outcome.reason}")

        error = f"All providers failed. Last error: {last_error or 'No providers available'}"
        logger.warning(f"Using synthetic data for {endpoint}. {error}")
        return FetchResult(
            success=True,
            data=build_synthetic_payload(endpoint, params),
            error=error,
            provider=SYNTHETIC_PROVIDER,
            retry_after=retry_after,
        )

    # ============================================
    # Single Provider With Retry Logic
    # ============================================

    async def fetch_from_provider(
        self,
        provider: ProviderInterface,
        endpoint: str,
        transformer: Transformer,
        params: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
        expires_at: Optional[float] = None,
    ) -> ProviderOutcome:
        """
        Fetch one endpoint from one provider, retrying transient failures.

        Retry Policy:
            - 429: returned at once as RateLimited (no retry consumed)
            - Other HTTP >= 400, network errors, timeouts, bad JSON and
              payloads the transformer cannot read: retried
            - Delay before attempt n+1: retry_base_delay_seconds * 2**n
              (n starting at 1, so 2s then 4s with the default base)

        Returns:
            Success, RateLimited, Failure or Unavailable. Never raises for
            provider errors; task cancellation propagates.
        """
        params = params or {}
        url, query = provider.build_url(endpoint, params)
        last_error = "no attempt made"

        for attempt in range(1, max_retries + 1):
            remaining = self._remaining(expires_at)
            if remaining is not None and remaining <= 0:
                return self._deadline_failure(provider, attempt - 1, last_error)

            if not self.tracker.reserve_request(provider.name):
                if attempt == 1:
                    return Unavailable(provider.name, "request budget exhausted or provider held")
                return Failure(provider.name, last_error)

            try:
                response = await self._dispatch(provider, url, query, remaining)

            except asyncio.TimeoutError:
                remaining = self._remaining(expires_at)
                if remaining is not None and remaining <= 0:
                    return self._deadline_failure(provider, attempt, "request cut off by deadline")
                last_error = f"Request timed out after {provider.timeout_seconds:.0f}s"

            except (aiohttp.ClientError, ValueError) as e:
                last_error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__

            else:
                if response.status == 429:
                    retry_after = provider.parse_retry_after(
                        response.headers,
                        self.tracker.default_retry_after_seconds,
                        self.tracker.clock(),
                    )
                    logger.warning(
                        f"Rate limited (HTTP 429) by {provider.name} on {endpoint}, retry after {retry_after:.0f}s"
                    )
                    return RateLimited(provider.name, retry_after)

                if response.status >= 400:
                    last_error = f"HTTP {response.status}"
                    if response.reason:
                        last_error += f": {response.reason}"
                else:
                    try:
                        data = transformer(response.payload, params)
                    except Exception as e:
                        # Unexpected payload shape is a failed attempt, not a crash
                        last_error = f"Transform failed: {type(e).__name__}: {e}"
                    else:
                        logger.debug(f"{provider.name} {endpoint} - Success (attempt {attempt})")
                        return Success(provider.name, data)

            logger.warning(
                f"{provider.name} {endpoint} failed: {last_error} (attempt {attempt}/{max_retries})"
            )

            if attempt < max_retries:
                delay = self.config.retry_base_delay_seconds * 2 ** attempt
                remaining = self._remaining(expires_at)
                if remaining is not None and remaining <= delay:
                    # No time left for another attempt after the backoff
                    await self._sleep(max(remaining, 0.0))
                    return self._deadline_failure(provider, attempt, last_error)
                await self._sleep(delay)

        return Failure(provider.name, last_error)

    # ============================================
    # HTTP Transport
    # ============================================

    async def _dispatch(
        self,
        provider: ProviderInterface,
        url: str,
        query: Dict[str, str],
        remaining: Optional[float],
    ) -> HttpResponse:
        """Send one request, bounded by the remaining deadline when there is one."""
        if remaining is None:
            return await self._request(provider, url, query)
        return await asyncio.wait_for(self._request(provider, url, query), timeout=remaining)

    async def _request(self, provider: ProviderInterface, url: str, query: Dict[str, str]) -> HttpResponse:
        """
        Perform one GET with the provider's headers and timeout.

        The body is decoded as JSON only for non-error statuses.

        Raises:
            aiohttp.ClientError: Connection or protocol errors
            asyncio.TimeoutError: Provider timeout
            ValueError: Body is not valid JSON
        """
        session = await self._get_session()
        log_api_request(provider.name, url, query)
        started = time.monotonic()

        async with session.get(
            url,
            params=query,
            headers=provider.headers,
            timeout=aiohttp.ClientTimeout(total=provider.timeout_seconds),
        ) as resp:
            payload = None
            if resp.status < 400:
                payload = await resp.json(content_type=None)

            log_api_response(provider.name, url, resp.status, time.monotonic() - started)
            return HttpResponse(
                status=resp.status,
                headers={k.lower(): v for k, v in resp.headers.items()},
                payload=payload,
                reason=resp.reason,
            )

    # ============================================
    # Health and Helpers
    # ============================================

    def check_provider_health(self) -> Dict[str, Dict[str, Any]]:
        """Availability report for every registered provider."""
        return self.tracker.health_report()

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    @staticmethod
    def _now() -> float:
        return time.monotonic()

    def _remaining(self, expires_at: Optional[float]) -> Optional[float]:
        if expires_at is None:
            return None
        return expires_at - self._now()

    @staticmethod
    def _deadline_failure(provider: ProviderInterface, attempts: int, last_error: str) -> Failure:
        return Failure(
            provider.name,
            f"Deadline exceeded after {attempts} attempt(s); last error: {last_error}",
            deadline_exceeded=True,
        )

    def __repr__(self) -> str:
        return f"<FetchOrchestrator(providers={self.registry.list_providers()})>"
