"""
Availability Tracker - Per-Provider Circuit Breaker and Request Budget

Answers one question for the fetch orchestrator: "may this provider be
called right now?". A provider is refused while any of these hold:

    - it failed less than `backoff_seconds` ago (circuit open)
    - it answered 429 and its rate-limit hold has not expired
    - its request count reached the per-minute budget in the current window

State is created lazily per provider on its first event and never deleted;
staleness is resolved by comparing the clock to stored timestamps.

All mutations happen under one lock in short, non-awaiting sections, so the
tracker can be shared by concurrent asyncio tasks and by threads.

Usage:
    tracker = AvailabilityTracker(registry)

    if tracker.reserve_request("coingecko"):
        ...dispatch...
    tracker.record_success("coingecko")

    for provider in tracker.sorted_available_providers():
        ...
"""

import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from core.config import settings
from core.logging import get_logger
from core.provider_interface import ProviderInterface
from core.provider_registry import ProviderRegistry
from core.utils.time import Clock, epoch_to_iso, system_clock

logger = get_logger(__name__)


@dataclass
class AvailabilityState:
    """Mutable per-provider state. Timestamps are epoch seconds."""

    failed_at: Optional[float] = None
    last_error: Optional[str] = None
    rate_limit_reset_at: Optional[float] = None
    request_count: int = 0
    window_reset_at: Optional[float] = None


class AvailabilityTracker:
    """
    Circuit-breaker and rate-limit bookkeeping shared by all fetches.

    Attributes:
        registry: Provider registry (source of priorities and budgets)
        backoff_seconds: How long a failed provider stays out of rotation
        default_retry_after_seconds: Hold applied to a 429 without a usable hint
        window_seconds: Length of the request-budget window

    Example:
        >>> tracker = AvailabilityTracker(registry, clock=lambda: 1000.0)
        >>> tracker.record_failure("coingecko")
        >>> tracker.is_available("coingecko")
        False
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        backoff_seconds: Optional[float] = None,
        default_retry_after_seconds: Optional[float] = None,
        window_seconds: Optional[float] = None,
        clock: Clock = system_clock,
    ):
        self.registry = registry
        self.backoff_seconds = (
            settings.provider_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.default_retry_after_seconds = (
            settings.default_retry_after_seconds
            if default_retry_after_seconds is None else default_retry_after_seconds
        )
        self.window_seconds = (
            settings.rate_limit_window_seconds if window_seconds is None else window_seconds
        )
        self.clock = clock

        self._states: Dict[str, AvailabilityState] = {}
        self._lock = threading.Lock()

    # ============================================
    # Recording Outcomes
    # ============================================

    def record_failure(self, provider: str, error: Optional[str] = None) -> None:
        """Open the circuit: refuse the provider for `backoff_seconds`."""
        now = self.clock()
        with self._lock:
            state = self._state(provider)
            state.failed_at = now
            state.last_error = error

        logger.warning(
            f"{provider} marked as failed, backing off for {self.backoff_seconds:.0f}s"
            + (f": {error}" if error else "")
        )

    def record_rate_limited(self, provider: str, retry_after: Optional[float] = None) -> None:
        """Hold the provider until `now + retry_after` seconds."""
        if retry_after is None or retry_after <= 0:
            retry_after = self.default_retry_after_seconds

        now = self.clock()
        with self._lock:
            self._state(provider).rate_limit_reset_at = now + retry_after

        logger.warning(f"{provider} rate limited, holding for {retry_after:.0f}s")

    def record_success(self, provider: str) -> None:
        """Close the circuit. A provider that succeeds is trusted again at once."""
        with self._lock:
            state = self._state(provider)
            state.failed_at = None
            state.last_error = None

    def increment_request_count(self, provider: str) -> None:
        """Count one dispatched request, rolling the window when it elapsed."""
        now = self.clock()
        with self._lock:
            self._increment(self._state(provider), now)

    def reserve_request(self, provider: str) -> bool:
        """
        Check availability and count the request in one step.

        Returns:
            True if the request may be dispatched (and was counted),
            False if the provider is currently unavailable.
        """
        now = self.clock()
        with self._lock:
            state = self._state(provider)
            if not self._is_available(provider, state, now):
                return False
            self._increment(state, now)
            return True

    # ============================================
    # Queries
    # ============================================

    def is_available(self, provider: str) -> bool:
        now = self.clock()
        with self._lock:
            return self._is_available(provider, self._states.get(provider), now)

    def backoff_until(self, provider: str) -> Optional[float]:
        """Epoch seconds when the failure backoff ends, or None."""
        with self._lock:
            state = self._states.get(provider)
            if state is None or state.failed_at is None:
                return None
            return state.failed_at + self.backoff_seconds

    def sorted_available_providers(self) -> List[ProviderInterface]:
        """
        Available providers sorted by ascending priority.

        The sort is stable, so equal priorities keep registry declaration order.
        """
        now = self.clock()
        with self._lock:
            available = [
                p for p in self.registry.providers
                if self._is_available(p.name, self._states.get(p.name), now)
            ]
        return sorted(available, key=lambda p: p.priority)

    def get_state(self, provider: str) -> AvailabilityState:
        """Snapshot of a provider's state (a copy; mutating it has no effect)."""
        with self._lock:
            state = self._states.get(provider)
            return replace(state) if state is not None else AvailabilityState()

    def health_report(self) -> Dict[str, Dict[str, Any]]:
        """
        Per-provider availability summary for health endpoints.

        Example:
            >>> tracker.health_report()["coingecko"]
            {'available': True, 'priority': 1, 'request_count': 4,
             'rate_limit_per_minute': 50, 'last_failure': None, ...}
        """
        now = self.clock()
        report: Dict[str, Dict[str, Any]] = {}

        with self._lock:
            for provider in self.registry.providers:
                state = self._states.get(provider.name) or AvailabilityState()
                window_open = state.window_reset_at is not None and now < state.window_reset_at
                backoff_until = (
                    state.failed_at + self.backoff_seconds if state.failed_at is not None else None
                )

                report[provider.name] = {
                    "available": self._is_available(provider.name, state, now),
                    "priority": provider.priority,
                    "request_count": state.request_count if window_open else 0,
                    "rate_limit_per_minute": provider.rate_limit_per_minute,
                    "last_failure": epoch_to_iso(state.failed_at),
                    "last_error": state.last_error,
                    "backoff_until": epoch_to_iso(backoff_until),
                    "rate_limited_until": epoch_to_iso(state.rate_limit_reset_at),
                }

        return report

    def reset(self, provider: Optional[str] = None) -> None:
        """Forget tracked state for one provider, or for all of them."""
        with self._lock:
            if provider is None:
                self._states.clear()
            else:
                self._states.pop(provider, None)

    # ============================================
    # Internal Helpers (caller holds the lock)
    # ============================================

    def _state(self, provider: str) -> AvailabilityState:
        state = self._states.get(provider)
        if state is None:
            state = AvailabilityState()
            self._states[provider] = state
        return state

    def _budget(self, provider: str) -> Optional[int]:
        if not self.registry.has_provider(provider):
            return None
        return self.registry.get_provider(provider).rate_limit_per_minute

    def _increment(self, state: AvailabilityState, now: float) -> None:
        if state.window_reset_at is None or now >= state.window_reset_at:
            state.request_count = 1
            state.window_reset_at = now + self.window_seconds
        else:
            state.request_count += 1

    def _is_available(self, provider: str, state: Optional[AvailabilityState], now: float) -> bool:
        if state is None:
            return True

        if state.failed_at is not None and now < state.failed_at + self.backoff_seconds:
            return False

        if state.rate_limit_reset_at is not None and now < state.rate_limit_reset_at:
            return False

        budget = self._budget(provider)
        if (
            budget is not None
            and state.window_reset_at is not None
            and now < state.window_reset_at
            and state.request_count >= budget
        ):
            return False

        return True

    def __repr__(self) -> str:
        return f"<AvailabilityTracker(providers={self.registry.list_providers()})>"
