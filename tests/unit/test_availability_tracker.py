"""
Unit Tests for the Availability Tracker

These tests verify that the tracker:
- Keeps a failed provider out of rotation for exactly the backoff window
- Honors rate-limit holds from 429 responses
- Enforces the per-window request budget
- Orders available providers by priority, ties by declaration order
- Stays consistent under concurrent reservations

Run with:
    pytest tests/unit/test_availability_tracker.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from core.availability import AvailabilityState, AvailabilityTracker
from core.provider_registry import ProviderRegistry


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def tracker(registry, clock):
    return AvailabilityTracker(
        registry,
        backoff_seconds=300.0,
        default_retry_after_seconds=60.0,
        window_seconds=60.0,
        clock=clock,
    )


# ============================================
# Failure Backoff
# ============================================

class TestFailureBackoff:

    def test_unknown_state_is_available(self, tracker):
        assert tracker.is_available("p1") is True

    def test_unavailable_throughout_backoff_window(self, tracker, clock):
        """Refused during [T, T+backoff) and trusted again at T+backoff"""
        start = clock.now
        tracker.record_failure("p1", "HTTP 500")

        assert tracker.is_available("p1") is False
        clock.now = start + 150
        assert tracker.is_available("p1") is False
        clock.now = start + 299.999
        assert tracker.is_available("p1") is False
        clock.now = start + 300
        assert tracker.is_available("p1") is True

    def test_backoff_until_is_failure_plus_backoff(self, tracker, clock):
        start = clock.now
        assert tracker.backoff_until("p1") is None
        tracker.record_failure("p1")
        assert tracker.backoff_until("p1") == start + 300.0

    def test_new_failure_restarts_window(self, tracker, clock):
        tracker.record_failure("p1")
        clock.advance(299)
        tracker.record_failure("p1")
        clock.advance(2)
        assert tracker.is_available("p1") is False

    def test_success_clears_failure_immediately(self, tracker):
        tracker.record_failure("p1", "boom")
        tracker.record_success("p1")

        assert tracker.is_available("p1") is True
        assert tracker.backoff_until("p1") is None
        assert tracker.get_state("p1").last_error is None

    def test_failure_of_one_provider_does_not_affect_others(self, tracker):
        tracker.record_failure("p1")
        assert tracker.is_available("p2") is True


# ============================================
# Rate-Limit Holds
# ============================================

class TestRateLimited:

    def test_hold_for_retry_after(self, tracker, clock):
        start = clock.now
        tracker.record_rate_limited("p2", 30)

        clock.now = start + 29.9
        assert tracker.is_available("p2") is False
        clock.now = start + 30
        assert tracker.is_available("p2") is True

    @pytest.mark.parametrize("retry_after", [None, 0, -5])
    def test_missing_hint_uses_default(self, tracker, clock, retry_after):
        start = clock.now
        tracker.record_rate_limited("p2", retry_after)
        assert tracker.get_state("p2").rate_limit_reset_at == start + 60.0

    def test_success_does_not_clear_rate_limit_hold(self, tracker):
        tracker.record_rate_limited("p2", 30)
        tracker.record_success("p2")
        assert tracker.is_available("p2") is False


# ============================================
# Request Budget
# ============================================

class TestRequestBudget:

    @pytest.fixture
    def budget_tracker(self, make_provider, clock):
        registry = ProviderRegistry([make_provider("small", priority=1, rate_limit=3)])
        return AvailabilityTracker(registry, window_seconds=60.0, clock=clock)

    def test_budget_reached_flips_availability(self, budget_tracker):
        for _ in range(3):
            assert budget_tracker.is_available("small") is True
            budget_tracker.increment_request_count("small")

        assert budget_tracker.is_available("small") is False

    def test_window_reset_restores_availability(self, budget_tracker, clock):
        start = clock.now
        for _ in range(3):
            budget_tracker.increment_request_count("small")

        clock.now = start + 59.9
        assert budget_tracker.is_available("small") is False
        clock.now = start + 60
        assert budget_tracker.is_available("small") is True

        budget_tracker.increment_request_count("small")
        assert budget_tracker.get_state("small").request_count == 1

    def test_reserve_request_never_exceeds_budget(self, budget_tracker):
        results = [budget_tracker.reserve_request("small") for _ in range(5)]

        assert results == [True, True, True, False, False]
        assert budget_tracker.get_state("small").request_count == 3

    def test_reserve_refused_during_backoff(self, budget_tracker):
        budget_tracker.record_failure("small")
        assert budget_tracker.reserve_request("small") is False
        assert budget_tracker.get_state("small").request_count == 0

    def test_concurrent_reservations_respect_budget(self, make_provider, clock):
        """No lost updates: exactly `budget` reservations succeed"""
        registry = ProviderRegistry([make_provider("busy", priority=1, rate_limit=50)])
        tracker = AvailabilityTracker(registry, window_seconds=60.0, clock=clock)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: tracker.reserve_request("busy"), range(200)))

        assert results.count(True) == 50
        assert tracker.get_state("busy").request_count == 50

    def test_unregistered_provider_has_no_budget(self, tracker):
        for _ in range(1000):
            tracker.increment_request_count("elsewhere")
        assert tracker.is_available("elsewhere") is True


# ============================================
# Ordering
# ============================================

class TestSortedAvailableProviders:

    def test_sorted_by_priority(self, tracker):
        assert [p.name for p in tracker.sorted_available_providers()] == ["p1", "p2", "p3"]

    def test_unavailable_providers_filtered(self, tracker):
        tracker.record_failure("p1")
        tracker.record_rate_limited("p3", 10)
        assert [p.name for p in tracker.sorted_available_providers()] == ["p2"]

    def test_ties_keep_declaration_order(self, make_provider, clock):
        registry = ProviderRegistry([
            make_provider("late", priority=2),
            make_provider("b", priority=1),
            make_provider("a", priority=1),
        ])
        tracker = AvailabilityTracker(registry, clock=clock)

        assert [p.name for p in tracker.sorted_available_providers()] == ["b", "a", "late"]


# ============================================
# Reporting
# ============================================

class TestHealthReport:

    def test_report_covers_every_provider(self, tracker):
        report = tracker.health_report()
        assert list(report.keys()) == ["p1", "p2", "p3"]
        assert report["p1"]["available"] is True
        assert report["p1"]["priority"] == 1
        assert report["p1"]["last_failure"] is None

    def test_report_shows_backoff_as_iso(self, tracker, clock):
        clock.now = 1704110400.0
        tracker.record_failure("p2", "HTTP 503")

        entry = tracker.health_report()["p2"]
        assert entry["available"] is False
        assert entry["last_failure"] == "2024-01-01T12:00:00+00:00"
        assert entry["backoff_until"] == "2024-01-01T12:05:00+00:00"
        assert entry["last_error"] == "HTTP 503"

    def test_request_count_reported_for_open_window(self, tracker, clock):
        tracker.increment_request_count("p1")
        tracker.increment_request_count("p1")
        assert tracker.health_report()["p1"]["request_count"] == 2

        clock.advance(61)
        assert tracker.health_report()["p1"]["request_count"] == 0


class TestStateManagement:

    def test_get_state_returns_copy(self, tracker):
        tracker.record_failure("p1")
        state = tracker.get_state("p1")
        state.failed_at = None
        assert tracker.is_available("p1") is False

    def test_get_state_for_unknown_provider(self, tracker):
        assert tracker.get_state("nobody") == AvailabilityState()

    def test_reset_one_provider(self, tracker):
        tracker.record_failure("p1")
        tracker.record_failure("p2")
        tracker.reset("p1")
        assert tracker.is_available("p1") is True
        assert tracker.is_available("p2") is False

    def test_reset_all(self, tracker):
        tracker.record_failure("p1")
        tracker.record_rate_limited("p2", 30)
        tracker.reset()
        assert all(tracker.is_available(name) for name in ("p1", "p2", "p3"))
