"""
Unit Tests for the Fetch Orchestrator

These tests verify that the orchestrator:
- Tries providers in priority order and stops at the first success
- Retries transient failures with exponential backoff
- Moves on immediately after a 429 and holds the provider
- Falls back to synthetic data when every provider fails
- Respects the overall deadline and propagates cancellation

The HTTP transport (_request) and the backoff sleep (_sleep) are replaced, so
no test touches the network or waits on real backoff delays.

Run with:
    pytest tests/unit/test_fetch_orchestrator.py -v
"""

import asyncio

import aiohttp
import pytest

from core.availability import AvailabilityTracker
from core.config import Settings
from core.outcomes import Failure, RateLimited, Success, Unavailable
from core.provider_registry import ProviderRegistry
from core.schemas import CoinMarket, SYNTHETIC_PROVIDER
from services.fetch_orchestrator import FetchOrchestrator


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def config():
    return Settings(_env_file=None, retry_base_delay_seconds=1.0, max_retries_per_provider=3)


@pytest.fixture
def tracker(registry, clock):
    return AvailabilityTracker(
        registry,
        backoff_seconds=300.0,
        default_retry_after_seconds=60.0,
        window_seconds=60.0,
        clock=clock,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(registry, tracker, config, sleeps, monkeypatch):
    orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(orch, "_sleep", fake_sleep)
    return orch


def install(orchestrator, monkeypatch, transport):
    monkeypatch.setattr(orchestrator, "_request", transport)
    return transport


# ============================================
# Priority Fallback
# ============================================

class TestPriorityFallback:

    @pytest.mark.asyncio
    async def test_first_provider_success(self, orchestrator, monkeypatch, responses):
        transport = install(orchestrator, monkeypatch, responses.Transport({"p1": [responses.ok({"v": 1})]}))

        result = await orchestrator.fetch_with_fallback("global")

        assert result.success is True
        assert result.provider == "p1"
        assert result.data == {"v": 1}
        assert result.error is None
        assert transport.calls == ["p1"]

    @pytest.mark.asyncio
    async def test_all_rate_limited_yields_synthetic(self, orchestrator, monkeypatch, responses, tracker):
        """Every provider answers 429: one request each, all held, synthetic rows"""
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(429, {"retry-after": "30"})],
            "p2": [responses.status(429, {"retry-after": "10"})],
            "p3": [responses.status(429, {"retry-after": "20"})],
        }))

        result = await orchestrator.fetch_with_fallback("coins/markets", params={"per_page": 25, "page": 1})

        assert result.success is True
        assert result.provider == SYNTHETIC_PROVIDER
        assert result.is_synthetic
        assert len(result.data) == 25
        assert all(isinstance(row, CoinMarket) for row in result.data)
        assert result.error.startswith("All providers failed. Last error:")
        assert result.error.endswith("p3: rate limited")
        assert result.retry_after == 10.0
        assert transport.calls == ["p1", "p2", "p3"]
        assert not any(tracker.is_available(name) for name in ("p1", "p2", "p3"))

    @pytest.mark.asyncio
    async def test_rate_limit_moves_on_without_retrying(self, orchestrator, monkeypatch, responses, tracker, clock, sleeps):
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(429, {"retry-after": "15"})],
            "p2": [responses.ok([1, 2])],
        }))

        result = await orchestrator.fetch_with_fallback("coins/list")

        assert result.provider == "p2"
        assert transport.calls == ["p1", "p2"]
        assert sleeps == []
        assert tracker.get_state("p1").rate_limit_reset_at == clock.now + 15.0
        # A 429 is a hold, not a failure
        assert tracker.get_state("p1").failed_at is None

    @pytest.mark.asyncio
    async def test_failed_provider_skipped_until_backoff_expires(self, orchestrator, monkeypatch, responses, tracker):
        tracker.record_failure("p1", "earlier outage")
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p2": [responses.status(500)] * 3,
            "p3": [responses.ok({"ok": True})],
        }))

        result = await orchestrator.fetch_with_fallback("global")

        assert result.provider == "p3"
        assert transport.calls == ["p2", "p2", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_no_candidates_returns_synthetic_without_requests(self, orchestrator, monkeypatch, responses, tracker):
        for name in ("p1", "p2", "p3"):
            tracker.record_failure(name)
        transport = install(orchestrator, monkeypatch, responses.Transport({}))

        result = await orchestrator.fetch_with_fallback("search/trending")

        assert result.provider == SYNTHETIC_PROVIDER
        assert result.error == "All providers failed. Last error: No providers available"
        assert len(result.data.coins) == 10
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_transformer_subset_limits_candidates(self, orchestrator, monkeypatch, responses):
        transport = install(orchestrator, monkeypatch, responses.Transport({"p3": [responses.ok({"n": 3})]}))

        result = await orchestrator.fetch_with_fallback(
            "global", transformers={"p3": lambda raw, params: raw["n"] * 2}
        )

        assert result.provider == "p3"
        assert result.data == 6
        assert transport.calls == ["p3"]

    @pytest.mark.asyncio
    async def test_provider_without_transformer_is_skipped(self, make_provider, clock, config, monkeypatch, responses):
        registry = ProviderRegistry([
            make_provider("listless", priority=1, transformers={"global": lambda raw, params: raw}),
            make_provider("full", priority=2),
        ])
        orch = FetchOrchestrator(registry=registry, tracker=AvailabilityTracker(registry, clock=clock), config=config)
        transport = install(orch, monkeypatch, responses.Transport({"full": [responses.ok(["btc"])]}))

        result = await orch.fetch_with_fallback("coins/list")

        assert result.provider == "full"
        assert transport.calls == ["full"]

    @pytest.mark.asyncio
    async def test_params_reach_provider_query(self, orchestrator, monkeypatch, responses):
        transport = install(orchestrator, monkeypatch, responses.Transport({"p1": [responses.ok([])]}))

        await orchestrator.fetch_with_fallback(
            "coins/markets", params={"vs_currency": "usd", "sparkline": True, "ignored": None}
        )

        assert transport.queries == [{"vs_currency": "usd", "sparkline": "true"}]


# ============================================
# Retry Logic
# ============================================

class TestRetries:

    @pytest.mark.asyncio
    async def test_recovers_on_third_attempt(self, orchestrator, monkeypatch, responses, tracker, sleeps):
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(500), responses.status(500), responses.ok({"ok": 1})],
        }))

        result = await orchestrator.fetch_with_fallback("global")

        assert result.provider == "p1"
        assert transport.calls == ["p1", "p1", "p1"]
        assert sleeps == [2.0, 4.0]
        assert tracker.backoff_until("p1") is None
        assert tracker.get_state("p1").request_count == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_fall_through(self, orchestrator, monkeypatch, responses, tracker, sleeps):
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(500, reason="Internal Server Error")] * 3,
            "p2": [responses.ok({"from": "p2"})],
        }))

        result = await orchestrator.fetch_with_fallback("global")

        assert result.provider == "p2"
        assert transport.calls == ["p1", "p1", "p1", "p2"]
        assert sleeps == [2.0, 4.0]
        assert tracker.is_available("p1") is False
        assert tracker.get_state("p1").last_error == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        aiohttp.ClientConnectionError("connection reset"),
        asyncio.TimeoutError(),
        ValueError("Expecting value: line 1 column 1"),
    ])
    async def test_transport_errors_are_retried(self, orchestrator, monkeypatch, responses, error):
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [error, responses.ok({"ok": True})],
        }))

        result = await orchestrator.fetch_with_fallback("global")

        assert result.provider == "p1"
        assert transport.calls == ["p1", "p1"]

    @pytest.mark.asyncio
    async def test_last_error_reported_in_synthetic_envelope(self, orchestrator, monkeypatch, responses):
        install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(503)] * 3,
            "p2": [responses.status(502)] * 3,
            "p3": [aiohttp.ClientConnectionError("refused")] * 3,
        }))

        result = await orchestrator.fetch_with_fallback("global", params={})

        assert result.provider == SYNTHETIC_PROVIDER
        assert result.error == "All providers failed. Last error: p3: ClientConnectionError: refused"
        assert result.retry_after is None

    @pytest.mark.asyncio
    async def test_max_retries_override(self, orchestrator, monkeypatch, responses, sleeps):
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(500)],
            "p2": [responses.ok({})],
        }))

        await orchestrator.fetch_with_fallback("global", max_retries=1)

        assert transport.calls == ["p1", "p2"]
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_transformer_error_is_retried_then_synthetic(self, make_provider, clock, config, monkeypatch, responses, sleeps):
        """A payload the transformer cannot read counts as a failed attempt"""
        def strict(raw, params):
            return raw["data"]

        registry = ProviderRegistry([
            make_provider(name, priority=i, transformers={"global": strict})
            for i, name in enumerate(("p1", "p2", "p3"), start=1)
        ])
        tracker = AvailabilityTracker(registry, clock=clock)
        orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr(orch, "_sleep", fake_sleep)
        shape = {"unexpected": "shape"}
        transport = install(orch, monkeypatch, responses.Transport({
            name: [responses.ok(shape)] * 3 for name in ("p1", "p2", "p3")
        }))

        result = await orch.fetch_with_fallback("global")

        assert result.provider == SYNTHETIC_PROVIDER
        assert transport.calls == ["p1"] * 3 + ["p2"] * 3 + ["p3"] * 3
        assert result.error == "All providers failed. Last error: p3: Transform failed: KeyError: 'data'"
        assert tracker.is_available("p1") is False

    @pytest.mark.asyncio
    async def test_transformer_error_then_good_payload_succeeds(self, orchestrator, monkeypatch, responses):
        transport = install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.ok({"unexpected": "shape"}), responses.ok({"data": 7})],
        }))

        result = await orchestrator.fetch_with_fallback("global", transformers={"p1": lambda raw, params: raw["data"]})

        assert result.provider == "p1"
        assert result.data == 7
        assert transport.calls == ["p1", "p1"]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, orchestrator, monkeypatch, responses, tracker):
        install(orchestrator, monkeypatch, responses.Transport({"p1": [asyncio.CancelledError()]}))

        with pytest.raises(asyncio.CancelledError):
            await orchestrator.fetch_with_fallback("global")

        assert tracker.get_state("p1").failed_at is None


# ============================================
# Single Provider Outcomes
# ============================================

class TestFetchFromProvider:

    @pytest.mark.asyncio
    async def test_success_outcome_applies_transformer(self, orchestrator, registry, monkeypatch, responses):
        install(orchestrator, monkeypatch, responses.Transport({"p1": [responses.ok({"x": 2})]}))

        outcome = await orchestrator.fetch_from_provider(
            registry.get_provider("p1"), "global", lambda raw, params: raw["x"] + params["add"], {"add": 1}
        )

        assert outcome == Success("p1", 3)

    @pytest.mark.asyncio
    async def test_rate_limited_outcome_uses_default_hint(self, orchestrator, registry, monkeypatch, responses):
        install(orchestrator, monkeypatch, responses.Transport({"p2": [responses.status(429)]}))

        outcome = await orchestrator.fetch_from_provider(
            registry.get_provider("p2"), "global", lambda raw, params: raw
        )

        assert outcome == RateLimited("p2", 60.0)

    @pytest.mark.asyncio
    async def test_exhausted_budget_is_unavailable(self, make_provider, clock, config, monkeypatch, responses):
        registry = ProviderRegistry([make_provider("tiny", priority=1, rate_limit=1)])
        tracker = AvailabilityTracker(registry, clock=clock)
        orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)
        transport = install(orch, monkeypatch, responses.Transport({}))
        tracker.increment_request_count("tiny")

        outcome = await orch.fetch_from_provider(registry.get_provider("tiny"), "global", lambda raw, params: raw)

        assert isinstance(outcome, Unavailable)
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_rate_limited_request_counts_toward_budget(self, orchestrator, monkeypatch, responses, tracker):
        install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(429)],
            "p2": [responses.ok({})],
        }))

        await orchestrator.fetch_with_fallback("global")

        assert tracker.get_state("p1").request_count == 1
        assert tracker.get_state("p2").request_count == 1
        assert tracker.get_state("p3").request_count == 0

    @pytest.mark.asyncio
    async def test_every_failed_attempt_counts_toward_budget(self, orchestrator, monkeypatch, responses, tracker):
        install(orchestrator, monkeypatch, responses.Transport({
            "p1": [responses.status(500)] * 3,
            "p2": [responses.ok({})],
        }))

        await orchestrator.fetch_with_fallback("global")

        assert tracker.get_state("p1").request_count == 3

    @pytest.mark.asyncio
    async def test_unavailable_does_not_count(self, make_provider, clock, config, monkeypatch, responses):
        registry = ProviderRegistry([make_provider("tiny", priority=1, rate_limit=1)])
        tracker = AvailabilityTracker(registry, clock=clock)
        orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)
        install(orch, monkeypatch, responses.Transport({}))
        tracker.increment_request_count("tiny")

        await orch.fetch_from_provider(registry.get_provider("tiny"), "global", lambda raw, params: raw)

        assert tracker.get_state("tiny").request_count == 1

    @pytest.mark.asyncio
    async def test_budget_exhausted_mid_retry_is_failure(self, make_provider, clock, config, monkeypatch, responses):
        registry = ProviderRegistry([make_provider("pair", priority=1, rate_limit=2)])
        orch = FetchOrchestrator(registry=registry, tracker=AvailabilityTracker(registry, clock=clock), config=config)

        async def no_sleep(seconds):
            return None

        monkeypatch.setattr(orch, "_sleep", no_sleep)
        transport = install(orch, monkeypatch, responses.Transport({"pair": [responses.status(500)] * 2}))

        outcome = await orch.fetch_from_provider(registry.get_provider("pair"), "global", lambda raw, params: raw)

        assert outcome == Failure("pair", "HTTP 500")
        assert transport.calls == ["pair", "pair"]


# ============================================
# Deadline
# ============================================

class TestDeadline:

    @pytest.mark.asyncio
    async def test_deadline_stops_retries_and_later_providers(self, registry, tracker, config, clock, monkeypatch, responses):
        orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)
        slept = []

        async def advancing_sleep(seconds):
            slept.append(seconds)
            clock.advance(seconds)

        monkeypatch.setattr(orch, "_now", clock)
        monkeypatch.setattr(orch, "_sleep", advancing_sleep)
        transport = install(orch, monkeypatch, responses.Transport({"p1": [responses.status(500)] * 3}))

        result = await orch.fetch_with_fallback("global", deadline=3.0)

        assert result.provider == SYNTHETIC_PROVIDER
        assert transport.calls == ["p1", "p1"]
        assert slept == [2.0, 1.0]
        assert "Deadline of 3.0s exceeded before trying p2" in result.error
        # The caller ran out of time; p1 is not penalized for it
        assert tracker.get_state("p1").failed_at is None

    @pytest.mark.asyncio
    async def test_in_flight_request_cut_off_at_deadline(self, orchestrator, monkeypatch, tracker):
        calls = []

        async def slow_request(provider, url, query):
            calls.append(provider.name)
            await asyncio.sleep(5)

        monkeypatch.setattr(orchestrator, "_request", slow_request)

        result = await asyncio.wait_for(orchestrator.fetch_with_fallback("global", deadline=0.05), timeout=2)

        assert result.provider == SYNTHETIC_PROVIDER
        assert calls == ["p1"]
        assert tracker.is_available("p1") is True

    @pytest.mark.asyncio
    async def test_default_deadline_comes_from_settings(self, registry, tracker, clock, monkeypatch, responses):
        config = Settings(_env_file=None, fetch_deadline_seconds=1.0, retry_base_delay_seconds=1.0)
        orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)

        async def advancing_sleep(seconds):
            clock.advance(seconds)

        monkeypatch.setattr(orch, "_now", clock)
        monkeypatch.setattr(orch, "_sleep", advancing_sleep)
        transport = install(orch, monkeypatch, responses.Transport({"p1": [responses.status(500)]}))

        result = await orch.fetch_with_fallback("global")

        assert result.provider == SYNTHETIC_PROVIDER
        assert transport.calls == ["p1"]

    @pytest.mark.asyncio
    async def test_explicit_none_deadline_is_unbounded(self, registry, tracker, clock, monkeypatch, responses):
        config = Settings(_env_file=None, fetch_deadline_seconds=1.0, retry_base_delay_seconds=1.0)
        orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config)

        async def advancing_sleep(seconds):
            clock.advance(seconds)

        monkeypatch.setattr(orch, "_now", clock)
        monkeypatch.setattr(orch, "_sleep", advancing_sleep)
        transport = install(orch, monkeypatch, responses.Transport({
            "p1": [responses.status(500), responses.status(500), responses.ok({"late": True})],
        }))

        result = await orch.fetch_with_fallback("global", deadline=None)

        assert result.provider == "p1"
        assert result.data == {"late": True}
        assert transport.calls == ["p1", "p1", "p1"]


# ============================================
# Session and Health
# ============================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_owned_session_closed_on_shutdown(self, registry, tracker, config):
        async with FetchOrchestrator(registry=registry, tracker=tracker, config=config) as orch:
            session = orch.session
            assert session is not None and not session.closed

        assert session.closed
        assert orch.session is None

    @pytest.mark.asyncio
    async def test_external_session_left_open(self, registry, tracker, config):
        session = aiohttp.ClientSession()
        try:
            orch = FetchOrchestrator(registry=registry, tracker=tracker, config=config, session=session)
            await orch.shutdown()
            assert not session.closed
            assert orch.session is session
        finally:
            await session.close()

    def test_injected_empty_registry_is_kept(self, clock, config):
        empty = ProviderRegistry([])
        orch = FetchOrchestrator(registry=empty, tracker=AvailabilityTracker(empty, clock=clock), config=config)

        assert orch.registry is empty
        assert orch.registry.list_providers() == []

    def test_registry_taken_from_tracker(self, clock, config):
        empty = ProviderRegistry([])
        tracker = AvailabilityTracker(empty, clock=clock)

        assert FetchOrchestrator(tracker=tracker, config=config).registry is empty

    def test_check_provider_health_reports_tracker_state(self, orchestrator, tracker):
        tracker.record_failure("p2", "HTTP 500")
        report = orchestrator.check_provider_health()

        assert set(report) == {"p1", "p2", "p3"}
        assert report["p2"]["available"] is False

    def test_repr(self, orchestrator):
        assert repr(orchestrator) == "<FetchOrchestrator(providers=['p1', 'p2', 'p3'])>"
