"""
Unit Tests for the REST API

The global MarketDataService is swapped for one backed by a stub
orchestrator, so routes are exercised without any provider traffic.

Run with:
    pytest tests/unit/test_app.py -v
"""

import pytest
from fastapi.testclient import TestClient

import app.main as main
from core.schemas import CoinDetails, FetchResult, GlobalStats, MarketChart, SYNTHETIC_PROVIDER
from services.market_data import MarketDataService
from storage.cache import TTLCache


class StubOrchestrator:

    def __init__(self, registry, health=None, fail=False):
        self.registry = registry
        self.health = health or {name: {"available": True} for name in registry.list_providers()}
        self.fail = fail
        self.calls = []

    async def fetch_with_fallback(self, endpoint, transformers=None, params=None, max_retries=None, deadline=None):
        self.calls.append((endpoint, params))
        if self.fail:
            raise RuntimeError("orchestrator exploded")
        if endpoint == "global":
            return FetchResult(success=True, data=GlobalStats(markets=42), provider="p1")
        if endpoint == "coins/detail":
            return FetchResult(success=True, data=CoinDetails(id=params["id"], name="Bitcoin"), provider="p1")
        if endpoint == "coins/market_chart":
            return FetchResult(success=True, data=MarketChart(prices=[[1704067200000.0, 42283.6]]), provider="p1")
        if endpoint == "coins/markets" and params.get("vs_currency") == "jpy":
            return FetchResult(success=True, data=[], provider=SYNTHETIC_PROVIDER,
                               error="All providers failed. Last error: p1: rate limited", retry_after=30.0)
        return FetchResult(success=True, data=[], provider="p1")

    def check_provider_health(self):
        return self.health

    async def initialize(self):
        pass

    async def shutdown(self):
        pass


@pytest.fixture
def stub(registry):
    return StubOrchestrator(registry)


@pytest.fixture
def client(stub, clock, monkeypatch):
    monkeypatch.setattr(main, "service", MarketDataService(orchestrator=stub, cache=TTLCache(clock=clock)))
    return TestClient(main.app)


class TestSystemEndpoints:

    def test_root_lists_providers(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["providers"] == ["p1", "p2", "p3"]

    def test_health_all_available(self, client):
        body = client.get("/health").json()
        assert body == {"status": "healthy", "available_providers": ["p1", "p2", "p3"]}

    def test_health_degraded(self, client, stub):
        stub.health["p2"] = {"available": False}
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["available_providers"] == ["p1", "p3"]

    def test_api_health_includes_cache_stats(self, client):
        body = client.get("/market/api-health").json()
        assert set(body) == {"providers", "cache"}
        assert body["cache"]["size"] == 0


class TestMarketEndpoints:

    def test_prices_envelope(self, client, stub):
        response = client.get("/market/prices", params={"per_page": 10, "page": 2, "vs_currency": "EUR"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True, "data": [], "error": None, "provider": "p1", "retry_after": None,
        }
        _, params = stub.calls[0]
        assert (params["per_page"], params["page"], params["vs_currency"]) == (10, 2, "eur")

    def test_synthetic_result_is_still_200(self, client):
        body = client.get("/market/prices", params={"vs_currency": "jpy"}).json()
        assert body["provider"] == "synthetic"
        assert body["retry_after"] == 30.0
        assert body["error"].startswith("All providers failed")

    @pytest.mark.parametrize("params", [{"per_page": 0}, {"per_page": 251}, {"page": 0}])
    def test_prices_query_validation(self, client, params):
        assert client.get("/market/prices", params=params).status_code == 422

    def test_global(self, client):
        body = client.get("/market/global").json()
        assert body["data"]["markets"] == 42

    def test_refresh_bypasses_cache(self, client, stub):
        client.get("/market/trending")
        client.get("/market/trending")
        client.get("/market/trending", params={"refresh": "true"})
        assert len(stub.calls) == 2

    def test_overview(self, client):
        body = client.get("/market/overview").json()
        assert set(body) == {"prices", "global", "trending"}
        assert body["global"]["provider"] == "p1"

    def test_coins(self, client):
        assert client.get("/market/coins").json()["success"] is True

    def test_unexpected_error_becomes_500(self, registry, clock, monkeypatch):
        service = MarketDataService(orchestrator=StubOrchestrator(registry, fail=True), cache=TTLCache(clock=clock))
        monkeypatch.setattr(main, "service", service)

        response = TestClient(main.app).get("/market/coins")

        assert response.status_code == 500


class TestCoinId:

    def test_known_symbol(self, client):
        assert client.get("/market/coin-id/ton").json() == {"symbol": "TON", "coin_id": "the-open-network"}

    def test_unknown_symbol_404(self, client):
        response = client.get("/market/coin-id/NOPE")
        assert response.status_code == 404
        assert response.json()["detail"] == "Unknown symbol 'NOPE'"


class TestCoinEndpoints:

    @pytest.mark.parametrize("path,ids_prefix", [
        ("/market/meme", "dogecoin,shiba-inu"),
        ("/market/defi", "uniswap,chainlink"),
    ])
    def test_curated_lists(self, client, stub, path, ids_prefix):
        response = client.get(path)

        assert response.status_code == 200
        endpoint, params = stub.calls[0]
        assert endpoint == "coins/markets"
        assert params["ids"].startswith(ids_prefix)

    def test_coin_details(self, client, stub):
        body = client.get("/market/coin/Bitcoin", params={"vs_currency": "EUR"}).json()

        assert body["provider"] == "p1"
        assert body["data"]["id"] == "bitcoin"
        assert body["data"]["name"] == "Bitcoin"
        assert stub.calls[0] == ("coins/detail", {"id": "bitcoin", "vs_currency": "eur"})

    def test_chart(self, client, stub):
        body = client.get("/market/chart/bitcoin/30").json()

        assert body["data"]["prices"] == [[1704067200000.0, 42283.6]]
        assert stub.calls[0][1]["days"] == 30

    @pytest.mark.parametrize("days", ["0", "366"])
    def test_chart_days_out_of_range_is_400(self, client, stub, days):
        response = client.get(f"/market/chart/bitcoin/{days}")

        assert response.status_code == 400
        assert "between 1 and 365" in response.json()["detail"]
        assert stub.calls == []

    def test_chart_days_must_be_integer(self, client):
        assert client.get("/market/chart/bitcoin/week").status_code == 422
