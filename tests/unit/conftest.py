"""
Shared fixtures for unit tests.

Provides a manually advanced clock, a minimal provider implementation, and a
scripted transport that replaces FetchOrchestrator._request so no test ever
touches the network.
"""

from typing import Any, Callable, Dict, List, Optional

import pytest

from core.outcomes import HttpResponse
from core.provider_interface import ProviderInterface
from core.provider_registry import ProviderRegistry
from core.schemas import ProviderDescriptor


# ============================================
# Clock
# ============================================

class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================
# Dummy Provider for Testing
# ============================================

def passthrough(raw, params=None):
    """Transformer returning the raw payload unchanged"""
    return raw


class DummyProvider(ProviderInterface):
    """
    Minimal implementation of ProviderInterface for testing purposes.

    Supports every logical endpoint with a passthrough transformer unless a
    custom transformer table is given.
    """

    transformers = {
        "coins/markets": passthrough,
        "global": passthrough,
        "search/trending": passthrough,
        "coins/list": passthrough,
    }

    def __init__(self, name: str, priority: int, rate_limit: int = 60,
                 transformers: Optional[Dict[str, Callable]] = None):
        super().__init__(ProviderDescriptor(
            name=name,
            base_url=f"https://{name}.example.com/api",
            priority=priority,
            rate_limit_per_minute=rate_limit,
            timeout_seconds=5.0,
        ))
        if transformers is not None:
            self.transformers = transformers

    def build_url(self, endpoint, params=None):
        return f"{self.base_url}/{endpoint}", self._clean_params(params)


@pytest.fixture
def make_provider():
    """Factory: make_provider("p1", priority=1, rate_limit=60)"""
    return DummyProvider


@pytest.fixture
def registry():
    """Three providers P1 < P2 < P3 by priority"""
    return ProviderRegistry([
        DummyProvider("p1", priority=1),
        DummyProvider("p2", priority=2),
        DummyProvider("p3", priority=3),
    ])


# ============================================
# Scripted Transport
# ============================================

def ok(payload: Any) -> HttpResponse:
    return HttpResponse(status=200, headers={}, payload=payload)


def http_status(status: int, headers: Optional[Dict[str, str]] = None, reason: str = None) -> HttpResponse:
    return HttpResponse(status=status, headers=headers or {}, reason=reason)


class ScriptedTransport:
    """
    Replacement for FetchOrchestrator._request.

    Each provider gets a queue of responses; an Exception instance in the
    queue is raised instead of returned. Every call is recorded.
    """

    def __init__(self, script: Dict[str, List[Any]]):
        self.script = {name: list(responses) for name, responses in script.items()}
        self.calls: List[str] = []
        self.queries: List[Dict[str, str]] = []

    async def __call__(self, provider, url, query):
        self.calls.append(provider.name)
        self.queries.append(query)
        responses = self.script.get(provider.name)
        if not responses:
            raise AssertionError(f"Unexpected request to {provider.name}")
        response = responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def responses():
    """Helpers for building scripted responses: responses.ok(...), responses.status(...)"""
    class _Responses:
        ok = staticmethod(ok)
        status = staticmethod(http_status)
        Transport = ScriptedTransport
    return _Responses
