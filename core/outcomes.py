"""
Provider Attempt Outcomes

Tagged values describing how a single provider attempt ended. The fetch
orchestrator returns these instead of raising, so provider failures flow
through ordinary control flow:

    Success      - payload fetched and transformed
    RateLimited  - provider answered 429; held for `retry_after` seconds
    Failure      - retries exhausted (network error, HTTP >= 400, bad JSON)
    Unavailable  - skipped locally without dispatching a request

HttpResponse is the minimal view of a transport response the orchestrator
needs to classify an attempt.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class HttpResponse:
    """Status, lowercase headers and decoded JSON body of one request."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Any = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class Success:
    provider: str
    data: Any


@dataclass(frozen=True)
class RateLimited:
    provider: str
    retry_after: float


@dataclass(frozen=True)
class Failure:
    provider: str
    error: str
    # True when the caller's deadline ended the attempts, not the provider
    deadline_exceeded: bool = False


@dataclass(frozen=True)
class Unavailable:
    provider: str
    reason: str


ProviderOutcome = Union[Success, RateLimited, Failure, Unavailable]
