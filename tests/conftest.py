import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ai_fallback.config.settings import FallbackSettings
from ai_fallback.credentials import CredentialRotator
from ai_fallback.orchestrator import FallbackOrchestrator
from ai_fallback.providers.provider_interface import ProviderInterface
from ai_fallback.rate_limiter import RateLimiter
from ai_fallback.types import Candidate


class FakeClock:
    """Manually advanced clock, usable for both time.time and time.monotonic."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Reply = Union[str, BaseException, Callable[[Candidate], str]]


class ScriptedProvider(ProviderInterface):
    """
    Adapter double that answers from a per-model script and records calls.

    A script value may be a completion string, an exception to raise, or a
    callable taking the candidate.
    """

    def __init__(self, name: str, replies: Optional[Dict[str, Reply]] = None):
        self.provider_name = name
        self.replies = replies or {}
        self.calls: List[Candidate] = []

    async def invoke(self, prompt, candidate, client):
        self.calls.append(candidate)
        reply = self.replies.get(candidate.model, f"{self.provider_name}:{candidate.model}")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            result = reply(candidate)
            if hasattr(result, "__await__"):
                return await result
            return result
        return reply


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(clock=clock)


@pytest.fixture
def settings() -> FallbackSettings:
    return FallbackSettings(per_attempt_timeout=5.0, total_time_budget=30.0, log_dir=None)


@pytest.fixture
def make_orchestrator(rate_limiter: RateLimiter, settings: FallbackSettings, clock: FakeClock):
    """Factory building an isolated orchestrator around scripted providers."""

    def factory(
        candidates: List[Candidate],
        providers: Dict[str, ProviderInterface],
        credentials: Optional[Dict[str, List[str]]] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> FallbackOrchestrator:
        orchestrator = FallbackOrchestrator(
            rate_limiter=limiter or rate_limiter,
            rotator=CredentialRotator(credentials or {}),
            providers=providers,
            catalog_builder=lambda: list(candidates),
            http_client=None,
            settings=settings,
            clock=clock,
        )
        return orchestrator

    return factory
