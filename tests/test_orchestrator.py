import asyncio
import time

import pytest

import ai_fallback.orchestrator as orchestrator_module
from ai_fallback.catalog import DEFAULT_CATALOG, build_candidates
from ai_fallback.credentials import discover_api_keys
from ai_fallback.error_handler import AllProvidersFailedError, ProviderError
from ai_fallback.providers.openrouter_provider import OpenRouterProvider
from ai_fallback.types import AttemptOutcome, Candidate, Provider

from conftest import ScriptedProvider


def _rate_limited(provider: str, model: str, text: str = "rate limit, try again in 5s"):
    return ProviderError(provider, model, text, status_code=429)


def _broken(provider: str, model: str):
    return ProviderError(provider, model, f"{provider} API error (500): boom", status_code=500)


@pytest.mark.asyncio
async def test_first_success_wins_and_later_candidates_are_never_called(
    make_orchestrator,
) -> None:
    groq = ScriptedProvider("groq", {"a": _broken("groq", "a")})
    gemini = ScriptedProvider("gemini", {"b": "second answer"})
    together = ScriptedProvider("together")
    candidates = [
        Candidate("groq", "a", credential="k1", priority=1),
        Candidate("gemini", "b", credential="k2", priority=2),
        Candidate("together", "c", credential="k3", priority=3),
    ]
    orchestrator = make_orchestrator(
        candidates, {"groq": groq, "gemini": gemini, "together": together}
    )

    result = await orchestrator.complete("prompt")

    assert result.text == "second answer"
    assert (result.provider, result.model) == ("gemini", "b")
    assert together.calls == []
    assert [r.outcome for r in result.attempts] == [
        AttemptOutcome.FAILED_TRANSPORT,
        AttemptOutcome.SUCCESS,
    ]


@pytest.mark.asyncio
async def test_preferred_provider_is_tried_first(make_orchestrator) -> None:
    order = []

    def failing(candidate):
        order.append(candidate.provider)
        raise _broken(candidate.provider, candidate.model)

    providers = {
        name: ScriptedProvider(name, {model: failing})
        for name, model in (("groq", "a"), ("gemini", "b"), ("together", "c"))
    }
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
        Candidate("together", "c", credential="k", priority=3),
    ]
    orchestrator = make_orchestrator(candidates, providers)

    with pytest.raises(AllProvidersFailedError):
        await orchestrator.complete("prompt", preferred_provider="together")

    assert order == ["together", "groq", "gemini"]


@pytest.mark.asyncio
async def test_no_credentials_fails_without_network_calls(make_orchestrator) -> None:
    providers = {p.value: ScriptedProvider(p.value) for p in Provider}
    orchestrator = make_orchestrator(list(DEFAULT_CATALOG), providers)

    with pytest.raises(AllProvidersFailedError) as exc_info:
        await orchestrator.complete("prompt")

    error = exc_info.value
    assert error.network_calls == 0
    assert len(error.attempts) == len(DEFAULT_CATALOG)
    assert {r.outcome for r in error.attempts} == {AttemptOutcome.SKIPPED_NO_CREDENTIAL}
    assert all(provider.calls == [] for provider in providers.values())
    assert "All AI providers failed!" in str(error)
    assert error.timed_out is False


@pytest.mark.asyncio
async def test_rate_limited_candidate_is_skipped_on_next_call(
    make_orchestrator, rate_limiter, clock
) -> None:
    groq = ScriptedProvider("groq", {"a": _rate_limited("groq", "a")})
    gemini = ScriptedProvider("gemini", {"b": "fallback answer"})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    first = await orchestrator.complete("prompt")
    assert first.provider == "gemini"
    assert first.attempts[0].outcome is AttemptOutcome.FAILED_AND_BLOCKED
    assert first.attempts[0].block_duration == pytest.approx(7.0)

    clock.advance(1)
    second = await orchestrator.complete("prompt")

    assert second.provider == "gemini"
    skipped = second.attempts[0]
    assert skipped.outcome is AttemptOutcome.SKIPPED_RATE_LIMITED
    assert skipped.wait_time == pytest.approx(6.0)
    assert len(groq.calls) == 1

    clock.advance(6)
    groq.replies["a"] = "groq is back"
    third = await orchestrator.complete("prompt")
    assert third.provider == "groq"


@pytest.mark.asyncio
async def test_zero_quota_blocks_for_a_day(make_orchestrator, rate_limiter) -> None:
    error = ProviderError(
        "gemini",
        "flash",
        "gemini API error (429)",
        status_code=429,
        body='{"error": {"message": "Quota exceeded, limit: 0"}}',
    )
    gemini = ScriptedProvider("gemini", {"flash": error})
    orchestrator = make_orchestrator(
        [Candidate("gemini", "flash", credential="k", priority=3)], {"gemini": gemini}
    )

    with pytest.raises(AllProvidersFailedError) as exc_info:
        await orchestrator.complete("prompt")

    record = exc_info.value.attempts[0]
    assert record.outcome is AttemptOutcome.FAILED_AND_BLOCKED
    assert record.block_duration == pytest.approx(86400)
    assert rate_limiter.can_attempt("gemini", "flash").wait_time == pytest.approx(86400)


@pytest.mark.asyncio
async def test_timeout_moves_on_without_blocking(make_orchestrator, rate_limiter) -> None:
    async def slow(candidate):
        await asyncio.sleep(5)
        return "too late"

    groq = ScriptedProvider("groq", {"a": slow})
    gemini = ScriptedProvider("gemini", {"b": "quick answer"})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    result = await orchestrator.complete("prompt", per_attempt_timeout=0.05)

    assert result.text == "quick answer"
    timed_out = result.attempts[0]
    assert timed_out.outcome is AttemptOutcome.FAILED_TIMEOUT
    assert timed_out.error_detail.startswith("Request timeout after")
    assert timed_out.block_duration is None
    assert rate_limiter.can_attempt("groq", "a").allowed is True


@pytest.mark.asyncio
async def test_total_budget_stops_the_walk(make_orchestrator, clock) -> None:
    def slow_failure(candidate):
        clock.advance(31)
        raise _broken(candidate.provider, candidate.model)

    groq = ScriptedProvider("groq", {"a": slow_failure})
    gemini = ScriptedProvider("gemini")
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    with pytest.raises(AllProvidersFailedError) as exc_info:
        await orchestrator.complete("prompt")

    error = exc_info.value
    assert error.timed_out is True
    assert len(error.attempts) == 1
    assert gemini.calls == []
    assert "Total time budget exhausted" in str(error)


@pytest.mark.asyncio
async def test_rotator_supplies_credentials_round_robin(make_orchestrator) -> None:
    groq = ScriptedProvider("groq")
    orchestrator = make_orchestrator(
        [Candidate("groq", "a", priority=1)],
        {"groq": groq},
        credentials={"groq": ["key-one", "key-two"]},
    )

    for _ in range(3):
        await orchestrator.complete("prompt")

    assert [c.credential for c in groq.calls] == ["key-one", "key-two", "key-one"]


@pytest.mark.asyncio
async def test_every_dispatch_counts_against_the_window(
    make_orchestrator, rate_limiter
) -> None:
    groq = ScriptedProvider("groq", {"a": _broken("groq", "a")})
    gemini = ScriptedProvider("gemini", {"b": "ok"})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    await orchestrator.complete("prompt")
    await orchestrator.complete("prompt")

    assert rate_limiter.get_state("groq", "a").minute_count == 2
    assert rate_limiter.get_state("gemini", "b").day_count == 2


@pytest.mark.asyncio
async def test_minute_cap_skips_without_dispatch(make_orchestrator, clock) -> None:
    from ai_fallback.rate_limiter import RateLimiter

    limiter = RateLimiter(limits={"groq": (1, 100)}, clock=clock)
    groq = ScriptedProvider("groq")
    gemini = ScriptedProvider("gemini")
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(
        candidates, {"groq": groq, "gemini": gemini}, limiter=limiter
    )

    assert (await orchestrator.complete("prompt")).provider == "groq"
    second = await orchestrator.complete("prompt")

    assert second.provider == "gemini"
    assert second.attempts[0].outcome is AttemptOutcome.SKIPPED_RATE_LIMITED
    assert len(groq.calls) == 1


@pytest.mark.asyncio
async def test_unsupported_provider_is_recorded_and_skipped(make_orchestrator) -> None:
    gemini = ScriptedProvider("gemini")
    candidates = [
        Candidate("mystery", "x", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"gemini": gemini})

    result = await orchestrator.complete("prompt")

    assert result.provider == "gemini"
    assert result.attempts[0].outcome is AttemptOutcome.FAILED_TRANSPORT
    assert "Unsupported provider" in result.attempts[0].error_detail
    assert result.attempts[0].dispatched is False


@pytest.mark.asyncio
async def test_unsupported_provider_is_not_a_network_call(make_orchestrator) -> None:
    orchestrator = make_orchestrator([Candidate("mystery", "x", credential="k")], {})

    with pytest.raises(AllProvidersFailedError) as exc_info:
        await orchestrator.complete("prompt")

    assert exc_info.value.network_calls == 0


@pytest.mark.asyncio
async def test_plain_string_error_body_still_falls_back(make_orchestrator, rate_limiter) -> None:
    groq = ScriptedProvider(
        "groq", {"a": ProviderError("groq", "a", '{"error": "Rate limit exceeded"}', 429)}
    )
    gemini = ScriptedProvider("gemini", {"b": "fallback answer"})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    result = await orchestrator.complete("prompt")

    assert result.provider == "gemini"
    assert result.attempts[0].outcome is AttemptOutcome.FAILED_AND_BLOCKED
    assert result.attempts[0].block_duration == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_classifier_failure_is_recorded_as_transport(
    make_orchestrator, monkeypatch
) -> None:
    def broken_classifier(error):
        raise AttributeError("unexpected error shape")

    monkeypatch.setattr(orchestrator_module, "classify_error", broken_classifier)
    groq = ScriptedProvider("groq", {"a": _broken("groq", "a")})
    gemini = ScriptedProvider("gemini", {"b": "fallback answer"})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    result = await orchestrator.complete("prompt")

    assert result.provider == "gemini"
    assert result.attempts[0].outcome is AttemptOutcome.FAILED_TRANSPORT


@pytest.mark.asyncio
async def test_numbered_keys_rotate_across_calls(make_orchestrator) -> None:
    env = {"GROQ_API_KEY": "g1", "GROQ_API_KEY_2": "g2"}
    groq = ScriptedProvider("groq")
    orchestrator = make_orchestrator(
        build_candidates(env), {"groq": groq}, credentials=discover_api_keys(env)
    )

    for _ in range(4):
        await orchestrator.complete("prompt")

    assert [c.credential for c in groq.calls] == ["g1", "g2", "g1", "g2"]


@pytest.mark.asyncio
async def test_provider_with_only_numbered_keys_is_tried(make_orchestrator) -> None:
    env = {"GROQ_API_KEY_2": "g2", "GEMINI_API_KEY": "gem"}
    groq = ScriptedProvider("groq", {"llama-3.3-70b-versatile": _broken("groq", "m")})
    gemini = ScriptedProvider("gemini")
    orchestrator = make_orchestrator(
        build_candidates(env),
        {"groq": groq, "gemini": gemini},
        credentials=discover_api_keys(env),
    )

    result = await orchestrator.complete("prompt")

    assert [c.credential for c in groq.calls] == ["g2"]
    assert result.provider == "gemini"
    assert gemini.calls[0].credential == "gem"


def test_adapters_are_built_from_orchestrator_settings(
    make_orchestrator, settings
) -> None:
    settings.app_url = "https://resumes.example"
    orchestrator = make_orchestrator([], {"openrouter": OpenRouterProvider})

    plugin = orchestrator._get_plugin_instance("openrouter")

    assert plugin.app_url == "https://resumes.example"


@pytest.mark.asyncio
async def test_timed_out_call_is_cancelled(make_orchestrator) -> None:
    cancelled = []

    async def slow(candidate):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append(candidate.model)
            raise
        return "too late"

    groq = ScriptedProvider("groq", {"a": slow})
    gemini = ScriptedProvider("gemini", {"b": "quick answer"})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    result = await orchestrator.complete("prompt", per_attempt_timeout=0.05)

    assert result.provider == "gemini"
    assert cancelled == ["a"]


@pytest.mark.asyncio
async def test_attempt_timeout_is_clamped_to_remaining_budget(
    make_orchestrator, clock
) -> None:
    def eats_budget(candidate):
        clock.advance(29.9)
        raise _broken(candidate.provider, candidate.model)

    async def slow(candidate):
        await asyncio.sleep(5)
        return "too late"

    groq = ScriptedProvider("groq", {"a": eats_budget})
    gemini = ScriptedProvider("gemini", {"b": slow})
    candidates = [
        Candidate("groq", "a", credential="k", priority=1),
        Candidate("gemini", "b", credential="k", priority=2),
    ]
    orchestrator = make_orchestrator(candidates, {"groq": groq, "gemini": gemini})

    started = time.monotonic()
    with pytest.raises(AllProvidersFailedError) as exc_info:
        await orchestrator.complete("prompt", per_attempt_timeout=5.0, total_time_budget=30.0)
    took = time.monotonic() - started

    record = exc_info.value.attempts[1]
    assert record.outcome is AttemptOutcome.FAILED_TIMEOUT
    assert record.error_detail == "Request timeout after 0.1s"
    assert took < 2.0


@pytest.mark.asyncio
async def test_explicit_zero_timeout_is_not_replaced_by_default(make_orchestrator) -> None:
    async def slow(candidate):
        await asyncio.sleep(5)
        return "too late"

    groq = ScriptedProvider("groq", {"a": slow})
    orchestrator = make_orchestrator(
        [Candidate("groq", "a", credential="k", priority=1)], {"groq": groq}
    )

    started = time.monotonic()
    with pytest.raises(AllProvidersFailedError) as exc_info:
        await orchestrator.complete("prompt", per_attempt_timeout=0)

    assert exc_info.value.attempts[0].outcome is AttemptOutcome.FAILED_TIMEOUT
    assert time.monotonic() - started < 2.0
