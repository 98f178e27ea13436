# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Fallback orchestration across completion providers.

The FallbackOrchestrator walks the candidate catalog in priority order and
returns the first completion it gets. For each candidate it:
- resolves a credential (skipping the candidate if none exists)
- asks the rate limiter for admission (skipping it, never waiting, if denied)
- dispatches through the provider adapter under a per-attempt timeout
- classifies failures and blocks rate-limited candidates

Only one candidate is in flight at a time for a given call; fanning out would
burn several providers' quota for a single completion.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Type, Union

import httpx

from .catalog import build_candidates, promote_provider
from .config.settings import FallbackSettings
from .credentials import CredentialRotator
from .error_handler import (
    AllProvidersFailedError,
    ClassifiedError,
    classify_error,
    mask_credential,
)
from .failure_logger import configure_failure_logger, log_failure
from .providers import PROVIDER_PLUGINS, ProviderInterface
from .rate_limiter import RateLimiter
from .types import AttemptOutcome, AttemptRecord, Candidate, CompletionResult

lib_logger = logging.getLogger("ai_fallback")

ProviderRegistry = Mapping[str, Union[Type[ProviderInterface], ProviderInterface]]


class FallbackOrchestrator:
    """
    Produces a completion by trying providers until one succeeds.

    The rate limiter and credential rotator are owned by reference, so one
    pair can be shared by many orchestrators, and tests can hand in fresh
    isolated instances.
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        rotator: Optional[CredentialRotator] = None,
        providers: Optional[ProviderRegistry] = None,
        catalog_builder: Callable[[], List[Candidate]] = build_candidates,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[FallbackSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the FallbackOrchestrator.

        Args:
            rate_limiter: Shared admission control. Built from env if omitted.
            rotator: Shared credential rotation. Built from env if omitted.
            providers: Provider name -> adapter class or instance.
            catalog_builder: Zero-argument callable returning the candidates.
            http_client: Client passed to adapters. Created (and owned) if omitted.
            settings: Time budgets and log location. Loaded from env if omitted.
            clock: Monotonic clock used for the total time budget.
        """
        self.settings = settings or FallbackSettings.from_env()
        self.rate_limiter = rate_limiter or RateLimiter.from_env()
        self.rotator = rotator or CredentialRotator.from_env()
        self._catalog_builder = catalog_builder
        self._clock = clock

        self._plugins: ProviderRegistry = (
            PROVIDER_PLUGINS if providers is None else providers
        )
        self._plugin_instances: Dict[str, ProviderInterface] = {}

        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.per_attempt_timeout + 5.0)
        )

        configure_failure_logger(self.settings.log_dir)

    def _get_plugin_instance(self, provider: str) -> Optional[ProviderInterface]:
        """Get or create the adapter instance for a provider."""
        if provider not in self._plugin_instances:
            plugin = self._plugins.get(provider)
            if plugin is None:
                return None
            self._plugin_instances[provider] = (
                plugin.from_settings(self.settings)
                if isinstance(plugin, type)
                else plugin
            )
        return self._plugin_instances[provider]

    async def close(self):
        """Close the HTTP client if this orchestrator created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    async def complete(
        self,
        prompt: str,
        preferred_provider: Optional[str] = None,
        per_attempt_timeout: Optional[float] = None,
        total_time_budget: Optional[float] = None,
    ) -> CompletionResult:
        """
        Return the first completion any candidate produces.

        Args:
            prompt: Prompt text sent unchanged to every adapter.
            preferred_provider: Provider whose candidates are tried first.
            per_attempt_timeout: Seconds one provider call may take.
            total_time_budget: Seconds the whole call may take.

        Raises:
            AllProvidersFailedError: when every candidate was skipped or failed,
                or the time budget ran out first.
        """
        if per_attempt_timeout is None:
            per_attempt_timeout = self.settings.per_attempt_timeout
        if total_time_budget is None:
            total_time_budget = self.settings.total_time_budget

        candidates = promote_provider(self._catalog_builder(), preferred_provider)
        attempts: List[AttemptRecord] = []
        started = self._clock()
        timed_out = False

        for candidate in candidates:
            elapsed = self._clock() - started
            if elapsed > total_time_budget:
                lib_logger.warning(
                    f"Total time budget reached ({total_time_budget:.1f}s), stopping"
                )
                timed_out = True
                break

            record, text = await self._attempt(
                prompt,
                candidate,
                # The last attempt never runs past the overall deadline
                min(per_attempt_timeout, total_time_budget - elapsed),
            )
            attempts.append(record)
            if text is not None:
                return CompletionResult(
                    text=text,
                    provider=candidate.provider,
                    model=candidate.model,
                    attempts=attempts,
                )

        error = AllProvidersFailedError(attempts, timed_out=timed_out)
        lib_logger.error(
            f"All AI providers failed after {len(attempts)} candidate(s), "
            f"{error.network_calls} network call(s)"
        )
        raise error

    async def _attempt(
        self, prompt: str, candidate: Candidate, timeout: float
    ) -> Tuple[AttemptRecord, Optional[str]]:
        """
        Run one candidate through credential, admission and dispatch.

        Returns the attempt record and, on success, the completion text.
        """
        provider, model = candidate.provider, candidate.model

        if not candidate.credential:
            credential = self.rotator.next_credential(provider)
            if not credential:
                lib_logger.info(f"Skipping {provider}/{model} - no API key")
                record = AttemptRecord(
                    candidate,
                    AttemptOutcome.SKIPPED_NO_CREDENTIAL,
                    error_detail="no API key configured",
                )
                return record, None
            candidate = candidate.with_credential(credential)

        plugin = self._get_plugin_instance(provider)
        if plugin is None:
            lib_logger.warning(f"Skipping {provider}/{model} - unsupported provider")
            record = AttemptRecord(
                candidate,
                AttemptOutcome.FAILED_TRANSPORT,
                error_detail=f"Unsupported provider: {provider}",
                dispatched=False,
            )
            return record, None

        admission = self.rate_limiter.try_acquire(provider, model)
        if not admission.allowed:
            wait = admission.wait_time or 0.0
            lib_logger.info(
                f"Skipping {provider}/{model} - rate limited (wait {wait:.0f}s)"
            )
            record = AttemptRecord(
                candidate,
                AttemptOutcome.SKIPPED_RATE_LIMITED,
                error_detail=f"rate limited, wait {wait:.0f}s",
                wait_time=wait,
            )
            return record, None

        lib_logger.info(
            f"Trying {provider}/{model} with key {mask_credential(candidate.credential)}"
        )
        try:
            # wait_for cancels the adapter call when the timer wins, so a late
            # response is never observed
            text = await asyncio.wait_for(
                plugin.invoke(prompt, candidate, self._http_client),
                timeout=max(timeout, 0.0),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._handle_failure(candidate, e, timeout), None

        lib_logger.info(f"Success with {provider}/{model}")
        return AttemptRecord(candidate, AttemptOutcome.SUCCESS), text

    def _handle_failure(
        self, candidate: Candidate, error: Exception, timeout: float
    ) -> AttemptRecord:
        provider, model = candidate.provider, candidate.model
        try:
            classified = classify_error(error)
        except Exception as e:
            # Per-candidate errors never escape complete()
            lib_logger.error(
                f"Could not classify {provider}/{model} error, treating as "
                f"transport failure: {type(e).__name__}: {e}"
            )
            classified = ClassifiedError("transport", original_exception=error)

        if classified.error_type == "timeout":
            detail = f"Request timeout after {timeout:.1f}s"
        else:
            detail = str(error) or type(error).__name__

        if classified.should_block:
            self.rate_limiter.block(provider, model, classified.block_duration)
            lib_logger.warning(
                f"{provider}/{model} failed ({classified.error_type}), blocked for "
                f"{classified.block_duration:.0f}s, moving to next provider"
            )
        else:
            lib_logger.warning(
                f"{provider}/{model} failed ({classified.error_type}): {detail[:200]}"
            )

        outcome = classified.outcome
        log_failure(candidate, outcome, error, classified.block_duration)
        return AttemptRecord(
            candidate,
            outcome,
            error_detail=detail,
            block_duration=classified.block_duration if classified.should_block else None,
        )


# =============================================================================
# PROCESS-WIDE DEFAULT
# =============================================================================

_default_orchestrator: Optional[FallbackOrchestrator] = None


def get_default_orchestrator() -> FallbackOrchestrator:
    """Lazily build one orchestrator per process from the environment."""
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = FallbackOrchestrator()
    return _default_orchestrator


async def complete(
    prompt: str,
    preferred_provider: Optional[str] = None,
    per_attempt_timeout: Optional[float] = None,
    total_time_budget: Optional[float] = None,
) -> CompletionResult:
    """complete() on the process-wide default orchestrator."""
    return await get_default_orchestrator().complete(
        prompt,
        preferred_provider=preferred_provider,
        per_attempt_timeout=per_attempt_timeout,
        total_time_budget=total_time_budget,
    )
