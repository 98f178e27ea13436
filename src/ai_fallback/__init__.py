# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .catalog import DEFAULT_CATALOG, build_candidates, promote_provider
from .credentials import CredentialRotator
from .error_handler import AllProvidersFailedError, ProviderError
from .orchestrator import FallbackOrchestrator, complete, get_default_orchestrator
from .providers import PROVIDER_PLUGINS, ProviderInterface
from .rate_limiter import RateLimiter
from .types import (
    AdmissionResult,
    AttemptOutcome,
    AttemptRecord,
    Candidate,
    CompletionResult,
    Provider,
)

__all__ = [
    "AdmissionResult",
    "AllProvidersFailedError",
    "AttemptOutcome",
    "AttemptRecord",
    "Candidate",
    "CompletionResult",
    "CredentialRotator",
    "DEFAULT_CATALOG",
    "FallbackOrchestrator",
    "PROVIDER_PLUGINS",
    "Provider",
    "ProviderError",
    "ProviderInterface",
    "RateLimiter",
    "build_candidates",
    "complete",
    "get_default_orchestrator",
    "promote_provider",
]
