# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Candidate catalog.

Builds the ordered list of (provider, model) candidates the orchestrator
walks through, from environment configuration. Keys are resolved later by
the credential rotator.

Order matters:
- Lower priority values are tried first
- Equal priorities keep catalog insertion order
- The same provider can appear several times with different models
"""

import logging
import os
from typing import List, Mapping, Optional

from .config.defaults import DEFAULT_MODELS
from .credentials import discover_api_keys
from .types import Candidate, Provider

lib_logger = logging.getLogger("ai_fallback")

# Used when no provider has a configured credential. Every entry lacks a key,
# so the orchestrator resolves one through the rotator or skips it with a
# clear "no credential" diagnostic.
DEFAULT_CATALOG: List[Candidate] = [
    Candidate("groq", "llama-3.3-70b-versatile", priority=1),
    Candidate("groq", "llama-3.1-8b-instant", priority=2),
    Candidate("groq", "llama-3.1-70b-versatile", priority=3),
    Candidate("groq", "mixtral-8x7b-32768", priority=4),
    Candidate("gemini", "gemini-2.0-flash", priority=5),
    Candidate("gemini", "gemini-1.5-flash", priority=6),
    Candidate("gemini", "gemini-1.5-pro", priority=7),
    Candidate("huggingface", "meta-llama/Llama-3.1-8B-Instruct", priority=8),
    Candidate("together", "meta-llama/Llama-3-70b-chat-hf", priority=9),
    Candidate("together", "Qwen/Qwen2.5-72B-Instruct", priority=9),
    Candidate("moonshot", "kimi-k2", priority=10),
    Candidate("openrouter", "google/gemini-2.0-flash-exp:free", priority=11),
    Candidate("openrouter", "moonshot/kimi-k2", priority=11),
]


def _get(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _model(env: Mapping[str, str], provider: str) -> str:
    return _get(env, f"{provider.upper()}_MODEL") or DEFAULT_MODELS[provider]


def _base_url(env: Mapping[str, str], provider: str) -> Optional[str]:
    return _get(env, f"{provider.upper()}_BASE_URL")


def build_candidates(env: Optional[Mapping[str, str]] = None) -> List[Candidate]:
    """
    Build the candidate list from configuration, sorted by priority.

    A provider takes part once it has at least one key, in any of the forms
    discover_api_keys() recognises (<P>_API_KEY, <P>_API_KEY_<N>, aliases).
    Candidates carry no key themselves; the orchestrator draws one from the
    CredentialRotator per attempt, so every configured key gets used.

    Recognised model variables, per provider:
        GROQ_MODEL, GROQ_MODEL_2
        GEMINI_MODEL (one candidate per Gemini key)
        HUGGINGFACE_MODEL
        TOGETHER_MODEL, TOGETHER_MODEL_KIMI
        MOONSHOT_MODEL
        OPENROUTER_MODEL, OPENROUTER_MODEL_KIMI
        <PROVIDER>_BASE_URL overrides the endpoint for that provider

    Returns DEFAULT_CATALOG when no credential is configured at all.
    """
    env = os.environ if env is None else env
    api_keys = discover_api_keys(env)
    configs: List[Candidate] = []

    def add(provider: Provider, model: str, priority: int) -> None:
        configs.append(
            Candidate(
                provider=provider.value,
                model=model,
                base_url=_base_url(env, provider.value),
                priority=priority,
            )
        )

    def configured(provider: Provider) -> bool:
        return bool(api_keys.get(provider.value))

    if configured(Provider.GROQ):
        add(Provider.GROQ, _model(env, "groq"), 1)
        secondary = _get(env, "GROQ_MODEL_2")
        if secondary:
            add(Provider.GROQ, secondary, 2)

    # Each Gemini key gets its own slot so one call can fall through to the next
    for idx in range(len(api_keys.get(Provider.GEMINI.value, []))):
        add(Provider.GEMINI, _model(env, "gemini"), 3 + idx)

    if configured(Provider.HUGGINGFACE):
        add(Provider.HUGGINGFACE, _model(env, "huggingface"), 10)

    if configured(Provider.TOGETHER):
        add(Provider.TOGETHER, _model(env, "together"), 11)

    if configured(Provider.MOONSHOT):
        add(Provider.MOONSHOT, _model(env, "moonshot"), 11)

    if configured(Provider.TOGETHER):
        kimi = _get(env, "TOGETHER_MODEL_KIMI")
        if kimi:
            add(Provider.TOGETHER, kimi, 12)

    if configured(Provider.OPENROUTER):
        add(Provider.OPENROUTER, _model(env, "openrouter"), 12)
        kimi = _get(env, "OPENROUTER_MODEL_KIMI")
        if kimi:
            add(Provider.OPENROUTER, kimi, 13)

    if not configs:
        lib_logger.info("No provider credentials configured, using default catalog")
        return list(DEFAULT_CATALOG)

    # list.sort is stable, so equal priorities keep insertion order
    configs.sort(key=lambda c: c.priority)
    return configs


def promote_provider(
    candidates: List[Candidate], provider: Optional[str]
) -> List[Candidate]:
    """
    Move a provider's candidates to the front.

    Promoted entries keep their relative order, the rest keep theirs, and no
    priority values are changed. Unknown providers leave the order alone.
    """
    if not provider:
        return list(candidates)
    preferred = [c for c in candidates if c.provider == provider]
    if not preferred:
        lib_logger.debug(f"Preferred provider '{provider}' not in catalog, ignoring")
        return list(candidates)
    rest = [c for c in candidates if c.provider != provider]
    return preferred + rest
