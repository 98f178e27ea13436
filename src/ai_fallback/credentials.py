# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import logging
import os
import re
import threading
from typing import Dict, List, Mapping, Optional, Sequence

from .error_handler import mask_credential

lib_logger = logging.getLogger("ai_fallback")

# GROQ_API_KEY, GROQ_API_KEY_2, ...
API_KEY_PATTERN = re.compile(r"^([A-Z0-9]+)_API_KEY(?:_(\d+))?$")

# Alternate variable names that feed an existing provider
API_KEY_ALIASES = {
    "GOOGLE_GEMINI_API_KEY": "gemini",
}


def discover_api_keys(env: Optional[Mapping[str, str]] = None) -> Dict[str, List[str]]:
    """
    Collect provider API keys from environment variables.

    <PROVIDER>_API_KEY comes first, then <PROVIDER>_API_KEY_<N> in ascending N,
    then aliases. Empty values and duplicates are dropped.
    """
    env = os.environ if env is None else env
    found: Dict[str, List[tuple]] = {}

    for key, value in env.items():
        if not value or not value.strip():
            continue
        if key in API_KEY_ALIASES:
            found.setdefault(API_KEY_ALIASES[key], []).append((10**9, value.strip()))
            continue
        match = API_KEY_PATTERN.match(key)
        if not match:
            continue
        provider = match.group(1).lower()
        order = int(match.group(2)) if match.group(2) else 1
        found.setdefault(provider, []).append((order, value.strip()))

    api_keys: Dict[str, List[str]] = {}
    for provider, entries in found.items():
        keys: List[str] = []
        for _, value in sorted(entries, key=lambda item: item[0]):
            if value not in keys:
                keys.append(value)
        api_keys[provider] = keys
    return api_keys


class CredentialRotator:
    """
    Round-robin credential selection per provider.

    The credential lists are fixed at construction. Every call to
    next_credential() advances that provider's index by one, so callers must
    not expect the same key twice in a row.
    """

    def __init__(self, credentials: Optional[Mapping[str, Sequence[str]]] = None):
        self._credentials: Dict[str, List[str]] = {
            provider: list(keys)
            for provider, keys in (credentials or {}).items()
            if keys
        }
        self._next_index: Dict[str, int] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CredentialRotator":
        api_keys = discover_api_keys(env)
        if api_keys:
            lib_logger.info(
                "Discovered credentials: "
                + ", ".join(f"{p}={len(k)}" for p, k in sorted(api_keys.items()))
            )
        return cls(api_keys)

    def next_credential(self, provider: str) -> Optional[str]:
        """Returns the provider's next credential, or None if it has none."""
        keys = self._credentials.get(provider)
        if not keys:
            return None
        with self._lock:
            index = self._next_index.get(provider, 0)
            self._next_index[provider] = (index + 1) % len(keys)
        credential = keys[index % len(keys)]
        lib_logger.debug(
            f"Rotated {provider} credential to {mask_credential(credential)} "
            f"({index + 1}/{len(keys)})"
        )
        return credential

    def providers(self) -> List[str]:
        return list(self._credentials.keys())

    def count(self, provider: str) -> int:
        return len(self._credentials.get(provider, []))

    def reset(self) -> None:
        with self._lock:
            self._next_index.clear()
