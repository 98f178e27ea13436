# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Runtime settings for the orchestrator, loaded from environment variables.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .defaults import (
    DEFAULT_APP_URL,
    DEFAULT_LOG_DIR,
    DEFAULT_PER_ATTEMPT_TIMEOUT,
    DEFAULT_TOTAL_TIME_BUDGET,
)

lib_logger = logging.getLogger("ai_fallback")


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        lib_logger.warning(f"Invalid value for {key}: {raw!r}, using {default}")
        return default
    if value <= 0:
        lib_logger.warning(f"{key} must be positive, got {value}, using {default}")
        return default
    return value


@dataclass
class FallbackSettings:
    """Tunables for a FallbackOrchestrator."""

    per_attempt_timeout: float = DEFAULT_PER_ATTEMPT_TIMEOUT
    total_time_budget: float = DEFAULT_TOTAL_TIME_BUDGET
    log_dir: Optional[str] = None
    app_url: str = DEFAULT_APP_URL

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "FallbackSettings":
        """
        Build settings from the environment.

        Recognised variables:
            AI_FALLBACK_PER_ATTEMPT_TIMEOUT - seconds per provider call
            AI_FALLBACK_TOTAL_TIMEOUT       - seconds for a whole complete() call
            AI_FALLBACK_LOG_DIR             - directory for failures.log
                                              ("off" disables the file log)
            APP_URL                         - referer sent to OpenRouter
        """
        env = os.environ if env is None else env

        log_dir = env.get("AI_FALLBACK_LOG_DIR", DEFAULT_LOG_DIR).strip()
        if log_dir.lower() in ("", "off", "none", "false", "0"):
            log_dir = None

        return cls(
            per_attempt_timeout=_env_float(
                env, "AI_FALLBACK_PER_ATTEMPT_TIMEOUT", DEFAULT_PER_ATTEMPT_TIMEOUT
            ),
            total_time_budget=_env_float(
                env, "AI_FALLBACK_TOTAL_TIMEOUT", DEFAULT_TOTAL_TIME_BUDGET
            ),
            log_dir=log_dir,
            app_url=env.get("APP_URL") or DEFAULT_APP_URL,
        )
