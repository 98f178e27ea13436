# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Centralized defaults for the fallback orchestrator.

This file contains all tunable default values for:
- Per-attempt and total time budgets
- Block durations applied after rate-limit and quota errors
- Baseline per-provider request caps
- Default models, endpoints and signup locations per provider

Environment variables can override several of these at runtime
(see config/settings.py and rate_limiter.py).
"""

from typing import Dict, Tuple

# =============================================================================
# TIME BUDGETS
# =============================================================================

# Maximum time a single provider call may take before it is abandoned
# Override via AI_FALLBACK_PER_ATTEMPT_TIMEOUT=<seconds>
DEFAULT_PER_ATTEMPT_TIMEOUT: float = 15.0

# Maximum time a whole complete() call may spend walking the catalog
# Override via AI_FALLBACK_TOTAL_TIMEOUT=<seconds>
DEFAULT_TOTAL_TIME_BUDGET: float = 45.0

# =============================================================================
# BLOCK DURATIONS (seconds)
# =============================================================================

# Rate limit without an explicit retry interval in the error text
BLOCK_RATE_LIMIT_DEFAULT: float = 60.0

# Rate limit on a tokens-per-minute budget (TPM) - these take longer to drain
BLOCK_TOKENS_PER_MINUTE: float = 120.0

# Zero-quota / permanently exhausted ("limit: 0")
BLOCK_QUOTA_EXHAUSTED: float = 86400.0

# Added on top of an explicit "try again in Xs" interval
RETRY_AFTER_SAFETY_MARGIN: float = 2.0

# =============================================================================
# RATE LIMIT WINDOWS
# =============================================================================

MINUTE_WINDOW_SECONDS: float = 60.0
DAY_WINDOW_SECONDS: float = 86400.0

# Conservative free-tier caps: provider -> (requests per minute, requests per day)
# Override per provider: RPM_LIMIT_{PROVIDER}=<n>, RPD_LIMIT_{PROVIDER}=<n>
DEFAULT_RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "groq": (25, 14000),  # 30 RPM / 14.4K per day free tier
    "gemini": (12, 500000),  # 15 RPM free tier
    "huggingface": (10, 800),
    "together": (20, 10000),
    "openrouter": (15, 5000),
    "moonshot": (10, 5000),
}

# Caps for providers missing from the table above
FALLBACK_RATE_LIMIT: Tuple[int, int] = (10, 1000)

# =============================================================================
# PROVIDER DEFAULTS
# =============================================================================

DEFAULT_MODELS: Dict[str, str] = {
    "groq": "llama-3.3-70b-versatile",
    "gemini": "gemini-2.0-flash",
    "huggingface": "meta-llama/Llama-3.1-8B-Instruct",
    "together": "meta-llama/Llama-3-70b-chat-hf",
    "openrouter": "google/gemini-2.0-flash-exp:free",
    "moonshot": "kimi-k2",
}

DEFAULT_BASE_URLS: Dict[str, str] = {
    "groq": "https://api.groq.com/openai/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
    "huggingface": "https://router.huggingface.co/models",
    "together": "https://api.together.xyz/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "moonshot": "https://api.moonshot.cn/v1",
}

# Shown in the aggregate failure so operators know where to get a key
PROVIDER_SIGNUP_URLS: Dict[str, str] = {
    "groq": "https://console.groq.com/ (30 RPM, 14.4K requests/day)",
    "gemini": "https://aistudio.google.com/apikey (15 RPM, 1M tokens/day)",
    "huggingface": "https://huggingface.co/settings/tokens (1K requests/month)",
    "moonshot": "https://platform.moonshot.cn/ (Kimi-k2, check pricing)",
    "together": "https://api.together.xyz/ ($25 free credits, includes Kimi-k2)",
    "openrouter": "https://openrouter.ai/ ($5 free credits, includes Kimi-k2)",
}

# Sent by the OpenRouter adapter as HTTP-Referer
# Override via APP_URL=<url>
DEFAULT_APP_URL: str = "http://localhost:3000"

# =============================================================================
# FAILURE LOG
# =============================================================================

DEFAULT_LOG_DIR: str = "logs"
FAILURE_LOG_MAX_BYTES: int = 5 * 1024 * 1024
FAILURE_LOG_BACKUP_COUNT: int = 2
