# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import asyncio
import json
import math
import re
from typing import Any, Dict, List, Optional

from .config.defaults import (
    BLOCK_QUOTA_EXHAUSTED,
    BLOCK_RATE_LIMIT_DEFAULT,
    BLOCK_TOKENS_PER_MINUTE,
    PROVIDER_SIGNUP_URLS,
    RETRY_AFTER_SAFETY_MARGIN,
)
from .types import AttemptOutcome, AttemptRecord

# Phrases that mark an error as a rate limit (matched case-insensitively)
RATE_LIMIT_PATTERNS = (
    "429",
    "quota",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "resource_exhausted",
)

# Phrases that mark a tokens-per-minute limit
TOKENS_PER_MINUTE_PATTERNS = ("tpm", "tokens per minute")

# Zero quota: the account has no allowance for this model at all
QUOTA_EXHAUSTED_PATTERN = re.compile(r"limit:\s*0(?![\d.])", re.IGNORECASE)

# "Please try again in 7.66s", "try again in 1m2.5s", "retry in 850ms"
RETRY_IN_PATTERN = re.compile(
    r"(?:try again|retry) in ((?:\d+(?:\.\d+)?(?:ms|h|m|s)?)+)", re.IGNORECASE
)

# Google style: "retryDelay": "37s"
RETRY_DELAY_JSON_PATTERN = re.compile(r'"retryDelay"\s*:\s*"([\d.]+)s"')


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ProviderError(Exception):
    """
    Normalized failure raised by a provider adapter.

    Carries the HTTP status (when the vendor answered at all) and the raw
    vendor error text, which the classifier needs to work out block durations.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def text(self) -> str:
        """Message and raw body combined, for phrase matching."""
        message = str(self)
        if self.body and self.body not in message:
            return f"{message} {self.body}"
        return message


class AllProvidersFailedError(Exception):
    """
    Raised by the orchestrator when no candidate produced a completion.

    Holds one AttemptRecord per candidate visited, in trial order.
    """

    def __init__(self, attempts: List[AttemptRecord], timed_out: bool = False):
        self.attempts = list(attempts)
        self.timed_out = timed_out
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        lines = ["All AI providers failed!"]
        if self.timed_out:
            lines.append("Total time budget exhausted before every provider was tried.")
        lines.append("Errors:")
        if not self.attempts:
            lines.append("  - no candidates were available")
        for record in self.attempts:
            detail = record.error_detail or record.outcome.value
            lines.append(
                f"  - {record.candidate.label}: "
                f"[{record.outcome.value}] {detail}"
            )
        lines.append("")
        lines.append(
            "Please check your API keys and quotas. Free tier options:"
        )
        for index, (provider, url) in enumerate(PROVIDER_SIGNUP_URLS.items(), 1):
            lines.append(f"{index}. {provider}: {url}")
        return "\n".join(lines)

    @property
    def network_calls(self) -> int:
        return sum(1 for record in self.attempts if record.dispatched)

    def build_report(self) -> Dict[str, Any]:
        """Structured form of the failure, suitable for a JSON response."""
        return {
            "error": {
                "type": "all_providers_failed",
                "message": str(self),
                "timed_out": self.timed_out,
                "attempts": [record.to_dict() for record in self.attempts],
                "signup": dict(PROVIDER_SIGNUP_URLS),
            }
        }


# =============================================================================
# CLASSIFICATION
# =============================================================================


class ClassifiedError:
    """A structured representation of a classified error."""

    def __init__(
        self,
        error_type: str,
        original_exception: Optional[BaseException] = None,
        status_code: Optional[int] = None,
        block_duration: Optional[float] = None,
    ):
        self.error_type = error_type
        self.original_exception = original_exception
        self.status_code = status_code
        self.block_duration = block_duration

    @property
    def should_block(self) -> bool:
        return self.block_duration is not None and self.block_duration > 0

    @property
    def outcome(self) -> AttemptOutcome:
        if self.should_block:
            return AttemptOutcome.FAILED_AND_BLOCKED
        if self.error_type == "timeout":
            return AttemptOutcome.FAILED_TIMEOUT
        return AttemptOutcome.FAILED_TRANSPORT

    def __str__(self):
        return (
            f"ClassifiedError(type={self.error_type}, status={self.status_code}, "
            f"block={self.block_duration}, original_exc={self.original_exception})"
        )


def _parse_duration_string(duration_str: str) -> Optional[float]:
    """
    Parse duration strings to seconds.

    Handles:
    - Milliseconds: '850ms' -> 0.85
    - Compound durations: '1h2m3.5s', '1m2.5s'
    - Simple durations: '7.66s', '2m'
    - Plain seconds (no unit): '12'
    """
    if not duration_str:
        return None

    remaining = duration_str.strip().lower()
    try:
        return float(remaining)
    except ValueError:
        pass

    total = 0.0
    matched = False
    # 'ms' has to win over 'm' followed by 's'
    for value, unit in re.findall(r"([\d.]+)(ms|h|m|s)", remaining):
        try:
            number = float(value)
        except ValueError:
            return None
        matched = True
        if unit == "ms":
            total += number / 1000.0
        elif unit == "h":
            total += number * 3600
        elif unit == "m":
            total += number * 60
        else:
            total += number
    return total if matched else None


def extract_retry_after(text: Optional[str]) -> Optional[float]:
    """
    Find an explicit retry interval embedded in vendor error text.

    Returns seconds, or None if the text names no interval.
    """
    if not text:
        return None

    match = RETRY_IN_PATTERN.search(text)
    if match:
        seconds = _parse_duration_string(match.group(1))
        if seconds is not None:
            return seconds

    match = RETRY_DELAY_JSON_PATTERN.search(text)
    if match:
        return float(match.group(1))

    # Some vendors nest the delay one JSON level deeper
    try:
        data = json.loads(text)
    except (ValueError, TypeError):
        return None
    error = data.get("error") if isinstance(data, dict) else None
    details = error.get("details") if isinstance(error, dict) else None
    for detail in details if isinstance(details, list) else []:
        if isinstance(detail, dict) and "retryDelay" in detail:
            return _parse_duration_string(str(detail["retryDelay"]))
    return None


def is_rate_limit_text(text: str) -> bool:
    lowered = text.lower()
    return any(pattern in lowered for pattern in RATE_LIMIT_PATTERNS)


def is_quota_exhausted_text(text: str) -> bool:
    return bool(QUOTA_EXHAUSTED_PATTERN.search(text))


def rate_limit_block_duration(
    text: str, retry_after: Optional[float] = None
) -> float:
    """
    Work out how long to block a candidate after a rate-limit error.

    An explicit retry interval wins (plus a safety margin), then the longer
    tokens-per-minute duration, then the default.
    """
    explicit = extract_retry_after(text)
    if explicit is None:
        explicit = retry_after
    if explicit is not None:
        return math.ceil(explicit) + RETRY_AFTER_SAFETY_MARGIN

    lowered = text.lower()
    if any(pattern in lowered for pattern in TOKENS_PER_MINUTE_PATTERNS):
        return BLOCK_TOKENS_PER_MINUTE
    return BLOCK_RATE_LIMIT_DEFAULT


def classify_error(e: BaseException) -> ClassifiedError:
    """
    Classifies an exception raised while attempting a candidate.

    Error types and their handling:
    - quota_exhausted: zero allowance ("limit: 0"), block for a day
    - rate_limit (429 or rate/quota phrase): block for the parsed interval
    - timeout: per-attempt timer fired first, no block
    - transport: network failure, HTTP error or malformed response, no block
    """
    if isinstance(e, asyncio.TimeoutError):
        return ClassifiedError("timeout", original_exception=e)

    status_code = getattr(e, "status_code", None)
    text = e.text if isinstance(e, ProviderError) else str(e)

    # Checked before the generic rate-limit phrases since these errors
    # usually also contain "quota" or "429"
    if is_quota_exhausted_text(text):
        return ClassifiedError(
            "quota_exhausted",
            original_exception=e,
            status_code=status_code,
            block_duration=BLOCK_QUOTA_EXHAUSTED,
        )

    if status_code == 429 or is_rate_limit_text(text):
        retry_after = getattr(e, "retry_after", None)
        return ClassifiedError(
            "rate_limit",
            original_exception=e,
            status_code=status_code,
            block_duration=rate_limit_block_duration(text, retry_after),
        )

    return ClassifiedError("transport", original_exception=e, status_code=status_code)


def mask_credential(credential: Optional[str]) -> str:
    """
    Mask a credential for safe display in logs and error messages.

    Shows the last 4 characters of an API key (e.g., "...z123").
    """
    if not credential:
        return "<none>"
    if len(credential) > 8:
        return f"...{credential[-4:]}"
    return "***"
