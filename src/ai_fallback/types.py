# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Type definitions for the fallback orchestrator.

This module contains the dataclasses and enums shared by the catalog,
rate limiter, provider adapters and orchestrator.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================


class Provider(str, Enum):
    """Supported completion vendors."""

    GROQ = "groq"
    GEMINI = "gemini"
    HUGGINGFACE = "huggingface"
    TOGETHER = "together"
    OPENROUTER = "openrouter"
    MOONSHOT = "moonshot"


class AttemptOutcome(str, Enum):
    """What happened to one candidate during a complete() call."""

    SUCCESS = "success"
    SKIPPED_NO_CREDENTIAL = "skipped_no_credential"  # No network call
    SKIPPED_RATE_LIMITED = "skipped_rate_limited"  # No network call
    FAILED_TIMEOUT = "failed_timeout"
    FAILED_TRANSPORT = "failed_transport"
    FAILED_AND_BLOCKED = "failed_and_blocked"

    @property
    def dispatched(self) -> bool:
        """True if the candidate was actually sent to its provider."""
        return self not in (
            AttemptOutcome.SKIPPED_NO_CREDENTIAL,
            AttemptOutcome.SKIPPED_RATE_LIMITED,
        )


# =============================================================================
# CANDIDATES
# =============================================================================


@dataclass(frozen=True)
class Candidate:
    """
    One (provider, model, credential) combination eligible for an attempt.

    Lower priority values are tried first.
    """

    provider: str
    model: str
    credential: Optional[str] = None
    base_url: Optional[str] = None
    priority: int = 0

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.model}"

    def with_credential(self, credential: str) -> "Candidate":
        return replace(self, credential=credential)


# =============================================================================
# RATE LIMIT TYPES
# =============================================================================


@dataclass
class RateLimitState:
    """
    Sliding request counters and block state for one (provider, model).

    Windows reset lazily when checked; there is no background timer.
    """

    requests_per_minute: int
    requests_per_day: int
    minute_window_start: float
    day_window_start: float
    minute_count: int = 0
    day_count: int = 0
    blocked_until: Optional[float] = None

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def to_dict(self, now: float) -> Dict[str, Any]:
        return {
            "requests_per_minute": self.requests_per_minute,
            "requests_per_day": self.requests_per_day,
            "minute_count": self.minute_count,
            "day_count": self.day_count,
            "blocked_for": (
                round(self.blocked_until - now, 3) if self.is_blocked(now) else 0
            ),
        }


@dataclass(frozen=True)
class AdmissionResult:
    """Answer of an admission check. wait_time is in seconds."""

    allowed: bool
    wait_time: Optional[float] = None

    @classmethod
    def ok(cls) -> "AdmissionResult":
        return cls(allowed=True)

    @classmethod
    def denied(cls, wait_time: float) -> "AdmissionResult":
        return cls(allowed=False, wait_time=max(0.0, wait_time))


# =============================================================================
# ATTEMPT / RESULT TYPES
# =============================================================================


@dataclass
class AttemptRecord:
    """
    Outcome of one candidate within a single complete() call.

    dispatched defaults from the outcome; pass False for failures that were
    decided before any request was sent.
    """

    candidate: Candidate
    outcome: AttemptOutcome
    error_detail: Optional[str] = None
    wait_time: Optional[float] = None
    block_duration: Optional[float] = None
    dispatched: Optional[bool] = None

    def __post_init__(self):
        if self.dispatched is None:
            self.dispatched = self.outcome.dispatched

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "provider": self.candidate.provider,
            "model": self.candidate.model,
            "outcome": self.outcome.value,
            "error": self.error_detail,
        }
        if self.wait_time is not None:
            data["wait_time"] = round(self.wait_time, 3)
        if self.block_duration is not None:
            data["block_duration"] = round(self.block_duration, 3)
        return data


@dataclass
class CompletionResult:
    """A completion together with the candidate that produced it."""

    text: str
    provider: str
    model: str
    attempts: List[AttemptRecord] = field(default_factory=list)
