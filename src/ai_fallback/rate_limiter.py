# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import logging
import os
import threading
import time
from typing import Callable, Dict, Mapping, Optional, Tuple

from .config.defaults import (
    DAY_WINDOW_SECONDS,
    DEFAULT_RATE_LIMITS,
    FALLBACK_RATE_LIMIT,
    MINUTE_WINDOW_SECONDS,
)
from .types import AdmissionResult, RateLimitState

lib_logger = logging.getLogger("ai_fallback")


def load_rate_limits_from_env(
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Tuple[int, int]]:
    """
    Read per-provider cap overrides.

    Format: RPM_LIMIT_{PROVIDER}=<n> and RPD_LIMIT_{PROVIDER}=<n>.
    Providers not overridden keep the baseline table values.
    """
    env = os.environ if env is None else env
    limits = dict(DEFAULT_RATE_LIMITS)

    for key, value in env.items():
        for prefix, index in (("RPM_LIMIT_", 0), ("RPD_LIMIT_", 1)):
            if not key.startswith(prefix):
                continue
            provider = key[len(prefix) :].lower()
            try:
                cap = int(value)
            except ValueError:
                lib_logger.warning(f"Ignoring non-integer {key}={value!r}")
                continue
            if cap < 1:
                lib_logger.warning(f"Ignoring {key}={cap}: caps must be at least 1")
                continue
            current = list(limits.get(provider, FALLBACK_RATE_LIMIT))
            current[index] = cap
            limits[provider] = (current[0], current[1])
    return limits


class RateLimiter:
    """
    Per (provider, model) request counters with explicit temporary blocks.

    Each key carries a minute window and a day window. Windows are reset
    lazily on the next admission check once they have run their full length.
    Blocks set by block() suppress a key until they expire on their own.

    All state is guarded by a single lock so concurrent complete() calls can
    share one instance. Nothing here ever sleeps or raises.
    """

    def __init__(
        self,
        limits: Optional[Mapping[str, Tuple[int, int]]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._limits: Dict[str, Tuple[int, int]] = dict(
            DEFAULT_RATE_LIMITS if limits is None else limits
        )
        self._clock = clock
        self._states: Dict[Tuple[str, str], RateLimitState] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, **kwargs
    ) -> "RateLimiter":
        return cls(limits=load_rate_limits_from_env(env), **kwargs)

    # =========================================================================
    # STATE
    # =========================================================================

    def _get_state(self, provider: str, model: str) -> RateLimitState:
        """Get or lazily create the state for a key. Caller holds the lock."""
        key = (provider, model)
        state = self._states.get(key)
        if state is None:
            rpm, rpd = self._limits.get(provider, FALLBACK_RATE_LIMIT)
            now = self._clock()
            state = RateLimitState(
                requests_per_minute=rpm,
                requests_per_day=rpd,
                minute_window_start=now,
                day_window_start=now,
            )
            self._states[key] = state
        return state

    def get_state(self, provider: str, model: str) -> Optional[RateLimitState]:
        """Returns the tracked state for a key, or None if never referenced."""
        with self._lock:
            return self._states.get((provider, model))

    def _check(self, state: RateLimitState, now: float) -> AdmissionResult:
        if state.is_blocked(now):
            return AdmissionResult.denied(state.blocked_until - now)

        if now - state.minute_window_start >= MINUTE_WINDOW_SECONDS:
            state.minute_count = 0
            state.minute_window_start = now
        if now - state.day_window_start >= DAY_WINDOW_SECONDS:
            state.day_count = 0
            state.day_window_start = now

        if state.minute_count >= state.requests_per_minute:
            return AdmissionResult.denied(
                MINUTE_WINDOW_SECONDS - (now - state.minute_window_start)
            )
        if state.day_count >= state.requests_per_day:
            return AdmissionResult.denied(
                DAY_WINDOW_SECONDS - (now - state.day_window_start)
            )
        return AdmissionResult.ok()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def can_attempt(self, provider: str, model: str) -> AdmissionResult:
        """
        Admission check for a key.

        Returns allowed=False with wait_time set to the remaining block, or
        the time until the failing minute/day window rolls over.
        """
        with self._lock:
            return self._check(self._get_state(provider, model), self._clock())

    def record_attempt(self, provider: str, model: str) -> None:
        """Counts one dispatched request against both windows."""
        with self._lock:
            state = self._get_state(provider, model)
            state.minute_count += 1
            state.day_count += 1

    def try_acquire(self, provider: str, model: str) -> AdmissionResult:
        """
        Admission check and record_attempt as one atomic step.

        Two concurrent callers can never both take the last slot of a window.
        """
        with self._lock:
            state = self._get_state(provider, model)
            result = self._check(state, self._clock())
            if result.allowed:
                state.minute_count += 1
                state.day_count += 1
            return result

    def block(self, provider: str, model: str, duration: float) -> None:
        """
        Suppress a key for `duration` seconds.

        An existing block that ends later is kept; blocks are never shortened.
        """
        if duration <= 0:
            return
        with self._lock:
            state = self._get_state(provider, model)
            until = self._clock() + duration
            if state.blocked_until is not None and state.blocked_until >= until:
                lib_logger.debug(
                    f"Keeping longer block on {provider}/{model} "
                    f"({state.blocked_until - until:.1f}s beyond new request)"
                )
                return
            state.blocked_until = until
        lib_logger.warning(f"Blocked {provider}/{model} for {duration:.1f}s")

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        """JSON-friendly view of every tracked key."""
        with self._lock:
            now = self._clock()
            return {
                f"{provider}/{model}": state.to_dict(now)
                for (provider, model), state in self._states.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._states.clear()
