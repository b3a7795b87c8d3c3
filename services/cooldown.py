"""In-memory cooldowns, draw locks and repeat-offender counters.

All state lives in the instance that owns it and is lost on restart; these
are abuse mitigations, not correctness-critical state.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from core.constants import SuspiciousActivityDefaults

Clock = Callable[[], float]

# Expired entries are swept once a map grows past this size
PRUNE_THRESHOLD = 1024


@dataclass(frozen=True, slots=True)
class CooldownResult:
    ok: bool
    wait_seconds: int = 0


class CooldownTracker:
    """Advisory short-TTL markers keyed by an arbitrary string.

    Used both for per-user command cooldowns and for the draw lock that keeps
    a double click from running two draws on the same contest.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._next_allowed: Dict[str, float] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> CooldownResult:
        with self._lock:
            now = self._clock()
            next_allowed = self._next_allowed.get(key, 0.0)
            if next_allowed > now:
                return CooldownResult(ok=False, wait_seconds=max(1, math.ceil(next_allowed - now)))
            self._next_allowed[key] = now + self.ttl_seconds
            self._prune(now)
            return CooldownResult(ok=True)

    def _prune(self, now: float) -> None:
        if len(self._next_allowed) < PRUNE_THRESHOLD:
            return
        expired = [key for key, until in self._next_allowed.items() if until <= now]
        for key in expired:
            del self._next_allowed[key]


@dataclass
class _SuspiciousState:
    count: int
    window_start: float
    last_alert_at: float


@dataclass(frozen=True, slots=True)
class SuspiciousSignal:
    should_alert: bool
    count: int


class SuspiciousActivityTracker:
    """Count repeated cooldown hits and decide when to alert admins."""

    def __init__(
        self,
        window_seconds: float = SuspiciousActivityDefaults.WINDOW_SECONDS,
        threshold: int = SuspiciousActivityDefaults.THRESHOLD,
        alert_cooldown_seconds: float = SuspiciousActivityDefaults.ALERT_COOLDOWN_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.threshold = threshold
        self.alert_cooldown_seconds = alert_cooldown_seconds
        self._clock = clock
        self._state: Dict[str, _SuspiciousState] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> SuspiciousSignal:
        with self._lock:
            now = self._clock()
            current = self._state.get(key)
            if current is None or now - current.window_start > self.window_seconds:
                self._prune(now)
                # -inf so the first alert is never held back by the alert cooldown
                self._state[key] = _SuspiciousState(count=1, window_start=now, last_alert_at=-math.inf)
                return SuspiciousSignal(should_alert=False, count=1)

            current.count += 1
            should_alert = (
                current.count >= self.threshold
                and now - current.last_alert_at > self.alert_cooldown_seconds
            )
            if should_alert:
                current.last_alert_at = now
            return SuspiciousSignal(should_alert=should_alert, count=current.count)

    def _prune(self, now: float) -> None:
        if len(self._state) < PRUNE_THRESHOLD:
            return
        expired = [
            key for key, state in self._state.items()
            if now - state.window_start > self.window_seconds
            and now - state.last_alert_at > self.alert_cooldown_seconds
        ]
        for key in expired:
            del self._state[key]
