"""Reply pacing: global spacing, per-author cooldown and a rolling hourly cap."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from shared.logging.logger import get_logger

log = get_logger("runtime.throttle")

HOUR_SECONDS = 3600.0

GLOBAL_COOLDOWN = "global_cooldown"
HOURLY_LIMIT = "hourly_limit"
AUTHOR_COOLDOWN = "author_cooldown"


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    reason: Optional[str] = None

    # Set by acquire() so release() can undo an unused grant
    granted_at: Optional[float] = None
    previous_global: Optional[float] = None
    previous_author: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason}


@dataclass
class ThrottlePolicy:
    max_per_hour: int = 30
    global_cooldown_ms: int = 8000
    author_cooldown_ms: int = 30000


class ResponseThrottle:
    """
    All three gates must pass for a reply to be allowed. The hourly window
    slides with the clock and is pruned on every read.
    """

    def __init__(
        self,
        policy: Optional[ThrottlePolicy] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy or ThrottlePolicy()
        self._clock = clock
        self._lock = Lock()

        self._last_global: Optional[float] = None
        self._per_author: Dict[str, float] = {}
        self._hourly: List[float] = []

    # ------------------------------------------------------------------

    def _prune(self, now: float) -> None:
        window_start = now - HOUR_SECONDS
        self._hourly[:] = [ts for ts in self._hourly if ts > window_start]

    def _evaluate(self, author_id: str, now: float) -> ThrottleDecision:
        global_cooldown = self.policy.global_cooldown_ms / 1000.0
        if self._last_global is not None and now - self._last_global < global_cooldown:
            return ThrottleDecision(False, GLOBAL_COOLDOWN)

        self._prune(now)
        if len(self._hourly) >= self.policy.max_per_hour:
            return ThrottleDecision(False, HOURLY_LIMIT)

        last = self._per_author.get(author_id)
        if last is not None and now - last < self.policy.author_cooldown_ms / 1000.0:
            return ThrottleDecision(False, AUTHOR_COOLDOWN)

        return ThrottleDecision(True)

    def _record(self, author_id: str, now: float) -> None:
        self._last_global = now
        self._per_author[author_id] = now
        self._hourly.append(now)

    # ------------------------------------------------------------------

    def may_respond(self, author_id: str = "global") -> ThrottleDecision:
        with self._lock:
            return self._evaluate(author_id, self._clock())

    def record_reply(self, author_id: str = "global") -> None:
        with self._lock:
            self._record(author_id, self._clock())
        log.debug(f"[throttle] Reply recorded for author: {author_id}")

    def acquire(self, author_id: str = "global") -> ThrottleDecision:
        """Check all gates and, when they pass, record the reply in one step."""
        with self._lock:
            now = self._clock()
            decision = self._evaluate(author_id, now)
            if not decision.allowed:
                return decision

            granted = ThrottleDecision(
                True,
                granted_at=now,
                previous_global=self._last_global,
                previous_author=self._per_author.get(author_id),
            )
            self._record(author_id, now)
        return granted

    def release(self, author_id: str, decision: ThrottleDecision) -> None:
        """
        Give back a slot taken by acquire() when the reply was never sent.
        Timestamps overwritten by a later grant are left alone.
        """
        if not decision.allowed or decision.granted_at is None:
            return

        stamp = decision.granted_at
        with self._lock:
            if stamp in self._hourly:
                self._hourly.remove(stamp)
            if self._last_global == stamp:
                self._last_global = decision.previous_global
            if self._per_author.get(author_id) == stamp:
                if decision.previous_author is None:
                    del self._per_author[author_id]
                else:
                    self._per_author[author_id] = decision.previous_author
        log.debug(f"[throttle] Reply slot released for author: {author_id}")

    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            self._prune(self._clock())
            return {
                "hourly_count": len(self._hourly),
                "hourly_cap": self.policy.max_per_hour,
                "active_authors": len(self._per_author),
                "global_cooldown_ms": self.policy.global_cooldown_ms,
                "author_cooldown_ms": self.policy.author_cooldown_ms,
            }

    def cleanup(self) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            cutoff = now - HOUR_SECONDS
            for author_id in [a for a, ts in self._per_author.items() if ts < cutoff]:
                del self._per_author[author_id]
        log.debug("[throttle] Cleanup completed")

    def reset(self) -> None:
        with self._lock:
            self._last_global = None
            self._per_author.clear()
            self._hourly.clear()
        log.info("[throttle] Reset")


__all__ = [
    "ResponseThrottle",
    "ThrottleDecision",
    "ThrottlePolicy",
    "GLOBAL_COOLDOWN",
    "HOURLY_LIMIT",
    "AUTHOR_COOLDOWN",
]
