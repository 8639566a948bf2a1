from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta
from enum import Enum
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional

from shared.logging.logger import get_logger

log = get_logger("runtime.quotas")


# ======================================================================
# Exceptions
# ======================================================================

class QuotaExhausted(RuntimeError):
    """
    Raised internally when the ledger refuses an operation.
    This is NOT fatal: callers pause and retry later.
    """

    def __init__(self, kind: "OperationKind", used: int, cost: int, safe_limit: int):
        super().__init__(
            f"Quota refused {kind.value}: {used} + {cost} > {safe_limit}"
        )
        self.kind = kind


# ======================================================================
# Data Models
# ======================================================================

class OperationKind(Enum):
    SEARCH = "search"      # search.list (live video probe)
    LOOKUP = "lookup"      # videos.list (chat handle)
    LIST = "list"          # liveChatMessages.list
    INSERT = "insert"      # liveChatMessages.insert


# YouTube Data API v3 unit prices
DEFAULT_COSTS: Dict[OperationKind, int] = {
    OperationKind.SEARCH: 100,
    OperationKind.LOOKUP: 1,
    OperationKind.LIST: 5,
    OperationKind.INSERT: 50,
}

HISTORY_LIMIT = 100
HIGH_USAGE_RATIO = 0.7
NEAR_LIMIT_RATIO = 0.8


@dataclass
class QuotaPolicy:
    """
    Declarative quota limits.

    `safe_limit` sits strictly below `hard_limit`; admission is judged
    against it so estimation error never reaches the upstream ceiling.
    """
    hard_limit: int = 10000
    safe_limit: int = 9000

    def __post_init__(self) -> None:
        if self.safe_limit > self.hard_limit:
            raise ValueError(
                f"safe_limit ({self.safe_limit}) exceeds hard_limit ({self.hard_limit})"
            )


@dataclass(frozen=True)
class QuotaEntry:
    timestamp: datetime
    operation: OperationKind
    cost: int
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "operation": self.operation.value,
            "cost": self.cost,
            "success": self.success,
        }


def next_midnight(now: datetime) -> datetime:
    return datetime.combine(
        now.date() + timedelta(days=1), dt_time.min, tzinfo=now.tzinfo
    )


# ======================================================================
# Quota Ledger
# ======================================================================

class QuotaLedger:
    """
    Calendar-day ledger of weighted API costs.

    - Admission is pessimistic: an operation whose cost would push usage
      past the safe limit is refused before it runs
    - require() reserves the cost under the lock; the reservation counts
      against the safe limit until record(..., reserved=True) settles it
    - Only successful calls are charged
    - Resets at local midnight; every admit/record checks the boundary
      first, so a delayed periodic check cannot leave stale usage behind
    """

    def __init__(
        self,
        policy: Optional[QuotaPolicy] = None,
        *,
        costs: Optional[Dict[OperationKind, int]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.policy = policy or QuotaPolicy()
        self._costs = dict(DEFAULT_COSTS)
        if costs:
            self._costs.update(costs)
        self._clock = clock
        self._lock = Lock()

        self._used_today = 0
        self._reserved = 0
        self._reset_at = next_midnight(self._clock())
        self._history: Deque[QuotaEntry] = deque(maxlen=HISTORY_LIMIT)

    # --------------------------------------------------

    def cost_of(self, kind: OperationKind) -> int:
        return self._costs.get(kind, 1)

    @property
    def used_today(self) -> int:
        with self._lock:
            self._roll_if_due(self._clock())
            return self._used_today

    @property
    def reset_at(self) -> datetime:
        with self._lock:
            return self._reset_at

    # --------------------------------------------------

    def _roll_if_due(self, now: datetime) -> bool:
        # Caller holds the lock.
        if now < self._reset_at:
            return False

        log.info(
            f"[quota] Daily quota reset - previous usage: "
            f"{self._used_today}/{self.policy.hard_limit}"
        )
        self._used_today = 0
        self._history.clear()
        self._reset_at = next_midnight(now)
        return True

    def check_reset(self) -> bool:
        """Periodic sweep hook. Returns True when a reset happened."""
        with self._lock:
            return self._roll_if_due(self._clock())

    # --------------------------------------------------

    def _fits(self, kind: OperationKind, cost: int) -> bool:
        # Caller holds the lock.
        committed = self._used_today + self._reserved
        if committed + cost <= self.policy.safe_limit:
            return True

        log.warning(
            f"[quota] {kind.value} blocked - would exceed safe limit "
            f"(used={self._used_today}, in_flight={self._reserved}, "
            f"cost={cost}, safe={self.policy.safe_limit})"
        )
        return False

    def admit(self, kind: OperationKind) -> bool:
        with self._lock:
            self._roll_if_due(self._clock())
            return self._fits(kind, self.cost_of(kind))

    def require(self, kind: OperationKind) -> None:
        """
        Admit and reserve the cost in one step, raising QuotaExhausted on
        refusal. Every successful require() must be settled by
        record(kind, success, reserved=True) once the call finishes.
        """
        with self._lock:
            self._roll_if_due(self._clock())
            cost = self.cost_of(kind)
            if not self._fits(kind, cost):
                raise QuotaExhausted(
                    kind, self._used_today + self._reserved, cost, self.policy.safe_limit
                )
            self._reserved += cost

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._reserved

    def record(self, kind: OperationKind, success: bool = True, *, reserved: bool = False) -> None:
        with self._lock:
            now = self._clock()
            self._roll_if_due(now)
            if reserved:
                self._reserved = max(0, self._reserved - self.cost_of(kind))
            cost = self.cost_of(kind) if success else 0

            self._used_today += cost
            self._history.append(
                QuotaEntry(timestamp=now, operation=kind, cost=cost, success=success)
            )
            used = self._used_today

        if not success:
            log.debug(f"[quota] {kind.value} failed - not charged")
            return

        log.debug(
            f"[quota] {cost} units for {kind.value}. "
            f"Total: {used}/{self.policy.hard_limit}"
        )
        if used > self.policy.hard_limit * HIGH_USAGE_RATIO:
            log.warning(
                f"[quota] High usage: {used}/{self.policy.hard_limit} "
                f"({round(used / self.policy.hard_limit * 100)}%)"
            )

    # --------------------------------------------------

    def status(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            self._roll_if_due(now)
            used = self._used_today
            in_flight = self._reserved
            reset_at = self._reset_at

        hard = self.policy.hard_limit
        return {
            "used_today": used,
            "ceiling": hard,
            "safe_ceiling": self.policy.safe_limit,
            "remaining": max(0, hard - used),
            "in_flight": in_flight,
            "percent_used": round(used / hard * 100, 2) if hard else 100.0,
            "reset_at": reset_at.isoformat(),
            "time_to_reset_ms": max(0, int((reset_at - now).total_seconds() * 1000)),
            "is_near_limit": used > self.policy.safe_limit * NEAR_LIMIT_RATIO,
        }

    def history(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            entries = list(self._history)
        return [entry.to_dict() for entry in entries[-limit:]]

    def estimate_remaining(self, kind: OperationKind) -> int:
        with self._lock:
            self._roll_if_due(self._clock())
            remaining = self.policy.safe_limit - self._used_today - self._reserved
        return max(0, remaining // self.cost_of(kind))


__all__ = [
    "QuotaExhausted",
    "OperationKind",
    "DEFAULT_COSTS",
    "QuotaPolicy",
    "QuotaEntry",
    "QuotaLedger",
    "next_midnight",
]
