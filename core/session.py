"""
Session state machine.

Every function here is pure: it takes the current SessionState plus an
observation and returns a Transition (next state + command descriptors).
The orchestrator owns all I/O and executes the commands in order.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from shared.config.bot import IntervalConfig


class Phase(Enum):
    IDLE = "idle"
    AWAITING_STREAM = "awaiting_stream"
    CHAT_ATTACHED = "chat_attached"
    POLLING = "polling"
    BACKOFF = "backoff"
    STOPPING = "stopping"
    STOPPED = "stopped"


SESSION_PHASES = {Phase.CHAT_ATTACHED, Phase.POLLING, Phase.BACKOFF}
TERMINAL_PHASES = {Phase.STOPPING, Phase.STOPPED}

PROBE_TIMER = "probe"
POLL_TIMER = "poll"
SESSION_TIMERS: Tuple[str, ...] = (PROBE_TIMER, POLL_TIMER)

FATAL_STOP_REASON = "fatal_error_threshold"


@dataclass(frozen=True)
class SessionTiming:
    stream_check_ms: int = 45 * 60 * 1000
    min_poll_interval_ms: int = 12000
    max_backoff_ms: int = 300000
    quota_pause_ms: int = 60000
    restart_delay_ms: int = 3000

    @classmethod
    def from_intervals(cls, intervals: IntervalConfig) -> "SessionTiming":
        return cls(
            stream_check_ms=intervals.stream_check_ms,
            min_poll_interval_ms=intervals.min_poll_interval_ms,
            max_backoff_ms=intervals.max_backoff_ms,
            quota_pause_ms=intervals.quota_pause_ms,
            restart_delay_ms=intervals.restart_delay_ms,
        )

    def backoff_ms(self, consecutive_errors: int) -> int:
        return min(
            self.min_poll_interval_ms * (2 ** consecutive_errors),
            self.max_backoff_ms,
        )


@dataclass(frozen=True)
class SessionState:
    phase: Phase = Phase.IDLE
    active_video_id: Optional[str] = None
    chat_handle: Optional[str] = None
    page_cursor: Optional[str] = None
    consecutive_errors: int = 0
    error_threshold: int = 5
    started_at: float = 0.0
    stop_reason: Optional[str] = None

    @property
    def chat_attached(self) -> bool:
        return self.chat_handle is not None


# ======================================================================
# Commands (side effects requested from the orchestrator)
# ======================================================================

@dataclass(frozen=True)
class ScheduleProbe:
    delay_ms: int


@dataclass(frozen=True)
class SchedulePoll:
    delay_ms: int
    reason: str = "next"


@dataclass(frozen=True)
class FetchChatHandle:
    video_id: str


@dataclass(frozen=True)
class AnnounceStream:
    video_id: str


@dataclass(frozen=True)
class CancelTimers:
    # None cancels everything, including housekeeping timers
    names: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ResetContext:
    pass


@dataclass(frozen=True)
class SendFarewell:
    pass


@dataclass(frozen=True)
class ReleaseEndpoint:
    pass


@dataclass(frozen=True)
class Finish:
    pass


@dataclass
class Transition:
    state: SessionState
    commands: List[object] = field(default_factory=list)


def _stay(state: SessionState) -> Transition:
    return Transition(state)


def _clear_session(state: SessionState, phase: Phase) -> SessionState:
    return replace(
        state,
        phase=phase,
        active_video_id=None,
        chat_handle=None,
        page_cursor=None,
    )


# ======================================================================
# Lifecycle
# ======================================================================

def start(state: SessionState) -> Transition:
    """IDLE -> AWAITING_STREAM with an immediate probe."""
    if state.phase is not Phase.IDLE:
        return _stay(state)
    return Transition(
        replace(state, phase=Phase.AWAITING_STREAM),
        [ScheduleProbe(0)],
    )


def request_stop(state: SessionState, reason: str) -> Transition:
    """
    any -> STOPPING. Timers are cancelled before the farewell is attempted
    so no poll cycle can begin once shutdown has started.
    """
    if state.phase in TERMINAL_PHASES:
        return _stay(state)
    return Transition(
        replace(state, phase=Phase.STOPPING, stop_reason=reason),
        [CancelTimers(None), SendFarewell(), ReleaseEndpoint(), Finish()],
    )


def stopped(state: SessionState) -> Transition:
    if state.phase is Phase.STOPPED:
        return _stay(state)
    return Transition(_clear_session(state, Phase.STOPPED))


def request_restart(state: SessionState, timing: SessionTiming) -> Transition:
    """Re-enter AWAITING_STREAM without terminating the process."""
    if state.phase in TERMINAL_PHASES or state.phase is Phase.IDLE:
        return _stay(state)
    return Transition(
        replace(_clear_session(state, Phase.AWAITING_STREAM), consecutive_errors=0),
        [
            CancelTimers(SESSION_TIMERS),
            ResetContext(),
            ScheduleProbe(timing.restart_delay_ms),
        ],
    )


def _error_or_stop(state: SessionState) -> Optional[Transition]:
    errors = state.consecutive_errors + 1
    if errors >= state.error_threshold:
        return request_stop(
            replace(state, consecutive_errors=errors), FATAL_STOP_REASON
        )
    return None


# ======================================================================
# Stream probe
# ======================================================================

def probe_skipped(state: SessionState, timing: SessionTiming) -> Transition:
    """Outside streaming hours or quota refused: try again later."""
    if state.phase in TERMINAL_PHASES:
        return _stay(state)
    return Transition(state, [ScheduleProbe(timing.stream_check_ms)])


def probe_failed(state: SessionState, timing: SessionTiming) -> Transition:
    if state.phase in TERMINAL_PHASES:
        return _stay(state)
    fatal = _error_or_stop(state)
    if fatal:
        return fatal
    return Transition(
        replace(state, consecutive_errors=state.consecutive_errors + 1),
        [ScheduleProbe(timing.stream_check_ms)],
    )


def probe_result(
    state: SessionState,
    video_id: Optional[str],
    timing: SessionTiming,
) -> Transition:
    if state.phase in TERMINAL_PHASES or state.phase is Phase.IDLE:
        return _stay(state)

    reschedule = ScheduleProbe(timing.stream_check_ms)

    if state.phase in SESSION_PHASES:
        if video_id == state.active_video_id:
            return Transition(state, [reschedule])
        # The broadcast we were attached to is gone (or replaced)
        ended = stream_ended(state, timing)
        if video_id is None:
            return ended
        state = ended.state
        commands = [c for c in ended.commands if not isinstance(c, ScheduleProbe)]
        return Transition(
            replace(state, active_video_id=video_id),
            commands + [AnnounceStream(video_id), FetchChatHandle(video_id), reschedule],
        )

    # AWAITING_STREAM
    if video_id is None:
        return Transition(state, [reschedule])

    commands: List[object] = []
    if video_id != state.active_video_id:
        commands.append(AnnounceStream(video_id))
    commands += [FetchChatHandle(video_id), reschedule]
    return Transition(replace(state, active_video_id=video_id), commands)


def chat_handle_result(state: SessionState, chat_handle: Optional[str]) -> Transition:
    """AWAITING_STREAM -> CHAT_ATTACHED -> POLLING, or stay when chat is off."""
    if state.phase is not Phase.AWAITING_STREAM:
        return _stay(state)
    if not chat_handle:
        return _stay(state)

    attached = replace(
        state,
        phase=Phase.CHAT_ATTACHED,
        chat_handle=chat_handle,
        page_cursor=None,
    )
    return begin_polling(attached)


def chat_handle_failed(state: SessionState, timing: SessionTiming, *, terminal: bool) -> Transition:
    if state.phase is not Phase.AWAITING_STREAM:
        return _stay(state)
    if terminal:
        return _stay(state)
    fatal = _error_or_stop(state)
    if fatal:
        return fatal
    return Transition(replace(state, consecutive_errors=state.consecutive_errors + 1))


def begin_polling(state: SessionState) -> Transition:
    if state.phase is not Phase.CHAT_ATTACHED:
        return _stay(state)
    return Transition(
        replace(state, phase=Phase.POLLING, consecutive_errors=0),
        [SchedulePoll(0, "attached")],
    )


# ======================================================================
# Poll cycle
# ======================================================================

def poll_attempt(state: SessionState) -> Transition:
    """The (re)scheduled poll fires. BACKOFF retries count as fresh polls."""
    if state.phase is Phase.BACKOFF:
        return Transition(replace(state, phase=Phase.POLLING))
    return _stay(state)


def poll_succeeded(
    state: SessionState,
    next_cursor: Optional[str],
    suggested_interval_ms: Optional[int],
    timing: SessionTiming,
) -> Transition:
    if state.phase is not Phase.POLLING:
        return _stay(state)
    delay = max(suggested_interval_ms or 0, timing.min_poll_interval_ms)
    return Transition(
        replace(state, page_cursor=next_cursor, consecutive_errors=0),
        [SchedulePoll(delay)],
    )


def poll_quota_exhausted(state: SessionState, timing: SessionTiming) -> Transition:
    """Expected, non-fatal: same attempt later, error counter untouched."""
    if state.phase not in (Phase.POLLING, Phase.BACKOFF):
        return _stay(state)
    return Transition(state, [SchedulePoll(timing.quota_pause_ms, "quota")])


def poll_failed_transient(state: SessionState, timing: SessionTiming) -> Transition:
    if state.phase not in (Phase.POLLING, Phase.BACKOFF):
        return _stay(state)

    fatal = _error_or_stop(state)
    if fatal:
        return fatal

    delay = timing.backoff_ms(state.consecutive_errors)
    return Transition(
        replace(
            state,
            phase=Phase.BACKOFF,
            consecutive_errors=state.consecutive_errors + 1,
        ),
        [SchedulePoll(delay, "backoff")],
    )


def poll_failed_terminal(state: SessionState, timing: SessionTiming) -> Transition:
    if state.phase not in (Phase.POLLING, Phase.BACKOFF):
        return _stay(state)
    return stream_ended(state, timing)


def stream_ended(state: SessionState, timing: SessionTiming) -> Transition:
    return Transition(
        replace(_clear_session(state, Phase.AWAITING_STREAM), consecutive_errors=0),
        [
            CancelTimers((POLL_TIMER,)),
            ResetContext(),
            ScheduleProbe(timing.stream_check_ms),
        ],
    )


__all__ = [
    "Phase",
    "SessionState",
    "SessionTiming",
    "Transition",
    "ScheduleProbe",
    "SchedulePoll",
    "FetchChatHandle",
    "AnnounceStream",
    "CancelTimers",
    "ResetContext",
    "SendFarewell",
    "ReleaseEndpoint",
    "Finish",
    "PROBE_TIMER",
    "POLL_TIMER",
    "SESSION_TIMERS",
    "FATAL_STOP_REASON",
    "start",
    "request_stop",
    "stopped",
    "request_restart",
    "probe_skipped",
    "probe_failed",
    "probe_result",
    "chat_handle_result",
    "chat_handle_failed",
    "begin_polling",
    "poll_attempt",
    "poll_succeeded",
    "poll_quota_exhausted",
    "poll_failed_transient",
    "poll_failed_terminal",
    "stream_ended",
]
