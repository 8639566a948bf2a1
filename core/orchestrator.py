"""
Session orchestrator.

Drives the state machine in core.session: every observation (probe result,
poll outcome, operator request) is turned into a Transition, and the
commands of that transition are executed here, in order. This is the only
place that touches the transport, the scheduler and the status endpoint.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from core import session
from core.collaborators import (
    AuthorityResolver,
    ChatTransport,
    Classifier,
    GameDetector,
    ReplySelector,
)
from core.commands import RESTART, SAY, SHUTDOWN, ChatCommands, format_uptime
from core.scheduler import TimerScheduler
from core.session import (
    AnnounceStream,
    CancelTimers,
    FetchChatHandle,
    Finish,
    Phase,
    ReleaseEndpoint,
    ResetContext,
    ScheduleProbe,
    SchedulePoll,
    SendFarewell,
    SessionState,
    SessionTiming,
    Transition,
)
from runtime.version import as_dict as version_info
from services.analysis import (
    AuthorityClassifier,
    AuthorityLevel,
    MessageAnalysis,
    MessageAnalyzer,
    ResponseSelector,
    detect_game as default_detect_game,
)
from services.youtube.models.message import YouTubeChatMessage
from services.youtube.models.stream import LiveVideo
from shared.config.bot import BotConfig
from shared.logging.logger import get_logger
from shared.runtime.chat_context import ChatContext, ChatMood
from shared.runtime.errors import (
    AuthorizationDenied,
    FatalAccumulation,
    TransportError,
    TransportTerminal,
    TransportTransient,
)
from shared.runtime.quotas import OperationKind, QuotaExhausted, QuotaLedger, QuotaPolicy
from shared.runtime.throttle import ResponseThrottle, ThrottlePolicy

log = get_logger("core.orchestrator")

BASE_ENGAGEMENT_CHANCE = 0.05

CONTEXT_SWEEP_TIMER = "context_sweep"
QUOTA_RESET_TIMER = "quota_reset"
THROTTLE_CLEANUP_TIMER = "throttle_cleanup"

PRIVILEGED = (AuthorityLevel.OWNER, AuthorityLevel.MODERATOR)


class SessionOrchestrator:
    """
    One bot session against one channel.

    Collaborators are injected so tests can substitute a fake transport,
    fixed clocks and a seeded RNG; everything else defaults from config.
    """

    def __init__(
        self,
        *,
        config: BotConfig,
        transport: ChatTransport,
        ledger: Optional[QuotaLedger] = None,
        throttle: Optional[ResponseThrottle] = None,
        context: Optional[ChatContext] = None,
        classify: Optional[Classifier] = None,
        detect_game: Optional[GameDetector] = None,
        select_reply: Optional[ReplySelector] = None,
        resolve_authority: Optional[AuthorityResolver] = None,
        endpoint: Any = None,
        timers: Optional[TimerScheduler] = None,
        hour_clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.transport = transport
        self.timing = SessionTiming.from_intervals(config.intervals)

        self.ledger = ledger or QuotaLedger(
            QuotaPolicy(
                hard_limit=config.quota.daily_limit,
                safe_limit=config.quota.safe_limit,
            )
        )
        self.throttle = throttle or ResponseThrottle(
            ThrottlePolicy(
                max_per_hour=config.rate_limits.max_responses_per_hour,
                global_cooldown_ms=config.rate_limits.global_cooldown_ms,
                author_cooldown_ms=config.rate_limits.user_cooldown_ms,
            )
        )
        self.context = context or ChatContext()

        self._classify = classify or MessageAnalyzer(bot_name=config.bot_name).analyze
        self._detect_game = detect_game or default_detect_game
        self._select_reply = select_reply or ResponseSelector(rng=rng).select
        self._resolve_authority = resolve_authority or AuthorityClassifier(
            owner_channel_id=config.channel_id,
            owner_usernames=config.owner_usernames,
            moderators=config.moderators,
        ).classify

        self.endpoint = endpoint
        self.timers = timers or TimerScheduler()
        self.commands = ChatCommands(self)

        self._hour_clock = hour_clock or (lambda: datetime.now().hour)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock

        self.state = SessionState(error_threshold=config.max_consecutive_errors)
        self.fatal_error: Optional[FatalAccumulation] = None
        self._last_video: Optional[LiveVideo] = None
        self._stopped = asyncio.Event()

    # ==================================================================
    # Lifecycle
    # ==================================================================

    async def start(self) -> None:
        if self.state.phase is not Phase.IDLE:
            return

        log.info(f"[session] Starting {self.config.bot_name} for channel {self.config.channel_id}")
        self.state = replace(self.state, started_at=self._clock())
        self._start_housekeeping()
        await self._apply(session.start(self.state))

    async def run(self) -> None:
        await self.start()
        await self._stopped.wait()

    async def stop(self, reason: str = "operator") -> None:
        log.info(f"[session] Stop requested ({reason})")
        await self._apply(session.request_stop(self.state, reason))

    async def restart(self) -> None:
        log.info("[session] Restart requested")
        await self._apply(session.request_restart(self.state, self.timing))

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def say(self, text: str, level: AuthorityLevel) -> bool:
        """Owner-only manual reply. Still subject to throttle and quota."""
        if level is not AuthorityLevel.OWNER:
            log.warning(f"[reply] Manual send refused for level {level.value}")
            return False
        return await self._send_reply(text, "owner", delay=False)

    def _start_housekeeping(self) -> None:
        intervals = self.config.intervals

        async def _sweep() -> None:
            removed = self.context.sweep(intervals.context_max_age_ms / 1000)
            if removed:
                log.debug(f"[context] Swept {removed} stale entries")

        async def _quota_reset() -> None:
            self.ledger.check_reset()

        async def _throttle_cleanup() -> None:
            self.throttle.cleanup()

        self.timers.every(CONTEXT_SWEEP_TIMER, intervals.context_cleanup_ms / 1000, _sweep)
        self.timers.every(QUOTA_RESET_TIMER, intervals.quota_reset_check_ms / 1000, _quota_reset)
        self.timers.every(THROTTLE_CLEANUP_TIMER, intervals.throttle_cleanup_ms / 1000, _throttle_cleanup)

    # ==================================================================
    # Transition execution
    # ==================================================================

    async def _apply(self, transition: Transition) -> None:
        previous = self.state.phase
        self.state = transition.state
        if self.state.phase is not previous:
            log.info(f"[session] {previous.value} -> {self.state.phase.value}")

            if (
                self.state.phase is Phase.STOPPING
                and self.state.stop_reason == session.FATAL_STOP_REASON
            ):
                self.fatal_error = FatalAccumulation(
                    self.state.consecutive_errors,
                    self.state.error_threshold,
                )
                log.error(f"[session] Too many errors, shutting down: {self.fatal_error}")

        for command in transition.commands:
            await self._execute(command)

    async def _execute(self, command: object) -> None:
        if isinstance(command, ScheduleProbe):
            self.timers.schedule(session.PROBE_TIMER, command.delay_ms / 1000, self._probe)

        elif isinstance(command, SchedulePoll):
            if command.reason != "next":
                log.info(f"[poll] Next poll in {command.delay_ms}ms ({command.reason})")
            self.timers.schedule(session.POLL_TIMER, command.delay_ms / 1000, self._poll)

        elif isinstance(command, FetchChatHandle):
            await self._fetch_chat_handle(command.video_id)

        elif isinstance(command, AnnounceStream):
            self._announce(command.video_id)

        elif isinstance(command, CancelTimers):
            if command.names is None:
                self.timers.close()
            else:
                self.timers.cancel_all(command.names)

        elif isinstance(command, ResetContext):
            self.context.reset()
            log.info("[context] Context reset")

        elif isinstance(command, SendFarewell):
            await self._farewell()

        elif isinstance(command, ReleaseEndpoint):
            await self._release_endpoint()

        elif isinstance(command, Finish):
            await self._apply(session.stopped(self.state))
            log.info(f"[session] Stopped ({self.state.stop_reason})")
            self._stopped.set()

        else:
            raise TypeError(f"Unknown session command: {command!r}")

    async def _call(self, kind: OperationKind, fn, *args):
        """
        Run one billable transport call. The ledger reserves the cost before
        the call and settles it after; failures are recorded at zero cost
        and surfaced as TransportError.
        """
        self.ledger.require(kind)
        try:
            result = await fn(*args)
        except TransportError:
            self.ledger.record(kind, success=False, reserved=True)
            raise
        except asyncio.CancelledError:
            self.ledger.record(kind, success=False, reserved=True)
            raise
        except Exception as e:
            self.ledger.record(kind, success=False, reserved=True)
            raise TransportTransient(f"{kind.value} failed: {e}") from e

        self.ledger.record(kind, reserved=True)
        return result

    # ==================================================================
    # Stream discovery
    # ==================================================================

    def is_streaming_time(self) -> bool:
        return self.config.streaming_hours.contains(self._hour_clock())

    async def _probe(self) -> None:
        if self.state.phase in session.TERMINAL_PHASES:
            return

        if not self.is_streaming_time():
            log.debug("[probe] Outside streaming hours, skipping")
            await self._apply(session.probe_skipped(self.state, self.timing))
            return

        try:
            video = await self._call(
                OperationKind.SEARCH,
                self.transport.probe_live_video,
                self.config.channel_id,
            )
        except QuotaExhausted as e:
            log.warning(f"[probe] Skipped: {e}")
            await self._apply(session.probe_skipped(self.state, self.timing))
            return
        except TransportError as e:
            log.error(f"[probe] Live stream check failed: {e}")
            await self._apply(session.probe_failed(self.state, self.timing))
            return

        if video is not None:
            self._last_video = video
        await self._apply(
            session.probe_result(
                self.state,
                video.video_id if video else None,
                self.timing,
            )
        )

    async def _fetch_chat_handle(self, video_id: str) -> None:
        if self.state.phase is not Phase.AWAITING_STREAM:
            return

        try:
            handle = await self._call(
                OperationKind.LOOKUP,
                self.transport.fetch_chat_handle,
                video_id,
            )
        except QuotaExhausted as e:
            log.warning(f"[probe] Chat lookup skipped: {e}")
            return
        except TransportTerminal as e:
            log.info(f"[probe] Chat unavailable for {video_id}: {e}")
            await self._apply(session.chat_handle_failed(self.state, self.timing, terminal=True))
            return
        except TransportError as e:
            log.error(f"[probe] Chat lookup failed for {video_id}: {e}")
            await self._apply(session.chat_handle_failed(self.state, self.timing, terminal=False))
            return

        if not handle:
            log.warning(f"[probe] Live chat not enabled for {video_id}")
        else:
            log.info(f"[probe] Attached to live chat {handle}")
        await self._apply(session.chat_handle_result(self.state, handle))

    def _announce(self, video_id: str) -> None:
        video = self._last_video
        if video is None or video.video_id != video_id:
            video = LiveVideo(video_id=video_id)

        log.info(f"[probe] Live stream found: {video.title or video_id}")
        self.context.record_event("stream_started", video.to_dict())

        if not self.config.enable_game_detection:
            return
        game = self._detect_game(video.title, video.description)
        if game:
            self.context.set_game(game)
            log.info(f"[context] Detected game: {game}")

    # ==================================================================
    # Poll cycle
    # ==================================================================

    async def _poll(self) -> None:
        await self._apply(session.poll_attempt(self.state))

        state = self.state
        if state.phase is not Phase.POLLING or not state.chat_handle:
            return
        handle = state.chat_handle

        try:
            page = await self._call(
                OperationKind.LIST,
                self.transport.fetch_messages,
                handle,
                state.page_cursor,
            )
        except QuotaExhausted as e:
            log.warning(f"[poll] Paused: {e}")
            await self._apply(session.poll_quota_exhausted(self.state, self.timing))
            return
        except TransportTerminal as e:
            log.info(f"[poll] Stream ended: {e}")
            await self._apply(session.poll_failed_terminal(self.state, self.timing))
            return
        except TransportError as e:
            log.error(
                f"[poll] Chat fetch failed ({self.state.consecutive_errors + 1}/"
                f"{self.state.error_threshold}): {e}"
            )
            await self._apply(session.poll_failed_transient(self.state, self.timing))
            return

        if self.state.chat_handle != handle:
            return

        for message in page.messages:
            await self._handle_message(message)
            if self.state.phase is not Phase.POLLING or self.state.chat_handle != handle:
                log.debug("[poll] Session changed mid-page, dropping remainder")
                break

        await self._apply(
            session.poll_succeeded(
                self.state,
                page.next_cursor,
                page.suggested_interval_ms,
                self.timing,
            )
        )

    async def _handle_message(self, message: YouTubeChatMessage) -> None:
        author = message.author_name or ""
        if author.lower() == self.config.bot_name.lower():
            return

        try:
            text = message.text or ""
            level = self._resolve_authority(message)

            if message.is_command and level in PRIVILEGED:
                if await self._run_command(text, level, message.author_id):
                    return

            analysis = self._classify(text, author, self.context)
            self.context.record_message(
                author,
                analysis.sentiment,
                analysis.intent,
                analysis.game_related,
            )
            self.context.record_event(
                "message",
                {**message.summary(), "intent": analysis.intent, "sentiment": analysis.sentiment},
            )

            if not self.throttle.may_respond(message.author_id).allowed:
                return
            if not self._should_respond(analysis):
                return

            reply = self._select_reply(text, author, analysis, self.context)
            if reply:
                await self._send_reply(reply, message.author_id)

        except Exception as e:
            log.error(f"[poll] Failed to handle message from {author}: {e}")

    async def _run_command(self, text: str, level: AuthorityLevel, author_id: str) -> bool:
        result = self.commands.handle(text, level)
        if result is None:
            return False

        if result.reply:
            await self._send_reply(result.reply, author_id, delay=False)

        if result.action == SAY:
            await self.say(result.text, level)
        elif result.action == SHUTDOWN:
            await self.stop("owner_command")
        elif result.action == RESTART:
            await self.restart()
        return True

    def _should_respond(self, analysis: MessageAnalysis) -> bool:
        if analysis.is_spam:
            return False
        if analysis.requires_response:
            return True

        chance = BASE_ENGAGEMENT_CHANCE
        if analysis.sentiment == "positive":
            chance *= 2
        if analysis.game_related and self.context.current_game:
            chance *= 1.5
        if self.context.chat_mood is ChatMood.EXCITED:
            chance *= 1.3
        return self._rng.random() < chance

    # ==================================================================
    # Replies
    # ==================================================================

    async def _send_reply(self, text: str, author_id: str, *, delay: bool = True) -> bool:
        handle = self.state.chat_handle
        if not handle:
            return False

        if not self.transport.can_send:
            log.info(f"[reply] Would send (read-only): {text}")
            return False

        if not self.ledger.admit(OperationKind.INSERT):
            return False

        decision = self.throttle.acquire(author_id)
        if not decision.allowed:
            log.debug(f"[reply] Throttled ({decision.reason}) for {author_id}")
            return False

        sent = False
        try:
            sent = await self._deliver(handle, text, delay)
        finally:
            if not sent:
                self.throttle.release(author_id, decision)
        return sent

    async def _deliver(self, handle: str, text: str, delay: bool) -> bool:
        if delay:
            intervals = self.config.intervals
            wait_ms = self._rng.uniform(intervals.reply_delay_min_ms, intervals.reply_delay_max_ms)
            await self._sleep(wait_ms / 1000)
            if self.state.chat_handle != handle:
                return False

        try:
            await self._call(OperationKind.INSERT, self.transport.send_reply, handle, text)
        except QuotaExhausted as e:
            log.warning(f"[reply] Dropped: {e}")
            return False
        except AuthorizationDenied as e:
            log.warning(f"[reply] Not authorized to send: {e}")
            return False
        except TransportError as e:
            log.error(f"[reply] Send failed: {e}")
            return False

        log.info(f"[reply] Sent: {text}")
        return True

    async def _farewell(self) -> None:
        message = self.config.farewell_message
        if not message or not self.state.chat_handle:
            return
        try:
            await self._send_reply(message, "global", delay=False)
        except Exception as e:
            log.warning(f"[reply] Farewell failed: {e}")

    async def _release_endpoint(self) -> None:
        if self.endpoint is None:
            return
        try:
            await asyncio.to_thread(self.endpoint.stop)
        except Exception as e:
            log.warning(f"[session] Endpoint shutdown error ignored: {e}")

    # ==================================================================
    # Status
    # ==================================================================

    def uptime(self) -> float:
        if not self.state.started_at:
            return 0.0
        return max(0.0, self._clock() - self.state.started_at)

    def status(self) -> Dict[str, Any]:
        state = self.state
        uptime = self.uptime()
        return {
            "phase": state.phase.value,
            "uptime": uptime,
            "uptime_formatted": format_uptime(uptime),
            "active_video_id": state.active_video_id,
            "chat_attached": state.chat_attached,
            "consecutive_errors": state.consecutive_errors,
            "error_threshold": state.error_threshold,
            "stop_reason": state.stop_reason,
            "fatal_error": str(self.fatal_error) if self.fatal_error else None,
            "is_streaming_time": self.is_streaming_time(),
            "can_send": self.transport.can_send,
            "quota": self.ledger.status(),
            "throttle": self.throttle.stats(),
            "context": self.context.snapshot(),
            "schedule": {
                "streaming_hours": self.config.streaming_hours.to_dict(),
                "pending_timers": self.timers.pending(),
            },
            "version": version_info(),
            "timestamp": datetime.now().isoformat(),
        }


__all__ = ["SessionOrchestrator"]
