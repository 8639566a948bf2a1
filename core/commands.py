from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from services.analysis.authority import AuthorityLevel
from shared.logging.logger import get_logger

if TYPE_CHECKING:
    from core.orchestrator import SessionOrchestrator

log = get_logger("core.commands")

SHUTDOWN = "shutdown"
RESTART = "restart"
SAY = "say"

PRIVILEGED = {AuthorityLevel.OWNER, AuthorityLevel.MODERATOR}


@dataclass(frozen=True)
class CommandResult:
    reply: Optional[str] = None
    action: Optional[str] = None
    text: Optional[str] = None


def format_uptime(seconds: float) -> str:
    seconds = int(max(0, seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class ChatCommands:
    """
    `!`-prefixed chat commands for the owner and moderators.

    Returns None for anything that is not a recognised command at the
    author's level, so the message flows through the normal pipeline.
    Replies still pass the throttle and the quota ledger when sent.
    """

    def __init__(self, orchestrator: "SessionOrchestrator"):
        self._bot = orchestrator

    def handle(self, text: str, level: AuthorityLevel) -> Optional[CommandResult]:
        raw = (text or "").strip()
        if not raw.startswith("!") or level not in PRIVILEGED:
            return None

        name, _, arg = raw.partition(" ")
        name = name.lower()
        arg = arg.strip()

        if level is AuthorityLevel.OWNER:
            result = self._owner(name, arg)
            if result is not None:
                log.info(f"[commands] owner command {name}")
                return result

        result = self._moderator(name, level)
        if result is not None:
            log.info(f"[commands] {level.value} command {name}")
        return result

    # ------------------------------------------------------------------

    def _owner(self, name: str, arg: str) -> Optional[CommandResult]:
        bot = self._bot

        if name == "!shutdown":
            return CommandResult(action=SHUTDOWN)

        if name == "!restart":
            return CommandResult(reply="🔄 Restarting bot systems...", action=RESTART)

        if name == "!quota":
            quota = bot.ledger.status()
            reset_at = datetime.fromisoformat(quota["reset_at"]).strftime("%H:%M:%S")
            return CommandResult(
                reply=(
                    f"📊 Quota: {quota['used_today']}/{quota['ceiling']} "
                    f"({quota['percent_used']}%) | Resets: {reset_at}"
                )
            )

        if name == "!stats":
            stats = bot.throttle.stats()
            context = bot.context.snapshot()
            return CommandResult(
                reply=(
                    f"📊 Uptime: {format_uptime(bot.uptime())} | "
                    f"Messages: {context['message_history']} | "
                    f"Responses: {stats['hourly_count']}/{stats['hourly_cap']}"
                )
            )

        if name == "!debug":
            state = bot.state
            return CommandResult(
                reply=(
                    f"🐛 Errors: {state.consecutive_errors}/{state.error_threshold} | "
                    f"Context: {bot.context.snapshot()['recent_events']} events | "
                    f"Rate: {bot.throttle.stats()['active_authors']} users"
                )
            )

        if name == "!say":
            return CommandResult(action=SAY, text=arg) if arg else None

        if name == "!mood" and arg:
            mood = bot.context.set_streamer_mood(arg)
            return CommandResult(reply=f"😊 Mood set to: {mood.value}")

        if name == "!game" and arg:
            bot.context.set_game(arg)
            return CommandResult(reply=f"🎮 Game set to: {arg}")

        return None

    def _moderator(self, name: str, level: AuthorityLevel) -> Optional[CommandResult]:
        bot = self._bot

        if name == "!status":
            quota = bot.ledger.status()
            game = bot.context.current_game or "Unknown"
            return CommandResult(
                reply=(
                    f"🤖 Bot: {bot.state.phase.value} | Game: {game} | "
                    f"Quota: {quota['percent_used']}% | Level: {level.value}"
                )
            )

        if name == "!ping":
            return CommandResult(reply=f"🏓 Pong! ({level.value}) - {int(time.time() * 1000)}ms")

        if name == "!help":
            if level is AuthorityLevel.OWNER:
                return CommandResult(
                    reply="🔧 Owner: !status !quota !stats !ping !say !mood !game !debug !shutdown !restart !help"
                )
            return CommandResult(reply="🔧 Mod: !status !ping !context !help")

        if name == "!context":
            ctx = bot.context.snapshot()
            return CommandResult(
                reply=(
                    f"🎮 Game: {ctx['current_game'] or 'Unknown'} | "
                    f"State: {ctx['game_state']} | Mood: {ctx['chat_mood']}"
                )
            )

        return None
