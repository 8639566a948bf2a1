"""
Bot configuration.

Values come from three layers, later layers winning:
dataclass defaults -> shared/config/bot.json (optional) -> environment.
Malformed values are logged and replaced by defaults so the runtime can keep
booting; only missing credentials are fatal (see BotConfig.validate).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from shared.logging.logger import get_logger

log = get_logger("shared.config.bot")

_CONFIG_PATH = Path(__file__).parent / "bot.json"


class ConfigError(RuntimeError):
    """Raised when required configuration is missing."""


@dataclass
class StreamingHours:
    start: int = 18
    end: int = 23

    def contains(self, hour: int) -> bool:
        if self.start <= self.end:
            return self.start <= hour <= self.end
        # Window wraps past midnight
        return hour >= self.start or hour <= self.end

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass
class RateLimitConfig:
    max_responses_per_hour: int = 30
    global_cooldown_ms: int = 8000
    user_cooldown_ms: int = 30000


@dataclass
class QuotaConfig:
    daily_limit: int = 10000
    safe_limit: int = 9000


@dataclass
class IntervalConfig:
    stream_check_ms: int = 45 * 60 * 1000
    context_cleanup_ms: int = 30 * 60 * 1000
    quota_reset_check_ms: int = 60 * 60 * 1000
    throttle_cleanup_ms: int = 5 * 60 * 1000
    min_poll_interval_ms: int = 12000
    max_backoff_ms: int = 300000
    quota_pause_ms: int = 60000
    reply_delay_min_ms: int = 1000
    reply_delay_max_ms: int = 5000
    context_max_age_ms: int = 60 * 60 * 1000
    restart_delay_ms: int = 3000


@dataclass
class ServerConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000
    admin_token: Optional[str] = None


@dataclass
class BotConfig:
    api_key: Optional[str] = None
    channel_id: Optional[str] = None
    oauth_token: Optional[str] = None
    refresh_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    bot_name: str = "GameBuddy"
    owner_usernames: List[str] = field(default_factory=list)
    moderators: List[str] = field(default_factory=list)

    streaming_hours: StreamingHours = field(default_factory=StreamingHours)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    intervals: IntervalConfig = field(default_factory=IntervalConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    max_consecutive_errors: int = 5
    enable_game_detection: bool = True
    farewell_message: str = "🤖 Bot going offline. Thanks for the great stream! 👋"

    # --------------------------------------------------

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token and self.client_id and self.client_secret)

    @property
    def can_send(self) -> bool:
        return bool(self.oauth_token) or self.can_refresh

    def validate(self) -> None:
        required = {
            "YOUTUBE_API_KEY": self.api_key,
            "YOUTUBE_CHANNEL_ID": self.channel_id,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}"
            )

        if self.refresh_token and not self.can_refresh:
            log.warning(
                "[config] YOUTUBE_REFRESH_TOKEN set without YOUTUBE_CLIENT_ID and "
                "YOUTUBE_CLIENT_SECRET; access tokens will not be refreshed"
            )

        log.info(
            "[config] Features: "
            f"sending={'ON' if self.can_send else 'OFF'}, "
            f"token_refresh={'ON' if self.can_refresh else 'OFF'}, "
            f"owners={len(self.owner_usernames)}, "
            f"moderators={len(self.moderators)}, "
            f"game_detection={'ON' if self.enable_game_detection else 'OFF'}"
        )
        log.info(
            f"[config] Streaming hours: {self.streaming_hours.start}:00 - "
            f"{self.streaming_hours.end}:00 | Rate limits: "
            f"{self.rate_limits.max_responses_per_hour}/hour, "
            f"{self.rate_limits.global_cooldown_ms}ms cooldown"
        )


# ----------------------------------------------------------------------
# Coercion helpers
# ----------------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError) as e:
        log.warning(f"Failed to load {path.name} ({e}); using defaults")
        return {}


def _as_int(value: Any, default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        log.warning(f"{name} must be an integer (got {value!r}); defaulting to {default}")
        return default


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in {"0", "false", "no", "off"}


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return [str(item).strip().lower() for item in items if str(item).strip()]


def _section(raw: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


# ----------------------------------------------------------------------
# Loader
# ----------------------------------------------------------------------

def load_bot_config(
    raw: Optional[Dict[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> BotConfig:
    raw = raw if raw is not None else _load_json(_CONFIG_PATH)
    env = env if env is not None else os.environ

    def pick(env_key: str, section: Dict[str, Any], key: str) -> Any:
        value = env.get(env_key)
        if value not in (None, ""):
            return value
        return section.get(key)

    hours_raw = _section(raw, "streaming_hours")
    limits_raw = _section(raw, "rate_limits")
    quota_raw = _section(raw, "quota")
    intervals_raw = _section(raw, "intervals")
    server_raw = _section(raw, "server")

    streaming_hours = StreamingHours(
        start=_as_int(pick("STREAM_START_HOUR", hours_raw, "start"), StreamingHours.start, "STREAM_START_HOUR"),
        end=_as_int(pick("STREAM_END_HOUR", hours_raw, "end"), StreamingHours.end, "STREAM_END_HOUR"),
    )

    rate_limits = RateLimitConfig(
        max_responses_per_hour=_as_int(
            pick("MAX_RESPONSES_PER_HOUR", limits_raw, "max_responses_per_hour"),
            RateLimitConfig.max_responses_per_hour,
            "MAX_RESPONSES_PER_HOUR",
        ),
        global_cooldown_ms=_as_int(
            pick("GLOBAL_RESPONSE_COOLDOWN", limits_raw, "global_cooldown_ms"),
            RateLimitConfig.global_cooldown_ms,
            "GLOBAL_RESPONSE_COOLDOWN",
        ),
        user_cooldown_ms=_as_int(
            pick("USER_RESPONSE_COOLDOWN", limits_raw, "user_cooldown_ms"),
            RateLimitConfig.user_cooldown_ms,
            "USER_RESPONSE_COOLDOWN",
        ),
    )

    quota = QuotaConfig(
        daily_limit=_as_int(pick("DAILY_QUOTA_LIMIT", quota_raw, "daily_limit"), QuotaConfig.daily_limit, "DAILY_QUOTA_LIMIT"),
        safe_limit=_as_int(pick("SAFE_QUOTA_LIMIT", quota_raw, "safe_limit"), QuotaConfig.safe_limit, "SAFE_QUOTA_LIMIT"),
    )
    if quota.safe_limit > quota.daily_limit:
        log.warning("SAFE_QUOTA_LIMIT exceeds DAILY_QUOTA_LIMIT; clamping")
        quota.safe_limit = quota.daily_limit

    defaults = IntervalConfig()
    intervals = IntervalConfig(
        **{
            name: _as_int(intervals_raw.get(name), getattr(defaults, name), f"intervals.{name}")
            for name in defaults.__dataclass_fields__
        }
    )

    server = ServerConfig(
        enabled=_as_bool(server_raw.get("enabled"), ServerConfig.enabled),
        host=str(pick("HOST", server_raw, "host") or ServerConfig.host),
        port=_as_int(pick("PORT", server_raw, "port"), ServerConfig.port, "PORT"),
        admin_token=pick("ADMIN_TOKEN", server_raw, "admin_token") or None,
    )

    return BotConfig(
        api_key=env.get("YOUTUBE_API_KEY") or None,
        channel_id=pick("YOUTUBE_CHANNEL_ID", raw, "channel_id") or None,
        oauth_token=env.get("YOUTUBE_OAUTH_TOKEN") or None,
        refresh_token=env.get("YOUTUBE_REFRESH_TOKEN") or None,
        client_id=env.get("YOUTUBE_CLIENT_ID") or None,
        client_secret=env.get("YOUTUBE_CLIENT_SECRET") or None,
        bot_name=str(pick("BOT_NAME", raw, "bot_name") or BotConfig.bot_name),
        owner_usernames=_as_list(pick("OWNER_USERNAME", raw, "owner_usernames")),
        moderators=_as_list(pick("MODERATORS", raw, "moderators")),
        streaming_hours=streaming_hours,
        rate_limits=rate_limits,
        quota=quota,
        intervals=intervals,
        server=server,
        max_consecutive_errors=_as_int(
            pick("MAX_CONSECUTIVE_ERRORS", raw, "max_consecutive_errors"),
            BotConfig.max_consecutive_errors,
            "MAX_CONSECUTIVE_ERRORS",
        ),
        enable_game_detection=_as_bool(
            pick("ENABLE_GAME_DETECTION", raw, "enable_game_detection"),
            BotConfig.enable_game_detection,
        ),
    )


__all__ = [
    "BotConfig",
    "ConfigError",
    "IntervalConfig",
    "QuotaConfig",
    "RateLimitConfig",
    "ServerConfig",
    "StreamingHours",
    "load_bot_config",
]
