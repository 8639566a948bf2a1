"""
Pytest configuration and shared fixtures.
"""

import pytest

from shared.config.bot import BotConfig, IntervalConfig, RateLimitConfig
from tests.helpers import FakeTransport, ManualClock


@pytest.fixture
def clock() -> ManualClock:
    """Return a settable clock."""
    return ManualClock()


@pytest.fixture
def transport() -> FakeTransport:
    """Return a scripted transport with send credentials."""
    return FakeTransport()


@pytest.fixture
def fast_config() -> BotConfig:
    """Bot config with millisecond-scale timing and open reply gates."""
    return BotConfig(
        api_key="test-key",
        channel_id="UC-streamer",
        oauth_token="test-token",
        bot_name="GameBuddy",
        owner_usernames=["streamer"],
        moderators=["helper"],
        rate_limits=RateLimitConfig(
            max_responses_per_hour=30,
            global_cooldown_ms=0,
            user_cooldown_ms=0,
        ),
        intervals=IntervalConfig(
            stream_check_ms=60_000,
            context_cleanup_ms=60_000,
            quota_reset_check_ms=60_000,
            throttle_cleanup_ms=60_000,
            min_poll_interval_ms=10,
            max_backoff_ms=80,
            quota_pause_ms=20,
            reply_delay_min_ms=0,
            reply_delay_max_ms=0,
            context_max_age_ms=3_600_000,
            restart_delay_ms=0,
        ),
        max_consecutive_errors=5,
    )
