"""
Unit tests for the response throttle.
"""

import pytest

from shared.runtime.throttle import (
    AUTHOR_COOLDOWN,
    GLOBAL_COOLDOWN,
    HOURLY_LIMIT,
    ResponseThrottle,
    ThrottlePolicy,
)


@pytest.fixture
def throttle(clock) -> ResponseThrottle:
    return ResponseThrottle(
        ThrottlePolicy(max_per_hour=3, global_cooldown_ms=8000, author_cooldown_ms=30000),
        clock=clock,
    )


class TestGates:
    """Test the individual gates."""

    def test_fresh_throttle_allows(self, throttle):
        decision = throttle.may_respond("alice")
        assert decision.allowed is True
        assert decision.reason is None

    def test_global_cooldown_blocks_everyone(self, throttle, clock):
        throttle.record_reply("alice")
        clock.advance(5)

        decision = throttle.may_respond("bob")
        assert decision.allowed is False
        assert decision.reason == GLOBAL_COOLDOWN

    def test_global_cooldown_expires(self, throttle, clock):
        throttle.record_reply("alice")
        clock.advance(8)

        assert throttle.may_respond("bob").allowed is True

    def test_author_cooldown(self, throttle, clock):
        throttle.record_reply("alice")
        clock.advance(10)

        decision = throttle.may_respond("alice")
        assert decision.allowed is False
        assert decision.reason == AUTHOR_COOLDOWN

        clock.advance(20)
        assert throttle.may_respond("alice").allowed is True

    def test_hourly_cap_slides(self, throttle, clock):
        for author in ("a", "b", "c"):
            throttle.record_reply(author)
            clock.advance(10)

        decision = throttle.may_respond("d")
        assert decision.allowed is False
        assert decision.reason == HOURLY_LIMIT

        # First reply leaves the window exactly one hour after it was sent
        clock.advance(3600 - 30)
        assert throttle.may_respond("d").allowed is True

    def test_global_gate_reported_before_hourly(self, clock):
        throttle = ResponseThrottle(
            ThrottlePolicy(max_per_hour=1, global_cooldown_ms=8000, author_cooldown_ms=0),
            clock=clock,
        )
        throttle.record_reply("a")

        assert throttle.may_respond("b").reason == GLOBAL_COOLDOWN
        clock.advance(9)
        assert throttle.may_respond("b").reason == HOURLY_LIMIT


class TestAcquire:
    """Test the atomic check-and-record."""

    def test_acquire_records_on_success(self, throttle):
        assert throttle.acquire("alice").allowed is True
        assert throttle.stats()["hourly_count"] == 1

    def test_acquire_does_not_record_on_refusal(self, throttle):
        throttle.acquire("alice")
        assert throttle.acquire("bob").allowed is False
        assert throttle.stats()["hourly_count"] == 1

    def test_release_gives_back_every_gate(self, throttle):
        decision = throttle.acquire("alice")
        throttle.release("alice", decision)

        assert throttle.stats()["hourly_count"] == 0
        assert throttle.stats()["active_authors"] == 0
        assert throttle.may_respond("alice").allowed is True

    def test_release_restores_previous_author_reply(self, throttle, clock):
        throttle.record_reply("alice")
        clock.advance(40)
        decision = throttle.acquire("alice")
        throttle.release("alice", decision)

        clock.advance(5)
        # Back to the first reply: global cooldown passed, author cooldown too
        assert throttle.may_respond("alice").allowed is True
        assert throttle.stats()["hourly_count"] == 1

    def test_release_keeps_later_grants(self, throttle, clock):
        first = throttle.acquire("alice")
        clock.advance(10)
        throttle.acquire("bob")
        throttle.release("alice", first)

        assert throttle.stats()["hourly_count"] == 1
        assert throttle.may_respond("carol").reason == GLOBAL_COOLDOWN

    def test_release_of_refusal_is_noop(self, throttle):
        throttle.acquire("alice")
        refused = throttle.acquire("bob")
        throttle.release("bob", refused)

        assert throttle.stats()["hourly_count"] == 1


class TestMaintenance:
    """Test stats, cleanup and reset."""

    def test_stats(self, throttle):
        throttle.record_reply("alice")
        stats = throttle.stats()

        assert stats == {
            "hourly_count": 1,
            "hourly_cap": 3,
            "active_authors": 1,
            "global_cooldown_ms": 8000,
            "author_cooldown_ms": 30000,
        }

    def test_cleanup_forgets_stale_authors(self, throttle, clock):
        throttle.record_reply("alice")
        clock.advance(3601)
        throttle.cleanup()

        stats = throttle.stats()
        assert stats["active_authors"] == 0
        assert stats["hourly_count"] == 0

    def test_reset(self, throttle):
        throttle.record_reply("alice")
        throttle.reset()

        assert throttle.may_respond("alice").allowed is True
        assert throttle.stats()["hourly_count"] == 0
