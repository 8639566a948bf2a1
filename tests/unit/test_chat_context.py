"""
Unit tests for the chat context accumulator.
"""

import pytest

from shared.runtime.chat_context import (
    EVENT_HISTORY_LIMIT,
    MESSAGE_HISTORY_LIMIT,
    ChatContext,
    ChatMood,
    GameState,
    derive_mood,
)


@pytest.fixture
def context(clock) -> ChatContext:
    return ChatContext(clock=clock)


class TestDeriveMood:
    """Test the mood thresholds over the recent window."""

    def test_neutral_when_empty(self):
        assert derive_mood([]) is ChatMood.NEUTRAL

    def test_excited(self):
        assert derive_mood(["positive"] * 6 + ["neutral"] * 4) is ChatMood.EXCITED

    def test_frustrated(self):
        assert derive_mood(["negative"] * 6 + ["positive"] * 4) is ChatMood.FRUSTRATED

    def test_supportive(self):
        assert derive_mood(["positive"] * 4 + ["neutral"] * 6) is ChatMood.SUPPORTIVE

    def test_neutral_below_thresholds(self):
        assert derive_mood(["positive"] * 3 + ["negative"] * 5 + ["neutral"] * 2) is ChatMood.NEUTRAL

    def test_only_last_ten_count(self):
        sentiments = ["positive"] * 10 + ["neutral"] * 10
        assert derive_mood(sentiments) is ChatMood.NEUTRAL


class TestRecording:
    """Test message and event recording."""

    def test_record_message_updates_mood(self, context):
        mood = None
        for _ in range(6):
            mood = context.record_message("alice", "positive", "reaction")

        assert mood is ChatMood.EXCITED
        assert context.chat_mood is ChatMood.EXCITED

    def test_histories_are_capped(self, context):
        for i in range(MESSAGE_HISTORY_LIMIT + 20):
            context.record_message(f"user{i}", "neutral", "comment")
        for i in range(EVENT_HISTORY_LIMIT + 5):
            context.record_event("message", {"i": i})

        assert len(context.message_history) == MESSAGE_HISTORY_LIMIT
        assert context.message_history[0].author == "user20"
        assert len(context.recent_events) == EVENT_HISTORY_LIMIT
        assert context.recent_events[-1].payload == {"i": EVENT_HISTORY_LIMIT + 4}

    def test_history_properties_return_copies(self, context):
        context.record_message("alice", "neutral", "comment")
        context.message_history.clear()

        assert len(context.message_history) == 1


class TestSweep:
    """Test age-based pruning."""

    def test_sweep_drops_old_entries_only(self, context, clock):
        context.record_message("old", "neutral", "comment")
        context.record_event("stream_started")
        clock.advance(1800)
        context.record_message("new", "neutral", "comment")

        clock.advance(1800)
        removed = context.sweep(3600)

        assert removed == 2
        assert [m.author for m in context.message_history] == ["new"]
        assert context.recent_events == []

    def test_sweep_nothing_to_do(self, context):
        context.record_message("alice", "neutral", "comment")
        assert context.sweep(3600) == 0


class TestResetAndSetters:
    """Test reset and operator overrides."""

    def test_reset_clears_game_state_and_mood(self, context):
        context.set_game("minecraft")
        context.game_state = GameState.PLAYING
        for _ in range(6):
            context.record_message("alice", "negative", "comment")

        context.reset()

        assert context.current_game is None
        assert context.game_state is GameState.UNKNOWN
        assert context.chat_mood is ChatMood.NEUTRAL

    def test_set_streamer_mood_falls_back_to_neutral(self, context):
        assert context.set_streamer_mood("Excited") is ChatMood.EXCITED
        assert context.set_streamer_mood("sleepy") is ChatMood.NEUTRAL

    def test_snapshot(self, context):
        context.set_game("valorant")
        context.record_message("alice", "positive", "greeting")
        context.record_event("message")

        assert context.snapshot() == {
            "current_game": "valorant",
            "game_state": "unknown",
            "chat_mood": "neutral",
            "streamer_mood": "neutral",
            "message_history": 1,
            "recent_events": 1,
        }
