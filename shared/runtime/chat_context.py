"""Rolling chat context: recent events, message history, mood and game."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Callable, Deque, Dict, Optional

MESSAGE_HISTORY_LIMIT = 100
EVENT_HISTORY_LIMIT = 50
MOOD_WINDOW = 10


class GameState(Enum):
    UNKNOWN = "unknown"
    PLAYING = "playing"
    WINNING = "winning"
    STRUGGLING = "struggling"
    INTENSE = "intense"
    MENU = "menu"


class ChatMood(Enum):
    NEUTRAL = "neutral"
    EXCITED = "excited"
    FRUSTRATED = "frustrated"
    SUPPORTIVE = "supportive"
    HYPED = "hyped"

    @classmethod
    def from_value(cls, value: Any, *, default: "ChatMood" = None) -> "ChatMood":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if normalized == member.value:
                    return member
        return default or cls.NEUTRAL


@dataclass(frozen=True)
class MessageRecord:
    timestamp: float
    author: str
    sentiment: str
    intent: str
    game_related: bool


@dataclass(frozen=True)
class EventRecord:
    timestamp: float
    type: str
    payload: Any


def derive_mood(sentiments) -> ChatMood:
    recent = list(sentiments)[-MOOD_WINDOW:]
    positive = sum(1 for s in recent if s == "positive")
    negative = sum(1 for s in recent if s == "negative")

    if positive >= 6:
        return ChatMood.EXCITED
    if negative >= 6:
        return ChatMood.FRUSTRATED
    if positive >= 4:
        return ChatMood.SUPPORTIVE
    return ChatMood.NEUTRAL


class ChatContext:
    """
    Bounded rolling history of the chat. No I/O.

    Both histories are capped by count on insert and by age on sweep();
    the two limits apply independently.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()

        self.current_game: Optional[str] = None
        self.game_state = GameState.UNKNOWN
        self.streamer_mood = ChatMood.NEUTRAL
        self._chat_mood = ChatMood.NEUTRAL

        self._messages: Deque[MessageRecord] = deque(maxlen=MESSAGE_HISTORY_LIMIT)
        self._events: Deque[EventRecord] = deque(maxlen=EVENT_HISTORY_LIMIT)

    # ------------------------------------------------------------------

    @property
    def chat_mood(self) -> ChatMood:
        return self._chat_mood

    @property
    def message_history(self) -> list:
        with self._lock:
            return list(self._messages)

    @property
    def recent_events(self) -> list:
        with self._lock:
            return list(self._events)

    # ------------------------------------------------------------------

    def record_event(self, event_type: str, payload: Any = None) -> None:
        with self._lock:
            self._events.append(
                EventRecord(timestamp=self._clock(), type=event_type, payload=payload)
            )

    def record_message(
        self,
        author: str,
        sentiment: str,
        intent: str,
        game_related: bool = False,
    ) -> ChatMood:
        with self._lock:
            self._messages.append(
                MessageRecord(
                    timestamp=self._clock(),
                    author=author,
                    sentiment=sentiment,
                    intent=intent,
                    game_related=bool(game_related),
                )
            )
            self._chat_mood = derive_mood(m.sentiment for m in self._messages)
            return self._chat_mood

    def sweep(self, max_age: float) -> int:
        """Drop entries older than `max_age` seconds. Returns how many went."""
        with self._lock:
            cutoff = self._clock() - max_age
            before = len(self._messages) + len(self._events)

            while self._messages and self._messages[0].timestamp <= cutoff:
                self._messages.popleft()
            while self._events and self._events[0].timestamp <= cutoff:
                self._events.popleft()

            return before - len(self._messages) - len(self._events)

    def reset(self) -> None:
        with self._lock:
            self.current_game = None
            self.game_state = GameState.UNKNOWN
            self._chat_mood = ChatMood.NEUTRAL

    # ------------------------------------------------------------------

    def set_game(self, label: Optional[str]) -> None:
        with self._lock:
            self.current_game = label or None

    def set_streamer_mood(self, mood: Any) -> ChatMood:
        with self._lock:
            self.streamer_mood = ChatMood.from_value(mood)
            return self.streamer_mood

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "current_game": self.current_game,
                "game_state": self.game_state.value,
                "chat_mood": self._chat_mood.value,
                "streamer_mood": self.streamer_mood.value,
                "message_history": len(self._messages),
                "recent_events": len(self._events),
            }


__all__ = [
    "ChatContext",
    "ChatMood",
    "GameState",
    "MessageRecord",
    "EventRecord",
    "derive_mood",
    "MESSAGE_HISTORY_LIMIT",
    "EVENT_HISTORY_LIMIT",
]
