from __future__ import annotations

import random
import time
from typing import Callable, Dict, List, Optional, Tuple

from services.analysis.analyzer import MessageAnalysis
from shared.runtime.chat_context import ChatContext, ChatMood

RESPONSES: Dict[str, List[str]] = {
    "greeting": [
        "Hey there! Welcome to the stream! 🎮",
        "What's up, gamer! Ready for some epic gameplay?",
        "Welcome aboard! Hope you enjoy the stream! 🚀",
        "Yo! Thanks for joining us! 🎉",
    ],
    "question": [
        "That's a great question! 🤔",
        "Interesting point! The streamer might know more about that!",
        "Good question! Let's see what happens! 💭",
    ],
    "bot_mention": [
        "Yes, I'm a bot! 🤖 Here to enjoy the stream with everyone!",
        "Beep boop! 🤖 Just a friendly gaming bot!",
        "Guilty as charged! 🤖 But I'm the fun kind of bot!",
    ],
    "encouragement": [
        "You got this! 💪",
        "Keep going, you're doing great!",
        "Stay positive! ✨",
    ],
    "positive": ["Absolutely! 💯", "So true! 👍", "Right?! 🔥", "YES! 🙌"],
    "negative": ["Oof, that's rough! 😅", "Better luck next time! 💪", "Unlucky!"],
    "gameplay": ["Great gameplay! 🎮", "Nice moves! 👏", "Good strategy! 🧠", "Well played! 🎯"],
    "general": ["This stream is so good! 🔥", "Great energy in chat! ❤️", "Such good vibes! ✨"],
}

MOOD_RESPONSES: Dict[ChatMood, List[str]] = {
    ChatMood.EXCITED: ["The energy is REAL! 🔥", "Chat is HYPED! 🚀"],
    ChatMood.FRUSTRATED: ["Stay positive everyone! 💪", "Comeback incoming! ⚡"],
    ChatMood.SUPPORTIVE: ["Love this community! ❤️", "This chat is wholesome! 🌟"],
}

REPEAT_WINDOW_SECONDS = 300.0


class ResponseSelector:
    """
    Canned reply selection. Returns None when the bot should stay quiet.

    The same author is not answered twice for the same intent within five
    minutes, and the last reply text is never reused back-to-back.
    """

    def __init__(
        self,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._rng = rng or random.Random()
        self._clock = clock
        self._recent: Dict[Tuple[str, str], float] = {}
        self._last_text: Optional[str] = None

    def select(
        self,
        text: str,
        author: str,
        analysis: MessageAnalysis,
        context: Optional[ChatContext] = None,
    ) -> Optional[str]:
        if analysis.is_spam or analysis.intent == "command":
            return None

        now = self._clock()
        key = (author, analysis.intent)
        last = self._recent.get(key)
        if last is not None and now - last < REPEAT_WINDOW_SECONDS:
            return None

        pool = self._pool(analysis, context)
        choices = [c for c in pool if c != self._last_text] or pool
        reply = self._rng.choice(choices)

        self._recent[key] = now
        self._last_text = reply
        return reply

    def _pool(self, analysis: MessageAnalysis, context: Optional[ChatContext]) -> List[str]:
        if analysis.intent in ("greeting", "question", "bot_mention", "encouragement"):
            return RESPONSES[analysis.intent]
        if analysis.bot_mention:
            return RESPONSES["bot_mention"]
        if analysis.game_related:
            return RESPONSES["gameplay"]
        if analysis.sentiment in ("positive", "negative"):
            return RESPONSES[analysis.sentiment]
        if context is not None and context.chat_mood in MOOD_RESPONSES:
            return MOOD_RESPONSES[context.chat_mood]
        return RESPONSES["general"]
