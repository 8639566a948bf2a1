from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from services.analysis.games import SUPPORTED_GAMES
from shared.runtime.chat_context import ChatContext

PATTERNS = {
    "greetings": re.compile(r"^(hello|hi|hey|sup|what'?s up|good morning|good evening|yo|hiya|howdy|wassup)\b", re.I),
    "questions": re.compile(r"(\?|how do|what is|when does|where can|why did|can you|could you|help me|tell me|explain)", re.I),
    "excitement": re.compile(r"(!{2,}|wow|amazing|incredible|insane|epic|poggers|pog|let'?s go|hype|fire|lit|sick|dope)", re.I),
    "frustration": re.compile(r"(ugh|fail|noob|trash|bad|terrible|worst|rage|angry|wtf|damn)", re.I),
    "gameplay": re.compile(r"(play|game|level|boss|enemy|weapon|skill|strategy|tip|guide|build|craft|win|lose|died|kill)", re.I),
    "bots": re.compile(r"\b(bot|ai|robot|chatbot)\b", re.I),
    "commands": re.compile(r"^!"),
    "encouragement": re.compile(r"(you got this|keep going|don'?t give up|good luck|you can do it|believe)", re.I),
    "reactions": re.compile(r"(lol|lmao|rofl|haha|😂|🤣|💀|😭|😱|🔥|💯|👏|🎉)", re.I),
    "spam": re.compile(r"(.)\1{4,}|(.{2,3})\2{3,}", re.I),
}

POSITIVE_WORDS = (
    "love", "awesome", "amazing", "great", "good", "nice", "cool", "best",
    "perfect", "fantastic", "excellent", "wonderful", "brilliant", "impressive",
    "beautiful", "fun", "enjoy", "happy", "excited", "pumped", "hyped",
)
NEGATIVE_WORDS = (
    "hate", "terrible", "awful", "bad", "worst", "horrible", "trash",
    "garbage", "suck", "boring", "stupid", "dumb", "annoying", "frustrating",
    "disappointed", "sad", "angry", "mad", "upset", "fail",
)


@dataclass
class MessageAnalysis:
    sentiment: str = "neutral"
    intent: str = "comment"
    game_related: bool = False
    requires_response: bool = False
    is_spam: bool = False
    bot_mention: bool = False
    response_type: str = "general"


class MessageAnalyzer:
    """
    Keyword and pattern classifier for chat messages.

    Pure logic: no I/O, no async, no state between calls.
    """

    def __init__(self, *, bot_name: Optional[str] = None):
        self.bot_name = (bot_name or "").lower()

    def analyze(self, text: str, author: str, context: Optional[ChatContext] = None) -> MessageAnalysis:
        clean = (text or "").strip()
        lowered = clean.lower()
        hits = {name: bool(p.search(lowered if name != "spam" else clean)) for name, p in PATTERNS.items()}

        analysis = MessageAnalysis()
        analysis.sentiment = self._sentiment(lowered, hits)
        analysis.intent = self._intent(hits)
        analysis.bot_mention = hits["bots"] or bool(self.bot_name and self.bot_name in lowered)
        analysis.game_related = self._game_related(lowered, hits, context)
        analysis.is_spam = self._spam(clean, hits)
        analysis.requires_response = (
            analysis.intent in {"greeting", "question", "bot_mention"}
            or analysis.bot_mention
            or (analysis.intent == "encouragement" and analysis.sentiment == "positive")
        )

        if analysis.intent in {"greeting", "question"}:
            analysis.response_type = analysis.intent
        elif analysis.game_related:
            analysis.response_type = "gameplay"
        elif analysis.sentiment != "neutral":
            analysis.response_type = "reaction"

        return analysis

    # ------------------------------------------------------------------

    @staticmethod
    def _sentiment(text: str, hits) -> str:
        positive = sum(1 for w in POSITIVE_WORDS if w in text)
        negative = sum(1 for w in NEGATIVE_WORDS if w in text)
        if hits["excitement"]:
            positive += 2
        if hits["frustration"]:
            negative += 2
        if hits["encouragement"]:
            positive += 1

        if positive > negative:
            return "positive"
        if negative > positive:
            return "negative"
        return "neutral"

    @staticmethod
    def _intent(hits) -> str:
        for name, intent in (
            ("commands", "command"),
            ("greetings", "greeting"),
            ("questions", "question"),
            ("bots", "bot_mention"),
            ("encouragement", "encouragement"),
            ("reactions", "reaction"),
        ):
            if hits[name]:
                return intent
        return "comment"

    @staticmethod
    def _game_related(text: str, hits, context: Optional[ChatContext]) -> bool:
        if hits["gameplay"]:
            return True
        for keywords in SUPPORTED_GAMES.values():
            if any(len(k) >= 4 and k in text for k in keywords):
                return True
        game = context.current_game if context else None
        return bool(game and game.lower() in text)

    @staticmethod
    def _spam(text: str, hits) -> bool:
        if not text:
            return False
        if hits["spam"]:
            return True
        caps = sum(1 for c in text if c.isupper())
        if len(text) > 10 and caps / len(text) > 0.7:
            return True
        punctuation = sum(1 for c in text if c in "!?.,;:")
        return punctuation / len(text) > 0.3
