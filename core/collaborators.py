"""
Collaborator contracts consumed by the session orchestrator.

The transport is the only collaborator with I/O and cost; the rest are pure
synchronous callables (classifier, game detector, reply selector, authority).
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from services.analysis.analyzer import MessageAnalysis
from services.analysis.authority import AuthorityLevel
from services.youtube.models.message import YouTubeChatMessage
from services.youtube.models.stream import ChatPage, LiveVideo
from shared.runtime.chat_context import ChatContext


class ChatTransport(ABC):
    """
    Upstream chat API.

    Implementations raise TransportTransient / TransportTerminal /
    AuthorizationDenied (shared.runtime.errors). Quota is charged by the
    orchestrator, never by the transport.
    """

    @property
    def can_send(self) -> bool:
        return True

    @abstractmethod
    async def probe_live_video(self, channel_id: str) -> Optional[LiveVideo]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_chat_handle(self, video_id: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_messages(self, chat_handle: str, cursor: Optional[str]) -> ChatPage:
        raise NotImplementedError

    @abstractmethod
    async def send_reply(self, chat_handle: str, text: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


Classifier = Callable[[str, str, ChatContext], MessageAnalysis]
GameDetector = Callable[[str, str], Optional[str]]
ReplySelector = Callable[[str, str, MessageAnalysis, ChatContext], Optional[str]]
AuthorityResolver = Callable[[YouTubeChatMessage], AuthorityLevel]


__all__ = [
    "ChatTransport",
    "Classifier",
    "GameDetector",
    "ReplySelector",
    "AuthorityResolver",
]
