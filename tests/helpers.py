"""
Test doubles shared across the unit tests.
"""

import asyncio
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from core.collaborators import ChatTransport
from services.youtube.models.message import YouTubeChatMessage
from services.youtube.models.stream import ChatPage, LiveVideo


class ManualClock:
    """Settable clock for components that take a `clock` callable."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport(ChatTransport):
    """
    Scripted transport. Each queue holds return values or exception
    instances; when a queue runs dry the last outcome repeats.
    """

    def __init__(self, *, can_send: bool = True):
        self._can_send = can_send
        self.probes: Deque[Any] = deque()
        self.handles: Deque[Any] = deque()
        self.pages: Deque[Any] = deque()
        self.send_errors: Deque[Exception] = deque()

        self.calls: List[Tuple[str, Any]] = []
        self.sent: List[Tuple[str, str]] = []
        self.closed = False
        self._last: Dict[str, Any] = {}

    @property
    def can_send(self) -> bool:
        return self._can_send

    def _next(self, name: str, queue: Deque[Any], default: Any) -> Any:
        if queue:
            self._last[name] = queue.popleft()
        outcome = self._last.get(name, default)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_to(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def probe_live_video(self, channel_id: str) -> Optional[LiveVideo]:
        self.calls.append(("probe", channel_id))
        return self._next("probe", self.probes, None)

    async def fetch_chat_handle(self, video_id: str) -> Optional[str]:
        self.calls.append(("handle", video_id))
        return self._next("handle", self.handles, None)

    async def fetch_messages(self, chat_handle: str, cursor: Optional[str]) -> ChatPage:
        self.calls.append(("fetch", cursor))
        await asyncio.sleep(0)
        return self._next("fetch", self.pages, ChatPage())

    async def send_reply(self, chat_handle: str, text: str) -> None:
        self.calls.append(("send", text))
        if self.send_errors:
            raise self.send_errors.popleft()
        self.sent.append((chat_handle, text))

    async def close(self) -> None:
        self.closed = True


def make_message(
    text: str,
    author: str = "viewer",
    *,
    channel_id: Optional[str] = None,
    message_id: Optional[str] = None,
    **flags: Any,
) -> YouTubeChatMessage:
    return YouTubeChatMessage(
        raw={},
        live_chat_id="chat-1",
        message_id=message_id or f"{author}:{text}",
        author_name=author,
        text=text,
        author_channel_id=channel_id or f"UC-{author}",
        **flags,
    )


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until `predicate()` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)
