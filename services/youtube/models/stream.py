from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.youtube.models.message import YouTubeChatMessage


@dataclass
class LiveVideo:
    """
    Lightweight metadata carrier for a live broadcast found by a probe.
    """

    video_id: str
    title: str = ""
    description: str = ""
    channel_id: Optional[str] = None
    thumbnail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "video_id": self.video_id,
            "title": self.title,
            "description": self.description,
            "channel_id": self.channel_id,
        }


@dataclass
class ChatPage:
    """One liveChatMessages.list response, in transport order."""

    messages: List[YouTubeChatMessage] = field(default_factory=list)
    next_cursor: Optional[str] = None
    suggested_interval_ms: Optional[int] = None
