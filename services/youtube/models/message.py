from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class YouTubeChatMessage:
    """
    Normalized YouTube live chat message.

    Mirrors the liveChatMessage resource (snippet + authorDetails) while
    keeping the raw payload for debugging.
    """

    raw: Dict[str, Any]
    live_chat_id: str
    message_id: Optional[str]
    author_name: str
    text: str

    author_channel_id: Optional[str] = None
    published_at: Optional[datetime] = None
    is_owner: bool = False
    is_moderator: bool = False
    is_member: bool = False
    is_verified: bool = False
    badges: List[str] = field(default_factory=list)

    @property
    def author_id(self) -> str:
        """Stable per-author key for cooldowns; display names can change."""
        return self.author_channel_id or self.author_name

    @property
    def is_command(self) -> bool:
        return self.text.startswith("!")

    def summary(self) -> Dict[str, Any]:
        return {
            "author": self.author_name,
            "author_id": self.author_id,
            "message_id": self.message_id,
            "badges": list(self.badges),
        }
