from enum import Enum
from typing import Iterable, Optional

from services.youtube.models.message import YouTubeChatMessage


class AuthorityLevel(Enum):
    USER = "user"
    VERIFIED = "verified"
    MODERATOR = "moderator"
    OWNER = "owner"


class AuthorityClassifier:
    """
    Classify the command privilege of a chat author.

    Owner: channel id match, chat-owner flag, or configured owner username.
    Moderator: configured moderator username or YouTube moderator flag.
    """

    def __init__(
        self,
        *,
        owner_channel_id: Optional[str] = None,
        owner_usernames: Iterable[str] = (),
        moderators: Iterable[str] = (),
    ):
        self.owner_channel_id = owner_channel_id
        self.owner_usernames = [u.strip().lower() for u in owner_usernames if u.strip()]
        self.moderators = [m.strip().lower() for m in moderators if m.strip()]

    def classify(self, message: YouTubeChatMessage) -> AuthorityLevel:
        name = (message.author_name or "").lower()

        if message.is_owner:
            return AuthorityLevel.OWNER
        if self.owner_channel_id and message.author_channel_id == self.owner_channel_id:
            return AuthorityLevel.OWNER
        if any(name == owner or owner in name for owner in self.owner_usernames):
            return AuthorityLevel.OWNER

        if message.is_moderator or name in self.moderators:
            return AuthorityLevel.MODERATOR

        if message.is_verified:
            return AuthorityLevel.VERIFIED

        return AuthorityLevel.USER
