from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional, Set

import httpx

from services.youtube.api.errors import classify_exception, classify_response
from services.youtube.api.oauth import GoogleOAuthCredentials
from services.youtube.models.message import YouTubeChatMessage
from services.youtube.models.stream import ChatPage
from shared.logging.logger import get_logger
from shared.runtime.errors import AuthorizationDenied

log = get_logger("youtube.chat")

SEEN_IDS_LIMIT = 2000


class YouTubeChatClient:
    """
    Client for YouTube Live Chat via the Data API v3.

    Responsibilities:
    - List liveChat/messages one page at a time (the caller owns the loop)
    - Surface the server-provided polling interval
    - Deduplicate messages within one chat
    - Normalize payloads into YouTubeChatMessage
    - Insert text messages when OAuth credentials are configured, retrying
      once with a refreshed token after a 401
    """

    BASE_URL = "https://www.googleapis.com/youtube/v3/liveChat/messages"

    def __init__(
        self,
        *,
        api_key: str,
        credentials: Optional[GoogleOAuthCredentials] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")

        self.api_key = api_key
        self.credentials = credentials
        self._client = client or httpx.AsyncClient(timeout=15.0)

        self._seen_chat: Optional[str] = None
        self._seen_ids: Set[str] = set()
        self._seen_order: Deque[str] = deque()

    @property
    def can_send(self) -> bool:
        return self.credentials is not None and self.credentials.available

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Listing
    # ------------------------------------------------------------------ #

    async def fetch_messages(
        self,
        live_chat_id: str,
        cursor: Optional[str] = None,
    ) -> ChatPage:
        params = {
            "part": "snippet,authorDetails",
            "liveChatId": live_chat_id,
            "key": self.api_key,
        }
        if cursor:
            params["pageToken"] = cursor

        try:
            response = await self._client.get(self.BASE_URL, params=params)
        except httpx.HTTPError as e:
            raise classify_exception(e) from e

        if response.is_error:
            raise classify_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise classify_exception(e) from e

        if self._seen_chat != live_chat_id:
            self._seen_chat = live_chat_id
            self._seen_ids.clear()
            self._seen_order.clear()

        messages = []
        for item in data.get("items", []):
            msg_id = item.get("id")
            if not msg_id or msg_id in self._seen_ids:
                continue
            self._remember(msg_id)
            messages.append(self._normalize_message(item, live_chat_id))

        interval_ms = data.get("pollingIntervalMillis")
        return ChatPage(
            messages=messages,
            next_cursor=data.get("nextPageToken"),
            suggested_interval_ms=(
                int(interval_ms) if isinstance(interval_ms, (int, float)) else None
            ),
        )

    def _remember(self, msg_id: str) -> None:
        self._seen_ids.add(msg_id)
        self._seen_order.append(msg_id)
        while len(self._seen_order) > SEEN_IDS_LIMIT:
            self._seen_ids.discard(self._seen_order.popleft())

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    async def send_reply(self, live_chat_id: str, text: str) -> None:
        if not self.can_send:
            raise AuthorizationDenied("OAuth credentials not configured for message sending")

        body = {
            "snippet": {
                "liveChatId": live_chat_id,
                "type": "textMessageEvent",
                "textMessageDetails": {"messageText": text},
            }
        }

        token = await self.credentials.token()
        response = await self._post_message(body, token)

        if response.status_code == 401 and self.credentials.can_refresh:
            log.info("[YouTube] Access token rejected, refreshing")
            token = await self.credentials.refresh(stale=token)
            response = await self._post_message(body, token)

        if response.is_error:
            raise classify_response(response, sending=True)

        log.debug(f"[YouTube] Message sent: {text}")

    async def _post_message(self, body: Dict[str, Any], token: str) -> httpx.Response:
        try:
            return await self._client.post(
                self.BASE_URL,
                params={"part": "snippet"},
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise classify_exception(e) from e

    # ------------------------------------------------------------------ #
    # Normalization helpers
    # ------------------------------------------------------------------ #

    def _normalize_message(self, payload: Dict[str, Any], live_chat_id: str) -> YouTubeChatMessage:
        snippet = payload.get("snippet", {})
        author_details = payload.get("authorDetails", {})

        return YouTubeChatMessage(
            raw=payload,
            live_chat_id=snippet.get("liveChatId", live_chat_id),
            message_id=payload.get("id"),
            author_name=author_details.get("displayName") or "unknown",
            author_channel_id=author_details.get("channelId"),
            text=snippet.get("displayMessage") or "",
            published_at=self._parse_published_at(snippet.get("publishedAt")),
            is_owner=bool(author_details.get("isChatOwner")),
            is_moderator=bool(author_details.get("isChatModerator")),
            is_member=bool(author_details.get("isChatSponsor")),
            is_verified=bool(author_details.get("isVerified")),
            badges=[
                badge
                for badge in [
                    "owner" if author_details.get("isChatOwner") else None,
                    "moderator" if author_details.get("isChatModerator") else None,
                    "member" if author_details.get("isChatSponsor") else None,
                    "verified" if author_details.get("isVerified") else None,
                ]
                if badge
            ],
        )

    @staticmethod
    def _parse_published_at(raw: Optional[str]) -> Optional[datetime]:
        if not raw:
            return None
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            return ts.astimezone(timezone.utc)
        except ValueError:
            return None
