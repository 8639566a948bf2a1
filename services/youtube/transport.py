"""Single transport facade the orchestrator talks to."""

from __future__ import annotations

from typing import Optional

import httpx

from core.collaborators import ChatTransport
from services.youtube.api.chat import YouTubeChatClient
from services.youtube.api.livestream import YouTubeLivestreamAPI
from services.youtube.api.oauth import GoogleOAuthCredentials
from services.youtube.models.stream import ChatPage, LiveVideo


class YouTubeTransport(ChatTransport):
    """
    Shares one httpx client between livestream discovery and chat.
    Quota is NOT charged here; the orchestrator gates every call.
    """

    def __init__(
        self,
        *,
        api_key: str,
        oauth_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._http = client or httpx.AsyncClient(timeout=15.0)
        self._livestream = YouTubeLivestreamAPI(api_key=api_key, client=self._http)

        credentials = None
        if oauth_token or refresh_token:
            credentials = GoogleOAuthCredentials(
                client=self._http,
                access_token=oauth_token,
                refresh_token=refresh_token,
                client_id=client_id,
                client_secret=client_secret,
            )
        self._chat = YouTubeChatClient(
            api_key=api_key, credentials=credentials, client=self._http
        )

    @property
    def can_send(self) -> bool:
        return self._chat.can_send

    async def probe_live_video(self, channel_id: str) -> Optional[LiveVideo]:
        return await self._livestream.probe_live_video(channel_id)

    async def fetch_chat_handle(self, video_id: str) -> Optional[str]:
        return await self._livestream.fetch_chat_handle(video_id)

    async def fetch_messages(self, chat_handle: str, cursor: Optional[str]) -> ChatPage:
        return await self._chat.fetch_messages(chat_handle, cursor)

    async def send_reply(self, chat_handle: str, text: str) -> None:
        await self._chat.send_reply(chat_handle, text)

    async def close(self) -> None:
        await self._http.aclose()
