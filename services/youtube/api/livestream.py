from typing import Any, Dict, Optional

import httpx

from services.youtube.api.errors import classify_exception, classify_response
from services.youtube.models.stream import LiveVideo
from shared.logging.logger import get_logger

log = get_logger("youtube.livestream")


class YouTubeLivestreamAPI:
    """
    YouTube livestream discovery API (Data API v3).

    Responsibilities:
    - Detect the active live broadcast for a channel (search.list, 100 units)
    - Resolve activeLiveChatId for a video (videos.list, 1 unit)

    Failures raise TransportTransient / TransportTerminal; quota accounting
    is done by the caller.
    """

    SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
    VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

    def __init__(self, *, api_key: str, client: Optional[httpx.AsyncClient] = None):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=15.0)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------

    async def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise classify_exception(e) from e

        if r.is_error:
            raise classify_response(r)

        try:
            data = r.json()
        except ValueError as e:
            raise classify_exception(e) from e
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------
    # Live video discovery
    # ------------------------------------------------------------

    async def probe_live_video(self, channel_id: str) -> Optional[LiveVideo]:
        params = {
            "part": "snippet",
            "channelId": channel_id,
            "eventType": "live",
            "type": "video",
            "maxResults": 1,
            "key": self.api_key,
        }

        data = await self._get(self.SEARCH_URL, params)
        items = data.get("items", [])
        if not items:
            log.debug(f"[YouTube] No active livestream for channel {channel_id}")
            return None

        item = items[0]
        snippet = item.get("snippet", {})
        video_id = item.get("id", {}).get("videoId")
        if not video_id:
            return None

        return LiveVideo(
            video_id=video_id,
            title=snippet.get("title") or "",
            description=snippet.get("description") or "",
            channel_id=snippet.get("channelId"),
            thumbnail_url=(snippet.get("thumbnails", {}).get("medium") or {}).get("url"),
        )

    # ------------------------------------------------------------
    # Chat handle
    # ------------------------------------------------------------

    async def fetch_chat_handle(self, video_id: str) -> Optional[str]:
        params = {
            "part": "liveStreamingDetails",
            "id": video_id,
            "key": self.api_key,
        }

        data = await self._get(self.VIDEOS_URL, params)
        items = data.get("items", [])
        if not items:
            return None

        live_chat_id = items[0].get("liveStreamingDetails", {}).get("activeLiveChatId")
        if not live_chat_id:
            log.warning(f"[YouTube] Live chat not available for video {video_id}")
            return None

        log.info(f"[YouTube] Live chat id obtained for video {video_id}")
        return live_chat_id
