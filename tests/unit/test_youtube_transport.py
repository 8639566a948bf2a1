"""
Unit tests for the YouTube Data API transport.

Requests are served by httpx.MockTransport; no network access.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from services.youtube.api.errors import classify_response, error_reason
from services.youtube.api.oauth import GoogleOAuthCredentials
from services.youtube.transport import YouTubeTransport
from shared.runtime.errors import (
    AuthorizationDenied,
    TransportTerminal,
    TransportTransient,
)


def api_error(status: int, reason: str) -> httpx.Response:
    return httpx.Response(
        status,
        json={"error": {"code": status, "errors": [{"reason": reason}]}},
    )


def chat_item(msg_id: str, text: str, author: str = "viewer", **details) -> dict:
    author_details = {"displayName": author, "channelId": f"UC-{author}"}
    author_details.update(details)
    return {
        "id": msg_id,
        "snippet": {
            "liveChatId": "chat-1",
            "displayMessage": text,
            "publishedAt": "2026-10-18T20:00:00Z",
        },
        "authorDetails": author_details,
    }


def make_transport(handler, oauth_token=None, **credentials) -> YouTubeTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YouTubeTransport(
        api_key="test-key", oauth_token=oauth_token, client=client, **credentials
    )


class TestErrorClassification:
    """Test mapping of API errors onto the failure taxonomy."""

    def test_reason_extracted(self):
        assert error_reason(api_error(403, "liveChatDisabled")) == "liveChatDisabled"

    def test_reason_missing_for_non_json(self):
        assert error_reason(httpx.Response(500, text="oops")) is None

    @pytest.mark.parametrize("reason", ["liveChatEnded", "liveChatDisabled", "liveChatNotFound"])
    def test_terminal_reasons(self, reason):
        assert isinstance(classify_response(api_error(403, reason)), TransportTerminal)

    def test_not_found_is_terminal(self):
        assert isinstance(classify_response(httpx.Response(404)), TransportTerminal)

    def test_server_error_is_transient(self):
        assert isinstance(classify_response(httpx.Response(503)), TransportTransient)

    def test_quota_exceeded_is_transient(self):
        assert isinstance(classify_response(api_error(403, "quotaExceeded")), TransportTransient)

    def test_forbidden_on_read_is_terminal(self):
        assert isinstance(classify_response(api_error(403, "forbidden")), TransportTerminal)

    def test_forbidden_on_send_is_authorization(self):
        error = classify_response(api_error(403, "forbidden"), sending=True)
        assert isinstance(error, AuthorizationDenied)
        assert error.reason == "forbidden"


class TestDiscovery:
    """Test probe_live_video and fetch_chat_handle."""

    @pytest.mark.asyncio
    async def test_probe_finds_live_video(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "id": {"videoId": "vid-1"},
                            "snippet": {"title": "Valorant ranked", "description": "grind", "channelId": "UC-1"},
                        }
                    ]
                },
            )

        transport = make_transport(handler)
        video = await transport.probe_live_video("UC-1")
        await transport.close()

        assert video.video_id == "vid-1"
        assert video.title == "Valorant ranked"
        assert seen["eventType"] == "live"
        assert seen["channelId"] == "UC-1"
        assert seen["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_probe_without_live_video(self):
        transport = make_transport(lambda request: httpx.Response(200, json={"items": []}))
        assert await transport.probe_live_video("UC-1") is None
        await transport.close()

    @pytest.mark.asyncio
    async def test_chat_handle(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["part"] == "liveStreamingDetails"
            return httpx.Response(
                200,
                json={"items": [{"liveStreamingDetails": {"activeLiveChatId": "chat-1"}}]},
            )

        transport = make_transport(handler)
        assert await transport.fetch_chat_handle("vid-1") == "chat-1"
        await transport.close()

    @pytest.mark.asyncio
    async def test_chat_handle_missing(self):
        transport = make_transport(
            lambda request: httpx.Response(200, json={"items": [{"liveStreamingDetails": {}}]})
        )
        assert await transport.fetch_chat_handle("vid-1") is None
        await transport.close()

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)
        with pytest.raises(TransportTransient):
            await transport.probe_live_video("UC-1")
        await transport.close()


class TestMessages:
    """Test fetch_messages."""

    @pytest.mark.asyncio
    async def test_page_is_normalized(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(
                200,
                json={
                    "items": [
                        chat_item("m1", "hello", isChatModerator=True),
                        chat_item("m2", "gg", author="streamer", isChatOwner=True),
                    ],
                    "nextPageToken": "cursor-2",
                    "pollingIntervalMillis": 5000,
                },
            )

        transport = make_transport(handler)
        page = await transport.fetch_messages("chat-1", "cursor-1")
        await transport.close()

        assert seen["pageToken"] == "cursor-1"
        assert page.next_cursor == "cursor-2"
        assert page.suggested_interval_ms == 5000
        assert [m.text for m in page.messages] == ["hello", "gg"]
        assert page.messages[0].is_moderator is True
        assert page.messages[0].badges == ["moderator"]
        assert page.messages[1].is_owner is True
        assert page.messages[1].author_id == "UC-streamer"
        assert page.messages[1].is_command is False
        assert page.messages[0].summary() == {
            "author": "viewer",
            "author_id": "UC-viewer",
            "message_id": "m1",
            "badges": ["moderator"],
        }

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_dropped(self):
        pages = [
            {"items": [chat_item("m1", "first")], "nextPageToken": "c-1"},
            {"items": [chat_item("m1", "first"), chat_item("m2", "second")], "nextPageToken": "c-2"},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages.pop(0))

        transport = make_transport(handler)
        await transport.fetch_messages("chat-1", None)
        page = await transport.fetch_messages("chat-1", "c-1")
        await transport.close()

        assert [m.message_id for m in page.messages] == ["m2"]

    @pytest.mark.asyncio
    async def test_ended_chat_is_terminal(self):
        transport = make_transport(lambda request: api_error(403, "liveChatEnded"))
        with pytest.raises(TransportTerminal):
            await transport.fetch_messages("chat-1", None)
        await transport.close()

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        transport = make_transport(lambda request: httpx.Response(500, text="backend error"))
        with pytest.raises(TransportTransient):
            await transport.fetch_messages("chat-1", None)
        await transport.close()


class TestSending:
    """Test send_reply."""

    @pytest.mark.asyncio
    async def test_send_posts_text_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "sent-1"})

        transport = make_transport(handler, oauth_token="tok")
        assert transport.can_send is True
        await transport.send_reply("chat-1", "hello chat")
        await transport.close()

        assert seen["method"] == "POST"
        assert seen["auth"] == "Bearer tok"
        snippet = seen["body"]["snippet"]
        assert snippet["liveChatId"] == "chat-1"
        assert snippet["type"] == "textMessageEvent"
        assert snippet["textMessageDetails"]["messageText"] == "hello chat"

    @pytest.mark.asyncio
    async def test_send_without_token_is_denied(self):
        calls = []
        transport = make_transport(lambda request: calls.append(request) or httpx.Response(200))

        assert transport.can_send is False
        with pytest.raises(AuthorizationDenied):
            await transport.send_reply("chat-1", "hello")
        assert calls == []
        await transport.close()

    @pytest.mark.asyncio
    async def test_send_rejected_by_api_is_denied(self):
        transport = make_transport(lambda request: api_error(401, "authError"), oauth_token="expired")
        with pytest.raises(AuthorizationDenied):
            await transport.send_reply("chat-1", "hello")
        await transport.close()


class TestTokenRefresh:
    """Test access token renewal for sending."""

    REFRESH = {
        "refresh_token": "refresh-1",
        "client_id": "client-1",
        "client_secret": "secret-1",
    }

    @staticmethod
    def token_server(seen: dict, tokens: list, valid: set):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "oauth2.googleapis.com":
                seen.setdefault("refreshes", []).append(parse_qs(request.content.decode()))
                token = tokens.pop(0)
                valid.add(token)
                return httpx.Response(200, json={"access_token": token, "expires_in": 3600})

            auth = request.headers.get("Authorization", "")
            seen.setdefault("sends", []).append(auth)
            if auth.removeprefix("Bearer ") not in valid:
                return api_error(401, "authError")
            return httpx.Response(200, json={"id": "sent"})

        return handler

    @pytest.mark.asyncio
    async def test_rejected_token_is_refreshed_and_send_retried(self):
        seen = {}
        handler = self.token_server(seen, ["fresh"], set())
        transport = make_transport(handler, oauth_token="expired", **self.REFRESH)

        await transport.send_reply("chat-1", "hello chat")
        await transport.close()

        assert seen["sends"] == ["Bearer expired", "Bearer fresh"]
        form = seen["refreshes"][0]
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]
        assert form["client_id"] == ["client-1"]
        assert form["client_secret"] == ["secret-1"]

    @pytest.mark.asyncio
    async def test_refresh_only_credentials_fetch_token_first(self):
        seen = {}
        transport = make_transport(self.token_server(seen, ["first"], set()), **self.REFRESH)

        assert transport.can_send is True
        await transport.send_reply("chat-1", "hello")
        await transport.close()

        assert seen["sends"] == ["Bearer first"]
        assert len(seen["refreshes"]) == 1

    @pytest.mark.asyncio
    async def test_token_refreshed_before_expiry(self, clock):
        seen = {}
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.token_server(seen, ["t-1", "t-2"], set()))
        )
        credentials = GoogleOAuthCredentials(client=client, clock=clock, **self.REFRESH)

        assert await credentials.token() == "t-1"
        assert credentials.expires_at == clock.now + 3600

        clock.advance(3000)
        assert await credentials.token() == "t-1"

        clock.advance(600)
        assert await credentials.token() == "t-2"
        assert len(seen["refreshes"]) == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_revoked_refresh_token_is_denied(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(400, json={"error": "invalid_grant"})
            return api_error(401, "authError")

        transport = make_transport(handler, oauth_token="expired", **self.REFRESH)

        with pytest.raises(AuthorizationDenied) as exc:
            await transport.send_reply("chat-1", "hello")
        await transport.close()

        assert exc.value.reason == "invalid_grant"
