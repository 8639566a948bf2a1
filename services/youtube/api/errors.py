"""Map YouTube Data API error responses onto the transport failure taxonomy."""

from __future__ import annotations

from typing import Optional

import httpx

from shared.runtime.errors import (
    AuthorizationDenied,
    TransportError,
    TransportTerminal,
    TransportTransient,
)

TERMINAL_REASONS = {
    "liveChatDisabled",
    "liveChatEnded",
    "liveChatNotFound",
    "videoNotFound",
}

AUTH_REASONS = {
    "authError",
    "forbidden",
    "insufficientPermissions",
    "unauthorized",
}


def error_reason(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None

    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return None

    for item in error.get("errors") or []:
        if isinstance(item, dict) and item.get("reason"):
            return item["reason"]
    return error.get("status")


def classify_response(response: httpx.Response, *, sending: bool = False) -> TransportError:
    """
    Translate a non-2xx response. `sending` marks liveChatMessages.insert,
    where 401/403 mean the bot lacks write credentials.
    """
    status = response.status_code
    reason = error_reason(response)
    message = f"HTTP {status} ({reason or 'no reason'})"

    if reason in TERMINAL_REASONS or status == 404:
        return TransportTerminal(message, reason=reason)

    if sending and (status in (401, 403) or reason in AUTH_REASONS):
        return AuthorizationDenied(message, reason=reason)

    if reason == "forbidden":
        return TransportTerminal(message, reason=reason)

    return TransportTransient(message, reason=reason)


def classify_exception(exc: Exception) -> TransportError:
    if isinstance(exc, TransportError):
        return exc
    return TransportTransient(f"{type(exc).__name__}: {exc}")


__all__ = ["classify_response", "classify_exception", "error_reason"]
