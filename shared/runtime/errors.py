"""Failure taxonomy shared by the transport and the session orchestrator.

None of these escape the orchestrator: each one is translated into a session
transition (backoff, reset, drop, or shutdown).
"""

from __future__ import annotations

from typing import Optional


class TransportError(RuntimeError):
    """Base class for failures raised by the chat transport."""

    def __init__(self, message: str, *, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class TransportTransient(TransportError):
    """Network or server failure. Retried with exponential backoff."""


class TransportTerminal(TransportError):
    """
    The broadcast ended or its chat was disabled.
    Causes a clean session reset, never surfaced to the operator as an error.
    """


class AuthorizationDenied(TransportError):
    """A reply was attempted without send credentials. Logged and dropped."""


class FatalAccumulation(RuntimeError):
    """Consecutive transient errors reached the configured threshold."""

    def __init__(self, consecutive_errors: int, threshold: int):
        super().__init__(
            f"{consecutive_errors} consecutive errors (threshold={threshold})"
        )
        self.consecutive_errors = consecutive_errors
        self.threshold = threshold


__all__ = [
    "TransportError",
    "TransportTransient",
    "TransportTerminal",
    "AuthorizationDenied",
    "FatalAccumulation",
]
