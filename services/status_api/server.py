"""HTTP monitoring surface for a running bot session."""

from __future__ import annotations

import asyncio
import hmac
import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from shared.config.bot import ServerConfig
from shared.logging.logger import get_logger

if TYPE_CHECKING:
    from core.orchestrator import SessionOrchestrator

log = get_logger("services.status_api")


class StatusApiServer:
    """
    Read-only status routes plus two admin routes.

    Runs on its own thread; admin actions are handed to the orchestrator's
    event loop and the request returns without waiting for them.
    """

    def __init__(
        self,
        config: ServerConfig,
        orchestrator: "SessionOrchestrator",
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._config = config
        self._orchestrator = orchestrator
        self._loop = loop
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if not self._server:
            return None
        host, port = self._server.server_address[:2]
        return host, port

    def start(self) -> None:
        if not self._config.enabled:
            log.info("Status API server disabled via config")
            return
        if self._thread and self._thread.is_alive():
            return

        self._server = ThreadingHTTPServer(
            (self._config.host, int(self._config.port)),
            self._build_handler(),
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="status-api",
            daemon=True,
        )
        self._thread.start()
        host, port = self.address
        log.info(f"Status API server running on {host}:{port}")
        if not self._config.admin_token:
            log.warning("ADMIN_TOKEN not set; admin routes are disabled")

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        log.info("Status API server stopped")

    def _build_handler(self):
        config = self._config
        orchestrator = self._orchestrator
        loop = self._loop

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:
                log.debug(f"[http] {self.address_string()} {format % args}")

            def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
                body = json.dumps(payload, default=str).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _authorized(self) -> bool:
                expected = config.admin_token
                if not expected:
                    return False
                token = self.headers.get("Authorization") or ""
                if token.lower().startswith("bearer "):
                    token = token[7:]
                return hmac.compare_digest(token.strip(), expected)

            def do_GET(self) -> None:  # noqa: N802 - stdlib signature
                path = urlparse(self.path).path.rstrip("/") or "/"

                if path == "/health":
                    status = orchestrator.status()
                    return self._send_json(
                        HTTPStatus.OK,
                        {
                            "status": "ok",
                            "phase": status["phase"],
                            "uptime": status["uptime"],
                            "version": status["version"]["version"],
                            "timestamp": status["timestamp"],
                        },
                    )

                if path == "/api/status":
                    return self._send_json(HTTPStatus.OK, orchestrator.status())

                if path == "/api/quota":
                    return self._send_json(
                        HTTPStatus.OK,
                        {
                            "quota": orchestrator.ledger.status(),
                            "history": orchestrator.ledger.history(),
                        },
                    )

                return self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})

            def do_POST(self) -> None:  # noqa: N802 - stdlib signature
                path = urlparse(self.path).path.rstrip("/")

                if path not in ("/api/stop", "/api/restart"):
                    return self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})

                if not self._authorized():
                    log.warning(f"[http] Rejected admin request to {path}")
                    return self._send_json(HTTPStatus.UNAUTHORIZED, {"error": "unauthorized"})

                if path == "/api/stop":
                    asyncio.run_coroutine_threadsafe(orchestrator.stop("admin_api"), loop)
                    return self._send_json(HTTPStatus.ACCEPTED, {"accepted": "stop"})

                asyncio.run_coroutine_threadsafe(orchestrator.restart(), loop)
                return self._send_json(HTTPStatus.ACCEPTED, {"accepted": "restart"})

        return Handler


__all__ = ["StatusApiServer"]
