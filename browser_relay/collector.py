"""
Collector client — every HTTP/WebSocket call to the local collector process.

Endpoints (all derived from the current Settings snapshot, never cached):
  GET  /.identity       identity handshake, signature must match
  POST /extension-log   event ingestion
  POST /wipelogs        clear the collector's buffers
  WS   /extension-ws    duplex command channel
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from browser_relay.config import Config
from browser_relay.errors import TransportError
from browser_relay.log import setup_logging
from browser_relay.models import IdentityResult, ServerInfo, Settings

log = setup_logging("collector")

IDENTITY_SIGNATURE = "mcp-browser-connector-24x7"

IDENTITY_PATH = "/.identity"
LOG_PATH = "/extension-log"
WIPE_PATH = "/wipelogs"
WS_PATH = "/extension-ws"


class CollectorClient:
    """
    Thin async client over a shared aiohttp session.

    The session is created lazily and owned by this client unless one is
    passed in, in which case the caller is responsible for closing it.
    """

    def __init__(
        self,
        settings: Settings,
        http: aiohttp.ClientSession | None = None,
        identity_timeout: float | None = None,
    ) -> None:
        self._settings = settings
        self._http = http
        self._owns_http = http is None
        self._identity_timeout = Config.IDENTITY_TIMEOUT if identity_timeout is None else identity_timeout

    @property
    def settings(self) -> Settings:
        return self._settings

    @settings.setter
    def settings(self, value: Settings) -> None:
        self._settings = value

    @property
    def base_url(self) -> str:
        return f"http://{self._settings.server_host}:{self._settings.server_port}"

    @property
    def ws_url(self) -> str:
        return f"ws://{self._settings.server_host}:{self._settings.server_port}{WS_PATH}"

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    # ── Identity ────────────────────────────────────────────────

    async def check_identity(self) -> IdentityResult:
        """
        Ask the collector who it is. Never raises.

        Success requires an HTTP 2xx and a JSON body whose ``signature``
        equals IDENTITY_SIGNATURE.
        """
        url = self.base_url + IDENTITY_PATH
        log.debug(f"Validating server identity at {self._settings.server_host}:{self._settings.server_port}...")
        try:
            async with self._session().get(
                url, timeout=aiohttp.ClientTimeout(total=self._identity_timeout)
            ) as response:
                if not response.ok:
                    log.error(f"Server identity validation failed: HTTP {response.status}")
                    return IdentityResult(ok=False, reason="http_error", status=response.status)

                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            log.error(f"Server identity validation failed: {e!r}")
            return IdentityResult(ok=False, reason="connection_error", error=str(e) or e.__class__.__name__)

        if not isinstance(body, dict) or body.get("signature") != IDENTITY_SIGNATURE:
            log.error("Server identity validation failed: Invalid signature")
            return IdentityResult(ok=False, reason="invalid_signature", status=response.status)

        info = ServerInfo.model_validate(body)
        log.info(f"Server identity confirmed: {info.name} v{info.version}")
        return IdentityResult(ok=True, status=response.status, server_info=info)

    # ── HTTP endpoints ──────────────────────────────────────────

    async def _post(self, path: str, payload: Any = None) -> Any:
        url = self.base_url + path
        try:
            async with self._session().post(url, json=payload) as response:
                if not response.ok:
                    raise TransportError(f"HTTP error {response.status}")
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

    async def post_log(self, payload: dict[str, Any]) -> Any:
        """POST one event envelope to the ingestion endpoint."""
        return await self._post(LOG_PATH, payload)

    async def wipe_logs(self) -> Any:
        """Ask the collector to drop everything it has buffered."""
        return await self._post(WIPE_PATH)

    # ── Duplex channel ──────────────────────────────────────────

    async def open_websocket(self) -> aiohttp.ClientWebSocketResponse:
        """Upgrade to the duplex command channel. Heartbeats are ours, not aiohttp's."""
        try:
            return await self._session().ws_connect(self.ws_url, autoping=True, heartbeat=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

    async def close(self) -> None:
        """Release the HTTP session if this client created it."""
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None
