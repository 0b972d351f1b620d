"""Shared pytest fixtures: an in-process fake collector and fake producers."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from browser_relay.collector import IDENTITY_SIGNATURE
from browser_relay.models import Notification, Settings
from browser_relay.session.manager import SessionManager


class FakeCollector:
    """Speaks the collector side of every endpoint the relay uses."""

    def __init__(self) -> None:
        self.port = 0
        self.identity_status = 200
        self.signature = IDENTITY_SIGNATURE
        self.identity_extra: dict[str, Any] = {}
        self.log_status = 200
        self.identity_calls = 0
        self.logs: list[dict[str, Any]] = []
        self.wipes = 0
        self.sockets: list[web.WebSocketResponse] = []
        self.frames: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        self.app = web.Application()
        self.app.router.add_get("/.identity", self._identity)
        self.app.router.add_post("/extension-log", self._log)
        self.app.router.add_post("/wipelogs", self._wipe)
        self.app.router.add_get("/extension-ws", self._ws)

    async def _identity(self, request: web.Request) -> web.Response:
        self.identity_calls += 1
        if self.identity_status != 200:
            return web.Response(status=self.identity_status)
        body = {"name": "fake-collector", "version": "1.2.3", "signature": self.signature}
        return web.json_response({**body, **self.identity_extra})

    async def _log(self, request: web.Request) -> web.Response:
        if self.log_status != 200:
            return web.Response(status=self.log_status)
        self.logs.append(await request.json())
        return web.json_response({"status": "ok"})

    async def _wipe(self, request: web.Request) -> web.Response:
        self.wipes += 1
        return web.json_response({"status": "ok"})

    async def _ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            if frame.get("type") == "heartbeat":
                await ws.send_json({"type": "heartbeat-response"})
            await self.frames.put(frame)
        return ws

    @property
    def live_socket(self) -> web.WebSocketResponse:
        return self.sockets[-1]

    async def send(self, frame: dict[str, Any] | str) -> None:
        if isinstance(frame, str):
            await self.live_socket.send_str(frame)
        else:
            await self.live_socket.send_json(frame)

    async def next_frame(self, timeout: float = 2.0, skip_heartbeats: bool = True) -> dict[str, Any]:
        while True:
            frame = await asyncio.wait_for(self.frames.get(), timeout)
            if skip_heartbeats and frame.get("type") == "heartbeat":
                continue
            return frame

    async def assert_no_frame(self, within: float = 0.2) -> None:
        with pytest.raises(asyncio.TimeoutError):
            await self.next_frame(timeout=within)


class FakeProducers:
    """In-memory stand-in for the browser page."""

    def __init__(self) -> None:
        self.screenshot = "data:image/png;base64,iVBORw0KGgo="
        self.cookies: Any = [
            {"name": "theme", "value": "dark"},
            {"name": "auth_token", "value": "abc"},
        ]
        self.local: Any = {"lang": "en", "apiKey": "x"}
        self.session: Any = {"sessionId": "deadbeef-dead-beef-dead-beefdeadbeef", "step": "2"}
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def _maybe_fail(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def capture_screenshot(self) -> str:
        await self._maybe_fail()
        return self.screenshot

    async def read_cookies(self) -> Any:
        await self._maybe_fail()
        return self.cookies

    async def read_local_storage(self) -> Any:
        await self._maybe_fail()
        return self.local

    async def read_session_storage(self) -> Any:
        await self._maybe_fail()
        return self.session


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
async def make_collector():
    """Start any number of fake collectors; all are shut down after the test."""
    servers: list[TestServer] = []

    async def factory() -> FakeCollector:
        fake = FakeCollector()
        server = TestServer(fake.app, host="127.0.0.1")
        await server.start_server()
        fake.port = server.port
        servers.append(server)
        return fake

    yield factory
    for server in servers:
        await server.close()


@pytest.fixture
async def collector(make_collector) -> FakeCollector:
    return await make_collector()


@pytest.fixture
def settings(collector: FakeCollector) -> Settings:
    return Settings(
        server_host="127.0.0.1",
        server_port=collector.port,
        sensitive_data_mode="hide-sensitive",
        string_size_limit=20,
        max_log_size=200,
    )


@pytest.fixture
def producers() -> FakeProducers:
    return FakeProducers()


@pytest.fixture
def notifications() -> list[Notification]:
    return []


@pytest.fixture
async def session(settings: Settings, notifications: list[Notification]):
    manager = SessionManager(
        settings,
        on_notification=notifications.append,
        reconnect_delay=0.1,
        heartbeat_interval=60,
    )
    yield manager
    await manager.stop()
