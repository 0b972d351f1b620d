"""
Session manager — owns the single duplex connection to the collector.

State machine:

    DISCONNECTED -> VALIDATING -> CONNECTING -> OPEN -> CLOSING -> DISCONNECTED
                        |
                        +-- identity check failed -> DISCONNECTED (+ retry timer)

The socket, its reader, the heartbeat ticker and the reconnect timer are
asyncio tasks owned by one SessionManager instance. At most one of each is
live; starting a new one cancels the old one first.

Commands pushed by the collector are dispatched to registered async
handlers, each in its own task, and every command gets exactly one
``<prefix>-data`` or ``<prefix>-error`` response echoing its requestId.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aiohttp

from browser_relay.collector import CollectorClient
from browser_relay.config import Config
from browser_relay.errors import TransportError
from browser_relay.log import setup_logging
from browser_relay.models import ConnectionState, Notification, Settings
from browser_relay.session.protocol import (
    HEARTBEAT_RESPONSE,
    NORMAL_CLOSE_CODES,
    RESPONSE_PREFIXES,
    PendingCommand,
    ProtocolError,
    data_frame,
    encode,
    error_frame,
    heartbeat_frame,
    parse_frame,
    to_command,
)

log = setup_logging("session")

CommandHandler = Callable[[Any, dict[str, Any]], Awaitable[dict[str, Any] | None]]
NotificationListener = Callable[[Notification], None]


@dataclass
class _Registration:
    handler: CommandHandler
    prefix: str


class SessionManager:
    """Resilient duplex session with the collector for one capture context."""

    def __init__(
        self,
        settings: Settings,
        *,
        collector: CollectorClient | None = None,
        on_notification: NotificationListener | None = None,
        reconnect_delay: float | None = None,
        heartbeat_interval: float | None = None,
    ) -> None:
        self._collector = collector or CollectorClient(settings)
        self._collector.settings = settings
        self._on_notification = on_notification
        self._reconnect_delay = Config.WS_RECONNECT_DELAY if reconnect_delay is None else reconnect_delay
        self._heartbeat_interval = Config.HEARTBEAT_INTERVAL if heartbeat_interval is None else heartbeat_interval

        self._state = ConnectionState.DISCONNECTED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._command_tasks: set[asyncio.Task] = set()
        self._handlers: dict[str, _Registration] = {}
        self._connect_lock = asyncio.Lock()

        self._running = False
        self._intentional_closure = False
        self._reconnect_after_validation = False

    # ── Properties ──────────────────────────────────────────────

    @property
    def settings(self) -> Settings:
        return self._collector.settings

    @property
    def collector(self) -> CollectorClient:
        return self._collector

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN and self._ws is not None and not self._ws.closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # ── Public API ──────────────────────────────────────────────

    def register_handler(self, command_type: str, handler: CommandHandler, prefix: str | None = None) -> None:
        """
        Route ``command_type`` frames to ``handler(request_id, params)``.

        The handler returns the fields of the success frame (or None). Raising
        sends an error frame instead.
        """
        prefix = prefix or RESPONSE_PREFIXES.get(command_type)
        if not prefix:
            raise ValueError(f"No response prefix known for command type {command_type!r}")
        self._handlers[command_type] = _Registration(handler=handler, prefix=prefix)
        log.debug(f"Registered handler for command type: {command_type}")

    async def start(self) -> bool:
        """Begin the session. Returns True if the socket is open afterwards."""
        self._running = True
        return await self._connect()

    async def stop(self) -> None:
        """Close the session on purpose: no reconnect, no orphaned tasks."""
        self._running = False
        self._cancel_reconnect()
        async with self._connect_lock:
            await self._close_socket()

        pending = [t for t in self._command_tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self._collector.close()
        self._set_state(ConnectionState.DISCONNECTED)
        log.info("Session stopped")

    async def reconnect(self) -> bool:
        """Close any live socket, revalidate, reopen."""
        return await self._connect()

    async def apply_settings(self, settings: Settings) -> None:
        """
        Swap the settings snapshot. A host/port change on a running session
        forces a full reconnect; other changes only affect later events.
        """
        previous = self._collector.settings
        self._collector.settings = settings
        if settings.endpoint != previous.endpoint and self._running:
            log.info("Server settings changed, reconnecting WebSocket...")
            await self._connect()

    async def validate_identity(self) -> bool:
        """Run one identity check and emit the matching notification."""
        result = await self._collector.check_identity()
        if result.ok:
            self._notify("server-validation-success", server_info=result.server_info, status=result.status)
        else:
            self._notify(
                "server-validation-failed",
                reason=result.reason,
                status=result.status,
                error=result.error,
            )
        return result.ok

    async def send(self, frame: dict[str, Any]) -> bool:
        """Best-effort send. Returns False instead of raising on a dead socket."""
        return await self._send_raw(encode(frame), frame.get("type", "?"))

    # ── Connection lifecycle ────────────────────────────────────

    async def _connect(self) -> bool:
        async with self._connect_lock:
            self._running = True
            self._cancel_reconnect()
            await self._close_socket()

            self._set_state(ConnectionState.VALIDATING)
            if not await self.validate_identity():
                log.error("Cannot establish WebSocket: not connected to a valid collector")
                self._reconnect_after_validation = True
                self._set_state(ConnectionState.DISCONNECTED)
                self._schedule_reconnect()
                return False

            self._reconnect_after_validation = False
            self._set_state(ConnectionState.CONNECTING)
            url = self._collector.ws_url
            log.info(f"Connecting to WebSocket at {url}")
            try:
                ws = await self._collector.open_websocket()
            except TransportError as e:
                log.error(f"Error creating WebSocket: {e}")
                self._set_state(ConnectionState.DISCONNECTED)
                self._schedule_reconnect()
                return False

            self._ws = ws
            self._set_state(ConnectionState.OPEN)
            log.info(f"WebSocket connected to {url}")
            self._start_heartbeat()
            self._reader_task = asyncio.create_task(self._read_loop(ws), name="relay-ws-reader")
            self._notify("websocket-connected")
            return True

    async def _close_socket(self) -> None:
        """Intentional close of the current socket, if any."""
        self._stop_heartbeat()
        ws, reader = self._ws, self._reader_task
        if ws is None and reader is None:
            return

        self._intentional_closure = True
        self._set_state(ConnectionState.CLOSING)
        try:
            if ws is not None and not ws.closed:
                await ws.close()
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            log.error(f"Error closing WebSocket: {e}")

        if reader is not None and reader is not asyncio.current_task():
            done, _ = await asyncio.wait({reader}, timeout=5.0)
            if not done:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)

        self._intentional_closure = False
        self._ws = None
        self._reader_task = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    log.error(f"WebSocket error: {ws.exception()}")
        except (aiohttp.ClientError, ConnectionError) as e:
            log.error(f"WebSocket receive failed: {e}")
        self._on_closed(ws)

    def _on_closed(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        code = ws.close_code
        log.info(f"WebSocket closed (code: {code})")
        if ws is not self._ws:
            return

        self._set_state(ConnectionState.CLOSING)
        self._stop_heartbeat()
        self._ws = None
        self._reader_task = None
        self._set_state(ConnectionState.DISCONNECTED)

        if self._intentional_closure:
            log.info("Intentional WebSocket closure, not reconnecting")
            return

        abnormal = code not in NORMAL_CLOSE_CODES
        if abnormal or self._reconnect_after_validation:
            log.info(f"Will attempt to reconnect WebSocket (closure code: {code})")
            self._schedule_reconnect()
        else:
            log.info("Normal WebSocket closure, not reconnecting automatically")

    # ── Timers ──────────────────────────────────────────────────

    def _schedule_reconnect(self) -> None:
        if not self._running:
            return
        self._cancel_reconnect()
        self._reconnect_task = asyncio.create_task(self._reconnect_later(), name="relay-ws-reconnect")

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self._reconnect_delay)
        log.info(f"Attempting to reconnect WebSocket to {self._collector.ws_url}")
        await self._connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task is None or task is asyncio.current_task():
            return
        self._reconnect_task = None
        if not task.done():
            task.cancel()

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="relay-ws-heartbeat")

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if self.is_open:
                log.debug("Sending WebSocket heartbeat")
                await self.send(heartbeat_frame())

    # ── Commands ────────────────────────────────────────────────

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            frame = parse_frame(raw)
        except ProtocolError as e:
            log.error(f"Error processing WebSocket message: {e}")
            return

        kind = frame["type"]
        if kind == HEARTBEAT_RESPONSE:
            return

        registration = self._handlers.get(kind)
        if registration is None:
            log.warning(f"Ignoring unrecognized message type: {kind}")
            return

        command = to_command(frame)
        log.info(f"Received command {kind} (requestId={command.request_id})")
        task = asyncio.create_task(self._run_command(registration, command), name=f"relay-cmd-{kind}")
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)

    async def _run_command(self, registration: _Registration, command: PendingCommand) -> None:
        prefix = registration.prefix
        try:
            result = await registration.handler(command.request_id, command.params)
            response = data_frame(prefix, command.request_id, result)
            if await self._send_raw(encode(response), response["type"]):
                return
            if not self.is_open:
                return
            # Socket is fine, the data frame itself was unsendable
            error = f"Failed to send {response['type']}"
        except Exception as e:
            log.error(f"Command {command.type} failed (requestId={command.request_id}): {e}")
            error = str(e) or e.__class__.__name__
        response = error_frame(prefix, command.request_id, error)
        await self._send_raw(encode(response), response["type"])

    async def _send_raw(self, payload: str, kind: str) -> bool:
        ws = self._ws
        if ws is None or ws.closed:
            log.warning(f"Cannot send {kind}: WebSocket not open")
            return False
        try:
            await ws.send_str(payload)
            return True
        except (aiohttp.ClientError, ConnectionError, RuntimeError, ValueError) as e:
            log.warning(f"Failed to send {kind}: {e}")
            return False

    # ── Helpers ─────────────────────────────────────────────────

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            log.debug(f"Connection state: {self._state.value} -> {state.value}")
            self._state = state

    def _notify(self, kind: str, **fields: Any) -> None:
        settings = self._collector.settings
        notification = Notification(
            type=kind,
            server_host=settings.server_host,
            server_port=settings.server_port,
            **{k: v for k, v in fields.items() if v is not None},
        )
        if self._on_notification is None:
            return
        try:
            self._on_notification(notification)
        except Exception as e:
            log.error(f"Notification listener failed: {e}")
