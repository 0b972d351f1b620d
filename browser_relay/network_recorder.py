"""
Network Recorder — turns finished XHR/fetch exchanges into network-request events.

Static assets, documents and media are ignored; only API traffic is relayed.
A main-frame navigation wipes the collector's logs so each page load starts
from a clean slate.
"""

from __future__ import annotations

import asyncio

from patchright.async_api import Frame, Page, Request

from browser_relay.log import setup_logging
from browser_relay.models import NetworkRequestEvent
from browser_relay.relay import CaptureRelay

log = setup_logging("network")

RELAYED_RESOURCE_TYPES = frozenset({"xhr", "fetch"})


class NetworkRecorder:
    """Record API traffic on a patchright page and hand it to the relay."""

    def __init__(self, page: Page, relay: CaptureRelay) -> None:
        self._page = page
        self._relay = relay
        self._active = False
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        """Start listening for finished requests and navigations."""
        if self._active:
            return
        self._page.on("requestfinished", self._on_request_finished)
        self._page.on("framenavigated", self._on_frame_navigated)
        self._active = True
        log.info("Network recorder started")

    async def stop(self) -> None:
        """Stop listening and wait for in-flight submissions."""
        if not self._active:
            return
        self._active = False
        self._page.remove_listener("requestfinished", self._on_request_finished)
        self._page.remove_listener("framenavigated", self._on_frame_navigated)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        log.info("Network recorder stopped")

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_request_finished(self, request: Request) -> None:
        if not self._active or request.resource_type not in RELAYED_RESOURCE_TYPES:
            return
        self._spawn(self._relay_request(request))

    def _on_frame_navigated(self, frame: Frame) -> None:
        if not self._active or frame.parent_frame is not None:
            return
        log.info(f"Page navigated to {frame.url[:120]} - wiping logs")
        self._spawn(self._relay.wipe_logs())

    async def _relay_request(self, request: Request) -> None:
        try:
            event = await build_network_event(request)
        except Exception as e:
            log.warning(f"Could not read {request.method} {request.url[:120]}: {e}")
            return
        log.debug(f"REQ  {event.method} {event.status} {event.url[:120]}")
        await self._relay.submit(event)


async def build_network_event(request: Request) -> NetworkRequestEvent:
    """Collect url, method, status, headers and both bodies of one exchange."""
    response = await request.response()
    response_body = ""
    response_headers: dict[str, str] = {}
    status = None
    if response is not None:
        status = response.status
        response_headers = await response.all_headers()
        try:
            response_body = await response.text()
        except Exception:
            # Redirects and some aborted responses have no body
            response_body = ""

    return NetworkRequestEvent(
        url=request.url,
        method=request.method,
        status=status,
        request_headers=await request.all_headers(),
        response_headers=response_headers,
        request_body=request.post_data or "",
        response_body=response_body,
    )
