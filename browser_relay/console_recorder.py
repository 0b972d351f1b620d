"""
Console Recorder — relays console output and uncaught page errors.
"""

from __future__ import annotations

import asyncio

from patchright.async_api import ConsoleMessage, Error, Page

from browser_relay.log import setup_logging
from browser_relay.models import ConsoleErrorEvent, ConsoleLogEvent
from browser_relay.relay import CaptureRelay

log = setup_logging("console")


class ConsoleRecorder:
    """Forward console messages and page errors from a page to the relay."""

    def __init__(self, page: Page, relay: CaptureRelay) -> None:
        self._page = page
        self._relay = relay
        self._active = False
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        if self._active:
            return
        self._page.on("console", self._on_console)
        self._page.on("pageerror", self._on_page_error)
        self._active = True
        log.info("Console recorder started")

    async def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._page.remove_listener("console", self._on_console)
        self._page.remove_listener("pageerror", self._on_page_error)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        log.info("Console recorder stopped")

    def _spawn(self, event: ConsoleLogEvent | ConsoleErrorEvent) -> None:
        task = asyncio.create_task(self._relay.submit(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_console(self, msg: ConsoleMessage) -> None:
        if not self._active:
            return
        self._spawn(console_event(msg.type, msg.text))

    def _on_page_error(self, error: Error) -> None:
        if not self._active:
            return
        message = error.stack or error.message or str(error)
        self._spawn(ConsoleErrorEvent(message=message, level="error"))


def console_event(level: str, text: str) -> ConsoleLogEvent | ConsoleErrorEvent:
    """``console.error`` becomes console-error; every other level is console-log."""
    if level == "error":
        return ConsoleErrorEvent(message=text, level=level)
    return ConsoleLogEvent(message=text, level=level)
