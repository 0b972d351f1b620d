"""
Capture relay — the coordinator between browser producers and the collector.

Outbound: event records are bounded (bodies, console messages), filtered
(cookies, storage), wrapped with the settings subset, and POSTed to the
collector after a fresh identity check.

Inbound: collector commands (screenshot, cookies, storage) are answered by
calling the external producers and filtering their results.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from pydantic import ValidationError

from browser_relay.errors import ProducerError, TransportError
from browser_relay.log import setup_logging
from browser_relay.models import (
    EventRecord,
    SelectedElementEvent,
    SensitiveDataMode,
    Settings,
    now_ms,
    parse_event,
)
from browser_relay.sanitize.bounder import process_structured_text
from browser_relay.sanitize.classifier import filter_cookies, filter_storage
from browser_relay.session.manager import SessionManager
from browser_relay.session.protocol import (
    GET_COOKIES,
    GET_LOCAL_STORAGE,
    GET_SESSION_STORAGE,
    TAKE_SCREENSHOT,
)

log = setup_logging("relay")

LARGE_PAYLOAD_WARNING = 1_000_000

# event type -> text fields that may carry JSON and must be bounded
_BOUNDED_FIELDS: dict[str, tuple[str, ...]] = {
    "network-request": ("requestBody", "responseBody"),
    "console-log": ("message",),
    "console-error": ("message",),
}


class CaptureProducers(Protocol):
    """What the host browser must provide to answer collector commands."""

    async def capture_screenshot(self) -> str: ...

    async def read_cookies(self) -> Any: ...

    async def read_local_storage(self) -> Any: ...

    async def read_session_storage(self) -> Any: ...


class CaptureRelay:
    """Route captured events to the collector and answer its commands."""

    def __init__(self, session: SessionManager, producers: CaptureProducers | None = None) -> None:
        self._session = session
        self._producers = producers

    @property
    def settings(self) -> Settings:
        return self._session.settings

    @property
    def session(self) -> SessionManager:
        return self._session

    # ── Outbound events ─────────────────────────────────────────

    def prepare(self, record: EventRecord | dict[str, Any]) -> dict[str, Any]:
        """Bound and filter one record and wrap it in the ingestion envelope."""
        if isinstance(record, dict):
            record = parse_event(record)
        settings = self.settings
        data = record.to_payload()

        for name in _BOUNDED_FIELDS.get(data["type"], ()):
            value = data.get(name)
            if value:
                before = len(value)
                data[name] = process_structured_text(value, settings.string_size_limit, settings.max_log_size)
                log.debug(f"{data['type']} {name} size {before} -> {len(data[name])}")

        mode = settings.sensitive_data_mode
        if mode is not SensitiveDataMode.SHOW_ALL:
            if data["type"] == "cookies-data":
                data["cookies"] = filter_cookies(data.get("cookies"), mode)
            elif data["type"] == "storage-data":
                data["storage"] = filter_storage(data.get("storage"), mode)

        data["timestamp"] = now_ms()
        return {"data": data, "settings": settings.envelope()}

    async def submit(self, record: EventRecord | dict[str, Any]) -> bool:
        """
        Relay one event. Returns True if the collector accepted it.

        Failures (bad record, identity mismatch, transport error) drop the
        event and are logged; the next event starts over.
        """
        try:
            payload = self.prepare(record)
        except ValidationError as e:
            log.error(f"Dropping malformed event record: {e}")
            return False

        kind = payload["data"]["type"]
        if not await self._session.validate_identity():
            log.error(f"Cannot send {kind}: not connected to a valid collector")
            return False

        encoded = json.dumps(payload, ensure_ascii=False)
        if len(encoded) > LARGE_PAYLOAD_WARNING:
            log.warning(f"Large payload detected: {len(encoded)} chars")
            log.warning(f"Payload preview: {encoded[:1000]}...")

        try:
            response = await self._session.collector.post_log(payload)
        except TransportError as e:
            log.error(f"Error sending {kind}: {e}")
            return False

        log.debug(f"Sent {kind} ({len(encoded)} chars): {response}")
        return True

    async def submit_element(self, element: dict[str, Any]) -> bool:
        return await self.submit(SelectedElementEvent(element=element))

    async def wipe_logs(self) -> bool:
        """Ask the collector to clear its logs (e.g. after a navigation)."""
        log.info("Wiping all logs...")
        try:
            await self._session.collector.wipe_logs()
        except TransportError as e:
            log.error(f"Error wiping logs: {e}")
            return False
        log.info("Logs wiped successfully")
        return True

    # ── Inbound commands ────────────────────────────────────────

    def register_commands(self) -> None:
        """Install the screenshot/cookie/storage handlers on the session."""
        self._session.register_handler(TAKE_SCREENSHOT, self._take_screenshot)
        self._session.register_handler(GET_COOKIES, self._get_cookies)
        self._session.register_handler(GET_LOCAL_STORAGE, self._get_local_storage)
        self._session.register_handler(GET_SESSION_STORAGE, self._get_session_storage)

    def _require_producers(self) -> CaptureProducers:
        if self._producers is None:
            raise ProducerError("No browser producers attached")
        return self._producers

    async def _take_screenshot(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        log.info("Taking screenshot...")
        data_url = await self._require_producers().capture_screenshot()
        response: dict[str, Any] = {"data": data_url}
        if self.settings.screenshot_path:
            response["path"] = self.settings.screenshot_path
        log.info("Screenshot captured successfully")
        return response

    async def _get_cookies(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        log.info("Getting cookies...")
        cookies = await self._require_producers().read_cookies()
        if cookies is None:
            raise ProducerError("Failed to get cookies")
        if not isinstance(cookies, list):
            cookies = []

        mode = self.settings.sensitive_data_mode
        if mode is not SensitiveDataMode.SHOW_ALL:
            cookies = filter_cookies(cookies, mode)
        return {"cookies": cookies}

    async def _get_local_storage(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        log.info("Getting localStorage...")
        storage = await self._require_producers().read_local_storage()
        return {"storage": self._filter_storage_result(storage, "localStorage")}

    async def _get_session_storage(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        log.info("Getting sessionStorage...")
        storage = await self._require_producers().read_session_storage()
        return {"storage": self._filter_storage_result(storage, "sessionStorage")}

    def _filter_storage_result(self, storage: Any, area: str) -> Any:
        if storage is None:
            raise ProducerError(f"Failed to get {area}")
        mode = self.settings.sensitive_data_mode
        if mode is not SensitiveDataMode.SHOW_ALL:
            return filter_storage(storage, mode)
        return storage
