"""
Duplex channel wire protocol.

Every frame is a JSON object with a ``type`` field. Commands from the
collector carry a ``requestId``; the response echoes it with the command's
response prefix plus ``-data`` or ``-error``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

HEARTBEAT = "heartbeat"
HEARTBEAT_RESPONSE = "heartbeat-response"

TAKE_SCREENSHOT = "take-screenshot"
GET_COOKIES = "get-cookies"
GET_LOCAL_STORAGE = "get-local-storage"
GET_SESSION_STORAGE = "get-session-storage"

# command type -> response prefix
RESPONSE_PREFIXES: dict[str, str] = {
    TAKE_SCREENSHOT: "screenshot",
    GET_COOKIES: "cookies",
    GET_LOCAL_STORAGE: "local-storage",
    GET_SESSION_STORAGE: "session-storage",
}

# WebSocket close codes that mean "shut down on purpose"
NORMAL_CLOSE_CODES = frozenset({1000, 1001})


class ProtocolError(ValueError):
    """Inbound frame is not a JSON object with a string ``type``."""


@dataclass
class PendingCommand:
    """A command received from the collector, waiting for its one response."""
    type: str
    request_id: Any
    params: dict[str, Any] = field(default_factory=dict)


def parse_frame(raw: str | bytes) -> dict[str, Any]:
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed frame: {e}") from e
    if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
        raise ProtocolError("Frame is not an object with a string 'type'")
    return frame


def to_command(frame: dict[str, Any]) -> PendingCommand:
    params = {k: v for k, v in frame.items() if k not in ("type", "requestId")}
    return PendingCommand(type=frame["type"], request_id=frame.get("requestId"), params=params)


def heartbeat_frame() -> dict[str, Any]:
    return {"type": HEARTBEAT}


def data_frame(prefix: str, request_id: Any, result: dict[str, Any] | None) -> dict[str, Any]:
    frame: dict[str, Any] = dict(result or {})
    frame["type"] = f"{prefix}-data"
    frame["requestId"] = request_id
    return frame


def error_frame(prefix: str, request_id: Any, error: str) -> dict[str, Any]:
    return {"type": f"{prefix}-error", "error": error, "requestId": request_id}


def encode(frame: dict[str, Any]) -> str:
    # ASCII escapes keep lone surrogates from page strings sendable as UTF-8
    return json.dumps(frame, ensure_ascii=True)
