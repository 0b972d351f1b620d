"""
Data models shared by the relay core and the browser adapters.
"""

from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from browser_relay.config import Config


def now_ms() -> int:
    return int(time.time() * 1000)


class SensitiveDataMode(str, Enum):
    """How cookie and storage values are redacted before leaving the browser."""
    HIDE_ALL = "hide-all"
    HIDE_SENSITIVE = "hide-sensitive"
    SHOW_ALL = "show-all"


class ConnectionState(str, Enum):
    """Lifecycle of the duplex connection to the collector."""
    DISCONNECTED = "disconnected"
    VALIDATING = "validating"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class Settings(BaseModel):
    """Immutable settings snapshot. Replace it, never mutate it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_limit: int = Field(default_factory=lambda: Config.LOG_LIMIT, alias="logLimit")
    query_limit: int = Field(default_factory=lambda: Config.QUERY_LIMIT, alias="queryLimit")
    string_size_limit: int = Field(default_factory=lambda: Config.STRING_SIZE_LIMIT, alias="stringSizeLimit")
    max_log_size: int = Field(default_factory=lambda: Config.MAX_LOG_SIZE, alias="maxLogSize")
    show_request_headers: bool = Field(default=False, alias="showRequestHeaders")
    show_response_headers: bool = Field(default=False, alias="showResponseHeaders")
    sensitive_data_mode: SensitiveDataMode = Field(
        default_factory=lambda: SensitiveDataMode(Config.SENSITIVE_DATA_MODE),
        alias="sensitiveDataMode",
    )
    screenshot_path: str = Field(default_factory=lambda: Config.SCREENSHOT_PATH, alias="screenshotPath")
    server_host: str = Field(default_factory=lambda: Config.COLLECTOR_HOST, alias="serverHost")
    server_port: int = Field(default_factory=lambda: Config.COLLECTOR_PORT, alias="serverPort")

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Settings":
        """Build a snapshot from Config defaults, overridden by a saved JSON file."""
        if path is None:
            return cls()
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    @property
    def endpoint(self) -> tuple[str, int]:
        return self.server_host, self.server_port

    def envelope(self) -> dict[str, Any]:
        """The settings subset attached to every ingested event."""
        return {
            "logLimit": self.log_limit,
            "queryLimit": self.query_limit,
            "showRequestHeaders": self.show_request_headers,
            "showResponseHeaders": self.show_response_headers,
            "sensitiveDataMode": self.sensitive_data_mode.value,
        }


# ── Event records ───────────────────────────────────────────────


class _EventBase(BaseModel):
    # Producers may attach any extra JSON-like fields
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    timestamp: int = Field(default_factory=now_ms)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NetworkRequestEvent(_EventBase):
    type: Literal["network-request"] = "network-request"
    url: str = ""
    method: str = "GET"
    status: int | None = None
    request_headers: dict[str, Any] | list[Any] = Field(default_factory=dict, alias="requestHeaders")
    response_headers: dict[str, Any] | list[Any] = Field(default_factory=dict, alias="responseHeaders")
    request_body: str = Field(default="", alias="requestBody")
    response_body: str = Field(default="", alias="responseBody")


class ConsoleLogEvent(_EventBase):
    type: Literal["console-log"] = "console-log"
    message: str = ""
    level: str = "log"


class ConsoleErrorEvent(_EventBase):
    type: Literal["console-error"] = "console-error"
    message: str = ""
    level: str = "error"


class SelectedElementEvent(_EventBase):
    type: Literal["selected-element"] = "selected-element"
    element: dict[str, Any] = Field(default_factory=dict)


class CookiesEvent(_EventBase):
    type: Literal["cookies-data"] = "cookies-data"
    cookies: list[Any] = Field(default_factory=list)


class StorageEvent(_EventBase):
    type: Literal["storage-data"] = "storage-data"
    area: Literal["local", "session"] = "local"
    storage: dict[str, Any] = Field(default_factory=dict)


EventRecord = Annotated[
    Union[
        NetworkRequestEvent,
        ConsoleLogEvent,
        ConsoleErrorEvent,
        SelectedElementEvent,
        CookiesEvent,
        StorageEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[EventRecord] = TypeAdapter(EventRecord)


def parse_event(raw: dict[str, Any]) -> EventRecord:
    """Validate a producer-supplied mapping into its EventRecord variant."""
    return _event_adapter.validate_python(raw)


class Cookie(BaseModel):
    name: str
    value: str = ""


# ── Collector identity & notifications ──────────────────────────


class ServerInfo(BaseModel):
    """Body of the collector's /.identity response."""
    model_config = ConfigDict(extra="allow")

    name: str = ""
    version: str = ""
    signature: str = ""

    @field_validator("name", "version", "signature", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        # Collectors report numeric versions and null names
        return "" if value is None else str(value)


class IdentityResult(BaseModel):
    """Outcome of a single identity check."""
    ok: bool
    reason: Literal["http_error", "invalid_signature", "connection_error"] | None = None
    status: int | None = None
    error: str = ""
    server_info: ServerInfo | None = None


NotificationType = Literal[
    "server-validation-success",
    "server-validation-failed",
    "websocket-connected",
]


class Notification(BaseModel):
    """Status change surfaced to whoever embeds the session (CLI, UI)."""
    type: NotificationType
    server_host: str
    server_port: int
    reason: str | None = None
    status: int | None = None
    error: str = ""
    server_info: ServerInfo | None = None
