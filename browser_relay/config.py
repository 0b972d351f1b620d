"""
Process-wide defaults, read once from the environment.

A ``.env`` in the project root (or the file named by BROWSER_RELAY_ENV) is
loaded first; real environment variables win over it. Runtime-replaceable
values live in ``models.Settings``; this class only seeds its defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(os.getenv("BROWSER_RELAY_ENV", _PROJECT_ROOT / ".env"))


def _flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _seconds(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Config:
    """Defaults for the relay, the collector endpoint and the browser host."""

    # Filesystem
    PROJECT_ROOT: Path = _PROJECT_ROOT
    LOG_DIR: Path = _PROJECT_ROOT / os.getenv("LOG_DIR", "logs")
    BROWSER_DATA_DIR: Path = _PROJECT_ROOT / os.getenv("BROWSER_DATA_DIR", "browser_data")

    # Collector endpoint
    COLLECTOR_HOST: str = os.getenv("COLLECTOR_HOST", "localhost")
    COLLECTOR_PORT: int = int(os.getenv("COLLECTOR_PORT", "3025"))

    # Seeds for the Settings snapshot
    LOG_LIMIT: int = int(os.getenv("LOG_LIMIT", "50"))
    QUERY_LIMIT: int = int(os.getenv("QUERY_LIMIT", "30000"))
    STRING_SIZE_LIMIT: int = int(os.getenv("STRING_SIZE_LIMIT", "500"))
    MAX_LOG_SIZE: int = int(os.getenv("MAX_LOG_SIZE", "20000"))
    SENSITIVE_DATA_MODE: str = os.getenv("SENSITIVE_DATA_MODE", "hide-all")
    SCREENSHOT_PATH: str = os.getenv("SCREENSHOT_PATH", "")

    # Session timers (seconds)
    IDENTITY_TIMEOUT: float = _seconds("IDENTITY_TIMEOUT", 3)
    WS_RECONNECT_DELAY: float = _seconds("WS_RECONNECT_DELAY", 5)
    HEARTBEAT_INTERVAL: float = _seconds("HEARTBEAT_INTERVAL", 30)

    # Browser host
    HEADLESS: bool = _flag("HEADLESS", False)
    SLOW_MO: int = int(os.getenv("SLOW_MO", "0"))
    START_URL: str = os.getenv("START_URL", "about:blank")
    VIEWPORT_WIDTH: int = int(os.getenv("VIEWPORT_WIDTH", "1280"))
    VIEWPORT_HEIGHT: int = int(os.getenv("VIEWPORT_HEIGHT", "720"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG")
    VERBOSE: bool = _flag("VERBOSE", True)

    @classmethod
    def ensure_dirs(cls) -> None:
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)
