"""
Logging — every module logs under the ``browser_relay`` namespace.

The namespace root is configured once: a dated file in LOG_DIR that always
receives DEBUG, plus a stdout handler unless the rich CLI owns the terminal.
Modules get children of that root, so handlers are never duplicated.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime

from browser_relay.config import Config

ROOT_LOGGER = "browser_relay"

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Cleared by suppress_console_logs(); read when the root is first configured
_console_enabled = Config.VERBOSE


def _is_console(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) in (sys.stdout, sys.stderr)


def suppress_console_logs() -> None:
    """Keep log records off the terminal. The CLI calls this before importing anything else."""
    global _console_enabled
    _console_enabled = False
    root = logging.getLogger(ROOT_LOGGER)
    for handler in [h for h in root.handlers if _is_console(h)]:
        root.removeHandler(handler)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if getattr(root, "_relay_configured", False):
        return root

    Config.ensure_dirs()
    root.setLevel(getattr(logging, Config.LOG_LEVEL.upper(), logging.DEBUG))
    root.propagate = False

    fh = logging.FileHandler(
        Config.LOG_DIR / f"{ROOT_LOGGER}_{datetime.now():%Y%m%d}.log", encoding="utf-8"
    )
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(_FORMATTER)
    root.addHandler(fh)

    if _console_enabled:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(logging.INFO)
        ch.setFormatter(_FORMATTER)
        root.addHandler(ch)

    root._relay_configured = True  # type: ignore[attr-defined]
    return root


def setup_logging(name: str = ROOT_LOGGER, log_file: str | None = None) -> logging.Logger:
    """
    Return the logger for one component.

    Args:
        name: Component name; becomes ``browser_relay.<name>``.
        log_file: Extra file in LOG_DIR that receives only this component's records.
    """
    root = _configure_root()
    if name == ROOT_LOGGER:
        return root

    logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")
    if log_file is not None:
        path = str((Config.LOG_DIR / log_file).resolve())
        if not any(getattr(h, "baseFilename", None) == path for h in logger.handlers):
            fh = logging.FileHandler(path, encoding="utf-8")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(_FORMATTER)
            logger.addHandler(fh)
    return logger
