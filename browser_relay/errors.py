"""
Exception types raised inside the relay.

None of these escape the public coroutines that talk to the collector;
they are caught at the transport boundary, logged, and turned into
notifications, dropped events, or ``-error`` response frames.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures."""


class TransportError(RelayError):
    """An HTTP or WebSocket exchange with the collector failed."""


class ProducerError(RelayError):
    """An external producer (screenshot, cookies, storage) failed."""
