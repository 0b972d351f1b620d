"""
Sensitive value classifier — heuristics for secrets in cookies and storage.

Two independent signals decide whether a key/value pair is redacted:

1. Key names are matched against case-insensitive term patterns
   (auth, token, password, ssn, card, bank, key, ...).
2. Values are matched against known secret formats (JWT, cloud and vendor
   API keys, UUIDs, bearer tokens, card numbers, SSNs, emails). Anything
   that matches no format but is long enough is scored by normalized
   Shannon entropy; random-looking strings are treated as secrets.

This is a heuristic, not a guarantee. It trades false positives on random
but harmless identifiers for recall on secrets no pattern anticipates.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Any

from browser_relay.models import SensitiveDataMode
from browser_relay.log import setup_logging

log = setup_logging("classifier")

REDACTED = "[SENSITIVE DATA REDACTED]"

MIN_SENSITIVE_LENGTH = 8
ENTROPY_MIN_LENGTH = 16
ENTROPY_THRESHOLD = 0.65

SENSITIVE_KEY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # Authentication
        r"auth",
        r"token",
        r"jwt",
        r"session",
        r"api[-_]?key",
        r"secret",
        r"password",
        r"pwd",
        r"pass",
        r"credential",
        r"oauth",
        r"refresh[-_]?token",
        r"access[-_]?token",
        r"private[-_]?key",
        # Personal information
        r"ssn",
        r"social[-_]?security",
        r"dob",
        r"birth",
        r"phone",
        r"address",
        r"zip",
        r"postal",
        r"license",
        r"credit[-_]?card",
        r"card[-_]?number",
        r"cvv",
        r"ccv",
        # Financial
        r"bank",
        r"account",
        r"payment",
        r"tax",
        r"salary",
        r"income",
        # Health
        r"medical",
        r"insurance",
        r"diagnos",
        # Generic
        r"private",
        r"confidential",
        r"secure",
        r"key",
    )
)

# Value formats are full-match: the whole value must have the shape.
SENSITIVE_VALUE_PATTERNS: tuple[re.Pattern[str], ...] = (
    # JWT: three base64url segments
    re.compile(r"ey[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    # AWS access key / secret key
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"[A-Za-z0-9/+=]{40}"),
    # Vendor API keys
    re.compile(r"sk-[A-Za-z0-9]{32,}"),
    re.compile(r"(sk|pk)_(test|live)_[A-Za-z0-9]{24,}"),
    re.compile(r"AIza[0-9A-Za-z_-]{35}"),
    re.compile(r"gh[pousr]_[A-Za-z0-9_]{36,255}"),
    # Generic key shapes
    re.compile(r"[A-Za-z0-9._-]{32,}"),
    re.compile(r"[A-Za-z0-9]{8,}[-_][A-Za-z0-9]{4,}[-_][A-Za-z0-9]{4,}[-_][A-Za-z0-9]{4,}[-_][A-Za-z0-9]{12,}"),
    # UUID, OAuth bearer
    re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE),
    re.compile(r"bearer [A-Za-z0-9._-]+", re.IGNORECASE),
    # Visa, MasterCard, Amex, Discover
    re.compile(r"4[0-9]{12}(?:[0-9]{3})?|5[1-5][0-9]{14}|3[47][0-9]{13}|6(?:011|5[0-9]{2})[0-9]{12}", re.ASCII),
    # US SSN
    re.compile(r"\d{3}-\d{2}-\d{4}", re.ASCII),
    # Email
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
)


def normalized_entropy(value: str) -> float:
    """
    Shannon entropy of the character distribution, scaled to [0, 1].

    Divides by log2(distinct characters). Strings with fewer than two
    distinct characters have no meaningful maximum and score 0.0.
    """
    if not value:
        return 0.0
    counts = Counter(value)
    if len(counts) < 2:
        return 0.0

    length = len(value)
    entropy = 0.0
    for count in counts.values():
        p = count / length
        entropy -= p * math.log2(p)
    return entropy / math.log2(len(counts))


def is_sensitive_key(key: Any) -> bool:
    """True if the key name looks like it holds sensitive data."""
    key = str(key)
    return any(pattern.search(key) for pattern in SENSITIVE_KEY_PATTERNS)


def is_sensitive_value(value: Any) -> bool:
    """True if the value looks like a secret, token, or personal identifier."""
    if not isinstance(value, str):
        return False

    if len(value) < MIN_SENSITIVE_LENGTH:
        return False

    if any(pattern.fullmatch(value) for pattern in SENSITIVE_VALUE_PATTERNS):
        return True

    if len(value) > ENTROPY_MIN_LENGTH and normalized_entropy(value) > ENTROPY_THRESHOLD:
        return True

    return False


def _coerce_mode(mode: Any) -> SensitiveDataMode:
    try:
        return SensitiveDataMode(mode)
    except ValueError:
        log.warning(f"Unknown sensitive data mode {mode!r}, hiding all values")
        return SensitiveDataMode.HIDE_ALL


def _should_redact(key: Any, value: Any, mode: SensitiveDataMode) -> bool:
    if mode is SensitiveDataMode.HIDE_ALL:
        return True
    if mode is SensitiveDataMode.HIDE_SENSITIVE:
        return is_sensitive_key(key) or is_sensitive_value(value)
    return False


def filter_cookies(cookies: Any, mode: SensitiveDataMode | str) -> list[Any]:
    """
    Redact cookie values according to ``mode``.

    Non-list input yields ``[]``. Entries that are not mappings pass through
    untouched; other fields on a cookie (domain, path, ...) are kept.
    """
    if not isinstance(cookies, (list, tuple)):
        return []
    mode = _coerce_mode(mode)

    result: list[Any] = []
    for cookie in cookies:
        if not isinstance(cookie, dict):
            result.append(cookie)
            continue
        if _should_redact(cookie.get("name", ""), cookie.get("value"), mode):
            result.append({**cookie, "value": REDACTED})
        else:
            result.append(cookie)

    if mode is not SensitiveDataMode.SHOW_ALL:
        log.debug(f"Filtered {len(result)} cookies ({mode.value})")
    return result


def filter_storage(storage: Any, mode: SensitiveDataMode | str) -> dict[str, Any]:
    """Redact storage values according to ``mode``. Non-mapping input yields ``{}``."""
    if not isinstance(storage, dict):
        return {}
    mode = _coerce_mode(mode)

    return {
        key: REDACTED if _should_redact(key, value, mode) else value
        for key, value in storage.items()
    }
