"""
Payload bounder — keeps captured bodies and log messages small enough to relay.

Two independent limits apply:
- per-string: every string anywhere in a structure is cut to ``max_len``
- per-batch:  a JSON array is kept only up to a total serialized size,
              later items are dropped whole
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Union

from browser_relay.log import setup_logging

log = setup_logging("bounder")

JSONValue = Union[str, int, float, bool, None, list["JSONValue"], dict[str, "JSONValue"]]

MAX_DEPTH = 100
TRUNCATED_SUFFIX = "... (truncated)"
MAX_DEPTH_MARKER = "[MAX_DEPTH_EXCEEDED]"
ERROR_MARKER = "[ERROR_PROCESSING]"


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def serialized_size(obj: Any) -> int:
    """Length of the compact JSON encoding of ``obj``."""
    return len(_dumps(obj))


def truncate_strings(data: JSONValue, max_len: int, depth: int = 0, path: str = "") -> JSONValue:
    """
    Return a copy of ``data`` with every string cut to ``max_len`` characters.

    Depth is the only cycle guard: past MAX_DEPTH levels the subtree is
    replaced by a marker. A failure on one mapping key replaces that key's
    value with an error marker and leaves its siblings intact.
    """
    if depth > MAX_DEPTH:
        log.warning(f"Max depth exceeded at path: {path or 'root'}")
        return MAX_DEPTH_MARKER

    if isinstance(data, str):
        if len(data) > max_len:
            log.debug(f"Truncating string at path {path or 'root'} from {len(data)} to {max_len}")
            return data[:max_len] + TRUNCATED_SUFFIX
        return data

    if isinstance(data, (list, tuple)):
        return [
            truncate_strings(item, max_len, depth + 1, f"{path}[{index}]")
            for index, item in enumerate(data)
        ]

    if isinstance(data, dict):
        result: dict[Any, Any] = {}
        for key, value in data.items():
            try:
                result[key] = truncate_strings(
                    value, max_len, depth + 1, f"{path}.{key}" if path else str(key)
                )
            except Exception as e:
                log.error(f"Error processing key {key!r} at path {path or 'root'}: {e}")
                result[key] = ERROR_MARKER
        return result

    return data


def bound_array(
    items: Iterable[Any],
    max_total_size: int,
    transform: Callable[[Any], Any],
) -> list[Any]:
    """
    Transform items in order and keep them while their combined serialized
    size stays within ``max_total_size``. The first item that would overflow
    stops iteration; it and everything after it are dropped.
    """
    current_size = 0
    result: list[Any] = []

    for item in items:
        processed = transform(item)
        item_size = serialized_size(processed)

        if current_size + item_size > max_total_size:
            log.debug(f"Reached size limit ({current_size}/{max_total_size}), dropping remaining items")
            break

        result.append(processed)
        current_size += item_size

    return result


def process_structured_text(text: str, max_len: int, max_total_size: int) -> str:
    """
    Bound a text field that may hold JSON.

    - not JSON:      truncated as one opaque string
    - JSON array:    items truncated, then size-bounded, re-serialized
    - other JSON:    truncated, re-serialized
    - anything else going wrong: hard cut of the raw text
    """
    try:
        try:
            parsed = json.loads(text)
        except (TypeError, ValueError):
            return truncate_strings(text, max_len, 0, "root")

        if isinstance(parsed, list):
            processed = bound_array(
                parsed,
                max_total_size,
                lambda item: truncate_strings(item, max_len, 0, "root"),
            )
            log.debug(f"Processed array: {len(parsed)} -> {len(processed)} items")
            return _dumps(processed)

        return _dumps(truncate_strings(parsed, max_len, 0, "root"))
    except Exception as e:
        log.error(f"Error processing structured text: {e}")
        return str(text)[:max_len] + TRUNCATED_SUFFIX
