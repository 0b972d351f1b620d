"""Tests for string truncation, array size bounding and structured text processing."""
from __future__ import annotations

import json

from browser_relay.sanitize import bounder
from browser_relay.sanitize.bounder import (
    ERROR_MARKER,
    MAX_DEPTH_MARKER,
    TRUNCATED_SUFFIX,
    bound_array,
    process_structured_text,
    serialized_size,
    truncate_strings,
)


class ExplodingStr(str):
    def __len__(self):
        raise RuntimeError("boom")


def test_truncate_short_string_unchanged():
    assert truncate_strings("abc", 3) == "abc"


def test_truncate_long_string_gets_suffix():
    assert truncate_strings("abcdef", 3) == "abc" + TRUNCATED_SUFFIX


def test_truncate_nested_structures():
    data = {"a": "abcdefgh", "b": [1, "xyzxyzxyz", {"c": None, "d": True}], "n": 2.5}
    assert truncate_strings(data, 4) == {
        "a": "abcd" + TRUNCATED_SUFFIX,
        "b": [1, "xyzx" + TRUNCATED_SUFFIX, {"c": None, "d": True}],
        "n": 2.5,
    }
    assert data["a"] == "abcdefgh"


def test_truncate_replaces_too_deep_subtree():
    data = "leaf"
    for _ in range(150):
        data = [data]

    node = truncate_strings(data, 10)
    for _ in range(101):
        node = node[0]
    assert node == MAX_DEPTH_MARKER


def test_truncate_keeps_depth_one_hundred():
    data = "leaf"
    for _ in range(100):
        data = [data]

    node = truncate_strings(data, 10)
    for _ in range(100):
        node = node[0]
    assert node == "leaf"


def test_truncate_terminates_on_self_reference():
    data: dict = {"name": "abcdefgh"}
    data["self"] = data

    node = truncate_strings(data, 4)
    for _ in range(100):
        assert node["name"] == "abcd" + TRUNCATED_SUFFIX
        node = node["self"]
    assert node["self"] == MAX_DEPTH_MARKER


def test_truncate_error_on_one_key_keeps_siblings():
    result = truncate_strings({"bad": ExplodingStr("x"), "good": "fine"}, 10)
    assert result == {"bad": ERROR_MARKER, "good": "fine"}


def test_bound_array_keeps_prefix_within_budget():
    items = ["aaaa", "bbbb", "cc"]
    assert serialized_size("aaaa") == 6
    assert bound_array(items, 12, lambda x: x) == ["aaaa", "bbbb"]
    assert bound_array(items, 11, lambda x: x) == ["aaaa"]


def test_bound_array_stops_at_first_overflow():
    # The small trailing item would fit on its own but is not considered
    assert bound_array(["a" * 10, "b"], 10, lambda x: x) == []


def test_bound_array_applies_transform_before_measuring():
    assert bound_array(["abcdef"], 5, lambda x: x[:1]) == ["a"]


def test_process_plain_text_is_truncated():
    assert process_structured_text("hello world", 5, 1000) == "hello" + TRUNCATED_SUFFIX
    assert process_structured_text("short", 50, 1000) == "short"


def test_process_json_object_is_truncated_and_compacted():
    text = '{"a": "abcdefgh", "n": 1}'
    assert process_structured_text(text, 3, 1000) == '{"a":"abc' + TRUNCATED_SUFFIX + '","n":1}'


def test_process_json_array_is_size_bounded():
    text = json.dumps(["x" * 10] * 10)
    result = json.loads(process_structured_text(text, 4, 30))
    assert result == ["xxxx" + TRUNCATED_SUFFIX]


def test_process_json_scalars_and_empty_array():
    assert process_structured_text("42", 5, 100) == "42"
    assert process_structured_text("[]", 5, 100) == "[]"


def test_process_preserves_non_ascii():
    assert process_structured_text('{"k": "héllo"}', 10, 100) == '{"k":"héllo"}'


def test_process_falls_back_to_hard_cut(monkeypatch):
    def broken(obj):
        raise RuntimeError("cannot encode")

    monkeypatch.setattr(bounder, "_dumps", broken)
    assert process_structured_text('{"a":1}', 3, 100) == '{"a' + TRUNCATED_SUFFIX
