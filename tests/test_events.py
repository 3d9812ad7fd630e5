"""Tests for the event buffer, the JSONL feed and payload summaries."""

from __future__ import annotations

import json

import pytest

from agentwatch.events import (
    EventBuffer,
    JsonlEventFeed,
    event_style,
    parse_event_line,
    read_recent_events,
    summarize_payload,
)
from agentwatch.models import EventEntry


def _entry(i: int, kind: str = "PreToolUse", **payload) -> EventEntry:
    return EventEntry(id=f"evt_{i}", timestamp=f"2026-01-01T00:00:{i % 60:02d}Z", kind=kind, payload=payload)


def _line(i: int, kind: str = "PreToolUse", **payload) -> str:
    return json.dumps({"id": f"evt_{i}", "timestamp": "2026-01-01T00:00:00Z", "event": kind, "payload": payload}) + "\n"


def test_buffer_keeps_last_capacity_in_order() -> None:
    buffer = EventBuffer(capacity=100)
    for i in range(150):
        buffer.append(_entry(i))

    recent = buffer.recent()
    assert len(buffer) == 100
    assert [e.id for e in recent] == [f"evt_{i}" for i in range(50, 150)]
    assert [e.id for e in buffer.recent(3)] == ["evt_147", "evt_148", "evt_149"]
    assert buffer.recent(0) == []


def test_buffer_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        EventBuffer(capacity=0)


def test_parse_event_line_accepts_event_alias() -> None:
    entry = parse_event_line(_line(1, "Stop", reason="done"))
    assert entry is not None
    assert entry.kind == "Stop"
    assert entry.payload == {"reason": "done"}
    assert entry.to_record()["event"] == "Stop"


def test_parse_event_line_rejects_malformed() -> None:
    assert parse_event_line("{not json") is None
    assert parse_event_line(json.dumps({"id": "x"})) is None
    assert parse_event_line("   ") is None


def test_feed_tail_then_poll(tmp_path) -> None:
    path = tmp_path / "hooks.jsonl"
    path.write_text("".join(_line(i) for i in range(5)))
    feed = JsonlEventFeed(path, capacity=3)

    assert [e.id for e in feed.load_tail()] == ["evt_2", "evt_3", "evt_4"]
    assert feed.poll() == []

    with open(path, "a") as f:
        f.write(_line(5) + "not json\n" + _line(6))

    assert [e.id for e in feed.poll()] == ["evt_5", "evt_6"]


def test_feed_waits_for_complete_lines(tmp_path) -> None:
    path = tmp_path / "hooks.jsonl"
    path.write_text("")
    feed = JsonlEventFeed(path)
    feed.load_tail()

    full = _line(1)
    with open(path, "a") as f:
        f.write(full[:10])
    assert feed.poll() == []

    with open(path, "a") as f:
        f.write(full[10:])
    assert [e.id for e in feed.poll()] == ["evt_1"]


def test_feed_restarts_after_truncation(tmp_path) -> None:
    path = tmp_path / "hooks.jsonl"
    path.write_text(_line(1) + _line(2) + _line(3))
    feed = JsonlEventFeed(path)
    feed.load_tail()

    path.write_text(_line(9))

    assert [e.id for e in feed.poll()] == ["evt_9"]


def test_feed_missing_file(tmp_path) -> None:
    feed = JsonlEventFeed(tmp_path / "absent.jsonl")
    assert feed.load_tail() == []
    assert feed.poll() == []


def test_read_recent_events_filters_kind(tmp_path) -> None:
    path = tmp_path / "hooks.jsonl"
    path.write_text("".join(_line(i, "Stop" if i % 2 else "PreToolUse") for i in range(10)))

    assert [e.id for e in read_recent_events(path, 2)] == ["evt_8", "evt_9"]
    assert [e.id for e in read_recent_events(path, 2, kind="Stop")] == ["evt_7", "evt_9"]
    assert read_recent_events(path, 0) == []


def test_summarize_tool_events() -> None:
    assert summarize_payload({"cwd": "/home/me/proj", "tool_name": "Read",
                              "tool_input": {"file_path": "/a/b/main.py"}}) == "proj Read:main.py"
    assert summarize_payload({"tool_name": "Bash",
                              "tool_input": {"command": "pytest -x tests/test_events.py"}}) == "Bash:pytest -x tests/test…"
    assert summarize_payload({"tool_name": "Grep",
                              "tool_input": {"pattern": "def summarize_payload"}}) == "Grep:def summarize_p"


def test_summarize_prompt_and_notification() -> None:
    assert summarize_payload({"prompt": "fix the flaky test please"}) == '"fix the flaky test please"'
    assert summarize_payload({"message": "Needs permission", "notification_type": "permission_prompt"}) == (
        "Needs permission [permission_prompt]"
    )


def test_summarize_falls_back_to_json_and_truncates() -> None:
    assert summarize_payload({"x": 1}) == '{"x":1}'
    long = summarize_payload({"message": "m" * 30, "cwd": "/" + "d" * 40}, max_len=20)
    assert len(long) == 20
    assert long.endswith("…")


def test_event_style_defaults_to_blue() -> None:
    assert event_style("Stop") == "red"
    assert event_style("SomethingNew") == "blue"
