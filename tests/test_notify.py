"""Tests for notification templates and filtering."""

from __future__ import annotations

import asyncio

from agentwatch import notify
from agentwatch.models import EventEntry
from agentwatch.notify import (
    NotifyConfig,
    format_notification,
    render_template,
    send_desktop_notification,
    should_notify,
)
from agentwatch.shell import CommandResult


def _entry(kind: str = "PreToolUse", **payload) -> EventEntry:
    return EventEntry(id="evt_1", timestamp="2026-01-01T00:00:00Z", kind=kind, payload=payload)


def test_render_template_placeholders() -> None:
    entry = _entry(
        cwd="/home/me/webapp",
        tool_name="Edit",
        tool_input={"file_path": "/home/me/webapp/src/app.py"},
        session_id="0123456789abcdef",
    )

    assert render_template("{dir}: {event}", entry) == "webapp: PreToolUse"
    assert render_template("{tool} {file} [{session}]", entry) == "Edit app.py [01234567]"


def test_unknown_placeholders_are_kept() -> None:
    assert render_template("{nope} {event}", _entry("Stop")) == "{nope} Stop"


def test_missing_values_render_empty() -> None:
    assert render_template("{cmd}{pattern}", _entry()) == ""


def test_detail_picks_best_field() -> None:
    assert render_template("{detail}", _entry(tool_name="Bash", tool_input={"command": "make"})) == "Bash: make"
    assert render_template("{detail}", _entry("Notification", message="Waiting for input")) == "Waiting for input"
    assert render_template("{detail}", _entry("Stop", stop_reason="end_turn")) == "end_turn"
    assert render_template("{detail}", _entry("SessionEnd")) == "SessionEnd"


def test_long_command_is_clipped() -> None:
    rendered = render_template("{cmd}", _entry(tool_name="Bash", tool_input={"command": "x" * 80}))
    assert len(rendered) == 50
    assert rendered.endswith("…")


def test_should_notify_respects_desktop_and_filter() -> None:
    assert should_notify(NotifyConfig(), _entry()) is False
    assert should_notify(NotifyConfig(desktop=True), _entry()) is True
    only_stop = NotifyConfig(desktop=True, filter=("Stop",))
    assert should_notify(only_stop, _entry("Stop")) is True
    assert should_notify(only_stop, _entry("PreToolUse")) is False


def test_format_notification_uses_defaults_and_fallbacks() -> None:
    entry = _entry("Stop", cwd="/srv/api", reason="done")
    assert format_notification(NotifyConfig(desktop=True), entry) == ("api: Stop", "done")

    blank = NotifyConfig(desktop=True, title_template="{file}", message_template="{cmd}")
    assert format_notification(blank, entry) == ("agentwatch: Stop", "Stop")


def test_send_desktop_notification_uses_platform_tool(monkeypatch) -> None:
    calls = []

    async def fake_run(argv, timeout=3.0):
        calls.append(list(argv))
        return CommandResult(0, "")

    monkeypatch.setattr(notify, "run_command", fake_run)
    monkeypatch.setattr(notify.sys, "platform", "linux")

    assert asyncio.run(send_desktop_notification("title", "body")) is True
    assert calls == [["notify-send", "title", "body"]]

    monkeypatch.setattr(notify.sys, "platform", "darwin")
    asyncio.run(send_desktop_notification('say "hi"', "body"))
    assert calls[-1][:2] == ["osascript", "-e"]
    assert 'with title "say \\"hi\\""' in calls[-1][2]
