"""Tests for the MCP tools that do not need a tmux server."""

from __future__ import annotations

import asyncio
import json

import pytest

from agentwatch import mcp_server
from tests.helpers import patch_commands, tmux_runner


class FakeManager:
    sessions = {"awm-a"}

    def has_session(self, name: str) -> bool:
        return name in self.sessions

    def kill_session(self, name: str) -> bool:
        return False

    def rename_session(self, old: str, new: str) -> bool:
        return True


@pytest.fixture
def data_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("AGENTWATCH_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(mcp_server, "TmuxManager", FakeManager)
    return tmp_path


def test_recent_events_filters_and_summarizes(data_dir) -> None:
    (data_dir / "hooks.jsonl").write_text("".join(
        json.dumps({"id": f"evt_{i}", "timestamp": "t", "event": kind, "payload": {"cwd": "/w/api"}}) + "\n"
        for i, kind in enumerate(["Stop", "PreToolUse", "Stop"])
    ))

    result = mcp_server.recent_events(limit=5, event="Stop")

    assert result["status"] == "ok"
    assert [e["id"] for e in result["events"]] == ["evt_0", "evt_2"]
    assert result["events"][0]["event"] == "Stop"
    assert "api" in result["events"][0]["summary"]


def test_kill_unknown_session(data_dir) -> None:
    result = asyncio.run(mcp_server.kill_session(name="ghost"))
    assert result == {"status": "not_found", "message": "No session named ghost"}


def test_kill_failure_reported(data_dir) -> None:
    result = asyncio.run(mcp_server.kill_session(name="awm-a"))
    assert result["status"] == "error"


def test_mark_session_done(data_dir) -> None:
    result = asyncio.run(mcp_server.mark_session_done(name="awm-a"))

    assert result["status"] == "done"
    assert result["name"] == "awm-a-done"
    assert result["meta"]["status"] == "done"
    record = json.loads((data_dir / "sessions.jsonl").read_text().strip())
    assert record["sessionName"] == "awm-a-done"


def test_list_sessions(monkeypatch, data_dir) -> None:
    patch_commands(monkeypatch, tmux_runner())
    monkeypatch.setattr(mcp_server, "check_tmux_available", lambda: True)

    result = asyncio.run(mcp_server.list_sessions(filter="awm", include_all_panes=False))

    assert result["status"] == "ok"
    assert result["total_sessions"] == 2
    assert [s["name"] for s in result["sessions"]] == ["awm-b", "awm-a"]
    assert result["sessions"][1]["agent"] == "codex"


def test_list_sessions_without_tmux(monkeypatch, data_dir) -> None:
    monkeypatch.setattr(mcp_server, "check_tmux_available", lambda: False)
    result = asyncio.run(mcp_server.list_sessions(filter="", include_all_panes=False))
    assert result == {"status": "error", "message": "tmux not found"}


def test_get_session_has_last_line_of_each_pane(monkeypatch, data_dir) -> None:
    (data_dir / "config.toml").write_text("[watch]\nexpand = false\n")
    patch_commands(monkeypatch, tmux_runner())

    found = asyncio.run(mcp_server.get_session(name="scratch"))
    missing = asyncio.run(mcp_server.get_session(name="ghost"))

    pane = found["session"]["windows"][0]["panes"][0]
    assert found["status"] == "ok"
    assert pane["last_line"] == "working..."
    assert pane["cpu_percent"] == 0.0
    assert missing["status"] == "not_found"
