"""Tests for tmux listing parsers, SessionProbe and session lifecycle."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

from libtmux.exc import LibTmuxException

from agentwatch import tmux_manager
from agentwatch.tmux_manager import (
    SessionProbe,
    TmuxManager,
    build_session_tree,
    last_non_empty_line,
    parse_pane_line,
    parse_session_line,
)
from tests.helpers import FakeClock, FakeRunner


def _session(name: str, windows: int = 1, attached: int = 0, created: str = "1700000000", activity: str = "1700000100") -> str:
    return "\t".join([name, str(windows), str(attached), created, activity])


def _pane(
    session: str,
    window: int = 0,
    pane: int = 0,
    pid: str = "100",
    command: str = "claude",
    window_name: str = "main",
    activity: str = "1700000100",
) -> str:
    return "\t".join([
        session, str(window), window_name, "1", str(pane), f"%{pane}",
        pid, "1", command, "/home/me/proj", activity,
    ])


def test_parse_session_line_reads_fields() -> None:
    session = parse_session_line(_session("awm-a", windows=3, attached=1))
    assert session is not None
    assert session.name == "awm-a"
    assert session.window_count == 3
    assert session.attached is True
    assert session.created_at == 1700000000
    assert session.last_activity_at == 1700000100


def test_parse_session_line_keeps_missing_numbers_as_none() -> None:
    session = parse_session_line(_session("awm-a", created="", activity="abc"))
    assert session is not None
    assert session.created_at is None
    assert session.last_activity_at is None


def test_parse_session_line_rejects_short_records() -> None:
    assert parse_session_line("awm-a\t1") is None
    assert parse_session_line("") is None


def test_parse_pane_line_computes_idle_from_activity() -> None:
    parsed = parse_pane_line(_pane("awm-a", activity="1700000100"), now=1700000160.5)
    assert parsed is not None
    pane, window_active = parsed
    assert window_active is True
    assert pane.idle_seconds == 60
    assert pane.pid == 100
    assert pane.command == "claude"
    assert pane.target == "awm-a:0.0"


def test_parse_pane_line_unknown_pid_and_activity_are_none() -> None:
    parsed = parse_pane_line(_pane("awm-a", pid="", activity=""), now=1700000000)
    assert parsed is not None
    pane, _ = parsed
    assert pane.pid is None
    assert pane.idle_seconds is None


def test_parse_pane_line_idle_never_negative() -> None:
    parsed = parse_pane_line(_pane("awm-a", activity="1700000100"), now=1700000000)
    assert parsed is not None
    assert parsed[0].idle_seconds == 0


def test_build_session_tree_filters_before_grouping() -> None:
    sessions = [_session("awm-one"), _session("other"), _session("awm-two")]
    panes = [
        _pane("awm-one", window=0, pane=0, pid="10"),
        _pane("other", window=0, pane=0, pid="20"),
        _pane("awm-two", window=1, pane=0, pid="30"),
    ]

    tree = build_session_tree(sessions, panes, name_filter="awm", now=1700000100)

    assert [s.name for s in tree] == ["awm-one", "awm-two"]
    assert [p.pid for s in tree for p in s.panes] == [10, 30]


def test_build_session_tree_groups_windows_in_listing_order() -> None:
    sessions = [_session("awm-a", windows=2)]
    panes = [
        _pane("awm-a", window=2, pane=0, pid="1", window_name="second"),
        _pane("awm-a", window=0, pane=0, pid="2", window_name="first"),
        _pane("awm-a", window=2, pane=1, pid="3", window_name="second"),
    ]

    (session,) = build_session_tree(sessions, panes)

    assert [w.index for w in session.windows] == [2, 0]
    assert [p.pid for p in session.windows[0].panes] == [1, 3]
    assert session.windows[1].name == "first"


def test_build_session_tree_skips_orphan_and_malformed_panes() -> None:
    sessions = [_session("awm-a")]
    panes = [_pane("ghost"), "garbage", "", _pane("awm-a")]

    (session,) = build_session_tree(sessions, panes)

    assert len(list(session.panes)) == 1


def test_last_non_empty_line() -> None:
    assert last_non_empty_line("one\ntwo  \n\n   \n") == "two"
    assert last_non_empty_line("\n\n") is None


def test_list_sessions_returns_empty_without_server() -> None:
    runner = FakeRunner()
    runner.set(("tmux", "list-sessions"), returncode=1)
    probe = SessionProbe(runner=runner)

    assert asyncio.run(probe.list_sessions()) == []
    assert runner.count("tmux", "list-panes") == 0


def test_list_sessions_builds_tree() -> None:
    runner = FakeRunner()
    runner.set(("tmux", "list-sessions"), stdout="")
    runner.set(("tmux", "list-sessions", "-F"), stdout=_session("awm-a") + "\n" + _session("misc") + "\n")
    runner.set(("tmux", "list-panes"), stdout=_pane("awm-a") + "\n" + _pane("misc", command="zsh") + "\n")
    probe = SessionProbe(runner=runner, wall_clock=lambda: 1700000130)

    sessions = asyncio.run(probe.list_sessions("awm"))

    assert [s.name for s in sessions] == ["awm-a"]
    (pane,) = sessions[0].panes
    assert pane.idle_seconds == 30


def test_server_check_is_cached_for_ttl() -> None:
    runner = FakeRunner()
    runner.set(("tmux", "list-sessions"), stdout="")
    clock = FakeClock()
    probe = SessionProbe(runner=runner, clock=clock, server_ttl=1.0)

    async def check_three_times() -> None:
        await probe.server_running()
        clock.advance(0.5)
        await probe.server_running()
        clock.advance(1.0)
        await probe.server_running()

    asyncio.run(check_three_times())

    assert runner.calls == [["tmux", "list-sessions"], ["tmux", "list-sessions"]]


def test_capture_last_lines_dedupes_targets() -> None:
    runner = FakeRunner()
    runner.set(("tmux", "capture-pane"), stdout="$ claude\n> working on it\n\n")
    probe = SessionProbe(runner=runner)

    lines = asyncio.run(probe.capture_last_lines(["awm-a:0.0", "awm-a:0.0", "awm-a:0.1"]))

    assert lines == {"awm-a:0.0": "> working on it", "awm-a:0.1": "> working on it"}
    assert runner.count("tmux", "capture-pane") == 2


def test_capture_last_line_failure_is_none() -> None:
    runner = FakeRunner()
    probe = SessionProbe(runner=runner)

    assert asyncio.run(probe.capture_last_line("missing:0.0")) is None


# =============================================================================
# TmuxManager
# =============================================================================

class FakeServer:
    """Stands in for libtmux.Server; records every tmux command."""

    def __init__(self, stderr: list[str] | None = None, fail: bool = False):
        self.stderr = stderr or []
        self.fail = fail
        self.calls: list[tuple] = []

    def cmd(self, *args: str):
        self.calls.append(args)
        if self.fail:
            raise LibTmuxException("no server")
        return SimpleNamespace(stdout=[], stderr=self.stderr)

    def has_session(self, name: str) -> bool:
        if self.fail:
            raise LibTmuxException("no server")
        return name == "awm-a"

    def new_session(self, **kwargs):
        self.calls.append(("new-session", kwargs))
        if self.fail:
            raise LibTmuxException("duplicate session")


def test_kill_and_rename_issue_one_exact_match_command() -> None:
    server = FakeServer()
    manager = TmuxManager(server=server)

    assert manager.kill_session("awm-a") is True
    assert manager.rename_session("awm-b", "awm-b-done") is True
    assert server.calls == [
        ("kill-session", "-t", "=awm-a"),
        ("rename-session", "-t", "=awm-b", "awm-b-done"),
    ]


def test_tmux_errors_are_reported_as_false() -> None:
    assert TmuxManager(server=FakeServer(stderr=["can't find session: ghost"])).kill_session("ghost") is False
    broken = TmuxManager(server=FakeServer(fail=True))
    assert broken.rename_session("a", "b") is False
    assert broken.has_session("awm-a") is False
    assert broken.create_session("awm-c") is False


def test_has_and_create_session() -> None:
    server = FakeServer()
    manager = TmuxManager(server=server)

    assert manager.has_session("awm-a") is True
    assert manager.has_session("awm-z") is False
    assert manager.create_session("awm-c", cwd="/src", command="claude") is True
    assert server.calls == [("new-session", {
        "session_name": "awm-c", "start_directory": "/src", "window_command": "claude", "attach": False,
    })]


def _fake_exec(monkeypatch, launched: list, returncode: int = 0, error: OSError | None = None) -> None:
    class FakeProcess:
        async def wait(self) -> int:
            return returncode

    async def create_subprocess_exec(*cmd):
        if error is not None:
            raise error
        launched.append(list(cmd))
        return FakeProcess()

    monkeypatch.setattr(tmux_manager.asyncio, "create_subprocess_exec", create_subprocess_exec)


def test_attach_outside_tmux(monkeypatch) -> None:
    launched: list = []
    _fake_exec(monkeypatch, launched, returncode=0)
    monkeypatch.delenv("TMUX", raising=False)

    code = asyncio.run(TmuxManager(server=FakeServer()).attach("awm-a"))

    assert code == 0
    assert launched == [["tmux", "attach-session", "-t", "=awm-a"]]


def test_attach_inside_tmux_switches_client(monkeypatch) -> None:
    launched: list = []
    _fake_exec(monkeypatch, launched, returncode=1)
    monkeypatch.setenv("TMUX", "/tmp/tmux-1000/default,1,0")

    code = asyncio.run(TmuxManager(server=FakeServer()).attach("awm-a"))

    assert code == 1
    assert launched == [["tmux", "switch-client", "-t", "=awm-a"]]


def test_attach_without_tmux_binary(monkeypatch) -> None:
    _fake_exec(monkeypatch, [], error=FileNotFoundError("tmux"))
    monkeypatch.delenv("TMUX", raising=False)

    assert asyncio.run(TmuxManager(server=FakeServer()).attach("awm-a")) == 127
