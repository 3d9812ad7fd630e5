"""Tests for frame rendering."""

from __future__ import annotations

from rich.cells import cell_len
from rich.text import Text

from agentwatch.models import AgentIdentity, EventEntry, Pane, ProcessStats, Session, SessionMeta, Window
from agentwatch.render import (
    COLUMN_SEPARATOR,
    Snapshot,
    apply_viewport,
    fit,
    format_duration,
    format_memory,
    format_session_meta,
    format_stats,
    frame_size,
    join_columns,
    render_frame,
    truncate_text,
)
from agentwatch.view_state import Focus, Modal, ViewState

NOW = 1_700_000_000.0


def _session(name: str, pid: int, command: str = "claude") -> Session:
    pane = Pane(
        session_name=name, window_index=0, window_name="main", pane_index=0,
        pane_id="%1", pid=pid, active=True, command=command, cwd="/tmp",
    )
    return Session(
        name=name, window_count=1, created_at=int(NOW) - 300,
        windows=[Window(session_name=name, index=0, name="main", active=True, panes=[pane])],
    )


def _snapshot(count: int = 2) -> Snapshot:
    sessions = tuple(_session(f"awm-{i}", 100 + i) for i in range(count))
    return Snapshot(
        sessions=sessions,
        total_sessions=count,
        meta={"awm-0": SessionMeta(session_name="awm-0", agent="claude", tag="fix", prompt_preview="Fix the build")},
        session_agents={"awm-0": AgentIdentity("claude", source="meta")},
        stats={100: ProcessStats(pid=100, cpu_percent=12.4, mem_percent=1.0, rss_kb=204800)},
        last_lines={"awm-0:0.0": "> " + "x" * 80},
        now=NOW,
        data_dir="/tmp/data",
    )


def _events(count: int = 3) -> list[EventEntry]:
    return [
        EventEntry(
            id=f"evt_{i}", timestamp="2026-01-01T10:00:00+00:00", kind="PreToolUse",
            payload={"cwd": "/home/me/proj", "tool_name": "Bash", "tool_input": {"command": f"make test{i}"}},
        )
        for i in range(count)
    ]


def _lines(text: Text) -> list[str]:
    return text.plain.split("\n")


def test_format_helpers() -> None:
    assert format_duration(59) == "59s"
    assert format_duration(300) == "5m"
    assert format_duration(7200) == "2h"
    assert format_duration(3 * 86400) == "3d"
    assert format_memory(512) == "512K"
    assert format_memory(204800) == "200.0M"
    assert format_stats(ProcessStats(1, 6.0, 1.0, 2048)) == "cpu:6% mem:2.0M"
    assert format_stats(None) == ""
    assert truncate_text("abcdef", 4) == "abc…"
    assert truncate_text("abc", 4) == "abc"


def test_format_session_meta() -> None:
    meta = SessionMeta(session_name="s", tag="fix", status="done", prompt_preview="Ship it")
    assert format_session_meta(meta) == "[tag:fix status:done] Ship it"
    assert format_session_meta(SessionMeta(session_name="s")) is None
    assert format_session_meta(None) is None


def test_fit_uses_single_ellipsis_and_ignores_styles() -> None:
    line = Text("abcdefghij", style="bold")
    assert fit(line, 5).plain == "abcd…"
    assert fit(line, 20).plain == "abcdefghij"
    assert line.plain == "abcdefghij"


def test_render_is_idempotent() -> None:
    state, snapshot, events = ViewState(), _snapshot(), _events()
    first = render_frame(state, snapshot, events, 120, 40)
    second = render_frame(state, snapshot, events, 120, 40)
    assert first.text.plain == second.text.plain
    assert first.scroll_offset == second.scroll_offset


def test_every_line_fits_width() -> None:
    for width in (20, 60, 120):
        frame = render_frame(ViewState(), _snapshot(), _events(), width, 30)
        for line in _lines(frame.text):
            assert cell_len(line) <= width


def test_dashboard_shows_session_details() -> None:
    plain = render_frame(ViewState(show_events=False), _snapshot(), [], 160, 40).text.plain

    assert "awm-0 [claude] 5m" in plain
    assert "[tag:fix] Fix the build" in plain
    assert "cpu:12% mem:200.0M" in plain
    # Last line clipped to 38 characters plus the ellipsis
    assert "> " + "x" * 36 + "…" in plain


def test_two_columns_split_at_left_share() -> None:
    rows = join_columns([Text("left")], [Text("right"), Text("more")], 100)
    assert len(rows) == 2
    for row in rows:
        assert row.plain[55:55 + len(COLUMN_SEPARATOR)] == COLUMN_SEPARATOR
        assert cell_len(row.plain) <= 100


def test_events_listed_newest_first() -> None:
    plain = render_frame(ViewState(), _snapshot(), _events(3), 160, 40).text.plain
    assert plain.index("make test2") < plain.index("make test1") < plain.index("make test0")


def test_empty_states() -> None:
    plain = render_frame(ViewState(), Snapshot(), [], 120, 30).text.plain
    assert "No sessions found" in plain
    assert "No events yet" in plain


def test_viewport_keeps_selection_visible() -> None:
    content = [Text(f"line {i}") for i in range(30)]

    visible, offset = apply_viewport(content, selected_line=25, offset=0, budget=10)

    plain = [line.plain for line in visible]
    assert len(visible) == 10
    assert plain[0] == "↑ more"
    assert "line 25" in plain
    assert offset == 18
    assert plain[-1] == "↓ 4 more"


def test_viewport_without_overflow() -> None:
    content = [Text("a"), Text("b")]
    visible, offset = apply_viewport(content, selected_line=1, offset=5, budget=10)
    assert [line.plain for line in visible] == ["a", "b"]
    assert offset == 0


def test_selected_session_scrolled_into_view() -> None:
    snapshot = _snapshot(count=30)
    state = ViewState(selected_index=29, show_events=False, expand_all=False)

    frame = render_frame(state, snapshot, [], 100, 20)

    assert frame.scroll_offset > 0
    assert "awm-29" in frame.text.plain
    assert "↑ more" in frame.text.plain


def test_status_message_shown_in_header() -> None:
    plain = render_frame(ViewState(status_message="Failed to kill awm-1"), _snapshot(), [], 160, 40).text.plain
    assert "! Failed to kill awm-1" in plain


def test_modal_screens() -> None:
    snapshot, events = _snapshot(), _events()

    assert "Keybindings" in render_frame(ViewState(modal=Modal.HELP), snapshot, events, 100, 40).text.plain
    assert "Sort Modes" in render_frame(ViewState(modal=Modal.DETAILED_HELP), snapshot, events, 100, 200).text.plain

    detail = render_frame(
        ViewState(modal=Modal.EVENT_DETAIL, focus=Focus.EVENTS, selected_event_index=0),
        snapshot, events, 100, 40,
    ).text.plain
    assert "Event Detail" in detail
    assert "evt_2" in detail
    assert '"command": "make test2"' in detail


def test_modal_keeps_session_scroll_offset() -> None:
    state = ViewState(modal=Modal.HELP, scroll_offset=7)
    assert render_frame(state, _snapshot(), [], 100, 40).scroll_offset == 7


def test_frame_size_has_a_floor() -> None:
    assert frame_size(5, 3) == (20, 9)
    assert frame_size(120, 40) == (120, 40)
