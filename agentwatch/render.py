"""Frame rendering for the watch dashboard.

``render_frame`` turns the view state plus one refresh worth of data into a
rich Text block sized to the terminal. It reads no clocks, files or
globals, so the same inputs always give the same frame.
"""

from __future__ import annotations

import json
import math
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from rich.highlighter import JSONHighlighter
from rich.text import Text

from agentwatch.events import EVENT_KINDS, event_style, summarize_event
from agentwatch.meta import short_id
from agentwatch.models import AgentIdentity, EventEntry, ProcessStats, Session, SessionMeta
from agentwatch.notify import PLACEHOLDER_HELP
from agentwatch.view_state import (
    EVENT_PANEL_LIMIT,
    Focus,
    Modal,
    SortMode,
    ViewState,
    filter_label,
    scroll_to_show,
)

HEADER_LINES = 6  # title, toggles, runtime options, info bar, rule, blank
FOOTER_LINES = 2  # blank, key hints
SESSION_HEIGHT_SHARE = 0.7
LEFT_WIDTH_SHARE = 0.55
COLUMN_SEPARATOR = " │ "
LAST_LINE_WIDTH = 38
META_LINE_WIDTH = 80
EVENT_DETAIL_CHROME = 12

AGENT_STYLES = {
    "claude": "magenta",
    "codex": "cyan",
    "gemini": "yellow",
}

_json_highlighter = JSONHighlighter()


@dataclass(frozen=True)
class Snapshot:
    """Data gathered by one refresh."""
    sessions: Sequence[Session] = ()
    total_sessions: int = 0
    meta: dict[str, SessionMeta] = field(default_factory=dict)
    session_agents: dict[str, AgentIdentity] = field(default_factory=dict)
    pane_agents: dict[int, AgentIdentity] = field(default_factory=dict)
    stats: dict[int, ProcessStats] = field(default_factory=dict)
    last_lines: dict[str, str | None] = field(default_factory=dict)
    now: float = 0.0
    data_dir: str = ""
    events_source: str = "hooks.jsonl"


@dataclass(frozen=True)
class Frame:
    text: Text
    scroll_offset: int


# =============================================================================
# Formatting helpers
# =============================================================================

def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


def format_memory(kb: int) -> str:
    if kb < 1024:
        return f"{kb}K"
    if kb < 1024 * 1024:
        return f"{kb / 1024:.1f}M"
    return f"{kb / 1024 / 1024:.1f}G"


def format_stats(stats: ProcessStats | None) -> str:
    if stats is None:
        return ""
    return f"cpu:{stats.cpu_percent:.0f}% mem:{format_memory(stats.rss_kb)}"


def format_clock(epoch: float) -> str:
    return time.strftime("%H:%M:%S", time.localtime(epoch))


def format_event_time(timestamp: str) -> str:
    """HH:MM:SS in local time for an ISO timestamp."""
    try:
        parsed = datetime.fromisoformat(timestamp)
    except ValueError:
        return timestamp[:8]
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.strftime("%H:%M:%S")


def format_session_meta(meta: SessionMeta | None) -> str | None:
    """``[tag:x status:y task plan:z] preview`` for the expanded session view."""
    if meta is None:
        return None
    parts = []
    if meta.tag:
        parts.append(f"tag:{meta.tag}")
    if meta.status:
        parts.append(f"status:{meta.status}")
    if meta.task_id:
        parts.append(meta.task_id)
    if meta.plan_id:
        parts.append(f"plan:{short_id(meta.plan_id)}")
    label = f"[{' '.join(parts)}]" if parts else ""
    combined = f"{label} {meta.prompt_preview or ''}".strip()
    return combined or None


def truncate_text(text: str, max_len: int) -> str:
    """Clip to ``max_len`` characters with a trailing ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max(0, max_len - 1)] + "…"


def fit(line: Text, width: int, pad: bool = False) -> Text:
    """Copy of ``line`` cut to ``width`` cells with a single trailing ellipsis.

    Styles do not count toward the width.
    """
    fitted = line.copy()
    fitted.truncate(max(0, width), overflow="ellipsis", pad=pad)
    return fitted


def shorten_home(path: str) -> str:
    home = os.path.expanduser("~")
    if home and path.startswith(home):
        return "~" + path[len(home):]
    return path


def _on_off(value: bool) -> tuple[str, str]:
    return ("[on]", "green") if value else ("[off]", "dim")


def _agent_style(agent: str) -> str:
    return AGENT_STYLES.get(agent, "blue")


# =============================================================================
# Dashboard sections
# =============================================================================

def build_header(state: ViewState, snapshot: Snapshot) -> list[Text]:
    title = Text()
    title.append("agentwatch", style="bold")
    title.append(f" {format_clock(snapshot.now)}", style="dim")
    if state.sort_mode is not SortMode.NONE:
        title.append(f" sort:{state.sort_mode.value}", style="dim")

    toggles = Text()
    for key, label, value in (
        ("l", "last-line", state.show_last_line),
        ("s", "stats", state.show_stats),
        ("f", "agents-only", state.agents_only),
        ("e", "expand-all", state.expand_all),
        ("h", "events", state.show_events),
    ):
        toggles.append(f"{key}:{label} ")
        toggles.append(*_on_off(value))
        toggles.append("  ")
    toggles.rstrip()

    options = Text()
    sort_style = "green" if state.sort_mode is not SortMode.NONE else "dim"
    options.append("S:sort ")
    options.append(f"[{state.sort_mode.value}]", style=sort_style)
    options.append("  R:refresh ")
    options.append(f"[{state.interval:g}s]", style="cyan")
    options.append("  N:notify ")
    options.append(*_on_off(state.notify.desktop))
    if state.notify.desktop:
        options.append("  F:event-filter ")
        options.append(f"[{filter_label(state.notify.filter)}]", style="cyan")
        options.append("  T:template")
    options.append("  D:done ?:help q:quit", style="dim")

    info = Text(
        f"data:{shorten_home(snapshot.data_dir)} | events:{snapshot.events_source}"
        f" | sessions:{snapshot.total_sessions}",
        style="dim",
    )
    if state.status_message:
        info.append("  ")
        info.append(f"! {state.status_message}", style="bold yellow")

    return [title, toggles, options, info, Text("─" * 70, style="dim"), Text()]


def _panel_title(label: str, focused: bool, show_focus: bool) -> Text:
    title = Text()
    if show_focus:
        title.append("▶ " if focused else "  ", style="green")
    title.append(label, style="bold")
    return title


def build_session_lines(state: ViewState, snapshot: Snapshot) -> tuple[list[Text], list[Text], int]:
    """Session panel lines.

    Returns:
        (heading lines, content lines, index of the selected content line or -1)
    """
    focused = state.focus is Focus.SESSIONS
    heading = _panel_title("Sessions", focused, state.events_visible)
    if state.filter:
        heading.append(f" ({state.filter})", style="dim")
    if state.agents_only:
        heading.append(" [agents]", style="magenta")
    if not state.expand_all:
        heading.append(" [collapsed]", style="dim")
    if state.events_visible and focused:
        heading.append(" Tab:events", style="dim")
    headings = [heading, Text("─" * 35, style="dim")]

    if not snapshot.sessions:
        return headings, [Text("No sessions found", style="dim")], -1

    lines: list[Text] = []
    selected_line = -1
    for i, session in enumerate(snapshot.sessions):
        is_selected = i == state.selected_index
        meta = snapshot.meta.get(session.name)
        identity = snapshot.session_agents.get(session.name)

        summary = Text()
        summary.append("►" if is_selected else " ", style="reverse" if is_selected else "")
        summary.append("●" if session.attached else "○", style="green" if session.attached else "dim")
        summary.append(" ")
        summary.append(session.name, style="bold yellow" if is_selected else "bold")
        if identity is not None:
            summary.append(" ")
            summary.append(f"[{identity.agent_type}]", style=_agent_style(identity.agent_type))
        if session.created_at is not None and snapshot.now - session.created_at > 0:
            summary.append(f" {format_duration(snapshot.now - session.created_at)}", style="dim")
        if meta is not None and meta.is_done:
            summary.append(" [done]", style="dim")

        if is_selected:
            selected_line = len(lines)
        lines.append(summary)

        if not (state.expand_all or is_selected):
            continue

        meta_text = format_session_meta(meta)
        if meta_text:
            lines.append(Text(f"   {truncate_text(meta_text, META_LINE_WIDTH)}", style="dim"))

        windows = session.agent_windows(state.agents_only)
        for window in windows:
            show_window = len(windows) > 1 or len(window.panes) > 1
            if show_window:
                window_line = Text("   ")
                window_line.append("*" if window.active else " ", style="yellow")
                window_line.append(f"{window.index}:")
                window_line.append(window.name, style="cyan")
                lines.append(window_line)

            indent = "    " if show_window else "  "
            for pane in window.panes:
                pane_line = Text(indent)
                pane_line.append("›" if pane.active else " ", style="green")
                if pane.command:
                    pane_line.append(pane.command, style="blue")
                pane_agent = snapshot.pane_agents.get(pane.pid) if pane.pid is not None else None
                if pane_agent is not None and (identity is None or pane_agent.agent_type != identity.agent_type):
                    pane_line.append(f" ({pane_agent.agent_type})", style=_agent_style(pane_agent.agent_type))
                if state.show_stats and pane.pid is not None:
                    stats_text = format_stats(snapshot.stats.get(pane.pid))
                    if stats_text:
                        pane_line.append(f" {stats_text}", style="cyan")
                lines.append(pane_line)

                if state.show_last_line:
                    last = snapshot.last_lines.get(pane.target)
                    if last:
                        lines.append(Text(f"{indent} {truncate_text(last, LAST_LINE_WIDTH + 1)}", style="dim"))

    return headings, lines, selected_line


def apply_viewport(
    content: list[Text],
    selected_line: int,
    offset: int,
    budget: int,
) -> tuple[list[Text], int]:
    """Cut content to the line budget, keeping the selected line visible.

    When content overflows, two lines of the budget go to the "↑ more" and
    "↓ N more" indicators.

    Returns:
        (visible lines including indicators, new offset)
    """
    if len(content) <= budget:
        return list(content), 0

    window = max(1, budget - 2)
    offset = scroll_to_show(offset, selected_line, len(content), window)
    visible: list[Text] = []
    if offset > 0:
        visible.append(Text("↑ more", style="dim"))
    visible.extend(content[offset:offset + window])
    below = len(content) - offset - window
    if below > 0:
        visible.append(Text(f"↓ {below} more", style="dim"))
    return visible, offset


def build_event_lines(state: ViewState, snapshot: Snapshot, events: Sequence[EventEntry], width: int) -> list[Text]:
    focused = state.focus is Focus.EVENTS
    heading = _panel_title("Events", focused, True)
    heading.append(f" ({snapshot.events_source})", style="dim")
    heading.append(f" {len(events)} total", style="dim")
    if focused:
        heading.append(" Tab:sessions Enter:detail", style="dim")
    lines = [heading, Text("─" * 40, style="dim")]

    if not events:
        lines.append(Text("No events yet", style="dim"))
        lines.append(Text(f"Watching {snapshot.events_source}", style="dim"))
        return lines

    newest_first = list(reversed(events))[:EVENT_PANEL_LIMIT]
    summary_width = max(10, width - 16)
    for i, entry in enumerate(newest_first):
        is_selected = focused and i == state.selected_event_index
        bold = "bold " if is_selected else ""
        line = Text()
        line.append("►" if is_selected else " ", style="reverse" if is_selected else "")
        line.append(format_event_time(entry.timestamp), style=f"{bold}dim")
        line.append(" ")
        line.append(entry.kind.ljust(5), style=f"{bold}{event_style(entry.kind)}")
        line.append(" ")
        line.append(summarize_event(entry, max_len=summary_width), style=f"{bold}dim")
        lines.append(line)
    return lines


def join_columns(left: list[Text], right: list[Text], width: int) -> list[Text]:
    """Place two panels side by side: 55% left, separator, rest right."""
    left_width = math.floor(width * LEFT_WIDTH_SHARE)
    right_width = max(0, width - left_width - len(COLUMN_SEPARATOR))
    rows = []
    for i in range(max(len(left), len(right))):
        row = fit(left[i] if i < len(left) else Text(), left_width, pad=True)
        row.append(COLUMN_SEPARATOR, style="dim")
        row.append_text(fit(right[i] if i < len(right) else Text(), right_width))
        rows.append(row)
    return rows


def session_line_budget(state: ViewState, height: int) -> int:
    available = max(1, height - HEADER_LINES - FOOTER_LINES)
    if state.events_visible:
        return max(1, math.floor(available * SESSION_HEIGHT_SHARE))
    return available


def render_dashboard(
    state: ViewState,
    snapshot: Snapshot,
    events: Sequence[EventEntry],
    width: int,
    height: int,
) -> Frame:
    lines = [fit(line, width) for line in build_header(state, snapshot)]

    headings, content, selected_line = build_session_lines(state, snapshot)
    visible, offset = apply_viewport(content, selected_line, state.scroll_offset, session_line_budget(state, height))
    session_panel = headings + visible

    if state.events_visible:
        right_width = width - math.floor(width * LEFT_WIDTH_SHARE) - len(COLUMN_SEPARATOR)
        event_panel = build_event_lines(state, snapshot, events, right_width)
        lines.extend(join_columns(session_panel, event_panel, width))
    else:
        lines.extend(fit(line, width) for line in session_panel)

    lines.append(Text())
    lines.append(fit(Text("Enter:attach x:kill D:done ↑↓/jk:nav", style="dim"), width))
    return Frame(Text("\n").join(lines), offset)


# =============================================================================
# Modal screens
# =============================================================================

HELP_SECTIONS: tuple[tuple[str, tuple[tuple[str, str], ...]], ...] = (
    ("Navigation", (
        ("j/↓", "Move selection down"),
        ("k/↑", "Move selection up"),
        ("Tab", "Switch focus: sessions ↔ events"),
        ("Enter", "Attach to session / view event detail"),
        ("Esc", "Close detail view"),
    )),
    ("Display Toggles (lowercase)", (
        ("l", "Toggle last line output"),
        ("s", "Toggle CPU/memory stats"),
        ("f", "Toggle agents-only filter"),
        ("e", "Toggle expand all sessions"),
        ("h", "Toggle events panel"),
        ("r", "Refresh now"),
    )),
    ("Runtime Options (uppercase)", (
        ("S", "Cycle sort mode (none → name → created → activity)"),
        ("R", "Cycle refresh interval (1s → 2s → 5s → 10s)"),
        ("N", "Toggle desktop notifications"),
        ("F", "Select notification filter"),
        ("T", "Edit notification templates"),
    )),
    ("Actions", (
        ("x", "Kill selected session"),
        ("D", "Mark session done"),
    )),
    ("General", (
        ("?", "Toggle this help"),
        ("q", "Quit"),
    )),
)

DETAILED_HELP_SECTIONS: tuple[tuple[str, str], ...] = (
    ("Status Bar Reference", """
Line 1: agentwatch HH:MM:SS sort:MODE
  Current time and active sort mode.
Line 2: display toggles l s f e h, green [on] when active.
Line 3: runtime options S R N, plus F and T while notifications are on.
Line 4: data directory, event source, session count, and the last warning."""),
    ("Sort Modes (S key)", """
  none     : tmux order
  name     : alphabetical by session name
  created  : newest sessions first
  activity : most recently active first
Ties keep tmux order."""),
    ("Refresh Interval (R key)", """
  1s  : fast updates, higher CPU
  2s  : default
  5s  : relaxed updates
  10s : minimal updates
Press r to refresh immediately."""),
    ("Desktop Notifications (N key)", """
When on, new events trigger a system notification
(notify-send on Linux, osascript on macOS).
Use F to choose which event kinds notify and T to edit the templates."""),
    ("Notification Filter (F key)", """
Opens a checklist of event kinds (only while N is on).
  j/k move  Space toggle  Enter apply  q/Esc cancel
Selecting none or all kinds notifies on every event."""),
    ("Events Panel (h key)", """
Shows the newest events appended to hooks.jsonl in the data directory.
  PreToolUse         : before a tool runs
  PostToolUse        : after a tool runs
  PostToolUseFailure : a tool failed
  PermissionRequest  : permission requested
  Notification       : agent notification
Tab switches focus, Enter opens the full JSON payload."""),
    ("Session Management", """
Enter / a : attach to the selected session (detach with Ctrl-b d)
x         : kill the selected session, no confirmation
D         : mark done: rename to NAME-done and record status=done"""),
    ("Display Toggles Reference", """
l : last non-empty line of each pane
s : cpu:X% mem:Y summed over each pane's process tree
f : only panes running claude, codex, gemini, node or bun
e : expand every session instead of only the selected one
h : show or hide the events panel"""),
    ("Command Line Options", """
-f, --filter PREFIX   only sessions whose name starts with PREFIX
-A, --all             show all sessions, not just agent panes
--no-expand           start with sessions collapsed
--sort MODE           name, created or activity
--no-last-line        hide pane output
--no-stats            hide CPU/memory stats
--no-events           hide the events panel
-i, --interval SECS   refresh interval
-d, --data-dir PATH   data directory
-o, --once            render once and exit
--no-interactive      no keyboard handling"""),
    ("Data Files", """
hooks.jsonl    : append-only log of hook events (id, timestamp, event, payload)
sessions.jsonl : session metadata (sessionName, agent, cwd, tag, status, promptPreview)
config.toml    : optional [watch] and [notify] defaults"""),
)


def render_help(width: int) -> Text:
    lines = [Text("Keybindings", style="bold"), Text("─" * 50, style="dim"), Text()]
    for title, bindings in HELP_SECTIONS:
        lines.append(Text(f"  {title}", style="cyan"))
        for key, description in bindings:
            lines.append(Text(f"  {key:<8} {description}"))
        lines.append(Text())
    hint = Text()
    hint.append("d", style="bold")
    hint.append(":more details  any other key:close", style="dim")
    lines.append(hint)
    return Text("\n").join(fit(line, width) for line in lines)


def detailed_help_lines(width: int) -> list[Text]:
    lines = [
        Text("Detailed Documentation", style="bold"),
        Text("─" * min(60, max(0, width - 4)), style="dim"),
        Text(),
    ]
    for title, content in DETAILED_HELP_SECTIONS:
        lines.append(Text(f"## {title}", style="bold cyan"))
        lines.extend(Text(line) for line in content.strip().splitlines())
        lines.append(Text())
    return lines


def detailed_help_max_offset(width: int, height: int) -> int:
    return max(0, len(detailed_help_lines(width)) - max(1, height - 4))


def _scrolled(lines: list[Text], offset: int, visible: int, unit: str = "lines") -> tuple[list[Text], list[Text], list[Text]]:
    """Slice ``lines`` at a clamped offset; returns (above, body, below) indicator lists."""
    visible = max(1, visible)
    offset = min(offset, max(0, len(lines) - visible))
    body = lines[offset:offset + visible]
    above = [Text(f"↑ {offset} {unit} above", style="dim")] if offset > 0 else []
    remaining = len(lines) - offset - visible
    below = [Text(f"↓ {remaining} {unit} below", style="dim")] if remaining > 0 else []
    return above, body, below


def render_detailed_help(state: ViewState, width: int, height: int) -> Text:
    above, body, below = _scrolled(detailed_help_lines(width), state.detailed_help_offset, height - 4)
    lines = above + body + below + [Text(), Text("j/k:scroll  q/Esc:back", style="dim")]
    return Text("\n").join(fit(line, width) for line in lines)


def render_filter_popup(state: ViewState, width: int) -> Text:
    lines = [
        Text("Notification Filter", style="bold"),
        Text("─" * 35, style="dim"),
        Text("Select which events to notify on:", style="dim"),
        Text(),
    ]
    for i, (kind, _short) in enumerate(EVENT_KINDS):
        is_cursor = i == state.filter_popup_index
        is_checked = kind in state.filter_popup_selected
        line = Text("  ")
        line.append("▶" if is_cursor else " ", style="yellow")
        line.append(" ")
        line.append("[✓]" if is_checked else "[ ]", style="green" if is_checked else "dim")
        line.append(" ")
        line.append(kind, style="bold" if is_cursor else "")
        lines.append(line)

    chosen = tuple(k for k, _ in EVENT_KINDS if k in state.filter_popup_selected)
    preview = "all events" if filter_label(chosen or None) == "all" else filter_label(chosen)
    lines += [
        Text(),
        Text("─" * 35, style="dim"),
        Text(f"Current: {preview}", style="dim"),
        Text(),
        Text("↑↓/jk:move  Space:toggle  Enter:apply  Esc:cancel", style="dim"),
    ]
    return Text("\n").join(fit(line, width) for line in lines)


def _template_field_line(label: str, value: str, active: bool, cursor: int) -> Text:
    line = Text()
    if active:
        line.append("▶ ", style="yellow")
        line.append(f"{label}:", style="bold")
        line.append(" ")
        line.append(value[:cursor])
        line.append(value[cursor:cursor + 1] or " ", style="reverse")
        line.append(value[cursor + 1:])
    else:
        line.append(f"  {label}:", style="dim")
        line.append(f" {value}", style="dim")
    return line


def render_template_editor(state: ViewState, width: int) -> Text:
    lines = [
        Text("Notification Templates", style="bold"),
        Text("─" * 50, style="dim"),
        Text(),
        Text("Available placeholders:", style="dim"),
    ]
    lines.extend(Text(f"  {{{name}}}".ljust(12) + f"- {help_text}", style="dim") for name, help_text in PLACEHOLDER_HELP)
    lines += [Text(), Text("─" * 50, style="dim"), Text()]

    title_active = state.template_field == "title"
    title_value = state.template_value if title_active else state.notify.effective_title
    message_value = state.template_value if not title_active else state.notify.effective_message
    lines.append(_template_field_line("Title", title_value, title_active, state.template_cursor))
    lines.append(Text())
    lines.append(_template_field_line("Message", message_value, not title_active, state.template_cursor))
    lines += [
        Text(),
        Text("─" * 50, style="dim"),
        Text("Tab:switch field  Enter:save  Esc:cancel  Ctrl+R:reset", style="dim"),
    ]
    return Text("\n").join(fit(line, width) for line in lines)


def selected_event(state: ViewState, events: Sequence[EventEntry]) -> EventEntry | None:
    newest_first = list(reversed(events))[:EVENT_PANEL_LIMIT]
    if 0 <= state.selected_event_index < len(newest_first):
        return newest_first[state.selected_event_index]
    return None


def event_payload_lines(entry: EventEntry) -> list[str]:
    return json.dumps(entry.payload, indent=2, ensure_ascii=False).splitlines()


def event_detail_max_offset(entry: EventEntry | None, height: int) -> int:
    if entry is None:
        return 0
    return max(0, len(event_payload_lines(entry)) - max(1, height - EVENT_DETAIL_CHROME))


def render_event_detail(state: ViewState, events: Sequence[EventEntry], width: int, height: int) -> Text:
    entry = selected_event(state, events)
    if entry is None:
        return Text("No event selected\n\nPress Esc or q to go back.", style="bold")

    header = Text()
    header.append("Event Detail", style="bold")
    header.append(" (Esc/q:back j/k:scroll)", style="dim")
    lines = [header, Text("─" * min(70, max(0, width - 2)), style="dim"), Text()]

    event_line = Text()
    event_line.append("Event:     ", style="bold")
    event_line.append(entry.kind, style=event_style(entry.kind))
    lines.append(event_line)
    lines.append(Text.assemble(("Time:      ", "bold"), entry.timestamp))
    lines.append(Text.assemble(("ID:        ", "bold"), (entry.id, "dim")))
    lines.append(Text())
    lines.append(Text("Payload:", style="bold"))

    payload = [_json_highlighter(Text(f"  {line}")) for line in event_payload_lines(entry)]
    above, body, below = _scrolled(payload, state.event_scroll_offset, height - EVENT_DETAIL_CHROME)
    lines += above + body + below
    return Text("\n").join(fit(line, width) for line in lines)


# =============================================================================
# Entry point
# =============================================================================

MIN_WIDTH = 20


def frame_size(width: int, height: int) -> tuple[int, int]:
    """Smallest size a frame is laid out for; tinier terminals just clip."""
    return max(MIN_WIDTH, width), max(HEADER_LINES + FOOTER_LINES + 1, height)


def render_frame(
    state: ViewState,
    snapshot: Snapshot,
    events: Sequence[EventEntry],
    width: int,
    height: int,
) -> Frame:
    """
    Render one full-screen frame.

    Args:
        state: View state
        snapshot: Data from the last refresh
        events: Buffered events in arrival order
        width: Terminal columns
        height: Terminal rows

    Returns:
        Frame with the styled text and the session scroll offset to keep.
    """
    width, height = frame_size(width, height)

    if state.modal is Modal.DETAILED_HELP:
        return Frame(render_detailed_help(state, width, height), state.scroll_offset)
    if state.modal is Modal.HELP:
        return Frame(render_help(width), state.scroll_offset)
    if state.modal is Modal.FILTER_POPUP:
        return Frame(render_filter_popup(state, width), state.scroll_offset)
    if state.modal is Modal.TEMPLATE_EDITOR:
        return Frame(render_template_editor(state, width), state.scroll_offset)
    if state.modal is Modal.EVENT_DETAIL:
        return Frame(render_event_detail(state, events, width, height), state.scroll_offset)
    return render_dashboard(state, snapshot, events, width, height)
