"""View state and key handling for the watch dashboard.

Everything the renderer needs to draw a frame lives in ViewState. Keys are
applied with ``transition``, which never mutates its input: it returns a new
state plus an optional Action for the loop to carry out (attach, kill, ...).

Only one modal screen can be open at a time because the modal is a single
enum field. Each modal has its own key handler in MODAL_HANDLERS.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Sequence

from agentwatch.config import DEFAULT_INTERVAL, REFRESH_PRESETS
from agentwatch.events import EVENT_KINDS
from agentwatch.models import Session
from agentwatch.notify import (
    DEFAULT_MESSAGE_TEMPLATE,
    DEFAULT_TITLE_TEMPLATE,
    NotifyConfig,
)

# Maximum number of events listed in the side panel
EVENT_PANEL_LIMIT = 15
PAGE_SIZE = 5


class Modal(Enum):
    NORMAL = "normal"
    HELP = "help"
    DETAILED_HELP = "detailed_help"
    FILTER_POPUP = "filter_popup"
    TEMPLATE_EDITOR = "template_editor"
    EVENT_DETAIL = "event_detail"


class Focus(Enum):
    SESSIONS = "sessions"
    EVENTS = "events"


class SortMode(Enum):
    NONE = "none"
    NAME = "name"
    CREATED = "created"
    ACTIVITY = "activity"

    @classmethod
    def parse(cls, value: str | None) -> SortMode:
        return cls(value) if value else cls.NONE


SORT_CYCLE = (SortMode.NONE, SortMode.NAME, SortMode.CREATED, SortMode.ACTIVITY)


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Attach:
    session_name: str


@dataclass(frozen=True)
class Kill:
    session_name: str


@dataclass(frozen=True)
class MarkDone:
    session_name: str


Action = Quit | Refresh | Attach | Kill | MarkDone


# =============================================================================
# State
# =============================================================================

@dataclass(frozen=True)
class ViewState:
    """All view settings, selections and modal sub-state."""
    filter: str | None = None
    interval: float = DEFAULT_INTERVAL
    show_last_line: bool = True
    show_stats: bool = True
    show_events: bool = True
    events_enabled: bool = True
    agents_only: bool = True
    expand_all: bool = True
    sort_mode: SortMode = SortMode.NONE
    focus: Focus = Focus.SESSIONS
    selected_index: int = 0
    scroll_offset: int = 0
    selected_event_index: int = 0
    event_scroll_offset: int = 0
    modal: Modal = Modal.NORMAL
    detailed_help_offset: int = 0
    filter_popup_index: int = 0
    filter_popup_selected: frozenset[str] = frozenset()
    template_field: str = "title"
    template_value: str = ""
    template_cursor: int = 0
    notify: NotifyConfig = NotifyConfig()
    status_message: str = ""
    # Session name -> agent type. Shared by every derived state on purpose:
    # detections survive for the life of the process.
    agent_memo: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def events_visible(self) -> bool:
        return self.show_events and self.events_enabled


@dataclass(frozen=True)
class KeyContext:
    """What the key handlers need to know about the current frame."""
    session_names: tuple[str, ...] = ()
    event_count: int = 0
    help_max_offset: int = sys.maxsize
    detail_max_offset: int = sys.maxsize

    @property
    def listed_events(self) -> int:
        return min(self.event_count, EVENT_PANEL_LIMIT)


@dataclass(frozen=True)
class Transition:
    state: ViewState
    action: Action | None = None


# =============================================================================
# Helpers
# =============================================================================

def clamp_selection(index: int, count: int) -> int:
    """Clamp a selection into [0, count - 1] (0 when the list is empty)."""
    if count <= 0:
        return 0
    return max(0, min(index, count - 1))


def scroll_to_show(offset: int, line: int, content_lines: int, viewport: int) -> int:
    """
    Scroll offset that keeps ``line`` visible.

    The offset moves only as far as needed, then is clamped to
    [0, max(0, content_lines - viewport)].

    Args:
        offset: Current offset
        line: Index of the line that must stay visible (negative = none)
        content_lines: Total number of content lines
        viewport: Number of visible lines

    Returns:
        The new offset.
    """
    viewport = max(1, viewport)
    if content_lines <= viewport:
        return 0
    if line >= 0:
        if line < offset:
            offset = line
        elif line >= offset + viewport:
            offset = line - viewport + 1
    return max(0, min(offset, content_lines - viewport))


def cycle_sort(mode: SortMode) -> SortMode:
    return SORT_CYCLE[(SORT_CYCLE.index(mode) + 1) % len(SORT_CYCLE)]


def cycle_interval(interval: float) -> float:
    """Next refresh preset; an interval off the preset list jumps to the first."""
    for i, preset in enumerate(REFRESH_PRESETS):
        if interval == preset:
            return float(REFRESH_PRESETS[(i + 1) % len(REFRESH_PRESETS)])
    return float(REFRESH_PRESETS[0])


def sort_sessions(sessions: Sequence[Session], mode: SortMode) -> list[Session]:
    """Sort sessions; ties keep listing order and missing times sort last."""
    if mode is SortMode.NAME:
        return sorted(sessions, key=lambda s: s.name.casefold())
    if mode is SortMode.CREATED:
        return sorted(sessions, key=lambda s: (s.created_at is None, -(s.created_at or 0)))
    if mode is SortMode.ACTIVITY:
        return sorted(sessions, key=lambda s: (s.last_activity_at is None, -(s.last_activity_at or 0)))
    return list(sessions)


def visible_sessions(sessions: Sequence[Session], agents_only: bool) -> list[Session]:
    """Sessions shown in the list; with agents-only, those with an agent pane."""
    if not agents_only:
        return list(sessions)
    return [s for s in sessions if s.agent_windows(True)]


def filter_label(filter_kinds: tuple[str, ...] | None) -> str:
    """Short label for the notification event filter."""
    if not filter_kinds or len(filter_kinds) == len(EVENT_KINDS):
        return "all"
    shorts = dict(EVENT_KINDS)
    return ",".join(shorts.get(kind, kind) for kind in filter_kinds)


def _is_printable(key: str) -> bool:
    return len(key) == 1 and " " <= key <= "~"


# =============================================================================
# Modal handlers
# =============================================================================

def _template_save(state: ViewState) -> NotifyConfig:
    value = state.template_value or None
    if state.template_field == "title":
        return replace(state.notify, title_template=value)
    return replace(state.notify, message_template=value)


def _template_default(field_name: str) -> str:
    return DEFAULT_TITLE_TEMPLATE if field_name == "title" else DEFAULT_MESSAGE_TEMPLATE


def _handle_template_editor(state: ViewState, key: str, ctx: KeyContext) -> Transition:
    value, cursor = state.template_value, state.template_cursor

    if key == "ESC":
        return Transition(replace(state, modal=Modal.NORMAL, template_value="", template_cursor=0))
    if key == "TAB":
        notify = _template_save(state)
        if state.template_field == "title":
            next_field, next_value = "message", notify.effective_message
        else:
            next_field, next_value = "title", notify.effective_title
        return Transition(replace(
            state,
            notify=notify,
            template_field=next_field,
            template_value=next_value,
            template_cursor=len(next_value),
        ))
    if key == "ENTER":
        return Transition(replace(
            state,
            notify=_template_save(state),
            modal=Modal.NORMAL,
            template_value="",
            template_cursor=0,
        ))
    if key == "CTRL_R":
        default = _template_default(state.template_field)
        return Transition(replace(
            state,
            notify=replace(state.notify, title_template=None, message_template=None),
            template_value=default,
            template_cursor=len(default),
        ))
    if key == "BACKSPACE":
        if cursor == 0:
            return Transition(state)
        return Transition(replace(
            state,
            template_value=value[:cursor - 1] + value[cursor:],
            template_cursor=cursor - 1,
        ))
    if key == "LEFT":
        return Transition(replace(state, template_cursor=max(0, cursor - 1)))
    if key == "RIGHT":
        return Transition(replace(state, template_cursor=min(len(value), cursor + 1)))
    if key == "HOME":
        return Transition(replace(state, template_cursor=0))
    if key == "END":
        return Transition(replace(state, template_cursor=len(value)))
    if _is_printable(key):
        return Transition(replace(
            state,
            template_value=value[:cursor] + key + value[cursor:],
            template_cursor=cursor + 1,
        ))
    return Transition(state)


def _handle_filter_popup(state: ViewState, key: str, ctx: KeyContext) -> Transition:
    if key in ("q", "ESC"):
        return Transition(replace(state, modal=Modal.NORMAL))
    if key in ("j", "DOWN"):
        index = clamp_selection(state.filter_popup_index + 1, len(EVENT_KINDS))
        return Transition(replace(state, filter_popup_index=index))
    if key in ("k", "UP"):
        index = clamp_selection(state.filter_popup_index - 1, len(EVENT_KINDS))
        return Transition(replace(state, filter_popup_index=index))
    if key == " ":
        kind = EVENT_KINDS[state.filter_popup_index][0]
        selected = set(state.filter_popup_selected)
        selected.symmetric_difference_update({kind})
        return Transition(replace(state, filter_popup_selected=frozenset(selected)))
    if key == "ENTER":
        chosen = tuple(k for k, _ in EVENT_KINDS if k in state.filter_popup_selected)
        if not chosen or len(chosen) == len(EVENT_KINDS):
            chosen = None
        return Transition(replace(
            state,
            notify=replace(state.notify, filter=chosen),
            modal=Modal.NORMAL,
        ))
    return Transition(state)


def _scroll(offset: int, key: str, max_offset: int) -> int | None:
    """Offset after a scroll key, or None if the key does not scroll."""
    steps = {"j": 1, "DOWN": 1, "k": -1, "UP": -1, "PGDN": 10, "PGUP": -10}
    if key in steps:
        return max(0, min(offset + steps[key], max_offset))
    if key == "HOME":
        return 0
    if key == "END":
        return max_offset if max_offset != sys.maxsize else offset
    return None


def _handle_detailed_help(state: ViewState, key: str, ctx: KeyContext) -> Transition:
    if key in ("q", "ESC"):
        return Transition(replace(state, modal=Modal.NORMAL, detailed_help_offset=0))
    offset = _scroll(state.detailed_help_offset, key, ctx.help_max_offset)
    if offset is None:
        return Transition(state)
    return Transition(replace(state, detailed_help_offset=offset))


def _handle_event_detail(state: ViewState, key: str, ctx: KeyContext) -> Transition:
    if key in ("q", "ESC"):
        return Transition(replace(state, modal=Modal.NORMAL, event_scroll_offset=0))
    offset = _scroll(state.event_scroll_offset, key, ctx.detail_max_offset)
    if offset is None:
        return Transition(state)
    return Transition(replace(state, event_scroll_offset=offset))


def _handle_help(state: ViewState, key: str, ctx: KeyContext) -> Transition:
    if key == "d":
        return Transition(replace(state, modal=Modal.DETAILED_HELP, detailed_help_offset=0))
    return Transition(replace(state, modal=Modal.NORMAL))


def _move(state: ViewState, delta: int | None, ctx: KeyContext, to_end: bool = False) -> Transition:
    """Move the selection of the focused panel."""
    if state.focus is Focus.EVENTS:
        count = ctx.listed_events
        target = count - 1 if to_end else state.selected_event_index + (delta or 0)
        index = clamp_selection(target, count)
        return Transition(replace(state, selected_event_index=index))

    count = len(ctx.session_names)
    target = count - 1 if to_end else state.selected_index + (delta or 0)
    index = clamp_selection(target, count)
    if index == state.selected_index:
        return Transition(state)
    # A collapsed list only loads pane details for the selected session
    action = None if state.expand_all else Refresh()
    return Transition(replace(state, selected_index=index), action)


def _selected_session(state: ViewState, ctx: KeyContext) -> str | None:
    if not ctx.session_names:
        return None
    return ctx.session_names[clamp_selection(state.selected_index, len(ctx.session_names))]


def _handle_normal(state: ViewState, key: str, ctx: KeyContext) -> Transition:
    state = replace(state, status_message="") if state.status_message else state

    if key in ("q", "CTRL_C"):
        return Transition(state, Quit())
    if key == "?":
        return Transition(replace(state, modal=Modal.HELP))

    if key == "TAB":
        if not state.events_visible:
            return Transition(state)
        focus = Focus.EVENTS if state.focus is Focus.SESSIONS else Focus.SESSIONS
        return Transition(replace(state, focus=focus))

    if key in ("j", "DOWN"):
        return _move(state, 1, ctx)
    if key in ("k", "UP"):
        return _move(state, -1, ctx)
    if key == "PGDN":
        return _move(state, PAGE_SIZE, ctx)
    if key == "PGUP":
        return _move(state, -PAGE_SIZE, ctx)
    if key == "HOME":
        return _move(state, -sys.maxsize, ctx)
    if key == "END":
        return _move(state, None, ctx, to_end=True)

    toggles = {
        "l": "show_last_line",
        "s": "show_stats",
        "f": "agents_only",
        "e": "expand_all",
    }
    if key in toggles:
        name = toggles[key]
        return Transition(replace(state, **{name: not getattr(state, name)}), Refresh())
    if key == "h":
        if not state.events_enabled:
            return Transition(state)
        show = not state.show_events
        focus = state.focus if show else Focus.SESSIONS
        return Transition(replace(state, show_events=show, focus=focus))
    if key == "r":
        return Transition(state, Refresh())

    if key in ("ENTER", "a"):
        if state.focus is Focus.EVENTS and state.events_visible:
            if ctx.listed_events == 0:
                return Transition(state)
            return Transition(replace(state, modal=Modal.EVENT_DETAIL, event_scroll_offset=0))
        name = _selected_session(state, ctx)
        return Transition(state, Attach(name) if name else None)
    if key in ("x", "D"):
        # Session actions only apply while the sessions panel has focus
        name = _selected_session(state, ctx) if state.focus is Focus.SESSIONS else None
        if name is None:
            return Transition(state)
        return Transition(state, Kill(name) if key == "x" else MarkDone(name))

    if key == "S":
        return Transition(replace(state, sort_mode=cycle_sort(state.sort_mode)), Refresh())
    if key == "R":
        return Transition(replace(state, interval=cycle_interval(state.interval)))
    if key == "N":
        return Transition(replace(state, notify=replace(state.notify, desktop=not state.notify.desktop)))
    if key == "F" and state.notify.desktop:
        return Transition(replace(
            state,
            modal=Modal.FILTER_POPUP,
            filter_popup_index=0,
            filter_popup_selected=frozenset(state.notify.filter or ()),
        ))
    if key == "T" and state.notify.desktop:
        value = state.notify.effective_title
        return Transition(replace(
            state,
            modal=Modal.TEMPLATE_EDITOR,
            template_field="title",
            template_value=value,
            template_cursor=len(value),
        ))
    return Transition(state)


KeyHandler = Callable[[ViewState, str, KeyContext], Transition]

# Listed in input priority order
MODAL_HANDLERS: dict[Modal, KeyHandler] = {
    Modal.TEMPLATE_EDITOR: _handle_template_editor,
    Modal.FILTER_POPUP: _handle_filter_popup,
    Modal.DETAILED_HELP: _handle_detailed_help,
    Modal.EVENT_DETAIL: _handle_event_detail,
    Modal.HELP: _handle_help,
    Modal.NORMAL: _handle_normal,
}


def transition(state: ViewState, key: str, ctx: KeyContext | None = None) -> Transition:
    """Apply one key to the state.

    Args:
        state: Current state (not modified)
        key: Decoded key name ("j", "UP", "ENTER", "ESC", ...)
        ctx: Frame facts needed for clamping and actions

    Returns:
        Transition with the new state and an optional action.
    """
    return MODAL_HANDLERS[state.modal](state, key, ctx or KeyContext())


def clamp_to_frame(state: ViewState, session_count: int, event_count: int) -> ViewState:
    """Re-clamp selections after a refresh changed the lists."""
    index = clamp_selection(state.selected_index, session_count)
    event_index = clamp_selection(state.selected_event_index, min(event_count, EVENT_PANEL_LIMIT))
    if index == state.selected_index and event_index == state.selected_event_index:
        return state
    return replace(state, selected_index=index, selected_event_index=event_index)
