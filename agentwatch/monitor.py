"""Live watch dashboard for agent tmux sessions.

Shows every agent session with its windows, panes, CPU/memory and last
output line, next to a panel of recent hook events. Refreshes on a timer
and on demand; keys are read from stdin in cbreak mode.

Usage:
    agentwatch watch

Controls:
    ↑/↓ or j/k: Move selection
    Tab: Switch between sessions and events
    Enter/a: Attach to session / open event detail
    x: Kill session    D: Mark done
    l s f e h: Toggle display    S R N F T: Runtime options
    ?: Help    q: Quit
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import termios
import time
import tty
from dataclasses import replace
from typing import Any, Awaitable, Callable

from rich.console import Console
from rich.live import Live

from agentwatch.classifier import identify_agent, needs_detection, session_pane_pids
from agentwatch.config import WatchOptions
from agentwatch.events import EventBuffer, JsonlEventFeed
from agentwatch.meta import SessionMetaStore, mark_session_done
from agentwatch.models import AgentIdentity, EventEntry, Session
from agentwatch.notify import (
    NotifyConfig,
    format_notification,
    send_desktop_notification,
    should_notify,
)
from agentwatch.process_forest import ProcessForest
from agentwatch.render import (
    Snapshot,
    detailed_help_max_offset,
    event_detail_max_offset,
    frame_size,
    render_frame,
    selected_event,
)
from agentwatch.tmux_manager import SessionProbe, TmuxManager
from agentwatch.view_state import (
    Action,
    Attach,
    KeyContext,
    Kill,
    MarkDone,
    Quit,
    Refresh,
    SortMode,
    ViewState,
    clamp_to_frame,
    sort_sessions,
    transition,
    visible_sessions,
)

logger = logging.getLogger(__name__)

console = Console()


# =============================================================================
# Keyboard Input
# =============================================================================

SEQ_MAP = {
    "\x1b[A": "UP", "\x1bOA": "UP",
    "\x1b[B": "DOWN", "\x1bOB": "DOWN",
    "\x1b[C": "RIGHT", "\x1bOC": "RIGHT",
    "\x1b[D": "LEFT", "\x1bOD": "LEFT",
    "\x1b[5~": "PGUP",
    "\x1b[6~": "PGDN",
    "\x1b[H": "HOME", "\x1bOH": "HOME", "\x1b[1~": "HOME",
    "\x1b[F": "END", "\x1bOF": "END", "\x1b[4~": "END",
}

CONTROL_KEYS = {
    "\r": "ENTER",
    "\n": "ENTER",
    "\t": "TAB",
    "\x7f": "BACKSPACE",
    "\b": "BACKSPACE",
    "\x03": "CTRL_C",
    "\x12": "CTRL_R",
}


def decode_keys(data: str) -> list[str]:
    """Split raw terminal input into key names.

    Known escape sequences become names like "UP" or "PGDN", a lone escape
    becomes "ESC", and unknown CSI sequences are dropped.
    """
    keys: list[str] = []
    i = 0
    while i < len(data):
        ch = data[i]
        if ch == "\x1b":
            for seq in sorted(SEQ_MAP, key=len, reverse=True):
                if data.startswith(seq, i):
                    keys.append(SEQ_MAP[seq])
                    i += len(seq)
                    break
            else:
                if data.startswith("\x1b[", i):
                    # Skip to the final byte of an unrecognised CSI sequence
                    j = i + 2
                    while j < len(data) and not ("\x40" <= data[j] <= "\x7e"):
                        j += 1
                    i = j + 1
                else:
                    keys.append("ESC")
                    i += 1
            continue
        keys.append(CONTROL_KEYS.get(ch, ch))
        i += 1
    return keys


def initial_state(options: WatchOptions) -> ViewState:
    """View state for a fresh dashboard."""
    return ViewState(
        filter=options.filter,
        interval=float(options.interval),
        show_last_line=options.show_last_line,
        show_stats=options.show_stats,
        show_events=options.show_events,
        events_enabled=options.show_events,
        agents_only=options.agents_only,
        expand_all=options.expand_all,
        sort_mode=SortMode.parse(options.sort),
        notify=NotifyConfig(
            desktop=options.notify_desktop,
            filter=options.notify_filter,
            title_template=options.title_template,
            message_template=options.message_template,
        ),
    )


# =============================================================================
# Dashboard
# =============================================================================

class Dashboard:
    """Owns the view state, the event buffer and the probes for one watch run."""

    def __init__(
        self,
        options: WatchOptions,
        probe: SessionProbe | None = None,
        forest: ProcessForest | None = None,
        manager: TmuxManager | None = None,
        meta_store: SessionMetaStore | None = None,
        feed: JsonlEventFeed | None = None,
        buffer: EventBuffer | None = None,
        notifier: Callable[[str, str], Awaitable[bool]] = send_desktop_notification,
        out: Console | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.options = options
        self.state = initial_state(options)
        self.probe = probe or SessionProbe()
        self.forest = forest or ProcessForest()
        self._manager = manager
        self.meta_store = meta_store or SessionMetaStore(options.data_dir)
        self.buffer = buffer or EventBuffer()
        self.feed = feed
        if self.feed is None and options.show_events:
            self.feed = JsonlEventFeed(options.hooks_file, capacity=self.buffer.capacity)
        self.notifier = notifier
        self.console = out or console
        self._clock = clock
        self.snapshot = Snapshot(data_dir=str(options.data_dir), events_source=options.hooks_file.name)

        self._refreshing = False
        self._refresh_again = False
        self._running = True
        self._busy = False
        self._wake: asyncio.Event | None = None
        self._quit: asyncio.Event | None = None
        self._live: Live | None = None
        self._saved_tty: list | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def manager(self) -> TmuxManager:
        if self._manager is None:
            self._manager = TmuxManager()
        return self._manager

    def _now(self) -> float:
        return (self._clock or time.time)()

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def load_events(self) -> None:
        """Fill the buffer with the tail of the hooks file."""
        if self.feed is not None:
            self.buffer.extend(self.feed.load_tail())

    def poll_events(self) -> list[EventEntry]:
        """Move newly appended events into the buffer and notify about them."""
        if self.feed is None:
            return []
        new_entries = self.feed.poll()
        self.buffer.extend(new_entries)
        for entry in new_entries:
            if should_notify(self.state.notify, entry):
                title, message = format_notification(self.state.notify, entry)
                self._spawn(self.notifier(title, message))
        return new_entries

    async def refresh(self) -> None:
        """Refresh data and redraw.

        Only one refresh runs at a time. A request made while one is running
        causes exactly one more pass after it finishes.
        """
        if self._refreshing:
            self._refresh_again = True
            return
        self._refreshing = True
        try:
            while True:
                self._refresh_again = False
                await self._refresh_once()
                if not self._refresh_again:
                    break
        finally:
            self._refreshing = False

    def request_refresh(self) -> None:
        """Ask the poll loop for an immediate refresh."""
        if self._wake is not None:
            self._wake.set()
        else:
            self._refresh_again = True

    async def _refresh_once(self) -> None:
        state = self.state
        sessions = await self.probe.list_sessions(state.filter)
        ordered = sort_sessions(sessions, state.sort_mode)
        meta = self.meta_store.meta_map()
        shown = visible_sessions(ordered, state.agents_only)

        # Keys pressed while tmux was being listed already updated self.state
        self.state = state = clamp_to_frame(self.state, len(shown), len(self.buffer))

        detect_pids: list[int] = []
        for session in shown:
            if needs_detection(session, meta.get(session.name), state.agent_memo):
                detect_pids.extend(session_pane_pids(session, state.agents_only))

        expanded = shown if state.expand_all else shown[state.selected_index:state.selected_index + 1]
        stat_pids: list[int] = []
        targets: list[str] = []
        for session in expanded:
            for window in session.agent_windows(state.agents_only):
                for pane in window.panes:
                    if state.show_stats and pane.pid is not None:
                        stat_pids.append(pane.pid)
                    if state.show_last_line:
                        targets.append(pane.target)

        detected, stats, last_lines = await asyncio.gather(
            self.forest.classify(detect_pids),
            self.forest.aggregate(stat_pids),
            self.probe.capture_last_lines(targets),
        )

        session_agents: dict[str, AgentIdentity] = {}
        for session in shown:
            identity = identify_agent(
                session, meta.get(session.name), detected, state.agent_memo, state.agents_only
            )
            if identity is not None:
                session_agents[session.name] = identity

        self.poll_events()
        self.state = clamp_to_frame(self.state, len(shown), len(self.buffer))

        self.snapshot = Snapshot(
            sessions=tuple(shown),
            total_sessions=len(sessions),
            meta=meta,
            session_agents=session_agents,
            pane_agents=detected,
            stats=stats,
            last_lines=last_lines,
            now=self._now(),
            data_dir=str(self.options.data_dir),
            events_source=self.options.hooks_file.name,
        )
        self.render()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _size(self) -> tuple[int, int]:
        size = self.console.size
        return frame_size(size.width, size.height)

    def render_text(self):
        width, height = self._size()
        frame = render_frame(self.state, self.snapshot, self.buffer.recent(), width, height)
        if frame.scroll_offset != self.state.scroll_offset:
            self.state = replace(self.state, scroll_offset=frame.scroll_offset)
        return frame.text

    def render(self) -> None:
        if self._live is not None:
            self._live.update(self.render_text(), refresh=True)

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def key_context(self) -> KeyContext:
        width, height = self._size()
        events = self.buffer.recent()
        return KeyContext(
            session_names=tuple(s.name for s in self.snapshot.sessions),
            event_count=len(events),
            help_max_offset=detailed_help_max_offset(width, height),
            detail_max_offset=event_detail_max_offset(selected_event(self.state, events), height),
        )

    def handle_key(self, key: str) -> Action | None:
        """Apply a key to the view state and redraw."""
        result = transition(self.state, key, self.key_context())
        self.state = result.state
        self.render()
        return result.action

    def _on_input(self) -> None:
        try:
            data = os.read(sys.stdin.fileno(), 1024)
        except OSError as e:
            logger.debug("stdin read failed: %s", e)
            return
        if not data:
            self.stop()
            return
        if self._busy:
            return
        for key in decode_keys(data.decode("utf-8", errors="ignore")):
            action = self.handle_key(key)
            if action is not None:
                self._spawn(self.perform(action))
            if not self._running:
                break

    async def perform(self, action: Action) -> None:
        """Carry out an action returned by a key press."""
        if isinstance(action, Quit):
            self.stop()
        elif isinstance(action, Refresh):
            self.request_refresh()
        elif isinstance(action, Attach):
            await self._attach(action.session_name)
        elif isinstance(action, Kill):
            ok = await asyncio.to_thread(self.manager.kill_session, action.session_name)
            if not ok:
                self._warn(f"Failed to kill {action.session_name}")
            self.request_refresh()
        elif isinstance(action, MarkDone):
            meta = self.snapshot.meta.get(action.session_name)
            result = await asyncio.to_thread(
                mark_session_done, self.meta_store, self.manager, action.session_name, meta
            )
            if result is None:
                self._warn(f"Failed to mark {action.session_name} done")
            self.request_refresh()

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.state = replace(self.state, status_message=message)
        self.render()

    # -------------------------------------------------------------------------
    # Terminal
    # -------------------------------------------------------------------------

    def _enter_cbreak(self) -> None:
        fd = sys.stdin.fileno()
        tty.setcbreak(fd)
        asyncio.get_running_loop().add_reader(fd, self._on_input)

    def _leave_cbreak(self) -> None:
        fd = sys.stdin.fileno()
        asyncio.get_running_loop().remove_reader(fd)
        if self._saved_tty is not None:
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, self._saved_tty)
            except termios.error:
                pass

    async def _attach(self, name: str) -> None:
        """Hand the terminal to tmux until the user detaches."""
        self._busy = True
        self._leave_cbreak()
        if self._live is not None:
            self._live.stop()
        try:
            code = await self.manager.attach(name)
            if code != 0:
                logger.warning("tmux attach to %s exited with %d", name, code)
        finally:
            if self._live is not None:
                self._live.start(refresh=True)
            if self._running:
                self._enter_cbreak()
            self._busy = False
        if code != 0:
            self._warn(f"Could not attach to {name}")
        self.request_refresh()

    def stop(self) -> None:
        self._running = False
        if self._wake is not None:
            self._wake.set()
        if self._quit is not None:
            self._quit.set()

    async def _poll_loop(self) -> None:
        assert self._wake is not None
        while self._running:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Refresh failed")
            if not self._running:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.state.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

    async def run_interactive(self) -> None:
        """Run the full-screen dashboard until q, Ctrl+C or SIGTERM."""
        loop = asyncio.get_running_loop()
        fd = sys.stdin.fileno()
        self._wake = asyncio.Event()
        self._quit = asyncio.Event()
        self._saved_tty = termios.tcgetattr(fd)
        self.load_events()

        handled = []
        for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
            try:
                loop.add_signal_handler(sig, self.stop)
                handled.append(sig)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            with Live(console=self.console, screen=True, auto_refresh=False, transient=False) as live:
                self._live = live
                self._enter_cbreak()
                poller = asyncio.create_task(self._poll_loop())
                await self._quit.wait()
                await poller
        finally:
            self._live = None
            try:
                loop.remove_reader(fd)
            except (ValueError, OSError):
                pass
            for sig in handled:
                loop.remove_signal_handler(sig)
            # Restore terminal settings
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, self._saved_tty)
            except termios.error:
                pass
            for task in list(self._tasks):
                task.cancel()

    async def run_headless(self, once: bool = False) -> None:
        """Render without keyboard handling, once or on every interval."""
        self.load_events()
        while True:
            await self.refresh()
            if not once:
                self.console.clear()
            self.console.print(self.render_text())
            if once:
                if self._tasks:
                    await asyncio.gather(*self._tasks, return_exceptions=True)
                return
            await asyncio.sleep(self.state.interval)


def run_watch(options: WatchOptions) -> None:
    """Run the watch dashboard (interactive when stdin is a terminal)."""
    dashboard = Dashboard(options)
    interactive = options.interactive and not options.once and sys.stdin.isatty()
    try:
        if interactive:
            asyncio.run(dashboard.run_interactive())
        else:
            asyncio.run(dashboard.run_headless(once=options.once))
    except KeyboardInterrupt:
        pass
    finally:
        if interactive:
            console.print("[dim]agentwatch stopped[/dim]")


async def collect_snapshot(options: WatchOptions) -> Snapshot:
    """One refresh without rendering or notifications, every session expanded.

    Used by the sessions command and the MCP tools.
    """
    dashboard = Dashboard(replace(options, show_events=False, notify_desktop=False, expand_all=True))
    await dashboard.refresh()
    return dashboard.snapshot


def describe_session(session: Session, snapshot: Snapshot) -> dict[str, Any]:
    """JSON-friendly view of one session from a snapshot."""
    meta = snapshot.meta.get(session.name)
    identity = snapshot.session_agents.get(session.name)
    windows = []
    for window in session.windows:
        panes = []
        for pane in window.panes:
            stats = snapshot.stats.get(pane.pid) if pane.pid is not None else None
            panes.append({
                "target": pane.target,
                "pid": pane.pid,
                "command": pane.command,
                "cwd": pane.cwd,
                "idle_seconds": pane.idle_seconds,
                "cpu_percent": stats.cpu_percent if stats else None,
                "mem_percent": stats.mem_percent if stats else None,
                "rss_kb": stats.rss_kb if stats else None,
                "last_line": snapshot.last_lines.get(pane.target),
            })
        windows.append({"index": window.index, "name": window.name, "active": window.active, "panes": panes})
    return {
        "name": session.name,
        "attached": session.attached,
        "window_count": session.window_count,
        "created_at": session.created_at,
        "last_activity_at": session.last_activity_at,
        "agent": identity.agent_type if identity else None,
        "agent_source": identity.source if identity else None,
        "status": meta.status if meta else None,
        "tag": meta.tag if meta else None,
        "prompt_preview": meta.prompt_preview if meta else None,
        "windows": windows,
    }
