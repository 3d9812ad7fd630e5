"""tmux probing and session lifecycle for agentwatch.

SessionProbe reads the whole tmux state with two list calls per refresh.
TmuxManager wraps the few lifecycle actions the dashboard needs (create,
kill, rename, has, attach) on top of libtmux.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from typing import Callable, Iterable

import libtmux
from libtmux.exc import LibTmuxException

from agentwatch.cache import TtlCache
from agentwatch.config import SERVER_CHECK_TTL, TMUX_TIMEOUT
from agentwatch.models import Pane, Session, Window
from agentwatch.shell import CommandRunner, run_command

logger = logging.getLogger(__name__)

SESSION_FORMAT = "\t".join([
    "#{session_name}",
    "#{session_windows}",
    "#{session_attached}",
    "#{session_created}",
    "#{session_activity}",
])

PANE_FORMAT = "\t".join([
    "#{session_name}",
    "#{window_index}",
    "#{window_name}",
    "#{window_active}",
    "#{pane_index}",
    "#{pane_id}",
    "#{pane_pid}",
    "#{pane_active}",
    "#{pane_current_command}",
    "#{pane_current_path}",
    "#{window_activity}",
])


# =============================================================================
# Parsing
# =============================================================================

def _parse_int(value: str | None) -> int | None:
    """Parse an integer field; anything unparseable is None, not 0."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_flag(value: str | None) -> bool:
    return (_parse_int(value) or 0) > 0


def parse_session_line(line: str) -> Session | None:
    """Parse one list-sessions record."""
    parts = line.split("\t")
    if len(parts) < 5 or not parts[0]:
        return None
    name, windows, attached, created, activity = parts[:5]
    return Session(
        name=name,
        window_count=_parse_int(windows) or 0,
        attached=_parse_flag(attached),
        created_at=_parse_int(created),
        last_activity_at=_parse_int(activity),
    )


def parse_pane_line(line: str, now: float | None = None) -> tuple[Pane, bool] | None:
    """Parse one list-panes -a record.

    Args:
        line: Tab-delimited record in PANE_FORMAT order.
        now: Wall-clock epoch used to turn the activity stamp into idle seconds.

    Returns:
        (pane, window_active), or None if the record has no usable
        session/window/pane keys.
    """
    parts = line.split("\t")
    if len(parts) < 11:
        return None
    (session_name, window_index, window_name, window_active, pane_index,
     pane_id, pane_pid, pane_active, command, cwd, activity) = parts[:11]

    window_idx = _parse_int(window_index)
    pane_idx = _parse_int(pane_index)
    if not session_name or window_idx is None or pane_idx is None:
        return None

    idle_seconds = None
    activity_at = _parse_int(activity)
    if activity_at is not None and now is not None:
        idle_seconds = max(0, int(now) - activity_at)

    return Pane(
        session_name=session_name,
        window_index=window_idx,
        window_name=window_name,
        pane_index=pane_idx,
        pane_id=pane_id,
        pid=_parse_int(pane_pid),
        active=_parse_flag(pane_active),
        command=command or None,
        cwd=cwd or None,
        idle_seconds=idle_seconds,
    ), _parse_flag(window_active)


def build_session_tree(
    session_lines: Iterable[str],
    pane_lines: Iterable[str],
    name_filter: str | None = None,
    now: float | None = None,
) -> list[Session]:
    """Assemble sessions, windows and panes from the two flat listings.

    Sessions not starting with ``name_filter`` are dropped before grouping,
    and so are their panes. Windows are keyed by (session, window index) and
    keep the order in which tmux listed them.
    """
    sessions: dict[str, Session] = {}
    for line in session_lines:
        if not line.strip():
            continue
        session = parse_session_line(line)
        if session is None:
            continue
        if name_filter and not session.name.startswith(name_filter):
            continue
        sessions[session.name] = session

    windows: dict[tuple[str, int], Window] = {}
    for line in pane_lines:
        if not line.strip():
            continue
        parsed = parse_pane_line(line, now)
        if parsed is None:
            continue
        pane, window_active = parsed
        session = sessions.get(pane.session_name)
        if session is None:
            continue
        key = (pane.session_name, pane.window_index)
        window = windows.get(key)
        if window is None:
            window = Window(
                session_name=pane.session_name,
                index=pane.window_index,
                name=pane.window_name,
                active=window_active,
            )
            windows[key] = window
            session.windows.append(window)
        window.panes.append(pane)

    return list(sessions.values())


def last_non_empty_line(output: str) -> str | None:
    """Return the last line with visible content."""
    for line in reversed(output.splitlines()):
        if line.strip():
            return line.rstrip()
    return None


# =============================================================================
# SessionProbe
# =============================================================================

class SessionProbe:
    """Snapshots tmux sessions, windows and panes."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        server_ttl: float = SERVER_CHECK_TTL,
        timeout: float = TMUX_TIMEOUT,
    ):
        self._timeout = timeout
        self._runner = runner or self._default_runner
        self._wall_clock = wall_clock
        self._server_cache: TtlCache[bool] = TtlCache(ttl=server_ttl, clock=clock)

    async def _default_runner(self, argv):
        return await run_command(argv, timeout=self._timeout)

    async def _tmux(self, *args: str):
        return await self._runner(["tmux", *args])

    async def server_running(self) -> bool:
        """Whether a tmux server is up (cached briefly)."""
        if self._server_cache.is_fresh():
            return bool(self._server_cache.value)
        result = await self._tmux("list-sessions")
        return self._server_cache.set(result.ok)

    async def list_sessions(self, name_filter: str | None = None) -> list[Session]:
        """List sessions with their window/pane trees.

        Args:
            name_filter: Only keep sessions whose name starts with this prefix.

        Returns:
            Sessions in tmux order; empty when no server is running or a call fails.
        """
        if not await self.server_running():
            return []

        sessions_result = await self._tmux("list-sessions", "-F", SESSION_FORMAT)
        if not sessions_result.ok:
            logger.debug("list-sessions failed: %s", sessions_result.stderr.strip())
            self._server_cache.clear()
            return []

        panes_result = await self._tmux("list-panes", "-a", "-F", PANE_FORMAT)
        pane_lines = panes_result.stdout.splitlines() if panes_result.ok else []
        if not panes_result.ok:
            logger.debug("list-panes failed: %s", panes_result.stderr.strip())

        return build_session_tree(
            sessions_result.stdout.splitlines(),
            pane_lines,
            name_filter=name_filter,
            now=self._wall_clock(),
        )

    async def capture_last_line(self, target: str, lines: int = 10) -> str | None:
        """Last non-empty line currently shown in a pane."""
        result = await self._tmux("capture-pane", "-t", target, "-p", "-S", f"-{lines}")
        if not result.ok:
            return None
        return last_non_empty_line(result.stdout)

    async def capture_last_lines(self, targets: Iterable[str]) -> dict[str, str | None]:
        """Capture several panes concurrently."""
        targets = list(dict.fromkeys(targets))
        if not targets:
            return {}
        lines = await asyncio.gather(*(self.capture_last_line(t) for t in targets))
        return dict(zip(targets, lines))


# =============================================================================
# Session lifecycle
# =============================================================================

class TmuxManager:
    """Session lifecycle actions backed by libtmux.

    Every method issues a single tmux call and reports failure as False
    instead of raising.
    """

    def __init__(self, server: libtmux.Server | None = None):
        self.server = server or libtmux.Server()

    def _cmd(self, *args: str) -> bool:
        try:
            proc = self.server.cmd(*args)
        except LibTmuxException as e:
            logger.warning("tmux %s failed: %s", args[0], e)
            return False
        if proc.stderr:
            logger.warning("tmux %s failed: %s", args[0], " ".join(proc.stderr))
            return False
        return True

    def has_session(self, name: str) -> bool:
        try:
            return bool(self.server.has_session(name))
        except LibTmuxException:
            return False

    def create_session(self, name: str, cwd: str | None = None, command: str | None = None) -> bool:
        """
        Create a detached session.

        Args:
            name: Session name
            cwd: Start directory
            command: Command for the first window (shell if None)

        Returns:
            True if the session was created.
        """
        try:
            self.server.new_session(
                session_name=name,
                start_directory=cwd,
                window_command=command,
                attach=False,
            )
            return True
        except LibTmuxException as e:
            logger.warning("Failed to create session %s: %s", name, e)
            return False

    def kill_session(self, name: str) -> bool:
        """Kill a session by exact name."""
        return self._cmd("kill-session", "-t", f"={name}")

    def rename_session(self, old: str, new: str) -> bool:
        """Rename a session, matching the old name exactly."""
        return self._cmd("rename-session", "-t", f"={old}", new)

    async def attach(self, name: str) -> int:
        """Attach the current terminal to a session until the user detaches.

        Inside tmux the client is switched instead of nesting a second client.

        Returns:
            tmux exit status (127 if tmux could not be started).
        """
        if os.environ.get("TMUX"):
            cmd = ["tmux", "switch-client", "-t", f"={name}"]
        else:
            cmd = ["tmux", "attach-session", "-t", f"={name}"]
        try:
            # stdio is inherited so tmux gets the real terminal
            proc = await asyncio.create_subprocess_exec(*cmd)
        except OSError as e:
            logger.warning("Failed to attach to %s: %s", name, e)
            return 127
        return await proc.wait()


def check_tmux_available() -> bool:
    """Check if tmux is installed."""
    return shutil.which("tmux") is not None
