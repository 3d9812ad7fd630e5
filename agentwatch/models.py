"""Data models for agentwatch.

Snapshot entities (sessions, windows, panes, process rows) are plain
dataclasses rebuilt on every poll. Records read from JSONL files written by
other tools (session metadata, hook events) are pydantic models so a single
malformed record can be rejected without losing the rest of the file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


AGENT_TYPES: tuple[str, ...] = ("claude", "codex", "gemini")

# Pane commands that count as "agent panes" for the agents-only filter
AGENT_PANE_COMMANDS = frozenset({"claude", "codex", "gemini", "node", "bun"})


def is_agent_command(command: str | None) -> bool:
    """Check whether a pane's current command looks like an agent runtime."""
    if not command:
        return False
    return command.lower() in AGENT_PANE_COMMANDS


# =============================================================================
# tmux snapshot
# =============================================================================

@dataclass(frozen=True)
class Pane:
    """A single tmux pane."""
    session_name: str
    window_index: int
    window_name: str
    pane_index: int
    pane_id: str
    pid: int | None = None
    active: bool = False
    command: str | None = None
    cwd: str | None = None
    idle_seconds: int | None = None  # None = not reported, distinct from 0

    @property
    def target(self) -> str:
        """tmux target string (session:window.pane)."""
        return f"{self.session_name}:{self.window_index}.{self.pane_index}"


@dataclass
class Window:
    """A tmux window and its panes."""
    session_name: str
    index: int
    name: str
    active: bool = False
    panes: list[Pane] = field(default_factory=list)


@dataclass
class Session:
    """A tmux session with its full window/pane tree."""
    name: str
    window_count: int = 0
    attached: bool = False
    created_at: int | None = None
    last_activity_at: int | None = None
    windows: list[Window] = field(default_factory=list)

    @property
    def panes(self) -> Iterator[Pane]:
        for window in self.windows:
            yield from window.panes

    def agent_windows(self, agents_only: bool) -> list[Window]:
        """Windows restricted to agent panes when the agents-only filter is on.

        Windows left without panes are dropped.
        """
        if not agents_only:
            return self.windows
        filtered = []
        for window in self.windows:
            panes = [p for p in window.panes if is_agent_command(p.command)]
            if panes:
                filtered.append(
                    Window(
                        session_name=window.session_name,
                        index=window.index,
                        name=window.name,
                        active=window.active,
                        panes=panes,
                    )
                )
        return filtered


# =============================================================================
# Process table
# =============================================================================

@dataclass(frozen=True)
class ProcessRecord:
    """One row of the system process listing."""
    pid: int
    parent_pid: int
    comm: str
    args: str
    cpu_percent: float = 0.0
    mem_percent: float = 0.0
    rss_kb: int = 0


@dataclass(frozen=True)
class ProcessStats:
    """CPU/memory totals for a process and all of its descendants."""
    pid: int
    cpu_percent: float
    mem_percent: float
    rss_kb: int


@dataclass(frozen=True)
class AgentIdentity:
    """Which agent a session (or pane subtree) is running."""
    agent_type: str
    matched_command: str | None = None
    source: str = "process"  # meta | memo | process


# =============================================================================
# External records
# =============================================================================

class SessionMeta(BaseModel):
    """Launcher-written metadata for a session (one line of sessions.jsonl)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    session_name: str
    agent: str | None = None
    tag: str | None = None
    status: str | None = None
    prompt_preview: str | None = None
    cwd: str | None = None
    task_id: str | None = None
    plan_id: str | None = None
    id: str | None = None
    timestamp: str | None = None

    @property
    def is_done(self) -> bool:
        return self.status == "done"


class EventEntry(BaseModel):
    """A hook event received by the ingestion side (one line of hooks.jsonl)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    timestamp: str
    kind: str = Field(alias="event")
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        """Serialize using the on-disk key names."""
        return self.model_dump(by_alias=True)
