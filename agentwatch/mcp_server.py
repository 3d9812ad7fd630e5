"""MCP server exposing agentwatch session data and controls.

Lets an MCP client (Claude Code, Copilot CLI, ...) see which agent sessions
are running, read recent hook events, and kill or retire sessions.

Usage:
    # Via CLI
    agentwatch mcp
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from agentwatch.config import ConfigError, WatchOptions, load_watch_options
from agentwatch.events import EVENT_KINDS, read_recent_events, summarize_event
from agentwatch.meta import SessionMetaStore, mark_session_done as _mark_done
from agentwatch.monitor import collect_snapshot, describe_session
from agentwatch.tmux_manager import TmuxManager, check_tmux_available

logger = logging.getLogger(__name__)

mcp = FastMCP("agentwatch")


def _options(**overrides: Any) -> WatchOptions:
    return load_watch_options(None, **overrides)


# =============================================================================
# MCP Tools
# =============================================================================


@mcp.tool()
async def list_sessions(
    filter: str = Field(default="", description="Only sessions whose name starts with this prefix"),
    include_all_panes: bool = Field(default=False, description="Include panes not running an agent CLI"),
) -> dict[str, Any]:
    """
    List tmux sessions running AI coding agents.

    Each session includes its detected agent type, launcher metadata,
    and per-pane CPU, memory and idle time.
    """
    if not check_tmux_available():
        return {"status": "error", "message": "tmux not found"}
    try:
        options = _options(
            filter=filter or None,
            agents_only=False if include_all_panes else None,
            show_last_line=False,
        )
    except ConfigError as e:
        return {"status": "error", "message": str(e)}

    snapshot = await collect_snapshot(options)
    return {
        "status": "ok",
        "total_sessions": snapshot.total_sessions,
        "sessions": [describe_session(s, snapshot) for s in snapshot.sessions],
    }


@mcp.tool()
async def get_session(
    name: str = Field(description="Exact tmux session name"),
) -> dict[str, Any]:
    """
    Get one session with the last output line of each pane.
    """
    try:
        options = _options(agents_only=False, show_last_line=True)
    except ConfigError as e:
        return {"status": "error", "message": str(e)}

    snapshot = await collect_snapshot(options)
    for session in snapshot.sessions:
        if session.name == name:
            return {"status": "ok", "session": describe_session(session, snapshot)}
    return {"status": "not_found", "message": f"No session named {name}"}


@mcp.tool()
async def kill_session(
    name: str = Field(description="Exact tmux session name to kill"),
) -> dict[str, Any]:
    """
    Kill a tmux session and every process running in it.
    """
    manager = TmuxManager()
    if not await asyncio.to_thread(manager.has_session, name):
        return {"status": "not_found", "message": f"No session named {name}"}
    if not await asyncio.to_thread(manager.kill_session, name):
        return {"status": "error", "message": f"Failed to kill {name}"}
    logger.info("Killed session %s via MCP", name)
    return {"status": "killed", "name": name}


@mcp.tool()
async def mark_session_done(
    name: str = Field(description="Exact tmux session name to mark as done"),
) -> dict[str, Any]:
    """
    Rename a session to <name>-done and record status=done in sessions.jsonl.
    """
    try:
        options = _options()
    except ConfigError as e:
        return {"status": "error", "message": str(e)}

    store = SessionMetaStore(options.data_dir)
    manager = TmuxManager()
    if not await asyncio.to_thread(manager.has_session, name):
        return {"status": "not_found", "message": f"No session named {name}"}
    result = await asyncio.to_thread(_mark_done, store, manager, name, store.meta_map().get(name))
    if result is None:
        return {"status": "error", "message": f"Failed to rename {name}"}
    new_name, entry = result
    return {"status": "done", "name": new_name, "meta": entry.model_dump(by_alias=True, exclude_none=True)}


@mcp.tool()
def recent_events(
    limit: int = Field(default=20, ge=1, le=100, description="Number of events to return"),
    event: str = Field(
        default="",
        description="Only this event type: " + ", ".join(kind for kind, _ in EVENT_KINDS),
    ),
) -> dict[str, Any]:
    """
    Return the most recent hook events (newest last) with a one-line summary.
    """
    try:
        options = _options()
    except ConfigError as e:
        return {"status": "error", "message": str(e)}

    entries = read_recent_events(options.hooks_file, limit, kind=event or None)
    return {
        "status": "ok",
        "events": [
            {**entry.to_record(), "summary": summarize_event(entry, 80)}
            for entry in entries
        ],
    }


# =============================================================================


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
