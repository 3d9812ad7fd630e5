"""Agent identification for tmux sessions."""

from __future__ import annotations

from typing import Mapping, MutableMapping

from agentwatch.models import AgentIdentity, Session, SessionMeta


def session_pane_pids(session: Session, agents_only: bool = False) -> list[int]:
    """Pane pids in window/pane order, skipping panes without a pid."""
    return [
        pane.pid
        for window in session.agent_windows(agents_only)
        for pane in window.panes
        if pane.pid is not None
    ]


def needs_detection(
    session: Session,
    meta: SessionMeta | None,
    memo: Mapping[str, str],
) -> bool:
    """Whether the session's panes must be scanned to learn its agent."""
    if meta is not None and meta.agent:
        return False
    return session.name not in memo


def identify_agent(
    session: Session,
    meta: SessionMeta | None,
    detected: Mapping[int, AgentIdentity],
    memo: MutableMapping[str, str],
    agents_only: bool = False,
) -> AgentIdentity | None:
    """
    Pick the agent for a session.

    Priority: launcher metadata, then the memo of earlier detections, then
    the live process scan. A live hit is written to the memo; entries are
    never removed, so a session keeps its agent even if a later scan misses.

    Args:
        session: Session to identify
        meta: Launcher metadata for the session, if any
        detected: Live classification keyed by pane pid
        memo: Session name -> agent type, shared across refreshes
        agents_only: Only consider agent panes

    Returns:
        AgentIdentity, or None when no tier knows the agent.
    """
    if meta is not None and meta.agent:
        return AgentIdentity(agent_type=meta.agent, source="meta")

    remembered = memo.get(session.name)
    if remembered:
        return AgentIdentity(agent_type=remembered, source="memo")

    for pid in session_pane_pids(session, agents_only):
        hit = detected.get(pid)
        if hit is not None:
            memo[session.name] = hit.agent_type
            return AgentIdentity(
                agent_type=hit.agent_type,
                matched_command=hit.matched_command,
                source="process",
            )
    return None
