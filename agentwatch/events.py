"""Hook events: the bounded in-memory buffer and the JSONL feed that fills it."""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path
from typing import Any, Iterable, Iterator

from pydantic import ValidationError

from agentwatch.config import EVENT_BUFFER_CAPACITY
from agentwatch.models import EventEntry

logger = logging.getLogger(__name__)


# Claude Code hook event kinds with their short labels
EVENT_KINDS: tuple[tuple[str, str], ...] = (
    ("PreToolUse", "pre"),
    ("PostToolUse", "post"),
    ("PostToolUseFailure", "fail"),
    ("PermissionRequest", "perm"),
    ("SessionStart", "start"),
    ("SessionEnd", "end"),
    ("Stop", "stop"),
    ("SubagentStop", "sub"),
    ("UserPromptSubmit", "prompt"),
    ("Notification", "notif"),
)

EVENT_SHORT_LABELS = dict(EVENT_KINDS)

EVENT_STYLES = {
    "PreToolUse": "cyan",
    "PostToolUse": "green",
    "PostToolUseFailure": "red",
    "PermissionRequest": "yellow",
    "SessionStart": "green",
    "SessionEnd": "dim",
    "Stop": "red",
    "SubagentStop": "red",
    "UserPromptSubmit": "blue",
    "Notification": "yellow",
}


def event_style(kind: str) -> str:
    return EVENT_STYLES.get(kind, "blue")


# =============================================================================
# Buffer
# =============================================================================

class EventBuffer:
    """Fixed-capacity buffer of the most recent events, oldest dropped first."""

    def __init__(self, capacity: int = EVENT_BUFFER_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: deque[EventEntry] = deque(maxlen=capacity)

    def append(self, entry: EventEntry) -> None:
        self._entries.append(entry)

    def extend(self, entries: Iterable[EventEntry]) -> None:
        self._entries.extend(entries)

    def recent(self, n: int | None = None) -> list[EventEntry]:
        """Up to ``n`` most recent entries, in arrival order."""
        entries = list(self._entries)
        if n is None:
            return entries
        if n <= 0:
            return []
        return entries[-n:]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[EventEntry]:
        return iter(list(self._entries))


# =============================================================================
# JSONL feed
# =============================================================================

def parse_event_line(line: str) -> EventEntry | None:
    """Parse one hooks.jsonl line; malformed lines yield None."""
    line = line.strip()
    if not line:
        return None
    try:
        return EventEntry.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.debug("Skipping malformed event line: %s", e)
        return None


class JsonlEventFeed:
    """Follows an append-only hooks.jsonl file written by the hooks receiver.

    ``load_tail`` returns the newest entries already in the file; each
    ``poll`` returns entries appended since the previous read. Truncation or
    replacement of the file restarts reading from the beginning.
    """

    def __init__(self, path: Path, capacity: int = EVENT_BUFFER_CAPACITY):
        self.path = path
        self.capacity = capacity
        self._offset = 0

    def load_tail(self) -> list[EventEntry]:
        """Read the last ``capacity`` events and start following from there."""
        self._offset = 0
        try:
            with open(self.path, "rb") as f:
                tail: deque[bytes] = deque(maxlen=self.capacity)
                consumed = 0
                for raw in f:
                    if not raw.endswith(b"\n"):
                        break
                    consumed += len(raw)
                    tail.append(raw)
                self._offset = consumed
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Failed to read %s: %s", self.path, e)
            return []
        return self._decode(tail)

    def poll(self) -> list[EventEntry]:
        """Events appended since the last read."""
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            self._offset = 0
            return []
        except OSError as e:
            logger.debug("Failed to stat %s: %s", self.path, e)
            return []

        if size < self._offset:
            logger.debug("%s was truncated, re-reading from start", self.path)
            self._offset = 0
        if size == self._offset:
            return []

        lines: list[bytes] = []
        try:
            with open(self.path, "rb") as f:
                f.seek(self._offset)
                for raw in f:
                    # Leave a partially written last line for the next poll
                    if not raw.endswith(b"\n"):
                        break
                    self._offset += len(raw)
                    lines.append(raw)
        except OSError as e:
            logger.debug("Failed to read %s: %s", self.path, e)
            return []
        return self._decode(lines)

    @staticmethod
    def _decode(lines: Iterable[bytes]) -> list[EventEntry]:
        entries = []
        for raw in lines:
            entry = parse_event_line(raw.decode("utf-8", errors="replace"))
            if entry is not None:
                entries.append(entry)
        return entries


def read_recent_events(path: Path, limit: int, kind: str | None = None) -> list[EventEntry]:
    """Newest ``limit`` events from a hooks file, optionally of one kind."""
    if limit <= 0:
        return []
    # Filtering by kind needs a deeper window than the number asked for
    window = limit if kind is None else max(limit, EVENT_BUFFER_CAPACITY * 10)
    entries = JsonlEventFeed(path, capacity=window).load_tail()
    if kind:
        entries = [e for e in entries if e.kind == kind]
    return entries[-limit:]


# =============================================================================
# Summaries
# =============================================================================

def _clip(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[:max_len] + "…"


def _tool_summary(tool: str, tool_input: Any) -> str:
    if not isinstance(tool_input, dict):
        return tool
    if tool in ("Read", "Write", "Edit") and tool_input.get("file_path"):
        return f"{tool}:{str(tool_input['file_path']).rsplit('/', 1)[-1]}"
    if tool == "Bash" and tool_input.get("command"):
        return f"{tool}:{_clip(str(tool_input['command']), 20)}"
    if tool in ("Grep", "Glob") and tool_input.get("pattern"):
        return f"{tool}:{str(tool_input['pattern'])[:15]}"
    return tool


def summarize_payload(payload: dict[str, Any], max_len: int = 50) -> str:
    """One-line summary of a hook payload.

    Shows the working directory name, the tool with its most telling input,
    the notification message and type, and a prompt excerpt. Falls back to
    compact JSON when none of those are present.
    """
    parts: list[str] = []

    cwd = payload.get("cwd")
    if cwd:
        last_dir = [p for p in str(cwd).split("/") if p]
        if last_dir:
            parts.append(last_dir[-1])

    tool = payload.get("tool_name")
    if tool:
        parts.append(_tool_summary(str(tool), payload.get("tool_input")))

    if payload.get("message"):
        parts.append(_clip(str(payload["message"]), 30))

    if payload.get("notification_type"):
        parts.append(f"[{payload['notification_type']}]")

    if payload.get("prompt") and not tool:
        parts.append(f'"{_clip(str(payload["prompt"]), 25)}"')

    text = " ".join(parts) if parts else json.dumps(payload, separators=(",", ":"))
    return text if len(text) <= max_len else text[: max_len - 1] + "…"


def summarize_event(entry: EventEntry, max_len: int = 50) -> str:
    return summarize_payload(entry.payload, max_len=max_len)
