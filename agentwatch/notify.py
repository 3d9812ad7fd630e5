"""Desktop notifications for hook events.

Titles and messages are built from templates such as ``"{dir}: {event}"``.
Each placeholder is a named extractor in PLACEHOLDERS; adding a placeholder
means adding an entry to that table.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from typing import Any, Callable

from agentwatch.models import EventEntry
from agentwatch.shell import run_command

logger = logging.getLogger(__name__)

DEFAULT_TITLE_TEMPLATE = "{dir}: {event}"
DEFAULT_MESSAGE_TEMPLATE = "{detail}"

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class NotifyConfig:
    """Notification settings carried in the view state."""
    desktop: bool = False
    filter: tuple[str, ...] | None = None
    title_template: str | None = None
    message_template: str | None = None

    @property
    def effective_title(self) -> str:
        return self.title_template or DEFAULT_TITLE_TEMPLATE

    @property
    def effective_message(self) -> str:
        return self.message_template or DEFAULT_MESSAGE_TEMPLATE


def _tool_input(entry: EventEntry) -> dict[str, Any]:
    value = entry.payload.get("tool_input")
    return value if isinstance(value, dict) else {}


def _text(value: Any, limit: int | None = None) -> str:
    if value is None:
        return ""
    text = " ".join(str(value).split())
    if limit is not None and len(text) > limit:
        return text[: limit - 1] + "…"
    return text


def _dir(entry: EventEntry) -> str:
    parts = [p for p in str(entry.payload.get("cwd") or "").split("/") if p]
    return parts[-1] if parts else ""


def _file(entry: EventEntry) -> str:
    path = _tool_input(entry).get("file_path")
    return str(path).rsplit("/", 1)[-1] if path else ""


def _session(entry: EventEntry) -> str:
    return _text(entry.payload.get("session_id"))[:8]


def _detail(entry: EventEntry) -> str:
    tool = _text(entry.payload.get("tool_name"))
    if tool:
        for extractor in (_file, PLACEHOLDERS["cmd"], PLACEHOLDERS["pattern"]):
            value = extractor(entry)
            if value:
                return f"{tool}: {value}"
        return tool
    for key in ("message", "prompt", "reason"):
        value = PLACEHOLDERS[key](entry)
        if value:
            return value
    return entry.kind


PLACEHOLDERS: dict[str, Callable[[EventEntry], str]] = {
    "dir": _dir,
    "event": lambda e: e.kind,
    "tool": lambda e: _text(e.payload.get("tool_name")),
    "file": _file,
    "cmd": lambda e: _text(_tool_input(e).get("command"), 50),
    "pattern": lambda e: _text(_tool_input(e).get("pattern")),
    "message": lambda e: _text(e.payload.get("message"), 100),
    "prompt": lambda e: _text(e.payload.get("prompt"), 50),
    "reason": lambda e: _text(e.payload.get("reason") or e.payload.get("stop_reason")),
    "session": _session,
    "detail": _detail,
}

PLACEHOLDER_HELP: tuple[tuple[str, str], ...] = (
    ("dir", "directory name from cwd"),
    ("event", "hook event type"),
    ("tool", "tool name (if tool event)"),
    ("file", "filename (if file operation)"),
    ("cmd", "command (if Bash, truncated)"),
    ("pattern", "pattern (if Grep/Glob)"),
    ("message", "notification message"),
    ("prompt", "user prompt (if UserPromptSubmit)"),
    ("reason", "stop reason (if Stop event)"),
    ("session", "truncated session ID"),
    ("detail", "smart default (best available info)"),
)


def render_template(template: str, entry: EventEntry) -> str:
    """Substitute placeholders; unknown placeholders are left untouched."""

    def substitute(match: re.Match[str]) -> str:
        extractor = PLACEHOLDERS.get(match.group(1))
        if extractor is None:
            return match.group(0)
        return extractor(entry)

    return _PLACEHOLDER_RE.sub(substitute, template).strip()


def should_notify(config: NotifyConfig, entry: EventEntry) -> bool:
    """Whether an event passes the desktop/filter settings."""
    if not config.desktop:
        return False
    if config.filter:
        return entry.kind in config.filter
    return True


def format_notification(config: NotifyConfig, entry: EventEntry) -> tuple[str, str]:
    title = render_template(config.effective_title, entry) or f"agentwatch: {entry.kind}"
    message = render_template(config.effective_message, entry) or entry.kind
    return title, message


def _applescript_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


async def send_desktop_notification(title: str, message: str) -> bool:
    """Show a desktop notification (osascript on macOS, notify-send elsewhere)."""
    if sys.platform == "darwin":
        script = (
            f'display notification "{_applescript_quote(message)}" '
            f'with title "{_applescript_quote(title)}"'
        )
        argv = ["osascript", "-e", script]
    else:
        argv = ["notify-send", title, message]
    result = await run_command(argv, timeout=5.0)
    if not result.ok:
        logger.debug("Desktop notification failed (%d): %s", result.returncode, result.stderr.strip())
    return result.ok
