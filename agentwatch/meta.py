"""Session metadata stored in sessions.jsonl, and the mark-done action."""

from __future__ import annotations

import json
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from agentwatch.config import SESSIONS_FILE_NAME
from agentwatch.models import SessionMeta

logger = logging.getLogger(__name__)

DONE_SUFFIX = "-done"

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def create_id(prefix: str = "id") -> str:
    """Create an id like ``session_lx3k9a1b_4f9z2kq0`` (base36 ms + random)."""
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(8))
    return f"{prefix}_{timestamp}_{random_part}"


def short_id(value: str, max_len: int = 8) -> str:
    """Middle part of a prefixed id, clipped for display."""
    parts = value.split("_")
    base = parts[1] if len(parts) > 1 else value
    return base[:max_len]


class SessionMetaStore:
    """Reads and appends launcher metadata in ``<data_dir>/sessions.jsonl``."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.path = data_dir / SESSIONS_FILE_NAME

    def read_all(self) -> list[SessionMeta]:
        """All parseable entries, in file order."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Failed to read %s: %s", self.path, e)
            return []

        entries = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(SessionMeta.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError, TypeError):
                logger.debug("Skipping malformed session metadata line")
        return entries

    def meta_map(self) -> dict[str, SessionMeta]:
        """Latest entry per session name."""
        return {entry.session_name: entry for entry in self.read_all()}

    def append(self, **fields: Any) -> SessionMeta:
        """Append an entry with a generated id and timestamp.

        Raises:
            OSError: If the file cannot be written.
        """
        entry = SessionMeta(
            id=create_id("session"),
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            **fields,
        )
        self.data_dir.mkdir(parents=True, exist_ok=True)
        record = entry.model_dump(by_alias=True, exclude_none=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
        return entry


class SessionRenamer(Protocol):
    def rename_session(self, old: str, new: str) -> bool: ...


def done_name(name: str) -> str:
    return name if name.endswith(DONE_SUFFIX) else f"{name}{DONE_SUFFIX}"


def mark_session_done(
    store: SessionMetaStore,
    manager: SessionRenamer,
    name: str,
    meta: SessionMeta | None = None,
) -> tuple[str, SessionMeta] | None:
    """
    Rename a session to ``<name>-done`` and record status=done.

    Args:
        store: Metadata store to append to
        manager: Anything with rename_session(old, new)
        name: Current session name
        meta: Existing metadata; agent, tag, cwd and prompt preview carry over

    Returns:
        (new_name, entry), or None if the rename failed.
    """
    new_name = done_name(name)
    if new_name != name and not manager.rename_session(name, new_name):
        return None

    carried: dict[str, Any] = {}
    if meta is not None:
        carried = meta.model_dump(
            include={"agent", "tag", "prompt_preview", "cwd", "task_id", "plan_id"},
            exclude_none=True,
        )
    try:
        entry = store.append(session_name=new_name, status="done", **carried)
    except OSError as e:
        logger.warning("Renamed %s but failed to record status: %s", name, e)
        entry = SessionMeta(session_name=new_name, status="done", **carried)
    return new_name, entry
