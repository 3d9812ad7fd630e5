"""Configuration, constants, and data-directory resolution."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


DATA_DIR_ENV_VAR = "AGENTWATCH_DATA_DIR"
DEFAULT_DATA_DIR = "~/.agentwatch"
CONFIG_FILE_NAME = "config.toml"
HOOKS_FILE_NAME = "hooks.jsonl"
SESSIONS_FILE_NAME = "sessions.jsonl"
LOG_FILE_NAME = "agentwatch.log"

# Refresh interval presets cycled with R (seconds)
REFRESH_PRESETS: tuple[int, ...] = (1, 2, 5, 10)
DEFAULT_INTERVAL = 2

EVENT_BUFFER_CAPACITY = 100
PROCESS_CACHE_TTL = 5.0
SERVER_CHECK_TTL = 1.0
TMUX_TIMEOUT = 3.0
PS_TIMEOUT = 5.0

SORT_MODES = ("name", "created", "activity")


class AgentwatchError(Exception):
    """Base exception for agentwatch."""


class ConfigError(AgentwatchError):
    """Raised for invalid configuration values."""


@dataclass
class WatchOptions:
    """Resolved settings for the watch dashboard."""
    data_dir: Path
    filter: str | None = None
    interval: float = DEFAULT_INTERVAL
    sort: str | None = None
    agents_only: bool = True
    expand_all: bool = True
    show_last_line: bool = True
    show_stats: bool = True
    show_events: bool = True
    notify_desktop: bool = False
    notify_filter: tuple[str, ...] | None = None
    title_template: str | None = None
    message_template: str | None = None
    once: bool = False
    interactive: bool = True
    log_level: str = "INFO"

    @property
    def hooks_file(self) -> Path:
        return self.data_dir / HOOKS_FILE_NAME

    @property
    def log_file(self) -> Path:
        return self.data_dir / LOG_FILE_NAME


def resolve_data_dir(data_dir: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the data directory.

    Order: explicit argument, then AGENTWATCH_DATA_DIR, then ~/.agentwatch.
    """
    raw = data_dir or os.environ.get(DATA_DIR_ENV_VAR) or DEFAULT_DATA_DIR
    return Path(os.path.expanduser(str(raw)))


def parse_sort_mode(value: str | None) -> str | None:
    """Validate a sort mode name.

    Returns:
        The normalized mode, or None for "none"/empty.

    Raises:
        ConfigError: If the mode is unknown.
    """
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in ("", "none"):
        return None
    if normalized not in SORT_MODES:
        raise ConfigError(f"sort must be one of: {', '.join(SORT_MODES)}")
    return normalized


def parse_event_filter(value: str | list[str] | tuple[str, ...] | None) -> tuple[str, ...] | None:
    """Parse a comma-separated (or list) event filter. Empty means all events."""
    if value is None:
        return None
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",")]
    else:
        items = [str(v).strip() for v in value]
    items = [v for v in items if v]
    return tuple(items) or None


def load_config_file(data_dir: Path) -> dict[str, Any]:
    """Read config.toml from the data directory.

    Missing or unreadable files yield an empty dict.
    """
    path = data_dir / CONFIG_FILE_NAME
    if not path.is_file():
        return {}
    try:
        parsed = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _coerce_bool(table: dict[str, Any], key: str, default: bool) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def options_from_config(data_dir: Path, raw: dict[str, Any]) -> WatchOptions:
    """Build WatchOptions from a parsed config file.

    Raises:
        ConfigError: If a value has the wrong type or is out of range.
    """
    watch = raw.get("watch") or {}
    notify = raw.get("notify") or {}
    if not isinstance(watch, dict) or not isinstance(notify, dict):
        raise ConfigError("[watch] and [notify] must be tables")

    interval = watch.get("interval", DEFAULT_INTERVAL)
    if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
        raise ConfigError("interval must be a positive number of seconds")

    session_filter = watch.get("filter")
    if session_filter is not None and not isinstance(session_filter, str):
        raise ConfigError("filter must be a string")

    return WatchOptions(
        data_dir=data_dir,
        filter=session_filter or None,
        interval=float(interval),
        sort=parse_sort_mode(watch.get("sort")),
        agents_only=_coerce_bool(watch, "agents_only", True),
        expand_all=_coerce_bool(watch, "expand", True),
        show_last_line=_coerce_bool(watch, "last_line", True),
        show_stats=_coerce_bool(watch, "stats", True),
        show_events=_coerce_bool(watch, "events", True),
        notify_desktop=_coerce_bool(notify, "desktop", False),
        notify_filter=parse_event_filter(notify.get("filter")),
        title_template=notify.get("title_template") or None,
        message_template=notify.get("message_template") or None,
    )


def load_watch_options(data_dir: str | os.PathLike[str] | None = None, **overrides: Any) -> WatchOptions:
    """Resolve watch settings from the config file, then apply CLI overrides.

    Overrides whose value is None are ignored so unset CLI flags keep the
    file (or default) value.
    """
    resolved = resolve_data_dir(data_dir)
    options = options_from_config(resolved, load_config_file(resolved))
    changes = {k: v for k, v in overrides.items() if v is not None}
    unknown = set(changes) - set(WatchOptions.__dataclass_fields__)
    if unknown:
        raise ConfigError(f"Unknown option(s): {', '.join(sorted(unknown))}")
    return replace(options, **changes)
