"""CLI interface for agentwatch.

`agentwatch watch` opens the live dashboard. The other commands are
one-shot helpers for scripts and debugging, and `agentwatch mcp` exposes
the same data to MCP clients.
"""

from __future__ import annotations

import asyncio
import json
import shutil
import subprocess
import sys
from dataclasses import replace

import click
from rich.console import Console
from rich.table import Table

from agentwatch import __version__
from agentwatch.config import (
    DATA_DIR_ENV_VAR,
    HOOKS_FILE_NAME,
    LOG_FILE_NAME,
    ConfigError,
    WatchOptions,
    load_watch_options,
    parse_event_filter,
    resolve_data_dir,
)
from agentwatch.events import EVENT_SHORT_LABELS, read_recent_events, summarize_event
from agentwatch.logging_config import setup_logging
from agentwatch.render import format_duration, format_memory

console = Console()

DATA_DIR_OPTION = click.option(
    "--data-dir", "-d",
    type=click.Path(file_okay=False),
    default=None,
    envvar=DATA_DIR_ENV_VAR,
    help="Data directory (hooks.jsonl, sessions.jsonl, config.toml)",
)


def _load_options(data_dir: str | None, **overrides) -> WatchOptions:
    try:
        return load_watch_options(data_dir, **overrides)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context):
    """agentwatch - live dashboard for AI coding agents running in tmux.

    Run without a command to open the watch dashboard.
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(watch)


@main.command()
@click.option("--filter", "-f", "session_filter", default=None, help="Only show sessions whose name starts with this prefix")
@click.option("--interval", "-i", type=float, default=None, help="Refresh interval in seconds")
@click.option("--all", "-A", "show_all", is_flag=True, default=False, help="Show every pane, not only agent panes")
@click.option("--no-expand", is_flag=True, default=False, help="Only expand the selected session")
@click.option("--sort", type=click.Choice(["none", "name", "created", "activity"]), default=None, help="Initial sort order")
@click.option("--no-last-line", is_flag=True, default=False, help="Hide the last output line of each pane")
@click.option("--no-stats", is_flag=True, default=False, help="Hide CPU and memory")
@click.option("--no-events", is_flag=True, default=False, help="Disable the hook events panel")
@DATA_DIR_OPTION
@click.option("--notify-desktop", is_flag=True, default=False, help="Send desktop notifications for hook events")
@click.option("--notify-filter", default=None, help="Comma-separated event types to notify about")
@click.option("--notify-title-template", default=None, help="Notification title template, e.g. '{dir}: {event}'")
@click.option("--notify-message-template", default=None, help="Notification message template, e.g. '{detail}'")
@click.option("--once", "-o", is_flag=True, default=False, help="Print one frame and exit")
@click.option("--no-interactive", is_flag=True, default=False, help="Redraw on the interval without reading keys")
@click.option("--log-level", default=None, help="Log level for the log file (DEBUG, INFO, WARNING)")
def watch(
    session_filter: str | None = None,
    interval: float | None = None,
    show_all: bool = False,
    no_expand: bool = False,
    sort: str | None = None,
    no_last_line: bool = False,
    no_stats: bool = False,
    no_events: bool = False,
    data_dir: str | None = None,
    notify_desktop: bool = False,
    notify_filter: str | None = None,
    notify_title_template: str | None = None,
    notify_message_template: str | None = None,
    once: bool = False,
    no_interactive: bool = False,
    log_level: str | None = None,
):
    """Open the live dashboard of agent sessions and hook events.

    Keys: j/k move, Tab switches panels, Enter attaches, x kills,
    D marks done, ? shows help, q quits.
    """
    from agentwatch.monitor import run_watch
    from agentwatch.tmux_manager import check_tmux_available

    if interval is not None and interval <= 0:
        raise click.BadParameter("must be greater than 0", param_hint="--interval")

    options = _load_options(
        data_dir,
        filter=session_filter,
        interval=interval,
        sort=None if sort in (None, "none") else sort,
        agents_only=False if show_all else None,
        expand_all=False if no_expand else None,
        show_last_line=False if no_last_line else None,
        show_stats=False if no_stats else None,
        show_events=False if no_events else None,
        notify_desktop=True if notify_desktop else None,
        notify_filter=parse_event_filter(notify_filter),
        title_template=notify_title_template,
        message_template=notify_message_template,
        once=once or None,
        interactive=False if no_interactive else None,
        log_level=log_level,
    )
    if sort == "none":
        options = replace(options, sort=None)

    try:
        setup_logging(options.log_level, log_file=options.log_file)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot set up logging: {e}") from e

    if not check_tmux_available():
        console.print("[yellow]![/yellow] tmux not found in PATH; no sessions will be shown")

    run_watch(options)


@main.command()
@click.option("--filter", "-f", "session_filter", default=None, help="Session name prefix")
@click.option("--all", "-A", "show_all", is_flag=True, default=False, help="Include non-agent panes")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON")
@DATA_DIR_OPTION
def sessions(session_filter: str | None, show_all: bool, as_json: bool, data_dir: str | None):
    """List tmux sessions with their detected agent and resource use."""
    from agentwatch.monitor import collect_snapshot, describe_session

    options = _load_options(
        data_dir,
        filter=session_filter,
        agents_only=False if show_all else None,
        show_last_line=False,
    )
    setup_logging(options.log_level, console=True)
    snapshot = asyncio.run(collect_snapshot(options))

    if as_json:
        click.echo(json.dumps([describe_session(s, snapshot) for s in snapshot.sessions], indent=2))
        return

    if not snapshot.sessions:
        console.print("[dim]No agent sessions[/dim]")
        return

    table = Table(title=f"Sessions ({len(snapshot.sessions)}/{snapshot.total_sessions})")
    table.add_column("Session", style="bold")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Panes", justify="right")
    table.add_column("CPU / Mem")
    table.add_column("Idle")

    for session in snapshot.sessions:
        identity = snapshot.session_agents.get(session.name)
        meta = snapshot.meta.get(session.name)
        panes = [p for w in session.agent_windows(options.agents_only) for p in w.panes]
        stats = [snapshot.stats[p.pid] for p in panes if p.pid in snapshot.stats]
        usage = "-"
        if stats:
            cpu = sum(s.cpu_percent for s in stats)
            rss = sum(s.rss_kb for s in stats)
            usage = f"{cpu:.1f}% {format_memory(rss)}"
        idle = [p.idle_seconds for p in panes if p.idle_seconds is not None]
        table.add_row(
            session.name + (" [green]*[/green]" if session.attached else ""),
            identity.agent_type if identity else "[dim]?[/dim]",
            (meta.status if meta and meta.status else "") or "[dim]-[/dim]",
            str(len(panes)),
            usage,
            format_duration(min(idle)) if idle else "-",
        )
    console.print(table)


@main.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def kill(name: str, yes: bool):
    """Kill a tmux session by name."""
    from agentwatch.tmux_manager import TmuxManager

    manager = TmuxManager()
    if not manager.has_session(name):
        raise click.ClickException(f"No such session: {name}")
    if not yes and not click.confirm(f"Kill session {name}?"):
        return
    if not manager.kill_session(name):
        raise click.ClickException(f"Failed to kill {name}")
    console.print(f"[green]✓[/green] Killed {name}")


@main.command()
@click.argument("name")
@DATA_DIR_OPTION
def done(name: str, data_dir: str | None):
    """Rename a session to NAME-done and record status=done."""
    from agentwatch.meta import SessionMetaStore, mark_session_done
    from agentwatch.tmux_manager import TmuxManager

    store = SessionMetaStore(resolve_data_dir(data_dir))
    manager = TmuxManager()
    if not manager.has_session(name):
        raise click.ClickException(f"No such session: {name}")
    result = mark_session_done(store, manager, name, store.meta_map().get(name))
    if result is None:
        raise click.ClickException(f"Failed to rename {name}")
    new_name, _ = result
    console.print(f"[green]✓[/green] {name} → {new_name}")


@main.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, help="Number of events")
@click.option("--event", "-e", "kind", default=None, help="Only this event type")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON lines")
@DATA_DIR_OPTION
def events(limit: int, kind: str | None, as_json: bool, data_dir: str | None):
    """Show the most recent hook events."""
    path = resolve_data_dir(data_dir) / HOOKS_FILE_NAME
    entries = read_recent_events(path, limit, kind=kind)

    if as_json:
        for entry in entries:
            click.echo(json.dumps(entry.to_record()))
        return

    if not entries:
        console.print(f"[dim]No events in {path}[/dim]")
        return

    for entry in entries:
        label = EVENT_SHORT_LABELS.get(entry.kind, entry.kind)
        console.print(
            f"[dim]{entry.timestamp}[/dim]  [bold]{label:<8}[/bold] {summarize_event(entry, 70)}",
            highlight=False,
        )


@main.command()
@DATA_DIR_OPTION
def doctor(data_dir: str | None):
    """Check system configuration and diagnose issues."""
    console.print("[bold]agentwatch Health Check[/bold]\n")

    all_ok = True

    console.print("[cyan]System Requirements:[/cyan]")
    if shutil.which("tmux"):
        result = subprocess.run(["tmux", "-V"], capture_output=True, text=True)
        console.print(f"  [green]✓[/green] tmux: {result.stdout.strip()}")
    else:
        console.print("  [red]✗[/red] tmux not found")
        all_ok = False

    if shutil.which("ps"):
        console.print("  [green]✓[/green] ps")
    else:
        console.print("  [red]✗[/red] ps not found (no CPU/memory stats)")
        all_ok = False

    py_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    if sys.version_info >= (3, 11):
        console.print(f"  [green]✓[/green] Python {py_version}")
    else:
        console.print(f"  [red]✗[/red] Python {py_version} (need 3.11+)")
        all_ok = False

    console.print("\n[cyan]Agent CLIs:[/cyan]")
    for cmd, label in (("claude", "Claude Code"), ("codex", "Codex CLI"), ("gemini", "Gemini CLI")):
        if shutil.which(cmd):
            console.print(f"  [green]✓[/green] {label}")
        else:
            console.print(f"  [dim]○[/dim] {label} not installed")

    notifier = "osascript" if sys.platform == "darwin" else "notify-send"
    console.print("\n[cyan]Notifications:[/cyan]")
    if shutil.which(notifier):
        console.print(f"  [green]✓[/green] {notifier}")
    else:
        console.print(f"  [dim]○[/dim] {notifier} not found (desktop notifications disabled)")

    console.print("\n[cyan]Data Directory:[/cyan]")
    resolved = resolve_data_dir(data_dir)
    console.print(f"  {resolved}")
    for name in ("config.toml", "hooks.jsonl", "sessions.jsonl"):
        if (resolved / name).is_file():
            console.print(f"  [green]✓[/green] {name}")
        else:
            console.print(f"  [dim]○[/dim] {name} not found")
    try:
        load_watch_options(resolved)
    except ConfigError as e:
        console.print(f"  [red]✗[/red] config.toml: {e}")
        all_ok = False

    console.print()
    if all_ok:
        console.print("[green]All checks passed[/green]")
    else:
        console.print("[yellow]Some checks failed[/yellow]")
        sys.exit(1)


@main.command()
@click.option("--transport", "-t", default="stdio", help="Transport type (stdio, sse, streamable-http)")
def mcp(transport: str):
    """Start the MCP server exposing session and event tools."""
    from agentwatch.mcp_server import mcp as mcp_server

    setup_logging("INFO", log_file=resolve_data_dir() / LOG_FILE_NAME)
    mcp_server.run(transport=transport)


if __name__ == "__main__":
    main()
