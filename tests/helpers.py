"""Shared test helpers."""

from __future__ import annotations

from agentwatch.shell import CommandResult


class FakeRunner:
    """Command runner returning canned results keyed by argv prefix."""

    def __init__(self, responses: dict[tuple[str, ...], CommandResult] | None = None):
        self.responses = dict(responses or {})
        self.calls: list[list[str]] = []

    def set(self, prefix: tuple[str, ...], stdout: str = "", returncode: int = 0) -> None:
        self.responses[prefix] = CommandResult(returncode, stdout)

    def count(self, *prefix: str) -> int:
        return sum(1 for call in self.calls if tuple(call[: len(prefix)]) == prefix)

    async def __call__(self, argv) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(argv[: len(prefix)]) == prefix:
                return self.responses[prefix]
        return CommandResult(1, "", "no such command")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# Three sessions: two agents and a plain shell
SESSIONS = "\n".join([
    "awm-b\t1\t0\t1700000000\t1700000050",
    "awm-a\t1\t1\t1700000100\t1700000090",
    "scratch\t1\t0\t1700000200\t1700000200",
]) + "\n"

PANES = "\n".join([
    "awm-b\t0\tmain\t1\t0\t%1\t100\t1\tnode\t/src/b\t1700000050",
    "awm-a\t0\tmain\t1\t0\t%2\t200\t1\tcodex\t/src/a\t1700000090",
    "scratch\t0\tmain\t1\t0\t%3\t300\t1\tzsh\t/tmp\t1700000200",
]) + "\n"

PS = "\n".join([
    "  100     1  5.0  1.0  4096 node /usr/local/bin/claude",
    "  200     1  2.5  0.5  2048 codex",
    "  300     1  0.0  0.1  1024 -zsh",
]) + "\n"


def tmux_runner() -> FakeRunner:
    """Runner answering tmux and ps calls for the three sessions above."""
    runner = FakeRunner()
    runner.set(("tmux", "list-sessions"), stdout="")
    runner.set(("tmux", "list-sessions", "-F"), stdout=SESSIONS)
    runner.set(("tmux", "list-panes"), stdout=PANES)
    runner.set(("tmux", "capture-pane"), stdout="working...\n")
    runner.set(("ps",), stdout=PS)
    return runner


def patch_commands(monkeypatch, runner: FakeRunner) -> None:
    """Route the default tmux and ps runners through a FakeRunner."""
    from agentwatch import process_forest, tmux_manager

    async def run(argv, timeout=None):
        return await runner(argv)

    monkeypatch.setattr(tmux_manager, "run_command", run)
    monkeypatch.setattr(process_forest, "run_command", run)
