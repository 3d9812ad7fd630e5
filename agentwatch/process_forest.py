"""Process forest built from a single `ps` listing.

One listing of every process on the host is parsed into a parent -> children
adjacency map plus per-pid stats. Both questions the dashboard asks (how much
CPU/memory does a pane's subtree use, and which agent is running in it) are
answered from that snapshot, which is cached for a few seconds so the number
of `ps` calls does not grow with the number of panes being watched.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator

from agentwatch.cache import TtlCache
from agentwatch.config import PROCESS_CACHE_TTL, PS_TIMEOUT
from agentwatch.models import AGENT_TYPES, AgentIdentity, ProcessRecord, ProcessStats
from agentwatch.shell import CommandRunner, run_command

logger = logging.getLogger(__name__)

PS_COMMAND = ("ps", "-axo", "pid=,ppid=,pcpu=,pmem=,rss=,args=")


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_ps_line(line: str) -> ProcessRecord | None:
    """Parse one `ps` row; rows without a numeric pid/ppid are skipped."""
    parts = line.split(None, 5)
    if len(parts) < 5:
        return None
    try:
        pid = int(parts[0])
        ppid = int(parts[1])
    except ValueError:
        return None
    args = parts[5].strip() if len(parts) > 5 else ""
    first = args.split(None, 1)[0] if args else ""
    return ProcessRecord(
        pid=pid,
        parent_pid=ppid,
        comm=os.path.basename(first),
        args=args,
        cpu_percent=_to_float(parts[2]),
        mem_percent=_to_float(parts[3]),
        rss_kb=_to_int(parts[4]),
    )


def _match_agent(record: ProcessRecord) -> AgentIdentity | None:
    """Exact binary name first, then a substring of the argument string."""
    comm = record.comm.lower()
    if comm in AGENT_TYPES:
        return AgentIdentity(agent_type=comm, matched_command=record.comm)
    args = record.args.lower()
    for agent in AGENT_TYPES:
        if agent in args:
            return AgentIdentity(agent_type=agent, matched_command=record.comm or None)
    return None


@dataclass
class Forest:
    """Parsed process table."""
    records: dict[int, ProcessRecord] = field(default_factory=dict)
    children: dict[int, list[int]] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Iterable[ProcessRecord]) -> Forest:
        forest = cls()
        for record in records:
            forest.records[record.pid] = record
        for record in forest.records.values():
            if record.parent_pid != record.pid:
                forest.children.setdefault(record.parent_pid, []).append(record.pid)
        for kids in forest.children.values():
            kids.sort()
        return forest

    @classmethod
    def parse(cls, output: str) -> Forest:
        return cls.from_records(
            r for r in (parse_ps_line(line) for line in output.splitlines()) if r is not None
        )

    def subtree(self, root: int) -> list[int]:
        """The root and all of its descendants, each pid once.

        Walks with an explicit stack and a visited set so a malformed table
        with a parent/child cycle still terminates.
        """
        if root not in self.records:
            return []
        visited: set[int] = set()
        order: list[int] = []
        stack = [root]
        while stack:
            pid = stack.pop()
            if pid in visited:
                continue
            visited.add(pid)
            order.append(pid)
            stack.extend(reversed(self.children.get(pid, ())))
        return order

    def breadth_first(self, root: int) -> Iterator[ProcessRecord]:
        """Records from the root outward, level by level."""
        if root not in self.records:
            return
        visited = {root}
        queue = deque([root])
        while queue:
            pid = queue.popleft()
            yield self.records[pid]
            for child in self.children.get(pid, ()):
                if child not in visited and child in self.records:
                    visited.add(child)
                    queue.append(child)

    def aggregate(self, pids: Iterable[int]) -> dict[int, ProcessStats]:
        """Sum cpu/mem/rss over each pid's subtree. Unknown pids are omitted."""
        result: dict[int, ProcessStats] = {}
        for pid in pids:
            members = self.subtree(pid)
            if not members:
                continue
            # Fixed summation order keeps results independent of row order
            members.sort()
            cpu = mem = 0.0
            rss = 0
            for member in members:
                record = self.records[member]
                cpu += record.cpu_percent
                mem += record.mem_percent
                rss += record.rss_kb
            result[pid] = ProcessStats(pid=pid, cpu_percent=cpu, mem_percent=mem, rss_kb=rss)
        return result

    def classify(self, pids: Iterable[int]) -> dict[int, AgentIdentity]:
        """First agent process in breadth order under each pid."""
        result: dict[int, AgentIdentity] = {}
        for pid in pids:
            for record in self.breadth_first(pid):
                identity = _match_agent(record)
                if identity is not None:
                    result[pid] = identity
                    break
        return result


class ProcessForest:
    """Cached access to the host process forest.

    A single snapshot is shared by every caller for ``ttl`` seconds. Callers
    that arrive while a listing is running wait for that listing instead of
    starting another one.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        ttl: float = PROCESS_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = PS_TIMEOUT,
    ):
        self._timeout = timeout
        self._runner = runner or self._default_runner
        self._cache: TtlCache[Forest] = TtlCache(ttl=ttl, clock=clock)
        self._inflight: asyncio.Task[Forest] | None = None

    async def _default_runner(self, argv):
        return await run_command(argv, timeout=self._timeout)

    async def _load(self) -> Forest:
        result = await self._runner(list(PS_COMMAND))
        if not result.ok:
            logger.debug("ps failed (%d): %s", result.returncode, result.stderr.strip())
            return Forest()
        forest = Forest.parse(result.stdout)
        if not forest.records:
            logger.debug("ps returned no parseable rows")
        return forest

    async def snapshot(self) -> Forest:
        """Current forest, from cache when fresh."""
        if self._cache.is_fresh():
            return self._cache.value or Forest()
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        task = self._inflight
        try:
            forest = await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None
        return self._cache.set(forest)

    async def aggregate(self, pids: Iterable[int]) -> dict[int, ProcessStats]:
        """Subtree stats for each pid; empty when the listing failed."""
        pids = list(pids)
        if not pids:
            return {}
        return (await self.snapshot()).aggregate(pids)

    async def classify(self, pids: Iterable[int]) -> dict[int, AgentIdentity]:
        """Detected agent for each pid's subtree; pids without a match are omitted."""
        pids = list(pids)
        if not pids:
            return {}
        return (await self.snapshot()).classify(pids)
