"""Startup reaping of agent CLI processes left behind by a dead server.

When an agentbridge server crashes, the ``claude --output-format
stream-json`` children it spawned are reparented to init and keep
running. At the next start they are found in the process table and
sent SIGTERM. Anything still owned by a live agentbridge server is
left alone.
"""

from __future__ import annotations

import logging
import os
import re
import signal
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Command-line fragments identifying a running agentbridge server.
_SERVER_MARKERS = ("agentbridge --server", "agentbridge.app")


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    ppid: int
    args: str

    @property
    def is_orphan(self) -> bool:
        return self.ppid <= 1


def parse_process_table(ps_output: str) -> dict[int, ProcessInfo]:
    """Parse ``ps -eo pid=,ppid=,args=`` output. Malformed rows are skipped."""
    table: dict[int, ProcessInfo] = {}
    for row in ps_output.splitlines():
        fields = row.split(None, 2)
        if len(fields) != 3 or not (fields[0].isdigit() and fields[1].isdigit()):
            continue
        info = ProcessInfo(pid=int(fields[0]), ppid=int(fields[1]), args=fields[2])
        table[info.pid] = info
    return table


def _read_process_table() -> dict[int, ProcessInfo]:
    out = subprocess.check_output(
        ["ps", "-eo", "pid=,ppid=,args="],
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return parse_process_table(out)


def _owned_by_server(
    proc: ProcessInfo,
    table: dict[int, ProcessInfo],
    current_pid: int,
) -> bool:
    """Walk up from ``proc`` looking for this process or another server."""
    seen: set[int] = set()
    cur: ProcessInfo | None = proc
    while cur is not None and cur.pid not in seen:
        if cur.pid == current_pid or any(m in cur.args for m in _SERVER_MARKERS):
            return True
        seen.add(cur.pid)
        cur = table.get(cur.ppid)
    return False


def _spawned_shape(command: str) -> re.Pattern[str]:
    name = re.escape(os.path.basename(command))
    return re.compile(rf"\b{name}\b.*--output-format\s+stream-json")


def find_stale_agent_processes(
    table: dict[int, ProcessInfo],
    command: str,
    current_pid: int,
) -> list[ProcessInfo]:
    """Agent CLI streaming processes whose parent is gone or is init."""
    shape = _spawned_shape(command)
    stale = []
    for proc in table.values():
        if proc.pid == current_pid or not shape.search(proc.args):
            continue
        if not (proc.is_orphan or proc.ppid not in table):
            continue
        if _owned_by_server(proc, table, current_pid):
            continue
        stale.append(proc)
    return stale


def cleanup_stale_agent_processes(
    *,
    command: str = "claude",
    current_pid: int | None = None,
) -> int:
    """SIGTERM orphaned agent CLI processes. Returns how many were signalled."""
    pid = current_pid or os.getpid()
    signalled = 0
    for proc in find_stale_agent_processes(_read_process_table(), command, pid):
        try:
            os.kill(proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug("Stale agent process pid=%d already exited", proc.pid)
            continue
        except PermissionError as exc:
            logger.warning("Cannot signal stale agent process pid=%d: %s", proc.pid, exc)
            continue
        signalled += 1
        logger.info(
            "Sent SIGTERM to orphaned agent CLI pid=%d ppid=%d cmd=%.180s",
            proc.pid, proc.ppid, proc.args,
        )
    return signalled
