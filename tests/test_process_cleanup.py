from __future__ import annotations

import signal
from unittest.mock import patch

from agentbridge.shared.services.process_cleanup import (
    ProcessInfo,
    cleanup_stale_agent_processes,
    find_stale_agent_processes,
    parse_process_table,
)

STREAM_ARGS = "claude --print hi --output-format stream-json --verbose"
MODULE = "agentbridge.shared.services.process_cleanup"


def _table(*procs: ProcessInfo) -> dict[int, ProcessInfo]:
    return {p.pid: p for p in procs}


def test_parse_process_table():
    table = parse_process_table(
        "    1     0 /sbin/init\n"
        "  100     1 claude --print 'two words' --output-format stream-json\n"
        "garbage line\n"
        "\n"
        "  abc    1 nope\n"
    )
    assert sorted(table) == [1, 100]
    assert table[100].args == "claude --print 'two words' --output-format stream-json"
    assert table[100].is_orphan


def test_matches_only_spawned_shape():
    def stale(args, command="claude"):
        table = _table(ProcessInfo(pid=100, ppid=1, args=args))
        return [p.pid for p in find_stale_agent_processes(table, command, 12345)]

    assert stale(STREAM_ARGS) == [100]
    assert stale("/usr/bin/claude --output-format  stream-json", "/usr/bin/claude") == [100]
    assert stale("claude --print hi") == []
    assert stale("claudette --output-format stream-json") == []


def test_finds_only_orphans_without_server_ancestor():
    table = _table(
        ProcessInfo(pid=1, ppid=0, args="init"),
        ProcessInfo(pid=100, ppid=1, args=STREAM_ARGS),
        ProcessInfo(pid=200, ppid=999, args=STREAM_ARGS),
        ProcessInfo(pid=300, ppid=50, args=STREAM_ARGS),
        ProcessInfo(pid=50, ppid=1, args="python -m agentbridge.app --server"),
        ProcessInfo(pid=400, ppid=1, args="vim notes.txt"),
    )
    stale = find_stale_agent_processes(table, "claude", 12345)
    assert sorted(p.pid for p in stale) == [100, 200]


def test_cleanup_signals_stale_processes(caplog):
    table = _table(
        ProcessInfo(pid=100, ppid=1, args=STREAM_ARGS),
        ProcessInfo(pid=200, ppid=999, args=STREAM_ARGS),
    )
    caplog.set_level("INFO", logger=MODULE)
    with patch(f"{MODULE}._read_process_table", return_value=table), \
            patch(f"{MODULE}.os.kill") as kill:
        assert cleanup_stale_agent_processes(current_pid=12345) == 2

    assert sorted(c.args for c in kill.call_args_list) == [
        (100, signal.SIGTERM),
        (200, signal.SIGTERM),
    ]
    assert "Sent SIGTERM to orphaned agent CLI pid=100" in caplog.text


def test_vanished_process_is_skipped():
    table = _table(ProcessInfo(pid=100, ppid=1, args=STREAM_ARGS))
    with patch(f"{MODULE}._read_process_table", return_value=table), \
            patch(f"{MODULE}.os.kill", side_effect=ProcessLookupError):
        assert cleanup_stale_agent_processes(current_pid=12345) == 0


def test_permission_error_is_logged(caplog):
    table = _table(ProcessInfo(pid=100, ppid=1, args=STREAM_ARGS))
    with patch(f"{MODULE}._read_process_table", return_value=table), \
            patch(f"{MODULE}.os.kill", side_effect=PermissionError("denied")):
        assert cleanup_stale_agent_processes(current_pid=12345) == 0
    assert "Cannot signal stale agent process pid=100" in caplog.text
