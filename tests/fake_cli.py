"""Stand-in for the agent CLI used by the end-to-end tests.

Behaviour is picked by a keyword in the --print instruction. Without
--print it runs interactively, echoing each stdin line as a record.
If FAKE_CLI_ARGV_FILE is set, the received argv is written there.
"""
import json
import os
import sys
import time

MARKER = "Claude AI usage limit reached|"


def emit(record):
    sys.stdout.write(json.dumps(record) + "\n")
    sys.stdout.flush()


def main():
    args = sys.argv[1:]
    argv_file = os.environ.get("FAKE_CLI_ARGV_FILE")
    if argv_file:
        with open(argv_file, "w", encoding="utf-8") as f:
            json.dump(args, f)

    prompt = args[args.index("--print") + 1] if "--print" in args else None

    if prompt is None:
        for line in sys.stdin:
            emit({"type": "echo", "text": line.rstrip("\n"), "session_id": "ext-interactive"})
        return 0

    if prompt.startswith("hello"):
        emit({"type": "system", "subtype": "init", "session_id": "ext-hello"})
        emit({
            "type": "assistant",
            "session_id": "ext-hello",
            "message": {"content": [{"type": "text", "text": "Hi there"}]},
        })
        sys.stdout.write("plain text line\n")
        sys.stdout.flush()
        time.sleep(0.2)
        sys.stderr.write("a warning\n")
        sys.stderr.flush()
        emit({"type": "result", "session_id": "ext-hello", "result": "done"})
        return 0

    if prompt.startswith("fail"):
        sys.stderr.write("boom\n")
        sys.stderr.flush()
        return 3

    if prompt.startswith("limit"):
        emit({"type": "system", "session_id": "ext-limit"})
        limit = {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": MARKER + "1700000000"}]},
        }
        after = {"type": "assistant", "message": {"content": "should never arrive"}}
        sys.stdout.write(json.dumps(limit) + "\n" + json.dumps(after) + "\n")
        sys.stdout.flush()
        time.sleep(30)
        emit(after)
        return 0

    if prompt.startswith("raw-limit"):
        sys.stdout.write(MARKER + "1700000000\nnot delivered\n")
        sys.stdout.flush()
        time.sleep(30)
        return 0

    if prompt.startswith("sleep"):
        emit({"type": "system", "subtype": "init", "session_id": "ext-sleep"})
        time.sleep(30)
        return 0

    if prompt.startswith("chatter"):
        sys.stderr.write("progress start\n")
        sys.stderr.flush()
        time.sleep(0.3)
        emit({"type": "system", "session_id": "ext-chatter"})
        for i in range(100):
            sys.stderr.write(f"progress {i}\n")
            sys.stderr.flush()
            time.sleep(0.05)
        return 0

    if prompt.startswith("split"):
        line = json.dumps({
            "type": "assistant",
            "session_id": "ext-split",
            "message": {"content": [{"type": "text", "text": "x" * 200000}]},
        }) + "\n"
        half = len(line) // 2
        sys.stdout.write(line[:half])
        sys.stdout.flush()
        time.sleep(0.1)
        sys.stdout.write(line[half:])
        sys.stdout.flush()
        return 0

    if prompt.startswith("signature"):
        emit({
            "type": "assistant",
            "session_id": "ext-signature",
            "message": {"content": [{
                "type": "text",
                "text": (
                    "Committed.\n\n\U0001f916 Generated with "
                    "[Claude Code](https://claude.ai/code)\n\n"
                    "Co-Authored-By: Claude <noreply@anthropic.com>"
                ),
            }]},
        })
        return 0

    if prompt.startswith("images"):
        emit({"type": "result", "session_id": "ext-images", "prompt": prompt})
        return 0

    emit({"type": "result", "session_id": "ext-default", "prompt": prompt})
    return 0


if __name__ == "__main__":
    sys.exit(main())
