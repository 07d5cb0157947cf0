"""Strip agent attribution boilerplate from smart-commit output.

Smart-commit sessions ask the CLI to write a commit; the signature
banners and co-author trailers it adds are removed both from the
streamed records and from the resulting commit message.
"""
from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_SIGNATURE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"🤖\s*Generated with \[Claude Code\]\([^)]+\)", re.IGNORECASE),
    re.compile(r"Generated with \[Claude Code\]\([^)]+\)", re.IGNORECASE),
    re.compile(r"🤖\s*Generated with Claude Code", re.IGNORECASE),
    re.compile(r"Co-Authored-By:\s*Claude\s*<[^>]+>", re.IGNORECASE),
    re.compile(r"Co-Authored-By:\s*Claude\s*", re.IGNORECASE),
    re.compile(r"^[ \t]*🤖[ \t]*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^[ \t]*Claude[ \t]*$", re.IGNORECASE | re.MULTILINE),
)
_BLANK_RUN_RE = re.compile(r"\n\s*\n\s*\n+")

_SIGNATURE_MARKERS = ("Generated with [Claude Code]", "Co-Authored-By: Claude")


def has_signature(text: str) -> bool:
    """True when ``text`` carries a recognizable agent signature."""
    return any(marker in text for marker in _SIGNATURE_MARKERS)


def _clean_once(text: str) -> str:
    for pattern in _SIGNATURE_PATTERNS:
        text = pattern.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def clean_signatures(text: Any) -> Any:
    """Remove signature boilerplate from a string.

    Non-strings pass through untouched. Substitution repeats until
    nothing changes, so a removal that exposes a new match is handled
    and ``clean_signatures(clean_signatures(x)) == clean_signatures(x)``.
    """
    if not isinstance(text, str) or not text:
        return text
    cleaned = _clean_once(text)
    while True:
        again = _clean_once(cleaned)
        if again == cleaned:
            return cleaned
        cleaned = again


def _clean_field(container: dict[str, Any], key: str, label: str) -> None:
    value = container.get(key)
    if not isinstance(value, str) or not value:
        return
    cleaned = clean_signatures(value)
    if cleaned != value:
        container[key] = cleaned
        logger.debug("[SmartCommit] Cleaned signatures from %s", label)


def sanitize_record(record: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a structured CLI record with signatures removed.

    Covers the top-level ``text``, ``stdout`` and ``stderr`` fields,
    ``message.content`` (string or list of text parts) and
    ``tool_result.output``.
    """
    # Only the containers on the cleaned paths are copied; nested payloads
    # of arbitrary depth are shared with the input, never walked.
    cleaned = dict(record)

    for key in ("stdout", "stderr", "text"):
        _clean_field(cleaned, key, key)

    message = cleaned.get("message")
    if isinstance(message, dict):
        message = cleaned["message"] = dict(message)
        content = message.get("content")
        if isinstance(content, list):
            content = message["content"] = [
                dict(part) if isinstance(part, dict) else part for part in content
            ]
            for part in content:
                if isinstance(part, dict) and part.get("type") == "text":
                    _clean_field(part, "text", "message content array")
        else:
            _clean_field(message, "content", "message content string")

    tool_result = cleaned.get("tool_result")
    if isinstance(tool_result, dict):
        tool_result = cleaned["tool_result"] = dict(tool_result)
        _clean_field(tool_result, "output", "tool result output")

    return cleaned
