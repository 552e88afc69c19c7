"""JSON recovery from free-form completion text.

Completions nominally contain one JSON value but arrive wrapped in prose,
code fences, or both. Candidates are tried in a fixed order and the first
one that parses wins, so a given text always yields the same value:

1. The trimmed full text
2. Every fenced code-block body, in order of appearance
3. For every ``{`` or ``[`` in the text, the substring up to its balanced
   closing bracket (string-aware, honoring backslash escapes)
"""

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger(__name__)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

_CLOSERS = {"{": "}", "[": "]"}

# Sentinel distinguishing "did not parse" from a parsed JSON null
_NO_VALUE = object()


def extract_fenced_blocks(text: str) -> list[str]:
    """Return the non-empty bodies of all fenced code blocks."""
    blocks = []
    for match in _FENCED_BLOCK_RE.finditer(text):
        body = match.group(1).strip()
        if body:
            blocks.append(body)
    return blocks


def find_balanced_end(text: str, start: int) -> int:
    """Index of the bracket closing the one at ``start``, or -1.

    Brackets inside double-quoted strings are ignored.
    """
    opener = text[start]
    closer = _CLOSERS[opener]
    depth = 0
    in_string = False
    escaping = False

    for i in range(start, len(text)):
        ch = text[i]

        if in_string:
            if escaping:
                escaping = False
            elif ch == "\\":
                escaping = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
            continue

        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1

        if depth == 0:
            return i

    return -1


def extract_balanced_candidates(text: str) -> list[str]:
    """Return every balanced ``{...}`` / ``[...]`` substring, by start position."""
    results = []
    for i, ch in enumerate(text):
        if ch not in _CLOSERS:
            continue
        end = find_balanced_end(text, i)
        if end != -1:
            results.append(text[i : end + 1])
    return results


def iter_candidates(text: str) -> Iterator[str]:
    """Yield candidate substrings in recovery order."""
    yield text
    yield from extract_fenced_blocks(text)
    yield from extract_balanced_candidates(text)


def _try_parse(candidate: str) -> Any:
    candidate = candidate.strip()
    if not candidate:
        return _NO_VALUE
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return _NO_VALUE


def recover_json(content: str | None) -> Any | None:
    """Recover the first parseable JSON value from completion text.

    Args:
        content: Raw completion text

    Returns:
        The parsed value, or None if no candidate parses.
    """
    text = str(content or "").strip()
    if not text:
        return None

    for candidate in iter_candidates(text):
        value = _try_parse(candidate)
        if value is not _NO_VALUE:
            return value

    return None
