# FILE: topic_miner/llm/json_extract.py
"""Extract JSON values from model output that may contain markdown or prose.

Used by the bridge parse stage and by the citation patch repair step.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)

# Sentinel for "nothing found", since null is a valid JSON value
NOT_FOUND = object()


def _balanced_slice(text: str, start: int) -> Optional[str]:
    """Return text[start:end] where end closes the bracket opened at start."""
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escape = False

    for i, char in enumerate(text[start:], start):
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_value(raw_output: Any, *, objects_only: bool = False) -> Any:
    """Extract the first JSON value from raw model output.

    Handles:
    - already-decoded values (returned unchanged)
    - clean JSON
    - JSON in ```json code fences
    - JSON with leading/trailing prose

    Returns the decoded value, or NOT_FOUND.
    """
    if not isinstance(raw_output, str):
        return raw_output

    text = raw_output.strip()
    if not text:
        return NOT_FOUND

    # Try 1: Direct parse
    try:
        value = json.loads(text)
        if not objects_only or isinstance(value, dict):
            return value
    except json.JSONDecodeError:
        pass

    # Try 2: Extract from code fence
    fence_match = _FENCE_RE.search(text)
    if fence_match:
        try:
            value = json.loads(fence_match.group(1).strip())
            if not objects_only or isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass

    # Try 3: Find bracket boundaries
    openers = "{" if objects_only else "{["
    starts = [i for i in (text.find(c) for c in openers) if i >= 0]
    for start in sorted(starts):
        chunk = _balanced_slice(text, start)
        if chunk is None:
            continue
        try:
            return json.loads(chunk)
        except json.JSONDecodeError:
            continue

    return NOT_FOUND


def extract_json_from_llm_output(raw_output: str) -> Optional[dict]:
    """Extract the first JSON object from model output, or None."""
    value = extract_json_value(raw_output, objects_only=True)
    if value is NOT_FOUND or not isinstance(value, dict):
        return None
    return value


__all__ = [
    "NOT_FOUND",
    "extract_json_value",
    "extract_json_from_llm_output",
]
