# FILE: topic_miner/bridge/errors.py
"""Exceptions raised inside the bridge.

They never leave run_bridge(): the orchestrator turns them into failed
StageResult entries.
"""

from __future__ import annotations

from typing import List, Optional


class BridgeError(Exception):
    """Base class for bridge errors."""


class ParseError(BridgeError):
    """Raw model text did not contain a JSON document."""


class SchemaError(BridgeError):
    """Document failed wire, canonical or patch schema validation."""

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.issues: List[str] = list(issues or [])


class RepairError(BridgeError):
    """Citation patch could not be obtained from the model."""


def format_validation_issues(exc, limit: int = 10) -> List[str]:
    """Flatten a pydantic ValidationError into 'loc: msg' strings."""
    issues = []
    for err in exc.errors()[:limit]:
        loc = ".".join(str(part) for part in err.get("loc", ()))
        issues.append(f"{loc or '<root>'}: {err.get('msg', 'invalid')}")
    return issues
