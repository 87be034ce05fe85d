# FILE: topic_miner/events.py
"""Structured pipeline event ledger.

Every event is kept in memory, mirrored to the `logging` logger at its
level, and (when a path is configured) appended as one ndjson line with
sorted keys and compact separators.

Event names in use:
  GAP_ITER_START, GAP_FAIL, GAP_SUCCESS, GAP_ENRICH_TRIGGER,
  EVIDENCE_SELECTED, PRUNE_ITER_STRATEGY, PRUNE_SKIP_ROLE,
  PRUNE_RERUN_SYNTH_WITHOUT_ENRICH, REPAIR_PATCH_START, REPAIR_PATCH_OK,
  REPAIR_PATCH_FAIL, REPAIR_PATCH_APPLIED, BUDGET_LLM_CALL_RECORDED,
  BUDGET_STOP_RUN, BUDGET_STOP_REPO, FAIL_CLASSIFIED
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _utc_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class MinerEvent:
    event: str
    node: str = "miner"
    level: str = "info"
    repo: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    ts: str = field(default_factory=_utc_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "node": self.node,
            "level": self.level,
            "event": self.event,
            "repo": self.repo,
            "data": self.data,
        }


class EventLedger:
    """In-memory event list with optional ndjson persistence."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.events: List[MinerEvent] = []

    def emit(
        self,
        event: str,
        *,
        level: str = "info",
        node: str = "miner",
        repo: Optional[str] = None,
        **data: Any,
    ) -> MinerEvent:
        record = MinerEvent(event=event, node=node, level=level, repo=repo, data=data)
        self.events.append(record)
        logger.log(_LEVELS.get(level, logging.INFO), f"[{node}] {event} repo={repo} {data}")
        if self.path:
            self._append(record)
        return record

    def _append(self, record: MinerEvent) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        line = json.dumps(record.to_dict(), ensure_ascii=False, separators=(",", ":"), sort_keys=True, default=str)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def named(self, event: str) -> List[MinerEvent]:
        return [e for e in self.events if e.event == event]

    def names(self) -> List[str]:
        return [e.event for e in self.events]

    def __len__(self) -> int:
        return len(self.events)


def read_events(path: str) -> List[Dict[str, Any]]:
    """Read an ndjson event file written by EventLedger. Bad lines are skipped."""
    events: List[Dict[str, Any]] = []
    if not os.path.exists(path):
        return events
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning(f"[events] skipping malformed line in {path}")
    return events


__all__ = ["MinerEvent", "EventLedger", "read_events"]
