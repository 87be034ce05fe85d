# FILE: topic_miner/bridge/evidence_gate.py
"""Closed-world grounding check: every cited id must be in the allow-list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from topic_miner.bridge.canonical_schemas import CanonicalDocument


@dataclass
class EvidenceGateResult:
    ok: bool
    unknown_ids: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "unknown_ids": list(self.unknown_ids), "notes": list(self.notes)}


def check_evidence(doc: CanonicalDocument, allowed_ids: Iterable[str]) -> EvidenceGateResult:
    """Report cited ids missing from allowed_ids (first-seen order, no duplicates)."""
    allowed = set(allowed_ids)
    unknown = [eid for eid in doc.all_cited_ids() if eid not in allowed]
    notes = ["unknown evidence ids found in citations"] if unknown else []
    return EvidenceGateResult(ok=not unknown, unknown_ids=unknown, notes=notes)


__all__ = ["EvidenceGateResult", "check_evidence"]
