# FILE: topic_miner/failures.py
"""
Failure classification for repos that end without a canonical document.

Observability only: the kind never changes control flow, it is recorded
with the repo outcome (and a FAIL_CLASSIFIED event) so runs can be
compared by failure histogram.

PRECEDENCE (first match wins):
1. BUDGET_CUTOFF               budget oracle stopped the repo
2. FETCH_FAILED                fetch error flag, or "github api"/"fetch" in error
3. EVIDENCE_GATE_UNKNOWN_ID    final.unknown_ids_count > 0
4. QUALITY_GATE_EMPTY_CITATIONS final.empty_fields_count > 0
5. QUALITY_GATE_LOW_COVERAGE   final.coverage_ratio < 1
6. BRIDGE_WIRE_INVALID         failed wire_validate stage, or "wire validation" in error
7. BRIDGE_CANONICAL_INVALID    failed canonical_validate stage, or "canonical" in error
8. REPAIR_EXHAUSTED            >= 2 repair stages and final not ok
9. EVIDENCE_INSUFFICIENT       gap iterations used up, >= 5 evidence added, final not ok
10. UNKNOWN
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from topic_miner.bridge.report import BridgeReport, StageName

logger = logging.getLogger(__name__)

REPAIR_EXHAUSTED_MIN_STAGES = 2
EVIDENCE_INSUFFICIENT_MIN_ADDED = 5


class FailKind(str, Enum):
    FETCH_FAILED = "FETCH_FAILED"
    EVIDENCE_INSUFFICIENT = "EVIDENCE_INSUFFICIENT"
    BRIDGE_WIRE_INVALID = "BRIDGE_WIRE_INVALID"
    BRIDGE_CANONICAL_INVALID = "BRIDGE_CANONICAL_INVALID"
    EVIDENCE_GATE_UNKNOWN_ID = "EVIDENCE_GATE_UNKNOWN_ID"
    QUALITY_GATE_EMPTY_CITATIONS = "QUALITY_GATE_EMPTY_CITATIONS"
    QUALITY_GATE_LOW_COVERAGE = "QUALITY_GATE_LOW_COVERAGE"
    REPAIR_EXHAUSTED = "REPAIR_EXHAUSTED"
    BUDGET_CUTOFF = "BUDGET_CUTOFF"
    UNKNOWN = "UNKNOWN"


@dataclass
class FailureClassification:
    kind: FailKind
    message: str
    hints: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "hints": list(self.hints)}


def classify_failure(
    error: Optional[str] = None,
    report: Optional[BridgeReport] = None,
    is_fetch_error: bool = False,
    budget_cutoff: bool = False,
    gap_iters_used: int = 0,
    max_gap_iters: int = 0,
    evidence_added_total: int = 0,
) -> FailureClassification:
    text = (error or "").lower()
    final = report.final if report is not None else None

    if budget_cutoff:
        return FailureClassification(
            FailKind.BUDGET_CUTOFF,
            "Stopped by budget policy.",
            ["Increase budget limits or reduce max repos per run"],
        )

    if is_fetch_error or "github api" in text or "fetch" in text:
        return FailureClassification(
            FailKind.FETCH_FAILED,
            error or "Fetch failed",
            ["Check GITHUB_TOKEN scopes", "Check API rate limit", "Retry later"],
        )

    if final is not None and (final.unknown_ids_count or 0) > 0:
        return FailureClassification(
            FailKind.EVIDENCE_GATE_UNKNOWN_ID,
            "Unknown evidence ids in citations.",
            ["Ensure citations ids are copied from allowedEvidenceIds only"],
        )

    if final is not None and (final.empty_fields_count or 0) > 0:
        return FailureClassification(
            FailKind.QUALITY_GATE_EMPTY_CITATIONS,
            "Some required citation fields are empty.",
            [
                "Improve synthesizer citations prompt",
                "Add citationHints",
                "Check evidence lines formatting",
            ],
        )

    if final is not None and final.coverage_ratio is not None and final.coverage_ratio < 1:
        return FailureClassification(
            FailKind.QUALITY_GATE_LOW_COVERAGE,
            "Coverage ratio below required threshold.",
            ["Increase citation coverage and keep all key fields non-empty"],
        )

    if (report is not None and report.has_failed_stage(StageName.WIRE_VALIDATE)) or "wire validation" in text:
        return FailureClassification(
            FailKind.BRIDGE_WIRE_INVALID,
            "Wire schema validation failed.",
            ["Constrain synthesizer output shape more tightly"],
        )

    if (report is not None and report.has_failed_stage(StageName.CANONICAL_VALIDATE)) or "canonical" in text:
        return FailureClassification(
            FailKind.BRIDGE_CANONICAL_INVALID,
            "Canonical schema validation failed.",
            ["Normalize citations map and ensure all canonical required keys exist"],
        )

    repair_stages = len(report.stages_named(StageName.REPAIR)) if report is not None else 0
    if repair_stages >= REPAIR_EXHAUSTED_MIN_STAGES and final is not None and not final.ok:
        return FailureClassification(
            FailKind.REPAIR_EXHAUSTED,
            "Repair attempts exhausted.",
            ["Tighten synthesizer template", "Increase evidence quality before synthesis"],
        )

    if (
        gap_iters_used >= max_gap_iters
        and evidence_added_total >= EVIDENCE_INSUFFICIENT_MIN_ADDED
        and final is not None
        and not final.ok
    ):
        return FailureClassification(
            FailKind.EVIDENCE_INSUFFICIENT,
            "Gap loop exhausted with insufficient evidence coverage.",
            [
                "Increase issuesExtraLimit",
                "Enable readmeFallback",
                "Raise evidenceMaxTotal slightly",
            ],
        )

    message = error or (final.reason if final is not None else None) or "Unknown failure"
    return FailureClassification(
        FailKind.UNKNOWN,
        message,
        ["Inspect report artifact and llm_audits for details"],
    )


__all__ = ["FailKind", "FailureClassification", "classify_failure"]
