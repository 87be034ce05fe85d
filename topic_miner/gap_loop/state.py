# FILE: topic_miner/gap_loop/state.py
"""Gap loop configuration, per-repo state and outcome records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from topic_miner.bridge.canonical_schemas import CanonicalDocument
from topic_miner.bridge.orchestrator import DEFAULT_MAX_REPAIR_ATTEMPTS
from topic_miner.bridge.quality_gate import QualityGateConfig
from topic_miner.bridge.report import BridgeReport
from topic_miner.evidence import DEFAULT_EVIDENCE_MAX_TOTAL
from topic_miner.failures import FailureClassification

ITER_STRATEGIES = ("synth_only", "bridge_only", "full")


@dataclass(frozen=True)
class GapLoopConfig:
    max_iters: int = 2
    max_repair_attempts: int = DEFAULT_MAX_REPAIR_ATTEMPTS
    evidence_max_total: int = DEFAULT_EVIDENCE_MAX_TOTAL
    unstable_min_evidence: int = 10
    pruning_enabled: bool = True
    iter2_plus_strategy: str = "synth_only"
    skip_scout_inventor_when_iter_gt1: bool = True
    skip_engineer_when_iter_gt1: bool = True
    rerun_synth_without_enrich_once: bool = True
    quality: QualityGateConfig = field(default_factory=QualityGateConfig)

    def __post_init__(self):
        object.__setattr__(self, "max_iters", max(1, int(self.max_iters)))
        if self.iter2_plus_strategy not in ITER_STRATEGIES:
            raise ValueError(f"unknown iteration strategy: {self.iter2_plus_strategy}")

    def strategy_for(self, iteration: int) -> str:
        if iteration >= 2 and self.pruning_enabled:
            return self.iter2_plus_strategy
        return "synth_only"


@dataclass
class GapLoopState:
    """Mutable per-repo bookkeeping; discarded once the outcome is recorded."""
    repo: str
    evidence_total_initial: int = 0
    evidence_total_final: int = 0
    iteration: int = 0
    evidence_added_total: int = 0
    last_error: Optional[str] = None
    last_raw: Optional[str] = None
    reran_without_enrich: bool = False
    fetch_failed: bool = False
    reports: List[BridgeReport] = field(default_factory=list)

    @property
    def attempts_used(self) -> int:
        """Gap iterations consumed (not bridge repair attempts)."""
        return self.iteration

    @property
    def last_report(self) -> Optional[BridgeReport]:
        return self.reports[-1] if self.reports else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo": self.repo,
            "attempts_used": self.attempts_used,
            "evidence_total_initial": self.evidence_total_initial,
            "evidence_total_final": self.evidence_total_final,
            "evidence_added_total": self.evidence_added_total,
            "last_error": self.last_error,
            "fetch_failed": self.fetch_failed,
        }


@dataclass
class GapLoopOutcome:
    repo: str
    success: bool
    state: GapLoopState
    canonical: Optional[CanonicalDocument] = None
    final_report: Optional[BridgeReport] = None
    classification: Optional[FailureClassification] = None

    @property
    def reports(self) -> List[BridgeReport]:
        return self.state.reports

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo": self.repo,
            "success": self.success,
            "gap_loop": self.state.to_dict(),
            "final_report": self.final_report.to_dict() if self.final_report is not None else None,
            "classification": self.classification.to_dict() if self.classification is not None else None,
        }


@dataclass
class RunSummary:
    outcomes: List[GapLoopOutcome] = field(default_factory=list)
    fail_kinds: Dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repos": len(self.outcomes),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "fail_kinds": dict(self.fail_kinds),
            "stop_reason": self.stop_reason,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


__all__ = ["ITER_STRATEGIES", "GapLoopConfig", "GapLoopState", "GapLoopOutcome", "RunSummary"]
