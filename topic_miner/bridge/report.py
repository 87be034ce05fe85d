# FILE: topic_miner/bridge/report.py
"""Bridge audit report: ordered stage results plus a final verdict.

One BridgeReport is created per bridge invocation and frozen before it is
returned. to_dict() is the persisted report contract.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class StageName(str, Enum):
    PARSE = "parse"
    WIRE_VALIDATE = "wire_validate"
    NORMALIZE = "normalize"
    CANONICAL_VALIDATE = "canonical_validate"
    EVIDENCE_GATE = "evidence_gate"
    QUALITY_GATE = "quality_gate"
    REPAIR = "repair"
    INTERNAL = "internal"


class BridgeErrorCode(str, Enum):
    PARSE_FAILED = "PARSE_FAILED"
    WIRE_VALIDATE_FAILED = "WIRE_VALIDATE_FAILED"
    CANONICAL_VALIDATE_FAILED = "CANONICAL_VALIDATE_FAILED"
    UNKNOWN_EVIDENCE_IDS = "UNKNOWN_EVIDENCE_IDS"
    QUALITY_GATE_FAILED = "QUALITY_GATE_FAILED"
    REPAIR_PATCH_UNKNOWN_ID = "REPAIR_PATCH_UNKNOWN_ID"
    REPAIR_PATCH_FAILED = "REPAIR_PATCH_FAILED"
    BRIDGE_INTERNAL_ERROR = "BRIDGE_INTERNAL_ERROR"


def _value(x: Any) -> Any:
    return x.value if isinstance(x, Enum) else x


@dataclass
class StageResult:
    name: str
    ok: bool
    error_code: Optional[str] = None
    error_detail: Optional[str] = None
    stats: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.name = _value(self.name)
        self.error_code = _value(self.error_code)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "ok": self.ok, "stats": dict(self.stats)}
        if self.error_code is not None:
            out["error_code"] = self.error_code
        if self.error_detail is not None:
            out["error_detail"] = self.error_detail
        return out


@dataclass
class FinalResult:
    ok: bool = False
    reason: Optional[str] = None
    unknown_ids_count: Optional[int] = None
    empty_fields_count: Optional[int] = None
    coverage_ratio: Optional[float] = None
    attempts_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": self.ok, "attempts_used": self.attempts_used}
        for key in ("reason", "unknown_ids_count", "empty_fields_count", "coverage_ratio"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass
class BridgeReport:
    repo_id: str
    iteration: Optional[int] = None
    stages: Sequence[StageResult] = field(default_factory=list)
    final: FinalResult = field(default_factory=FinalResult)
    fixes: Sequence[str] = field(default_factory=list)
    warnings: Sequence[str] = field(default_factory=list)
    frozen: bool = False

    def add_stage(self, stage: StageResult) -> StageResult:
        if self.frozen:
            raise RuntimeError("bridge report is frozen")
        self.stages.append(stage)
        return stage

    def freeze(self) -> "BridgeReport":
        self.stages = tuple(self.stages)
        self.fixes = tuple(self.fixes)
        self.warnings = tuple(self.warnings)
        self.frozen = True
        return self

    # -------------------------------------------------------------------------
    # Queries used by the failure classifier and focus hints
    # -------------------------------------------------------------------------

    def stages_named(self, name: Any) -> List[StageResult]:
        name = _value(name)
        return [s for s in self.stages if s.name == name]

    def has_failed_stage(self, name: Any) -> bool:
        return any(not s.ok for s in self.stages_named(name))

    def error_text(self) -> str:
        """error_code + error_detail of every stage, space-joined."""
        return " ".join(f"{s.error_code or ''} {s.error_detail or ''}" for s in self.stages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_id": self.repo_id,
            "iteration": self.iteration,
            "stages": [s.to_dict() for s in self.stages],
            "final": self.final.to_dict(),
            "normalize_report": {"fixes": list(self.fixes), "warnings": list(self.warnings)},
        }


__all__ = ["StageName", "BridgeErrorCode", "StageResult", "FinalResult", "BridgeReport"]
