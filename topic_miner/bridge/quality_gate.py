# FILE: topic_miner/bridge/quality_gate.py
"""Citation completeness gate.

Counts every required citation key (app, core_loop, each screen, command and
table by name, each acceptance test by index) and fails when any is empty
(require_non_empty) or the cited ratio is below min_coverage_ratio.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from topic_miner.bridge.canonical_schemas import CanonicalDocument


@dataclass(frozen=True)
class QualityGateConfig:
    require_non_empty: bool = True
    min_coverage_ratio: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "require_non_empty": self.require_non_empty,
            "min_coverage_ratio": self.min_coverage_ratio,
        }


@dataclass
class Coverage:
    total: int
    cited: int
    ratio: float

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "cited": self.cited, "ratio": self.ratio}


@dataclass
class QualityGateResult:
    ok: bool
    empty_fields: List[str]
    coverage: Coverage
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "empty_fields": list(self.empty_fields),
            "coverage": self.coverage.to_dict(),
            "notes": list(self.notes),
        }


def check_quality(doc: CanonicalDocument, config: QualityGateConfig = QualityGateConfig()) -> QualityGateResult:
    empty_fields: List[str] = []
    total = 0
    cited = 0
    for key, ids in doc.citation_entries():
        total += 1
        if ids:
            cited += 1
        else:
            empty_fields.append(key)

    ratio = round(cited / total, 4) if total > 0 else 1.0
    ok = True
    notes: List[str] = []

    if config.require_non_empty and empty_fields:
        ok = False
        notes.append("require_non_empty=true and empty citation fields found")

    if ratio < config.min_coverage_ratio:
        ok = False
        notes.append(f"coverage ratio {ratio} below threshold {config.min_coverage_ratio}")

    return QualityGateResult(
        ok=ok,
        empty_fields=empty_fields,
        coverage=Coverage(total=total, cited=cited, ratio=ratio),
        notes=notes,
    )


__all__ = ["QualityGateConfig", "QualityGateResult", "Coverage", "check_quality"]
