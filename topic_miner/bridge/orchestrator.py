# FILE: topic_miner/bridge/orchestrator.py
"""Spec bridge: raw model text -> grounded canonical document.

State machine (one StageResult per step):

  parse -> wire_validate -> normalize -> canonical_validate
        -> {evidence_gate, quality_gate}
        -> [repair -> canonical_validate -> {evidence_gate, quality_gate}]*

- parse / wire_validate / canonical_validate failures are terminal
- both gates passing ends the run successfully
- otherwise a citations patch is requested for the missing keys; a valid
  patch is merged and the attempt counter advances
- an invalid patch (ungrounded ids) or a failed repair call is recorded and
  the same attempt is retried; every repair call draws from one ceiling of
  max_repair_attempts calls, so the loop always terminates
- an optional budget check runs before every repair call; a stop ends the
  run with reason "budget cutoff"
- exceptions escaping the stages are recorded as BRIDGE_INTERNAL_ERROR
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from topic_miner.bridge.canonical_schemas import CanonicalDocument, validate_canonical
from topic_miner.bridge.errors import ParseError, RepairError, SchemaError
from topic_miner.bridge.evidence_gate import EvidenceGateResult, check_evidence
from topic_miner.bridge.normalize import normalize_wire
from topic_miner.bridge.patch_ops import apply_citations_patch, compute_missing_citation_keys, unknown_ids_in_patch
from topic_miner.bridge.quality_gate import QualityGateConfig, QualityGateResult, check_quality
from topic_miner.bridge.repair import repair_citations_with_patch
from topic_miner.bridge.report import BridgeErrorCode, BridgeReport, FinalResult, StageName, StageResult
from topic_miner.bridge.wire_schemas import validate_wire
from topic_miner.events import EventLedger
from topic_miner.llm.client import ChatJSON
from topic_miner.llm.json_extract import NOT_FOUND, extract_json_value

logger = logging.getLogger(__name__)

DEFAULT_MAX_REPAIR_ATTEMPTS = 2

REASON_EVIDENCE = "evidence gate failed"
REASON_QUALITY = "quality gate failed"
REASON_REPAIR_EXHAUSTED = "repair exhausted"
REASON_BUDGET_CUTOFF = "budget cutoff"

# Returns a stop reason, or None to keep going
BudgetCheck = Callable[[], Optional[str]]


# =============================================================================
# Input / output
# =============================================================================

@dataclass(frozen=True)
class BridgeInput:
    repo_id: str
    raw_model_text: Any
    allowed_evidence_ids: Tuple[str, ...] = ()
    evidence_lines: Tuple[str, ...] = ()
    max_repair_attempts: int = DEFAULT_MAX_REPAIR_ATTEMPTS
    quality_config: QualityGateConfig = field(default_factory=QualityGateConfig)
    iteration: Optional[int] = None

    def __post_init__(self):
        # Snapshot the allow-list so the caller can keep mutating its own copy
        object.__setattr__(self, "allowed_evidence_ids", tuple(self.allowed_evidence_ids))
        object.__setattr__(self, "evidence_lines", tuple(self.evidence_lines))
        object.__setattr__(self, "max_repair_attempts", max(0, int(self.max_repair_attempts)))


@dataclass
class BridgeResult:
    ok: bool
    report: BridgeReport
    canonical: Optional[CanonicalDocument] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "canonical": self.canonical.to_disk_dict() if self.canonical is not None else None,
            "report": self.report.to_dict(),
        }


def _parse_raw(raw: Any) -> Any:
    value = extract_json_value(raw)
    if value is NOT_FOUND:
        raise ParseError("No JSON found in raw text")
    return value


def _detail(err: Exception) -> str:
    issues = getattr(err, "issues", None)
    if issues:
        return "; ".join(issues)
    return str(err)


# =============================================================================
# Stage runner
# =============================================================================

class _BridgeRun:
    """One bridge invocation. Owns the report until it is frozen."""

    def __init__(
        self,
        inp: BridgeInput,
        llm: ChatJSON,
        events: Optional[EventLedger],
        budget_check: Optional[BudgetCheck] = None,
    ):
        self.inp = inp
        self.llm = llm
        self.events = events
        self.budget_check = budget_check
        self.report = BridgeReport(repo_id=inp.repo_id, iteration=inp.iteration)

    def _stage(self, name: StageName, ok: bool, code: Optional[BridgeErrorCode] = None,
               detail: Optional[str] = None, **stats: Any) -> StageResult:
        return self.report.add_stage(
            StageResult(name=name, ok=ok, error_code=code, error_detail=detail, stats=stats)
        )

    def _fail(self, reason: str, attempts_used: int, **counts: Any) -> None:
        self.report.final = FinalResult(ok=False, reason=reason, attempts_used=attempts_used, **counts)

    async def run(self) -> Optional[CanonicalDocument]:
        inp = self.inp

        try:
            parsed = _parse_raw(inp.raw_model_text)
        except ParseError as e:
            self._stage(StageName.PARSE, False, BridgeErrorCode.PARSE_FAILED, str(e), attempt=0)
            self._fail("parse failed", 0)
            return None
        self._stage(StageName.PARSE, True, attempt=0)

        try:
            wire = validate_wire(parsed)
        except SchemaError as e:
            self._stage(StageName.WIRE_VALIDATE, False, BridgeErrorCode.WIRE_VALIDATE_FAILED, _detail(e), attempt=0)
            self._fail("wire validation failed", 0)
            return None
        self._stage(StageName.WIRE_VALIDATE, True, attempt=0)

        normalized = normalize_wire(wire)
        self.report.fixes = list(normalized.fixes)
        self.report.warnings = list(normalized.warnings)
        self._stage(StageName.NORMALIZE, True, fixes=len(normalized.fixes), warnings=len(normalized.warnings))

        try:
            canonical = validate_canonical(normalized.canonical)
        except SchemaError as e:
            self._stage(StageName.CANONICAL_VALIDATE, False, BridgeErrorCode.CANONICAL_VALIDATE_FAILED,
                        _detail(e), attempt=0)
            self._fail("canonical validation failed", 0)
            return None
        self._stage(StageName.CANONICAL_VALIDATE, True, attempt=0)

        return await self._gate_and_repair(canonical)

    def _run_gates(self, canonical: CanonicalDocument, attempt: int) -> Tuple[EvidenceGateResult, QualityGateResult]:
        evidence = check_evidence(canonical, self.inp.allowed_evidence_ids)
        self._stage(
            StageName.EVIDENCE_GATE, evidence.ok,
            None if evidence.ok else BridgeErrorCode.UNKNOWN_EVIDENCE_IDS,
            None if evidence.ok else ", ".join(evidence.unknown_ids),
            unknown_ids_count=len(evidence.unknown_ids), attempt=attempt,
        )
        quality = check_quality(canonical, self.inp.quality_config)
        self._stage(
            StageName.QUALITY_GATE, quality.ok,
            None if quality.ok else BridgeErrorCode.QUALITY_GATE_FAILED,
            None if quality.ok else ", ".join(quality.empty_fields[:10]) or "; ".join(quality.notes),
            total=quality.coverage.total, cited=quality.coverage.cited, ratio=quality.coverage.ratio,
            empty_fields=len(quality.empty_fields), attempt=attempt,
        )
        return evidence, quality

    async def _gate_and_repair(self, canonical: CanonicalDocument) -> Optional[CanonicalDocument]:
        inp = self.inp
        max_attempts = inp.max_repair_attempts
        attempt = 0
        repair_calls = 0

        while True:
            evidence, quality = self._run_gates(canonical, attempt)
            counts = {
                "unknown_ids_count": len(evidence.unknown_ids),
                "empty_fields_count": len(quality.empty_fields),
                "coverage_ratio": quality.coverage.ratio,
            }
            if evidence.ok and quality.ok:
                self.report.final = FinalResult(ok=True, attempts_used=attempt, **counts)
                return canonical

            gate_reason = REASON_QUALITY if evidence.ok else REASON_EVIDENCE
            missing = compute_missing_citation_keys(canonical)
            if not missing:
                self._fail(gate_reason, attempt, **counts)
                return None
            if attempt >= max_attempts or repair_calls >= max_attempts:
                self._fail(REASON_REPAIR_EXHAUSTED if repair_calls else gate_reason, attempt, **counts)
                return None

            patched = None
            while patched is None and repair_calls < max_attempts:
                stop_reason = self.budget_check() if self.budget_check is not None else None
                if stop_reason:
                    logger.info(f"[bridge] {inp.repo_id} repair stopped by budget: {stop_reason}")
                    self._fail(REASON_BUDGET_CUTOFF, attempt, **counts)
                    return None
                repair_calls += 1
                patched = await self._repair_once(canonical, missing, attempt + 1, repair_calls)

            if patched is None:
                self._fail(REASON_REPAIR_EXHAUSTED, attempt, **counts)
                return None

            try:
                canonical = validate_canonical(patched)
            except SchemaError as e:
                self._stage(StageName.CANONICAL_VALIDATE, False, BridgeErrorCode.CANONICAL_VALIDATE_FAILED,
                            _detail(e), attempt=attempt + 1)
                self._fail("canonical validation failed after repair", attempt + 1, **counts)
                return None
            self._stage(StageName.CANONICAL_VALIDATE, True, attempt=attempt + 1)
            attempt += 1

    async def _repair_once(
        self,
        canonical: CanonicalDocument,
        missing: Sequence[str],
        attempt: int,
        call: int,
    ) -> Optional[CanonicalDocument]:
        inp = self.inp
        stats = {"attempt": attempt, "call": call, "missing_keys_count": len(missing)}
        try:
            outcome = await repair_citations_with_patch(
                self.llm,
                repo_id=inp.repo_id,
                missing_keys=missing,
                allowed_evidence_ids=inp.allowed_evidence_ids,
                evidence_lines=inp.evidence_lines,
                attempt=attempt,
                iteration=inp.iteration,
                events=self.events,
            )
        except RepairError as e:
            self._stage(StageName.REPAIR, False, BridgeErrorCode.REPAIR_PATCH_FAILED, str(e), **stats)
            return None

        unknown = unknown_ids_in_patch(outcome.patch, inp.allowed_evidence_ids)
        if unknown:
            logger.info(f"[bridge] {inp.repo_id} patch rejected, unknown ids: {unknown}")
            self._stage(StageName.REPAIR, False, BridgeErrorCode.REPAIR_PATCH_UNKNOWN_ID, ", ".join(unknown), **stats)
            return None

        patched = apply_citations_patch(canonical, outcome.patch)
        present = outcome.patch.present_keys()
        self._stage(StageName.REPAIR, True, patched_keys=present, **stats)
        if self.events is not None:
            self.events.emit(
                "REPAIR_PATCH_APPLIED", node="bridge", repo=inp.repo_id,
                iter=inp.iteration, attempt=attempt, patched_keys_count=len(present),
            )
        return patched


# =============================================================================
# Entry point
# =============================================================================

async def run_bridge(
    inp: BridgeInput,
    llm: ChatJSON,
    *,
    events: Optional[EventLedger] = None,
    budget_check: Optional[BudgetCheck] = None,
) -> BridgeResult:
    """Run the bridge once. Never raises; failures live in the report.

    budget_check, when given, is consulted before each repair call.
    """
    run = _BridgeRun(inp, llm, events, budget_check)
    canonical: Optional[CanonicalDocument] = None
    try:
        canonical = await run.run()
    except Exception as e:
        logger.exception(f"[bridge] {inp.repo_id} internal error: {e}")
        run.report.add_stage(StageResult(
            name=StageName.INTERNAL,
            ok=False,
            error_code=BridgeErrorCode.BRIDGE_INTERNAL_ERROR,
            error_detail=f"{type(e).__name__}: {e}",
        ))
        run.report.final = FinalResult(
            ok=False,
            reason="bridge internal error",
            attempts_used=run.report.final.attempts_used,
        )
        canonical = None

    report = run.report.freeze()
    ok = bool(report.final.ok and canonical is not None)
    logger.info(
        f"[bridge] {inp.repo_id} iter={inp.iteration} ok={ok} "
        f"attempts_used={report.final.attempts_used} reason={report.final.reason}"
    )
    return BridgeResult(ok=ok, report=report, canonical=canonical if ok else None)


__all__ = [
    "DEFAULT_MAX_REPAIR_ATTEMPTS",
    "REASON_BUDGET_CUTOFF",
    "BudgetCheck",
    "BridgeInput",
    "BridgeResult",
    "run_bridge",
]
