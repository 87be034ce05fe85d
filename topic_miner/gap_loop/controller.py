# FILE: topic_miner/gap_loop/controller.py
"""
Gap loop: synthesize -> bridge, enrich evidence and retry on failure.

PER REPO:
1. Budget oracle consulted before the repo and before every iteration
2. Iteration 1 always synthesizes; later iterations follow the pruning
   strategy (synth_only / full resynthesize, bridge_only reuses the last raw)
3. Bridge success ends the loop
4. On failure, a focus hint is derived from the report; it biases the next
   evidence selection and drives enrichment
5. A failure that looks like model instability gets one resynthesis without
   enrichment (when pruning allows it)
6. A failed repo is classified; nothing escapes per-repo processing

Collaborators:
    synthesize(repo_card, selected_evidence, focus_hint, iteration) -> raw text
    enrich(repo_card, focus_hint) -> EnrichResult
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from topic_miner.budget import BudgetManager
from topic_miner.bridge.orchestrator import REASON_BUDGET_CUTOFF, BridgeInput, BridgeResult, run_bridge
from topic_miner.bridge.report import BridgeReport, StageName
from topic_miner.events import EventLedger
from topic_miner.evidence import (
    EVIDENCE_TYPES,
    EnrichResult,
    EvidenceItem,
    FocusHint,
    RepoCard,
    evidence_lines_for_prompt,
    select_evidence_for_llm,
)
from topic_miner.failures import FailKind, FailureClassification, classify_failure
from topic_miner.gap_loop.focus import build_focus_hint, extract_gap_keywords
from topic_miner.gap_loop.state import GapLoopConfig, GapLoopOutcome, GapLoopState, RunSummary
from topic_miner.llm.client import ChatJSON, MeteredChat
from topic_miner.prompts import LLMSynthesizer

logger = logging.getLogger(__name__)

SynthesizeFn = Callable[[RepoCard, Sequence[EvidenceItem], FocusHint, int], Awaitable[str]]
EnrichFn = Callable[[RepoCard, FocusHint], Awaitable[EnrichResult]]

NODE = "gap_loop"
SYNTH_FAIL_FIELDS = ("synth", "citations")


def _type_counts(evidence: Iterable[EvidenceItem]) -> Dict[str, int]:
    counts = {t: 0 for t in EVIDENCE_TYPES}
    for item in evidence:
        counts[item.type] = counts.get(item.type, 0) + 1
    return counts


def looks_llm_unstable(report: BridgeReport, config: GapLoopConfig, evidence_total: int) -> bool:
    """Structural failure, or repairs used up while every cited id was grounded."""
    if report.has_failed_stage(StageName.WIRE_VALIDATE) or report.has_failed_stage(StageName.CANONICAL_VALIDATE):
        return True
    final = report.final
    return (
        final.attempts_used >= config.max_repair_attempts
        and (final.unknown_ids_count or 0) == 0
        and evidence_total >= config.unstable_min_evidence
    )


class _RepoLoop:
    """One repo's pass through the gap loop."""

    def __init__(
        self,
        repo_card: RepoCard,
        synthesize: SynthesizeFn,
        enrich: EnrichFn,
        llm: ChatJSON,
        config: GapLoopConfig,
        budget: Optional[BudgetManager],
        events: Optional[EventLedger],
    ):
        self.card = repo_card
        self.repo = repo_card.full_name
        self.config = config
        self.budget = budget
        self.events = events
        self.enrich = enrich
        self.chat = MeteredChat(llm, budget, self.repo) if budget is not None else llm
        # Synthesis calls are charged to the repo budget too
        if budget is not None and isinstance(synthesize, LLMSynthesizer):
            synthesize = synthesize.bind(self.chat)
        self.synthesize = synthesize
        self.state = GapLoopState(
            repo=self.repo,
            evidence_total_initial=len(repo_card.evidence),
            evidence_total_final=len(repo_card.evidence),
        )
        self.final: Optional[BridgeResult] = None
        self.budget_stop: Optional[str] = None

    def _emit(self, event: str, level: str = "info", **data: Any) -> None:
        if self.events is not None:
            self.events.emit(event, level=level, node=NODE, repo=self.repo, **data)

    def _budget_stop(self) -> Optional[str]:
        if self.budget is None:
            return None
        decision = self.budget.should_stop_repo(self.repo)
        if not decision.stop:
            decision = self.budget.should_stop_run()
        return decision.reason if decision.stop else None

    def _repair_budget_check(self) -> Optional[str]:
        reason = self._budget_stop()
        if reason is not None:
            self.budget_stop = reason
        return reason

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    async def _enrich(self, hint: FocusHint, iteration: int) -> None:
        try:
            result = await self.enrich(self.card, hint)
        except Exception as e:
            self.state.fetch_failed = True
            logger.warning(f"[gap_loop] {self.repo} enrich failed: {e}")
            self._emit("GAP_ENRICH_FAIL", level="warn", iter=iteration, error=str(e))
            return
        self.card = result.updated_repo_card
        self.state.fetch_failed = False
        self.state.evidence_added_total += result.added_total
        self.state.evidence_total_final = len(self.card.evidence)
        self._emit("GAP_ENRICH_TRIGGER", iter=iteration, keywords=list(hint.keywords), added=dict(result.added_counts))

    # -------------------------------------------------------------------------
    # One iteration
    # -------------------------------------------------------------------------

    def _log_iteration_start(self, iteration: int, hint: FocusHint, selected: List[EvidenceItem]) -> str:
        cfg = self.config
        strategy = cfg.strategy_for(iteration)
        self._emit(
            "EVIDENCE_SELECTED",
            iter=iteration,
            selected_count=len(selected),
            focus_hint=hint.summary(),
            type_counts=_type_counts(selected),
        )
        self._emit(
            "GAP_ITER_START",
            iter=iteration,
            evidence_total=len(self.card.evidence),
            evidence_selected=len(selected),
            rerun_strategy=strategy,
        )
        if iteration >= 2 and cfg.pruning_enabled:
            self._emit("PRUNE_ITER_STRATEGY", iter=iteration, strategy=strategy)
            skipped = []
            if cfg.skip_scout_inventor_when_iter_gt1:
                skipped += ["scout", "inventor"]
            if cfg.skip_engineer_when_iter_gt1:
                skipped += ["engineer", "skeptic"]
            for role in skipped:
                self._emit("PRUNE_SKIP_ROLE", iter=iteration, role=role, reason="iter>1 pruning")
        return strategy

    async def _iterate(self, iteration: int) -> bool:
        """Run one iteration. Returns True when the loop should stop."""
        cfg = self.config
        state = self.state
        state.iteration = iteration

        hint = build_focus_hint(state.last_report) if iteration > 1 else FocusHint()
        selected = select_evidence_for_llm(self.card.evidence, cfg.evidence_max_total, hint)
        strategy = self._log_iteration_start(iteration, hint, selected)
        if isinstance(self.chat, MeteredChat):
            self.chat.iteration = iteration

        try:
            if iteration == 1 or strategy != "bridge_only" or state.last_raw is None:
                raw = await self.synthesize(self.card, selected, hint, iteration)
                state.last_raw = raw
            else:
                raw = state.last_raw
        except Exception as e:
            state.last_error = str(e)
            logger.warning(f"[gap_loop] {self.repo} iter={iteration} synth failed: {e}")
            self._emit("GAP_FAIL", level="warn", iter=iteration, reason=f"synth failed: {e}")
            if iteration >= cfg.max_iters:
                return True
            keywords = extract_gap_keywords(empty_fields=SYNTH_FAIL_FIELDS)
            await self._enrich(FocusHint(keywords=keywords), iteration)
            return False

        result = await run_bridge(
            BridgeInput(
                repo_id=self.repo,
                raw_model_text=raw,
                allowed_evidence_ids=self.card.evidence_ids,
                evidence_lines=evidence_lines_for_prompt(selected),
                max_repair_attempts=cfg.max_repair_attempts,
                quality_config=cfg.quality,
                iteration=iteration,
            ),
            self.chat,
            events=self.events,
            budget_check=self._repair_budget_check if self.budget is not None else None,
        )
        self.final = result
        state.reports.append(result.report)
        final = result.report.final

        if result.ok:
            self._emit("GAP_SUCCESS", iter=iteration, coverage_ratio=final.coverage_ratio or 0)
            return True

        state.last_error = final.reason or "bridge failed"
        self._emit("GAP_FAIL", level="warn", iter=iteration, reason=state.last_error,
                   coverage_ratio=final.coverage_ratio or 0)
        if final.reason == REASON_BUDGET_CUTOFF:
            return True
        if iteration >= cfg.max_iters:
            return True

        if (
            cfg.pruning_enabled
            and cfg.rerun_synth_without_enrich_once
            and not state.reran_without_enrich
            and looks_llm_unstable(result.report, cfg, len(self.card.evidence))
        ):
            state.reran_without_enrich = True
            self._emit("PRUNE_RERUN_SYNTH_WITHOUT_ENRICH", iter=iteration,
                       reason="llm_unstable_or_structural_failure")
            return False

        await self._enrich(build_focus_hint(result.report), iteration)
        return False

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    async def run(self) -> GapLoopOutcome:
        state = self.state
        if self.budget is not None:
            self.budget.begin_repo(self.repo)

        for iteration in range(1, self.config.max_iters + 1):
            self.budget_stop = self._budget_stop()
            if self.budget_stop is not None:
                state.last_error = self.budget_stop
                break
            if await self._iterate(iteration):
                break

        state.evidence_total_final = len(self.card.evidence)
        success = bool(self.final is not None and self.final.ok)
        outcome = GapLoopOutcome(
            repo=self.repo,
            success=success,
            state=state,
            canonical=self.final.canonical if success else None,
            final_report=self.final.report if self.final is not None else None,
        )
        if not success:
            outcome.classification = self._classify()
        if self.budget is not None:
            self.budget.finish_repo(self.repo, success)
        logger.info(
            f"[gap_loop] {self.repo} success={success} iterations={state.attempts_used} "
            f"evidence_added={state.evidence_added_total}"
        )
        return outcome

    def _classify(self) -> FailureClassification:
        state = self.state
        report = self.final.report if self.final is not None else None
        error = (report.final.reason if report is not None else None) or state.last_error or "bridge failed"
        classified = classify_failure(
            error=error,
            report=report,
            is_fetch_error=state.fetch_failed,
            budget_cutoff=self.budget_stop is not None,
            gap_iters_used=state.attempts_used,
            max_gap_iters=self.config.max_iters,
            evidence_added_total=state.evidence_added_total,
        )
        self._emit("FAIL_CLASSIFIED", level="warn", kind=classified.kind.value, iter=state.attempts_used)
        return classified


async def run_gap_loop(
    repo_card: RepoCard,
    *,
    synthesize: SynthesizeFn,
    enrich: EnrichFn,
    llm: ChatJSON,
    config: Optional[GapLoopConfig] = None,
    budget: Optional[BudgetManager] = None,
    events: Optional[EventLedger] = None,
) -> GapLoopOutcome:
    """Process one repo. Never raises."""
    loop = _RepoLoop(repo_card, synthesize, enrich, llm, config or GapLoopConfig(), budget, events)
    try:
        return await loop.run()
    except Exception as e:
        logger.exception(f"[gap_loop] {repo_card.full_name} unexpected error: {e}")
        loop.state.last_error = f"{type(e).__name__}: {e}"
        return GapLoopOutcome(
            repo=repo_card.full_name,
            success=False,
            state=loop.state,
            final_report=loop.final.report if loop.final is not None else None,
            classification=classify_failure(error=loop.state.last_error),
        )


async def process_repos(
    repo_cards: Iterable[RepoCard],
    *,
    synthesize: SynthesizeFn,
    enrich: EnrichFn,
    llm: ChatJSON,
    config: Optional[GapLoopConfig] = None,
    budget: Optional[BudgetManager] = None,
    events: Optional[EventLedger] = None,
) -> RunSummary:
    """Run the gap loop over repos sequentially until done or the budget stops the run."""
    summary = RunSummary(fail_kinds={kind.value: 0 for kind in FailKind})
    for card in repo_cards:
        if budget is not None:
            decision = budget.should_stop_run()
            if decision.stop:
                summary.stop_reason = decision.reason
                break
        outcome = await run_gap_loop(
            card,
            synthesize=synthesize,
            enrich=enrich,
            llm=llm,
            config=config,
            budget=budget,
            events=events,
        )
        summary.outcomes.append(outcome)
        if outcome.classification is not None:
            summary.fail_kinds[outcome.classification.kind.value] += 1

    logger.info(
        f"[gap_loop] run done: {summary.succeeded} ok, {summary.failed} failed, stop_reason={summary.stop_reason}"
    )
    return summary


__all__ = ["SynthesizeFn", "EnrichFn", "looks_llm_unstable", "run_gap_loop", "process_repos"]
