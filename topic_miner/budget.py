# FILE: topic_miner/budget.py
"""Run and repo level LLM budget.

Tracks LLM calls and approximate tokens (chars / 4, rounded up) per repo
and per run, plus repos processed and wall time. The gap loop consults it
as a stop/continue oracle before each repo and each iteration.

Run-level stop reasons (checked in this order):
- maxReposPerRun reached
- maxWallTimeSeconds exceeded
- maxTotalLlmCallsPerRun reached
- maxTotalTokensApproxPerRun reached

Repo-level stop reason:
- maxLlmCallsPerRepo reached

A disabled budget never stops anything.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from topic_miner.events import EventLedger

logger = logging.getLogger(__name__)


def tokens_approx(prompt_chars: int, completion_chars: int) -> int:
    return math.ceil((prompt_chars + completion_chars) / 4)


@dataclass(frozen=True)
class BudgetConfig:
    enabled: bool = True
    max_repos_per_run: int = 10
    max_llm_calls_per_repo: int = 8
    max_wall_time_seconds: int = 900
    max_total_llm_calls_per_run: int = 60
    max_total_tokens_approx_per_run: int = 250_000


@dataclass
class BudgetDecision:
    stop: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.stop


@dataclass
class BudgetState:
    run_start: float
    llm_calls_total: int = 0
    llm_calls_per_repo: Dict[str, int] = field(default_factory=dict)
    tokens_approx_total: int = 0
    tokens_approx_per_repo: Dict[str, int] = field(default_factory=dict)
    repos_processed: int = 0
    stop_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_start": self.run_start,
            "llm_calls_total": self.llm_calls_total,
            "llm_calls_per_repo": dict(self.llm_calls_per_repo),
            "tokens_approx_total": self.tokens_approx_total,
            "tokens_approx_per_repo": dict(self.tokens_approx_per_repo),
            "repos_processed": self.repos_processed,
            "stop_reason": self.stop_reason,
        }


class BudgetManager:
    """
    Budget oracle for a miner run.

    `clock` is injectable so wall-time limits are testable.
    """

    def __init__(
        self,
        config: Optional[BudgetConfig] = None,
        *,
        events: Optional[EventLedger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or BudgetConfig()
        self.events = events
        self._clock = clock
        self.state = BudgetState(run_start=clock())

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def begin_repo(self, repo: str) -> None:
        self.state.llm_calls_per_repo.setdefault(repo, 0)
        self.state.tokens_approx_per_repo.setdefault(repo, 0)

    def record_llm_call(
        self,
        repo: str,
        prompt_chars: int,
        completion_chars: int,
        **meta: Any,
    ) -> int:
        """Record one LLM call; returns the approximate tokens charged."""
        t = tokens_approx(prompt_chars, completion_chars)
        s = self.state
        s.llm_calls_total += 1
        s.llm_calls_per_repo[repo] = s.llm_calls_per_repo.get(repo, 0) + 1
        s.tokens_approx_total += t
        s.tokens_approx_per_repo[repo] = s.tokens_approx_per_repo.get(repo, 0) + t
        if self.events is not None:
            self.events.emit(
                "BUDGET_LLM_CALL_RECORDED",
                node="budget",
                repo=repo,
                prompt_chars=prompt_chars,
                completion_chars=completion_chars,
                tokens_approx=t,
                **meta,
            )
        return t

    def finish_repo(self, repo: str, ok: bool) -> None:
        self.state.repos_processed += 1
        logger.debug(f"[budget] finished {repo} ok={ok} repos_processed={self.state.repos_processed}")

    # -------------------------------------------------------------------------
    # Oracle
    # -------------------------------------------------------------------------

    def should_stop_run(self) -> BudgetDecision:
        c = self.config
        s = self.state
        if not c.enabled:
            return BudgetDecision(stop=False)

        reason = None
        if s.repos_processed >= c.max_repos_per_run:
            reason = "maxReposPerRun reached"
        elif self._clock() - s.run_start > c.max_wall_time_seconds:
            reason = "maxWallTimeSeconds exceeded"
        elif s.llm_calls_total >= c.max_total_llm_calls_per_run:
            reason = "maxTotalLlmCallsPerRun reached"
        elif s.tokens_approx_total >= c.max_total_tokens_approx_per_run:
            reason = "maxTotalTokensApproxPerRun reached"

        if reason is None:
            return BudgetDecision(stop=False)
        if s.stop_reason is None:
            s.stop_reason = reason
            logger.warning(f"[budget] run stop: {reason}")
            if self.events is not None:
                self.events.emit("BUDGET_STOP_RUN", level="warn", node="budget", reason=reason)
        return BudgetDecision(stop=True, reason=reason)

    def should_stop_repo(self, repo: str) -> BudgetDecision:
        if not self.config.enabled:
            return BudgetDecision(stop=False)
        calls = self.state.llm_calls_per_repo.get(repo, 0)
        if calls >= self.config.max_llm_calls_per_repo:
            reason = "maxLlmCallsPerRepo reached"
            logger.warning(f"[budget] repo stop {repo}: {reason}")
            if self.events is not None:
                self.events.emit("BUDGET_STOP_REPO", level="warn", node="budget", repo=repo, reason=reason)
            return BudgetDecision(stop=True, reason=reason)
        return BudgetDecision(stop=False)

    def snapshot(self) -> Dict[str, Any]:
        return self.state.to_dict()


__all__ = [
    "BudgetConfig",
    "BudgetDecision",
    "BudgetState",
    "BudgetManager",
    "tokens_approx",
]
