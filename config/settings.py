# FILE: config/settings.py
"""Runtime settings for the topic miner - single source of truth.

Values come from the environment (after python-dotenv's load_dotenv()):

  LLM:        LLM_PROVIDER, LLM_MODEL, LLM_TEMPERATURE, LLM_TIMEOUT_SECONDS,
              <PROVIDER>_API_KEY, <PROVIDER>_BASE_URL, <PROVIDER>_MODEL
  Gap loop:   MINER_GAP_LOOP_ENABLED, MINER_GAP_MAX_ITERS,
              MINER_EVIDENCE_MAX_TOTAL, MINER_UNSTABLE_MIN_EVIDENCE
  Pruning:    MINER_PRUNING_ENABLED, MINER_PRUNING_STRATEGY,
              MINER_SKIP_SCOUT_INVENTOR, MINER_SKIP_ENGINEER,
              MINER_RERUN_SYNTH_WITHOUT_ENRICH_ONCE
  Budget:     MINER_BUDGET_ENABLED, MINER_MAX_REPOS_PER_RUN,
              MINER_MAX_GAP_ITERS_PER_REPO, MINER_MAX_LLM_CALLS_PER_REPO,
              MINER_MAX_REPAIR_ATTEMPTS, MINER_MAX_EVIDENCE_LINES,
              MINER_MAX_WALL_TIME_SECONDS, MINER_MAX_LLM_CALLS_PER_RUN,
              MINER_MAX_TOKENS_PER_RUN
  Quality:    MINER_REQUIRE_NON_EMPTY, MINER_MIN_COVERAGE_RATIO
  Logging:    MINER_EVENTS_PATH

Bad values never raise: they fall back to the default with a warning.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# =============================================================================
# Provider table
# =============================================================================

PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o-mini",
    },
    "qwen": {
        "base_url": "https://dashscope.aliyuncs.com/compatible-mode/v1",
        "model": "qwen-max",
    },
    "deepseek": {
        "base_url": "https://api.deepseek.com/v1",
        "model": "deepseek-chat",
    },
}

PRUNING_STRATEGIES = ("synth_only", "bridge_only", "full")


# =============================================================================
# Env parsing helpers
# =============================================================================

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    logger.warning(f"[settings] {name}={value!r} is not a boolean; using {default}")
    return default


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning(f"[settings] {name}={value!r} is not an integer; using {default}")
        return default
    if parsed < minimum:
        logger.warning(f"[settings] {name}={parsed} below minimum {minimum}; using {minimum}")
        return minimum
    return parsed


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError:
        logger.warning(f"[settings] {name}={value!r} is not a number; using {default}")
        return default


# =============================================================================
# Settings tree
# =============================================================================

@dataclass
class LLMSettings:
    provider: str = "openai"
    model: str = PROVIDER_DEFAULTS["openai"]["model"]
    temperature: float = 0.2
    api_key: Optional[str] = None
    base_url: str = PROVIDER_DEFAULTS["openai"]["base_url"]
    timeout_seconds: float = 120.0


@dataclass
class GapLoopSettings:
    enabled: bool = True
    max_iters: int = 2
    evidence_max_total: int = 30
    unstable_min_evidence: int = 10


@dataclass
class PruningSettings:
    enabled: bool = True
    iter2_plus_strategy: str = "synth_only"
    skip_scout_inventor_when_iter_gt1: bool = True
    skip_engineer_when_iter_gt1: bool = True
    rerun_synth_without_enrich_once: bool = True


@dataclass
class BudgetSettings:
    enabled: bool = True
    max_repos_per_run: int = 10
    max_gap_iters_per_repo: int = 2
    max_llm_calls_per_repo: int = 8
    max_repair_attempts: int = 2
    max_evidence_lines_for_prompt: int = 30
    max_wall_time_seconds: int = 900
    max_total_llm_calls_per_run: int = 60
    max_total_tokens_approx_per_run: int = 250_000


@dataclass
class QualitySettings:
    require_non_empty: bool = True
    min_coverage_ratio: float = 1.0


@dataclass
class MinerSettings:
    llm: LLMSettings = field(default_factory=LLMSettings)
    gap_loop: GapLoopSettings = field(default_factory=GapLoopSettings)
    pruning: PruningSettings = field(default_factory=PruningSettings)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
    quality: QualitySettings = field(default_factory=QualitySettings)
    events_path: Optional[str] = None

    # -------------------------------------------------------------------------
    # Conversions into runtime configs
    # -------------------------------------------------------------------------

    def quality_gate_config(self):
        from topic_miner.bridge.quality_gate import QualityGateConfig

        return QualityGateConfig(
            require_non_empty=self.quality.require_non_empty,
            min_coverage_ratio=self.quality.min_coverage_ratio,
        )

    def gap_loop_config(self):
        """Effective gap loop limits: the tighter of loop and budget caps."""
        from topic_miner.gap_loop.state import GapLoopConfig

        if self.gap_loop.enabled:
            max_iters = max(1, min(self.gap_loop.max_iters, self.budget.max_gap_iters_per_repo))
        else:
            max_iters = 1
        return GapLoopConfig(
            max_iters=max_iters,
            max_repair_attempts=self.budget.max_repair_attempts,
            evidence_max_total=min(self.gap_loop.evidence_max_total, self.budget.max_evidence_lines_for_prompt),
            unstable_min_evidence=self.gap_loop.unstable_min_evidence,
            pruning_enabled=self.pruning.enabled,
            iter2_plus_strategy=self.pruning.iter2_plus_strategy,
            skip_scout_inventor_when_iter_gt1=self.pruning.skip_scout_inventor_when_iter_gt1,
            skip_engineer_when_iter_gt1=self.pruning.skip_engineer_when_iter_gt1,
            rerun_synth_without_enrich_once=self.pruning.rerun_synth_without_enrich_once,
            quality=self.quality_gate_config(),
        )

    def budget_config(self):
        from topic_miner.budget import BudgetConfig

        b = self.budget
        return BudgetConfig(
            enabled=b.enabled,
            max_repos_per_run=b.max_repos_per_run,
            max_llm_calls_per_repo=b.max_llm_calls_per_repo,
            max_wall_time_seconds=b.max_wall_time_seconds,
            max_total_llm_calls_per_run=b.max_total_llm_calls_per_run,
            max_total_tokens_approx_per_run=b.max_total_tokens_approx_per_run,
        )


# =============================================================================
# Loader
# =============================================================================

def _load_llm() -> LLMSettings:
    provider = _env_str("LLM_PROVIDER", "openai").lower()
    if provider not in PROVIDER_DEFAULTS:
        logger.warning(f"[settings] unsupported LLM_PROVIDER={provider!r}; using openai")
        provider = "openai"
    prefix = provider.upper()
    defaults = PROVIDER_DEFAULTS[provider]
    model = os.getenv(f"{prefix}_MODEL") or os.getenv("LLM_MODEL") or defaults["model"]
    return LLMSettings(
        provider=provider,
        model=model.strip(),
        temperature=_env_float("LLM_TEMPERATURE", 0.2),
        api_key=os.getenv(f"{prefix}_API_KEY") or None,
        base_url=_env_str(f"{prefix}_BASE_URL", defaults["base_url"]).rstrip("/"),
        timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 120.0),
    )


def _load_pruning() -> PruningSettings:
    strategy = _env_str("MINER_PRUNING_STRATEGY", "synth_only").lower()
    if strategy not in PRUNING_STRATEGIES:
        logger.warning(f"[settings] unknown MINER_PRUNING_STRATEGY={strategy!r}; using synth_only")
        strategy = "synth_only"
    return PruningSettings(
        enabled=_env_bool("MINER_PRUNING_ENABLED", True),
        iter2_plus_strategy=strategy,
        skip_scout_inventor_when_iter_gt1=_env_bool("MINER_SKIP_SCOUT_INVENTOR", True),
        skip_engineer_when_iter_gt1=_env_bool("MINER_SKIP_ENGINEER", True),
        rerun_synth_without_enrich_once=_env_bool("MINER_RERUN_SYNTH_WITHOUT_ENRICH_ONCE", True),
    )


def load_settings(*, dotenv: bool = True) -> MinerSettings:
    """Build MinerSettings from the environment.

    Args:
        dotenv: call load_dotenv() first (existing env vars win)
    """
    if dotenv:
        load_dotenv()

    ratio = _env_float("MINER_MIN_COVERAGE_RATIO", 1.0)
    if not 0.0 <= ratio <= 1.0:
        logger.warning(f"[settings] MINER_MIN_COVERAGE_RATIO={ratio} outside [0, 1]; using 1.0")
        ratio = 1.0

    settings = MinerSettings(
        llm=_load_llm(),
        gap_loop=GapLoopSettings(
            enabled=_env_bool("MINER_GAP_LOOP_ENABLED", True),
            max_iters=_env_int("MINER_GAP_MAX_ITERS", 2, minimum=1),
            evidence_max_total=_env_int("MINER_EVIDENCE_MAX_TOTAL", 30, minimum=1),
            unstable_min_evidence=_env_int("MINER_UNSTABLE_MIN_EVIDENCE", 10),
        ),
        pruning=_load_pruning(),
        budget=BudgetSettings(
            enabled=_env_bool("MINER_BUDGET_ENABLED", True),
            max_repos_per_run=_env_int("MINER_MAX_REPOS_PER_RUN", 10),
            max_gap_iters_per_repo=_env_int("MINER_MAX_GAP_ITERS_PER_REPO", 2, minimum=1),
            max_llm_calls_per_repo=_env_int("MINER_MAX_LLM_CALLS_PER_REPO", 8),
            max_repair_attempts=_env_int("MINER_MAX_REPAIR_ATTEMPTS", 2),
            max_evidence_lines_for_prompt=_env_int("MINER_MAX_EVIDENCE_LINES", 30, minimum=1),
            max_wall_time_seconds=_env_int("MINER_MAX_WALL_TIME_SECONDS", 900),
            max_total_llm_calls_per_run=_env_int("MINER_MAX_LLM_CALLS_PER_RUN", 60),
            max_total_tokens_approx_per_run=_env_int("MINER_MAX_TOKENS_PER_RUN", 250_000),
        ),
        quality=QualitySettings(
            require_non_empty=_env_bool("MINER_REQUIRE_NON_EMPTY", True),
            min_coverage_ratio=ratio,
        ),
        events_path=os.getenv("MINER_EVENTS_PATH") or None,
    )
    logger.debug(
        f"[settings] provider={settings.llm.provider} model={settings.llm.model} "
        f"max_iters={settings.gap_loop.max_iters} budget_enabled={settings.budget.enabled}"
    )
    return settings


__all__ = [
    "PROVIDER_DEFAULTS",
    "PRUNING_STRATEGIES",
    "LLMSettings",
    "GapLoopSettings",
    "PruningSettings",
    "BudgetSettings",
    "QualitySettings",
    "MinerSettings",
    "load_settings",
]
