# FILE: topic_miner/gap_loop/__init__.py
"""Per-repo retry loop: synthesize, bridge, enrich evidence, repeat."""

from topic_miner.gap_loop.controller import looks_llm_unstable, process_repos, run_gap_loop
from topic_miner.gap_loop.focus import build_focus_hint, extract_gap_keywords
from topic_miner.gap_loop.state import GapLoopConfig, GapLoopOutcome, GapLoopState, RunSummary

__all__ = [
    "GapLoopConfig",
    "GapLoopState",
    "GapLoopOutcome",
    "RunSummary",
    "build_focus_hint",
    "extract_gap_keywords",
    "looks_llm_unstable",
    "run_gap_loop",
    "process_repos",
]
