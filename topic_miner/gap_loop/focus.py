# FILE: topic_miner/gap_loop/focus.py
"""Focus hints: turn a failed bridge report into evidence-selection bias."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple

from topic_miner.bridge.report import BridgeReport
from topic_miner.evidence import FocusHint

MAX_KEYWORDS = 8

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9_]+")

_TEST_TERMS = ("test", "acceptance", "cli", "e2e", "export", "import")

# Seed token -> related terms added when the seed is present
KEYWORD_EXPANSIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("commands", ("api", "command", "save", "list", "delete", "import", "export")),
    ("tables", ("sqlite", "database", "schema", "table", "index")),
    ("screens", ("ui", "settings", "search", "list", "detail")),
    ("tests", _TEST_TERMS),
    ("acceptance_tests", _TEST_TERMS),
)


def _tokenize(text: str) -> List[str]:
    return [t for t in _TOKEN_SPLIT_RE.split(text.lower()) if len(t) >= 3]


def extract_gap_keywords(
    report: Optional[BridgeReport] = None,
    empty_fields: Iterable[str] = (),
) -> List[str]:
    """First MAX_KEYWORDS distinct tokens from empty fields and report errors, plus expansions."""
    seeds: Dict[str, None] = {}

    def push(text: Optional[str]) -> None:
        for token in _tokenize(text or ""):
            seeds.setdefault(token, None)

    for name in empty_fields:
        push(name)
    if report is not None:
        push(report.final.reason)
        for stage in report.stages:
            push(stage.error_detail)

    for needle, expansions in KEYWORD_EXPANSIONS:
        if needle in seeds:
            for term in expansions:
                seeds.setdefault(term, None)

    return list(seeds)[:MAX_KEYWORDS]


def build_focus_hint(report: Optional[BridgeReport]) -> FocusHint:
    if report is None:
        return FocusHint()
    notes = report.error_text().lower()
    return FocusHint(
        need_commands="command" in notes,
        need_tests="acceptance" in notes or "test" in notes,
        need_tables="table" in notes or "schema" in notes,
        need_screens="screen" in notes,
        need_core="core_loop" in notes or "core loop" in notes,
        keywords=extract_gap_keywords(report),
    )


__all__ = ["FocusHint", "KEYWORD_EXPANSIONS", "MAX_KEYWORDS", "build_focus_hint", "extract_gap_keywords"]
