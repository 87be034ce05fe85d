# FILE: topic_miner/evidence.py
"""
Evidence items, repo cards and the helpers that feed evidence to the model.

ID SCHEME:
- E-RD-### readme segment, E-IS-### issue, E-RL-### release, E-RF-### root files
- Ids are zero-padded to 3 digits; appended evidence continues from the
  highest existing sequence for its prefix (EvidenceIdSequencer)

SELECTION (select_evidence_for_llm):
- Every item gets a base score by type, boosted by the focus hint
- Per-type minimums are taken first (best score, then pack order)
- The rest is filled by score up to max_total

PROMPT LINE FORMAT:
    [ID:E-RD-001] (readme) TITLE="README (segment 1)" URL=https://... EXCERPT="..."
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

EVIDENCE_TYPES = ("readme", "issue", "release", "root_files")

ID_PREFIXES: Dict[str, str] = {
    "readme": "E-RD-",
    "issue": "E-IS-",
    "release": "E-RL-",
    "root_files": "E-RF-",
}

DEFAULT_EVIDENCE_MAX_TOTAL = 30

TITLE_EXCERPT_MAX = 160
BODY_EXCERPT_MAX = 900

_BASE_SCORES = {"readme": 5, "issue": 3, "release": 2, "root_files": 2}
_COMMAND_WORDS = ("command", "api", "save", "list", "delete", "import", "export")
_TABLE_WORDS = ("sqlite", "schema", "migrate", "db", "table", "index")
_SCREEN_WORDS = ("ui", "screen", "settings", "dashboard", "view")
_SCHEMA_FILE_WORDS = ("db", "sql", "schema", "migration", "sqlite", "prisma")
_ISSUE_ACTION_WORDS = ("bug", "crash", "export", "import", "sync", "save", "load", "fail", "error")

_WS_RE = re.compile(r"\s+")


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class EvidenceItem:
    """One citable piece of repository evidence."""
    id: str
    type: str
    source_url: str
    title: str
    excerpt: str
    fetched_at: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def segment(self) -> Optional[int]:
        value = self.meta.get("segment")
        return value if isinstance(value, int) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source_url": self.source_url,
            "title": self.title,
            "excerpt": self.excerpt,
            "fetched_at": self.fetched_at,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvidenceItem":
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            source_url=str(data.get("source_url", "")),
            title=str(data.get("title", "")),
            excerpt=str(data.get("excerpt", "")),
            fetched_at=str(data.get("fetched_at", "")),
            meta=dict(data.get("meta") or {}),
        )


@dataclass
class RepoCard:
    """Repository metadata plus its evidence pack."""
    full_name: str
    html_url: str = ""
    description: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    language: Optional[str] = None
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    readme: Optional[str] = None
    releases: List[Dict[str, Any]] = field(default_factory=list)
    issues: List[Dict[str, Any]] = field(default_factory=list)
    root_files: List[str] = field(default_factory=list)
    evidence: List[EvidenceItem] = field(default_factory=list)

    @property
    def evidence_ids(self) -> List[str]:
        return [item.id for item in self.evidence]

    def with_evidence(self, evidence: Iterable[EvidenceItem]) -> "RepoCard":
        return replace(self, evidence=list(evidence))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_name": self.full_name,
            "html_url": self.html_url,
            "description": self.description,
            "topics": list(self.topics),
            "language": self.language,
            "stars": self.stars,
            "forks": self.forks,
            "open_issues": self.open_issues,
            "readme": self.readme,
            "releases": list(self.releases),
            "issues": list(self.issues),
            "root_files": list(self.root_files),
            "evidence": [item.to_dict() for item in self.evidence],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RepoCard":
        """Accepts both the short field names and GitHub's *_count names."""
        readme = data.get("readme")
        if isinstance(readme, dict):
            readme = readme.get("text")
        releases = data.get("releases") or []
        if isinstance(releases, dict):
            releases = releases.get("items") or []
        issues = data.get("issues") or []
        if isinstance(issues, dict):
            issues = issues.get("items") or []
        return cls(
            full_name=str(data.get("full_name", "")),
            html_url=str(data.get("html_url", "")),
            description=data.get("description"),
            topics=list(data.get("topics") or []),
            language=data.get("language"),
            stars=int(data.get("stars", data.get("stargazers_count", 0)) or 0),
            forks=int(data.get("forks", data.get("forks_count", 0)) or 0),
            open_issues=int(data.get("open_issues", data.get("open_issues_count", 0)) or 0),
            readme=readme,
            releases=list(releases),
            issues=list(issues),
            root_files=list(data.get("root_files") or []),
            evidence=[EvidenceItem.from_dict(e) for e in data.get("evidence") or []],
        )


@dataclass
class FocusHint:
    """What the last bridge failure was missing; biases evidence selection."""
    need_commands: bool = False
    need_tests: bool = False
    need_tables: bool = False
    need_screens: bool = False
    need_core: bool = False
    keywords: List[str] = field(default_factory=list)

    @property
    def any_need(self) -> bool:
        return any((self.need_commands, self.need_tests, self.need_tables, self.need_screens, self.need_core))

    def summary(self) -> str:
        needs = [
            name
            for name, flag in (
                ("commands", self.need_commands),
                ("tests", self.need_tests),
                ("tables", self.need_tables),
                ("screens", self.need_screens),
                ("core", self.need_core),
            )
            if flag
        ]
        return f"needs={','.join(needs) or '-'} keywords={','.join(self.keywords) or '-'}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "need_commands": self.need_commands,
            "need_tests": self.need_tests,
            "need_tables": self.need_tables,
            "need_screens": self.need_screens,
            "need_core": self.need_core,
            "keywords": list(self.keywords),
        }


@dataclass
class EnrichResult:
    """Output of the enrichment collaborator."""
    updated_repo_card: RepoCard
    added_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def added_total(self) -> int:
        return sum(self.added_counts.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added_counts": dict(self.added_counts),
            "added_total": self.added_total,
            "evidence_total": len(self.updated_repo_card.evidence),
        }


# =============================================================================
# TEXT HELPERS
# =============================================================================

def safe_excerpt(text: Any, max_chars: int) -> str:
    """Collapse whitespace; truncate to max_chars with a trailing ellipsis."""
    normalized = _WS_RE.sub(" ", str(text or "")).strip()
    if len(normalized) <= max_chars:
        return normalized
    return normalized[: max(0, max_chars - 1)] + "…"


def _count_hits(text: str, words: Iterable[str]) -> int:
    lower = text.lower()
    return sum(1 for word in words if word and word in lower)


# =============================================================================
# IDS AND DEDUPE
# =============================================================================

class EvidenceIdSequencer:
    """
    Hands out fresh ids for evidence appended to an existing pack.

    One sequencer per repo session; counters start at the highest sequence
    already present for each prefix.
    """

    def __init__(self, existing: Iterable[EvidenceItem] = ()):
        self._counters: Dict[str, int] = {prefix: 0 for prefix in ID_PREFIXES.values()}
        for item in existing:
            self.observe(item.id)

    def observe(self, evidence_id: str) -> None:
        for prefix in self._counters:
            if evidence_id.startswith(prefix):
                digits = re.match(r"\d+", evidence_id[len(prefix):])
                if digits:
                    self._counters[prefix] = max(self._counters[prefix], int(digits.group(0)))
                return

    def next_id(self, prefix: str) -> str:
        self._counters[prefix] = self._counters.get(prefix, 0) + 1
        return f"{prefix}{self._counters[prefix]:03d}"

    def reassign(self, items: Iterable[EvidenceItem], prefix: Optional[str] = None) -> List[EvidenceItem]:
        """Copies of `items` with fresh ids (prefix from the item type when not given)."""
        out = []
        for item in items:
            item_prefix = prefix or ID_PREFIXES.get(item.type, "E-RD-")
            out.append(replace(item, id=self.next_id(item_prefix), meta=dict(item.meta)))
        return out


def dedupe_evidence(evidence: Iterable[EvidenceItem]) -> List[EvidenceItem]:
    """Drop later duplicates of the same type::source_url::title."""
    seen = set()
    out: List[EvidenceItem] = []
    for item in evidence:
        key = f"{item.type}::{item.source_url}::{item.title}"
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def merge_evidence(
    repo_card: RepoCard,
    incoming: Sequence[EvidenceItem],
    sequencer: Optional[EvidenceIdSequencer] = None,
) -> EnrichResult:
    """Append new evidence to a repo card with fresh ids, then dedupe.

    added_counts counts only the items that survived the dedupe.
    """
    sequencer = sequencer or EvidenceIdSequencer(repo_card.evidence)
    reassigned = sequencer.reassign(incoming)
    merged = dedupe_evidence([*repo_card.evidence, *reassigned])
    kept = {item.id for item in merged}
    added_counts = {t: 0 for t in EVIDENCE_TYPES}
    for item in reassigned:
        if item.id in kept:
            added_counts[item.type] = added_counts.get(item.type, 0) + 1
    logger.debug(f"[evidence] {repo_card.full_name} merged {sum(added_counts.values())} new items")
    return EnrichResult(updated_repo_card=repo_card.with_evidence(merged), added_counts=added_counts)


# =============================================================================
# SELECTION
# =============================================================================

def _as_hint(focus_hint: Union[FocusHint, Sequence[str], None]) -> FocusHint:
    if focus_hint is None:
        return FocusHint()
    if isinstance(focus_hint, FocusHint):
        return focus_hint
    return FocusHint(keywords=[str(k) for k in focus_hint])


def _score(item: EvidenceItem, hint: FocusHint) -> int:
    score = _BASE_SCORES.get(item.type, 0)
    text = f"{item.title} {item.excerpt}"

    if hint.need_commands or hint.need_tests:
        if item.type == "issue":
            score += 3
        if item.type == "release":
            score += 2
        score += min(2, _count_hits(text, _COMMAND_WORDS))
    if hint.need_tables:
        if item.type == "root_files":
            score += 4
        if item.type == "readme":
            score += 1
        score += min(3, _count_hits(text, _TABLE_WORDS))
    if hint.need_screens:
        if item.type == "readme":
            score += 2
        score += min(2, _count_hits(text, _SCREEN_WORDS))
    if hint.need_core and item.type == "readme" and (item.segment or 99) <= 2:
        score += 4

    score += min(4, _count_hits(text, [k.lower() for k in hint.keywords]))
    return score


def select_evidence_for_llm(
    evidence_pack: Sequence[EvidenceItem],
    max_total: int = DEFAULT_EVIDENCE_MAX_TOTAL,
    focus_hint: Union[FocusHint, Sequence[str], None] = None,
) -> List[EvidenceItem]:
    hint = _as_hint(focus_hint)
    limit = max(1, max_total)
    pool = [(item, idx, _score(item, hint)) for idx, item in enumerate(evidence_pack)]
    ranked = sorted(pool, key=lambda entry: (-entry[2], entry[1]))

    minimums = (
        ("readme", 2),
        ("issue", 8 if (hint.need_commands or hint.need_tests) else 4),
        ("release", 1),
        ("root_files", 1),
    )

    selected: List[EvidenceItem] = []
    taken = set()
    for evidence_type, n in minimums:
        picks = [(item, idx) for item, idx, _ in ranked if item.type == evidence_type and idx not in taken][:n]
        for item, idx in picks:
            taken.add(idx)
            selected.append(item)

    for item, idx, _ in ranked:
        if len(selected) >= limit:
            break
        if idx in taken:
            continue
        taken.add(idx)
        selected.append(item)

    return selected[:limit]


# =============================================================================
# PROMPT FORMATTING
# =============================================================================

def evidence_lines_for_prompt(evidence: Iterable[EvidenceItem]) -> List[str]:
    return [
        f'[ID:{item.id}] ({item.type}) TITLE="{safe_excerpt(item.title, TITLE_EXCERPT_MAX)}" '
        f'URL={item.source_url} EXCERPT="{safe_excerpt(item.excerpt, BODY_EXCERPT_MAX)}"'
        for item in evidence
    ]


def _ids_of_type(evidence: Sequence[EvidenceItem], evidence_type: str, limit: int) -> List[EvidenceItem]:
    return [item for item in evidence if item.type == evidence_type][:limit]


def _unique(ids: Iterable[str], limit: int = 4) -> List[str]:
    return list(dict.fromkeys(ids))[:limit]


def build_citation_hints(repo_card: RepoCard, selected_evidence: Sequence[EvidenceItem]) -> str:
    """Four suggestion lines telling the synthesizer which ids fit which section."""
    readme = [x.id for x in _ids_of_type(selected_evidence, "readme", 3)]
    issues = [
        x.id
        for x in _ids_of_type(selected_evidence, "issue", 8)
        if _count_hits(f"{x.title} {x.excerpt}", _ISSUE_ACTION_WORDS) > 0
    ][:4]
    releases = [x.id for x in _ids_of_type(selected_evidence, "release", 2)]
    root = [x.id for x in _ids_of_type(selected_evidence, "root_files", 1)]
    schema_boost = any(_count_hits(name, _SCHEMA_FILE_WORDS) for name in repo_card.root_files)

    app_core = _unique([*readme, *releases])
    commands = _unique([*issues, *readme[:1], *root])
    tables = _unique([*readme[:2], *(root if schema_boost else []), *issues[:1]])
    tests = _unique([*issues, *releases, *readme[:1]])

    return "\n".join([
        f"Suggested for app/core_loop: {', '.join(app_core) or '(use any closest readme evidence)'}",
        f"Suggested for commands: {', '.join(commands) or '(use issue/release evidence)'}",
        f"Suggested for tables: {', '.join(tables) or '(use readme/root_files evidence)'}",
        f"Suggested for acceptance_tests: {', '.join(tests) or '(use issues/readme evidence)'}",
    ])


__all__ = [
    "EVIDENCE_TYPES",
    "ID_PREFIXES",
    "DEFAULT_EVIDENCE_MAX_TOTAL",
    "EvidenceItem",
    "RepoCard",
    "FocusHint",
    "EnrichResult",
    "EvidenceIdSequencer",
    "safe_excerpt",
    "dedupe_evidence",
    "merge_evidence",
    "select_evidence_for_llm",
    "evidence_lines_for_prompt",
    "build_citation_hints",
]
