# FILE: topic_miner/bridge/patch_ops.py
"""Pure operations around citation patches."""

from __future__ import annotations

from typing import Iterable, List

from topic_miner.bridge.canonical_schemas import CanonicalDocument
from topic_miner.bridge.patch_schemas import CitationsPatch


def _stable_unique(ids: Iterable[str]) -> List[str]:
    return sorted(set(ids))


def compute_missing_citation_keys(doc: CanonicalDocument) -> List[str]:
    """Sorted logical keys whose citation list is empty."""
    return sorted(key for key, ids in doc.citation_entries() if not ids)


def unknown_ids_in_patch(patch: CitationsPatch, allowed_ids: Iterable[str]) -> List[str]:
    """Ids in the patch outside the allow-list, first-seen order, deduplicated."""
    allowed = set(allowed_ids)
    unknown: List[str] = []
    for eid in patch.iter_ids():
        if eid not in allowed and eid not in unknown:
            unknown.append(eid)
    return unknown


def apply_citations_patch(doc: CanonicalDocument, patch: CitationsPatch) -> CanonicalDocument:
    """Return a new document whose patched citation lists are replaced.

    Keys absent from the patch are untouched; business content is copied as-is.
    """
    citations = doc.citations.model_copy(deep=True)
    if patch.app is not None:
        citations.app = _stable_unique(patch.app)
    if patch.core_loop is not None:
        citations.core_loop = _stable_unique(patch.core_loop)
    for group in ("screens", "commands", "tables", "acceptance_tests"):
        entries = getattr(patch, group)
        if not entries:
            continue
        target = getattr(citations, group)
        for key, ids in entries.items():
            target[key] = _stable_unique(ids)
    return doc.model_copy(update={"citations": citations}, deep=True)


__all__ = ["compute_missing_citation_keys", "unknown_ids_in_patch", "apply_citations_patch"]
