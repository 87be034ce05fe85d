# FILE: topic_miner/bridge/canonical_json.py
"""Deterministic JSON for canonical documents.

RULES:
1. Keys: sorted alphabetically at all nesting levels
2. Whitespace: none (compact separators)
3. Lists: kept in document order (the normalizer already sorts the
   collections that are order-insensitive; primary_actions and columns
   keep their authored order)
4. Encoding: UTF-8, no BOM

Hashes are computed over the on-disk form only, so citations never
affect a document's identity.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Union

from topic_miner.bridge.canonical_schemas import CanonicalDocument

DocumentLike = Union[CanonicalDocument, Dict[str, Any]]


def _disk_form(doc: DocumentLike) -> Any:
    if isinstance(doc, CanonicalDocument):
        return doc.to_disk_dict()
    return doc


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize to UTF-8 bytes with sorted keys and no whitespace."""
    return json.dumps(
        _disk_form(obj),
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")


def canonical_json_string(obj: Any) -> str:
    return canonical_json_bytes(obj).decode("utf-8")


def pretty_json_string(obj: Any) -> str:
    """Human-facing variant for files written to specs/: sorted, indented."""
    return json.dumps(_disk_form(obj), ensure_ascii=False, sort_keys=True, indent=2) + "\n"


def compute_document_hash(doc: DocumentLike) -> str:
    """SHA-256 hex digest of the document's canonical bytes."""
    return hashlib.sha256(canonical_json_bytes(doc)).hexdigest()


def verify_hash(doc: DocumentLike, expected_hash: str) -> bool:
    return compute_document_hash(doc) == expected_hash


__all__ = [
    "canonical_json_bytes",
    "canonical_json_string",
    "pretty_json_string",
    "compute_document_hash",
    "verify_hash",
]
