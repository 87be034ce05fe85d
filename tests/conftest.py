# FILE: tests/conftest.py
"""
Pytest configuration for the topic miner test suite.

Configures:
- pytest-asyncio for async test support
- shared wire documents, evidence and repo cards
"""
import copy
import json

import pytest

pytest_plugins = ["pytest_asyncio"]


ALLOWED_IDS = ["E-RD-001", "E-RD-002", "E-IS-001", "E-IS-002", "E-RL-001", "E-RF-001"]

WIRE_DOC = {
    "meta": {"source_repo": {"full_name": "acme/notes", "url": "https://github.com/acme/notes"}},
    "app": {"name": "Notes", "one_sentence": "Local-first note taking."},
    "core_loop": "write, save, search",
    "screens": [
        {"id": "main", "name": "Main", "purpose": "Edit notes", "primary_actions": ["Save", "Search"]},
    ],
    "rust_commands": [
        {
            "name": "save_note",
            "purpose": "Persist a note",
            "async": True,
            "input": {"title": "string", "body": "string"},
            "output": {"ok": "boolean"},
        },
    ],
    "data_model": {
        "tables": [
            {"name": "notes", "fields": [{"name": "id", "type": "INTEGER"}, {"name": "title", "type": "TEXT"}]},
        ],
    },
    "mvp_plan": {"milestones": [{"week": 1, "tasks": ["Editor"]}]},
    "acceptance_tests": ["Saving a note persists it"],
    "overall_recommendation": "go",
    "citations": {
        "app": ["E-RD-001"],
        "core_loop": ["E-RD-001"],
        "screens": {"main": ["E-RD-002"]},
        "commands": {"save_note": ["E-IS-001"]},
        "tables": {"notes": ["E-RD-002"]},
        "acceptance_tests": {"0": ["E-IS-001"]},
    },
}


def make_wire(**overrides):
    """Deep copy of the fully cited wire document with top-level overrides."""
    doc = copy.deepcopy(WIRE_DOC)
    doc.update(copy.deepcopy(overrides))
    return doc


def make_canonical(**overrides):
    """Validated CanonicalDocument built from make_wire(**overrides)."""
    from topic_miner.bridge.canonical_schemas import validate_canonical
    from topic_miner.bridge.normalize import normalize_wire

    return validate_canonical(normalize_wire(make_wire(**overrides)).canonical)


def make_evidence(evidence_id, evidence_type="readme", title=None, excerpt="", **meta):
    from topic_miner.evidence import EvidenceItem

    return EvidenceItem(
        id=evidence_id,
        type=evidence_type,
        source_url=f"https://github.com/acme/notes#{evidence_id}",
        title=title or evidence_id,
        excerpt=excerpt or f"excerpt for {evidence_id}",
        fetched_at="2026-01-01T00:00:00Z",
        meta=dict(meta),
    )


@pytest.fixture
def wire_doc():
    return make_wire()


@pytest.fixture
def wire_text():
    return json.dumps(make_wire())


@pytest.fixture
def allowed_ids():
    return list(ALLOWED_IDS)


@pytest.fixture
def repo_card():
    from topic_miner.evidence import RepoCard

    types = {"RD": "readme", "IS": "issue", "RL": "release", "RF": "root_files"}
    evidence = [make_evidence(eid, types[eid.split("-")[1]], segment=1) for eid in ALLOWED_IDS]
    return RepoCard(
        full_name="acme/notes",
        html_url="https://github.com/acme/notes",
        description="Notes app",
        topics=["notes", "tauri"],
        language="Rust",
        root_files=["Cargo.toml", "schema.sql"],
        evidence=evidence,
    )
