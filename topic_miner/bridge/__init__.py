# FILE: topic_miner/bridge/__init__.py
"""Spec bridge: wire document -> grounded canonical document.

Public surface:
- validate_wire / validate_canonical: schema validators
- normalize_wire: total wire -> canonical normalizer
- check_evidence / check_quality: citation gates
- patch helpers and repair_citations_with_patch: citation-only repair
- run_bridge: the full state machine, returning a BridgeResult
"""

from topic_miner.bridge.canonical_json import canonical_json_string, compute_document_hash, pretty_json_string
from topic_miner.bridge.canonical_schemas import (
    DISK_TOP_LEVEL_KEYS,
    SCHEMA_VERSION,
    CanonicalDocument,
    CitationsMap,
    validate_canonical,
)
from topic_miner.bridge.errors import BridgeError, ParseError, RepairError, SchemaError
from topic_miner.bridge.evidence_gate import EvidenceGateResult, check_evidence
from topic_miner.bridge.normalize import NormalizeResult, normalize_wire
from topic_miner.bridge.orchestrator import DEFAULT_MAX_REPAIR_ATTEMPTS, BridgeInput, BridgeResult, run_bridge
from topic_miner.bridge.patch_ops import apply_citations_patch, compute_missing_citation_keys, unknown_ids_in_patch
from topic_miner.bridge.patch_schemas import CitationsPatch, validate_patch
from topic_miner.bridge.quality_gate import Coverage, QualityGateConfig, QualityGateResult, check_quality
from topic_miner.bridge.repair import RepairOutcome, repair_citations_with_patch
from topic_miner.bridge.report import BridgeErrorCode, BridgeReport, FinalResult, StageName, StageResult
from topic_miner.bridge.wire_schemas import WireDocument, validate_wire

__all__ = [
    # Schemas
    "SCHEMA_VERSION",
    "DISK_TOP_LEVEL_KEYS",
    "WireDocument",
    "CanonicalDocument",
    "CitationsMap",
    "CitationsPatch",
    "validate_wire",
    "validate_canonical",
    "validate_patch",
    # Errors
    "BridgeError",
    "ParseError",
    "SchemaError",
    "RepairError",
    # Stages
    "NormalizeResult",
    "normalize_wire",
    "EvidenceGateResult",
    "check_evidence",
    "Coverage",
    "QualityGateConfig",
    "QualityGateResult",
    "check_quality",
    "compute_missing_citation_keys",
    "unknown_ids_in_patch",
    "apply_citations_patch",
    "RepairOutcome",
    "repair_citations_with_patch",
    # Orchestrator
    "DEFAULT_MAX_REPAIR_ATTEMPTS",
    "BridgeInput",
    "BridgeResult",
    "run_bridge",
    "BridgeErrorCode",
    "BridgeReport",
    "FinalResult",
    "StageName",
    "StageResult",
    # Serialization
    "canonical_json_string",
    "pretty_json_string",
    "compute_document_hash",
]
