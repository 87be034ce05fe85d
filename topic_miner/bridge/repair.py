# FILE: topic_miner/bridge/repair.py
"""Citation patch repair: ask the model for citations of missing keys only.

The response must be a strict CitationsPatch. Anything else (transport
error, no JSON object, unknown keys, wrong types) surfaces as RepairError;
whether the returned ids are grounded is checked by the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from topic_miner.bridge.errors import RepairError, SchemaError
from topic_miner.bridge.patch_schemas import CitationsPatch, validate_patch
from topic_miner.events import EventLedger
from topic_miner.llm.client import ChatJSON
from topic_miner.llm.json_extract import extract_json_from_llm_output

logger = logging.getLogger(__name__)

REPAIR_ROLE = "repair_patch"

REPAIR_PATCH_START = "REPAIR_PATCH_START"
REPAIR_PATCH_OK = "REPAIR_PATCH_OK"
REPAIR_PATCH_FAIL = "REPAIR_PATCH_FAIL"

REPAIR_SYSTEM_PROMPT = " ".join([
    "You are a citation patch generator.",
    "Output JSON only.",
    "Output must match this strict shape: {app?,core_loop?,screens?,commands?,tables?,acceptance_tests?}.",
    "Do not output any business fields. Do not rewrite app/core_loop text/screens/commands/tables/tests.",
    "Only include keys that correspond to missingKeys provided by user.",
    "For each included key, provide one or more evidence ids copied exactly from allowedEvidenceIds.",
    "Never invent ids and never output explanations.",
])


@dataclass
class RepairOutcome:
    patch: CitationsPatch
    raw: str


def build_repair_user_prompt(
    missing_keys: Sequence[str],
    allowed_evidence_ids: Sequence[str],
    evidence_lines: Sequence[str],
) -> str:
    return json.dumps(
        {
            "task": "Generate minimal citations patch for missing keys only.",
            "missingKeys": list(missing_keys),
            "allowedEvidenceIds": list(allowed_evidence_ids),
            "evidence_lines": list(evidence_lines),
            "output_example": {
                "app": ["E-RD-001"],
                "commands": {"save_item": ["E-IS-003"]},
                "acceptance_tests": {"0": ["E-IS-002"]},
            },
        },
        indent=2,
    )


async def repair_citations_with_patch(
    llm: ChatJSON,
    *,
    repo_id: str,
    missing_keys: Sequence[str],
    allowed_evidence_ids: Sequence[str],
    evidence_lines: Sequence[str],
    attempt: int,
    iteration: Optional[int] = None,
    events: Optional[EventLedger] = None,
) -> RepairOutcome:
    """Request and validate one citations patch.

    Raises:
        RepairError: transport failure, no JSON object in the response, or
            a response that does not match the CitationsPatch schema.
    """
    info: Dict[str, Any] = {
        "iter": iteration,
        "attempt": attempt,
        "missing_keys_count": len(missing_keys),
    }
    if events is not None:
        events.emit(REPAIR_PATCH_START, node="bridge", repo=repo_id, **info)

    user_prompt = build_repair_user_prompt(missing_keys, allowed_evidence_ids, evidence_lines)
    try:
        try:
            raw = await llm(REPAIR_SYSTEM_PROMPT, user_prompt, role=REPAIR_ROLE)
        except Exception as e:
            raise RepairError(f"repair call failed: {e}") from e

        parsed = extract_json_from_llm_output(raw)
        if parsed is None:
            raise RepairError("No JSON object found in repair patch response")
        try:
            patch = validate_patch(parsed)
        except SchemaError as e:
            raise RepairError(str(e)) from e
    except RepairError as e:
        logger.warning(f"[repair] {repo_id} attempt {attempt}: {e}")
        if events is not None:
            events.emit(REPAIR_PATCH_FAIL, level="warn", node="bridge", repo=repo_id, error=str(e), **info)
        raise

    if events is not None:
        events.emit(REPAIR_PATCH_OK, node="bridge", repo=repo_id, **info)
    return RepairOutcome(patch=patch, raw=raw)


__all__ = [
    "REPAIR_ROLE",
    "REPAIR_SYSTEM_PROMPT",
    "RepairOutcome",
    "build_repair_user_prompt",
    "repair_citations_with_patch",
]
