# FILE: topic_miner/bridge/wire_schemas.py
"""Wire schema: the loose document shape a synthesis model emits.

Every field is optional and most collections accept either a bare string or
a structured object. Unknown keys are kept (extra="allow"). The only things
rejected here are a non-object document and known fields carrying a clearly
wrong JSON type (e.g. app.name = 5). Everything else is left for the
normalizer to repair.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from topic_miner.bridge.errors import SchemaError, format_validation_issues

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# =============================================================================
# Leaf shapes
# =============================================================================

class WireSourceRepo(WireModel):
    full_name: Optional[str] = None
    url: Optional[str] = None


class WireMeta(WireModel):
    source_repo: Optional[WireSourceRepo] = None
    topics: Optional[List[str]] = None


class WireApp(WireModel):
    name: Optional[str] = None
    one_liner: Optional[str] = None
    one_sentence: Optional[str] = None
    inspired_by: Optional[str] = None


class WireScreen(WireModel):
    id: Optional[str] = None
    name: Optional[str] = None
    purpose: Optional[str] = None
    primary_actions: Optional[List[str]] = None


class WireCommand(WireModel):
    name: Optional[str] = None
    purpose: Optional[str] = None
    is_async: Optional[bool] = Field(default=None, alias="async")
    # input/output are deliberately untyped: null, arrays, wrappers and
    # placeholder dicts are all repaired by the normalizer
    input: Any = None
    output: Any = None


class WireColumn(WireModel):
    name: Optional[str] = None
    type: Optional[str] = None
    notes: Optional[str] = None


class WireTable(WireModel):
    name: Optional[str] = None
    columns: Optional[List[Union[str, WireColumn]]] = None
    fields: Optional[List[Union[str, WireColumn]]] = None
    indexes: Optional[List[str]] = None


class WireDataModel(WireModel):
    tables: Optional[List[Union[str, WireTable]]] = None


class WireMilestone(WireModel):
    week: Optional[Union[int, float, str]] = None
    tasks: Optional[List[str]] = None


class WireMvpPlan(WireModel):
    milestones: Optional[List[WireMilestone]] = None


class WireAcceptanceTest(WireModel):
    test: Optional[str] = None


# =============================================================================
# Document
# =============================================================================

class WireDocument(WireModel):
    """Loose model output. Exists only to be normalized."""

    meta: Optional[WireMeta] = None
    app: Optional[WireApp] = None
    core_loop: Optional[str] = None
    screens: Optional[List[Union[str, WireScreen]]] = None
    rust_commands: Optional[List[Union[str, WireCommand]]] = None
    data_model: Optional[WireDataModel] = None
    mvp_plan: Optional[Union[List[Union[str, WireMilestone]], WireMvpPlan]] = None
    acceptance_tests: Optional[List[Union[str, WireAcceptanceTest]]] = None
    open_questions: Optional[List[str]] = None
    scores: Optional[Dict[str, Any]] = None
    overall_recommendation: Optional[str] = None
    # map variant, list variant ({items: [{key, evidence_ids}]}) or any record/array
    citations: Optional[Union[Dict[str, Any], List[Any]]] = None
    tauri_capabilities: Optional[List[Union[str, List[str]]]] = None

    def to_plain(self) -> Dict[str, Any]:
        """Dump back to plain JSON-like data (aliases restored, extras kept)."""
        return self.model_dump(by_alias=True, exclude_unset=True)


def validate_wire(data: Any) -> WireDocument:
    """Accept a decoded model document as a WireDocument.

    Raises:
        SchemaError: if the document is not an object or a known field has
            an incompatible type.
    """
    if isinstance(data, WireDocument):
        return data
    if not isinstance(data, dict):
        raise SchemaError(
            f"wire document must be a JSON object, got {type(data).__name__}",
            issues=["<root>: expected object"],
        )
    try:
        return WireDocument.model_validate(data)
    except ValidationError as e:
        issues = format_validation_issues(e)
        logger.debug(f"[bridge] wire validation failed: {issues}")
        raise SchemaError("wire validation failed: " + "; ".join(issues), issues=issues) from e


__all__ = [
    "WireDocument",
    "WireApp",
    "WireScreen",
    "WireCommand",
    "WireTable",
    "WireColumn",
    "WireMilestone",
    "validate_wire",
]
