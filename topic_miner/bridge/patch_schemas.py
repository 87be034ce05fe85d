# FILE: topic_miner/bridge/patch_schemas.py
"""Citations patch: the only thing the repair step is allowed to emit.

Strict partial citations map. Unknown top-level keys are rejected so a
repair response can never smuggle in business content.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from topic_miner.bridge.errors import SchemaError, format_validation_issues

PATCH_KEYS = ("app", "core_loop", "screens", "commands", "tables", "acceptance_tests")


class CitationsPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    app: Optional[List[StrictStr]] = None
    core_loop: Optional[List[StrictStr]] = None
    screens: Optional[Dict[StrictStr, List[StrictStr]]] = None
    commands: Optional[Dict[StrictStr, List[StrictStr]]] = None
    tables: Optional[Dict[StrictStr, List[StrictStr]]] = None
    acceptance_tests: Optional[Dict[StrictStr, List[StrictStr]]] = None

    def iter_ids(self) -> Iterator[str]:
        for ids in (self.app, self.core_loop):
            for eid in ids or []:
                yield eid
        for group in (self.screens, self.commands, self.tables, self.acceptance_tests):
            for key in group or {}:
                for eid in group[key]:
                    yield eid

    def present_keys(self) -> List[str]:
        """Top-level keys actually supplied by the model."""
        return [k for k in PATCH_KEYS if getattr(self, k) is not None]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def validate_patch(data: Any) -> CitationsPatch:
    """Raises SchemaError for non-objects, unknown keys or wrong value types."""
    if not isinstance(data, dict):
        raise SchemaError(
            f"citations patch must be an object, got {type(data).__name__}",
            issues=["<root>: expected object"],
        )
    try:
        return CitationsPatch.model_validate(data)
    except ValidationError as e:
        issues = format_validation_issues(e)
        raise SchemaError("citations patch rejected: " + "; ".join(issues), issues=issues) from e


__all__ = ["PATCH_KEYS", "CitationsPatch", "validate_patch"]
