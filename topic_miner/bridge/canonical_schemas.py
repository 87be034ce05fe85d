# FILE: topic_miner/bridge/canonical_schemas.py
"""Canonical schema: the strict, persisted app spec document.

RULES:
1. Every field is required and strictly typed (no str<->int coercion)
2. Command input/output: non-empty dict of field -> I/O type token
   (string|boolean|int|float|timestamp|json, optionally suffixed '?')
3. Column types: TEXT|INTEGER|REAL|BOOLEAN|BLOB|JSON|DATETIME
4. Names unique within screens, commands, tables and columns of a table
5. No placeholder keys in command I/O

Citations live next to the content in `citations` and are NOT part of the
on-disk document (see to_disk_dict()).
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, Dict, Iterator, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator, model_validator

from topic_miner.bridge.errors import SchemaError, format_validation_issues

logger = logging.getLogger(__name__)


# =============================================================================
# Vocabularies
# =============================================================================

SCHEMA_VERSION = 3

IO_BASE_TYPES = ("string", "boolean", "int", "float", "timestamp", "json")
IO_TYPE_RE = re.compile(r"^(string|boolean|int|float|timestamp|json)\??$")

COLUMN_TYPES = ("TEXT", "INTEGER", "REAL", "BOOLEAN", "BLOB", "JSON", "DATETIME")

PLACEHOLDER_KEYS = frozenset({"placeholder", "todo", "tbd", "example", "dummy", "mock"})

# Exactly these keys are written to disk
DISK_TOP_LEVEL_KEYS = (
    "schema_version",
    "app",
    "screens",
    "rust_commands",
    "data_model",
    "mvp_plan",
    "acceptance_tests",
)

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]
IoType = Annotated[StrictStr, Field(pattern=IO_TYPE_RE.pattern)]
ColumnType = Literal["TEXT", "INTEGER", "REAL", "BOOLEAN", "BLOB", "JSON", "DATETIME"]
EvidenceIds = List[StrictStr]


def is_io_type(value: Any) -> bool:
    return isinstance(value, str) and bool(IO_TYPE_RE.match(value))


def is_placeholder_key(key: Any) -> bool:
    return isinstance(key, str) and key.strip().lower() in PLACEHOLDER_KEYS


class CanonicalModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# =============================================================================
# Content models
# =============================================================================

class CanonicalApp(CanonicalModel):
    name: NonEmptyStr
    one_liner: NonEmptyStr


class CanonicalScreen(CanonicalModel):
    name: NonEmptyStr
    purpose: NonEmptyStr
    primary_actions: List[NonEmptyStr]


class CanonicalCommand(CanonicalModel):
    name: NonEmptyStr
    purpose: NonEmptyStr
    is_async: StrictBool = Field(alias="async")
    input: Dict[NonEmptyStr, IoType]
    output: Dict[NonEmptyStr, IoType]

    @field_validator("input", "output")
    @classmethod
    def _io_non_empty_without_placeholders(cls, value: Dict[str, str]) -> Dict[str, str]:
        if not value:
            raise ValueError("command I/O dictionary must not be empty")
        bad = [k for k in value if is_placeholder_key(k)]
        if bad:
            raise ValueError(f"command I/O contains placeholder keys: {bad}")
        return value


class CanonicalColumn(CanonicalModel):
    name: NonEmptyStr
    type: ColumnType


class CanonicalTable(CanonicalModel):
    name: NonEmptyStr
    columns: List[CanonicalColumn] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_columns(self) -> "CanonicalTable":
        dupes = _duplicates(c.name for c in self.columns)
        if dupes:
            raise ValueError(f"duplicate column names in table {self.name}: {dupes}")
        return self


class CanonicalDataModel(CanonicalModel):
    tables: List[CanonicalTable]


class CitationsMap(CanonicalModel):
    """Evidence ids per citation-bearing field."""

    app: EvidenceIds = Field(default_factory=list)
    core_loop: EvidenceIds = Field(default_factory=list)
    screens: Dict[StrictStr, EvidenceIds] = Field(default_factory=dict)
    commands: Dict[StrictStr, EvidenceIds] = Field(default_factory=dict)
    tables: Dict[StrictStr, EvidenceIds] = Field(default_factory=dict)
    acceptance_tests: Dict[StrictStr, EvidenceIds] = Field(default_factory=dict)


def _duplicates(names) -> List[str]:
    seen = set()
    dupes = []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


# =============================================================================
# Document
# =============================================================================

class CanonicalDocument(CanonicalModel):
    schema_version: Literal[3]
    app: CanonicalApp
    screens: List[CanonicalScreen]
    rust_commands: List[CanonicalCommand]
    data_model: CanonicalDataModel
    mvp_plan: List[NonEmptyStr]
    acceptance_tests: List[NonEmptyStr]
    citations: CitationsMap = Field(default_factory=CitationsMap)

    @model_validator(mode="after")
    def _unique_sibling_names(self) -> "CanonicalDocument":
        for label, names in (
            ("screen", [s.name for s in self.screens]),
            ("rust command", [c.name for c in self.rust_commands]),
            ("table", [t.name for t in self.data_model.tables]),
        ):
            dupes = _duplicates(names)
            if dupes:
                raise ValueError(f"duplicate {label} names: {dupes}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Full in-memory form, citations included."""
        return self.model_dump(by_alias=True)

    def to_disk_dict(self) -> Dict[str, Any]:
        """On-disk form: exactly DISK_TOP_LEVEL_KEYS, no citations."""
        return self.model_dump(by_alias=True, exclude={"citations"})

    def citation_entries(self) -> Iterator[Tuple[str, List[str]]]:
        """Yield (logical key, evidence ids) for every required citation key.

        Keys: app, core_loop, screen:<name>, command:<name>, table:<name>,
        acceptance_test:<index>.
        """
        c = self.citations
        yield "app", list(c.app)
        yield "core_loop", list(c.core_loop)
        for screen in self.screens:
            yield f"screen:{screen.name}", list(c.screens.get(screen.name, []))
        for command in self.rust_commands:
            yield f"command:{command.name}", list(c.commands.get(command.name, []))
        for table in self.data_model.tables:
            yield f"table:{table.name}", list(c.tables.get(table.name, []))
        for idx in range(len(self.acceptance_tests)):
            yield f"acceptance_test:{idx}", list(c.acceptance_tests.get(str(idx), []))

    def all_cited_ids(self) -> List[str]:
        """Every id in the citations map, first-seen order, deduplicated.

        Walks the whole map, including entries whose name no longer matches
        a document entity, so nothing escapes the evidence gate.
        """
        seen: Dict[str, None] = {}
        c = self.citations
        for ids in (c.app, c.core_loop):
            for eid in ids:
                seen.setdefault(eid, None)
        for group in (c.screens, c.commands, c.tables, c.acceptance_tests):
            for key in group:
                for eid in group[key]:
                    seen.setdefault(eid, None)
        return list(seen)


def validate_canonical(data: Any) -> CanonicalDocument:
    """Strictly validate a canonical candidate.

    Accepts a dict or an existing CanonicalDocument (re-validated from its
    dump, so mutations made after construction are caught too).

    Raises:
        SchemaError: on any structural or vocabulary violation.
    """
    if isinstance(data, CanonicalDocument):
        data = data.to_dict()
    if not isinstance(data, dict):
        raise SchemaError(
            f"canonical document must be an object, got {type(data).__name__}",
            issues=["<root>: expected object"],
        )
    try:
        return CanonicalDocument.model_validate(data)
    except ValidationError as e:
        issues = format_validation_issues(e)
        logger.debug(f"[bridge] canonical validation failed: {issues}")
        raise SchemaError("canonical validation failed: " + "; ".join(issues), issues=issues) from e


__all__ = [
    "SCHEMA_VERSION",
    "IO_BASE_TYPES",
    "COLUMN_TYPES",
    "PLACEHOLDER_KEYS",
    "DISK_TOP_LEVEL_KEYS",
    "CanonicalDocument",
    "CanonicalApp",
    "CanonicalScreen",
    "CanonicalCommand",
    "CanonicalTable",
    "CanonicalColumn",
    "CanonicalDataModel",
    "CitationsMap",
    "is_io_type",
    "is_placeholder_key",
    "validate_canonical",
]
