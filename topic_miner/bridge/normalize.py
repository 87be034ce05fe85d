# FILE: topic_miner/bridge/normalize.py
"""Deterministic wire -> canonical normalizer.

normalize_wire() is total: it accepts a WireDocument, a plain mapping or
arbitrary junk, never raises, and always returns a canonical candidate plus
a fixes/warnings log. The candidate is a plain dict; the orchestrator's
canonical_validate stage turns it into a CanonicalDocument.

Rules applied (in order):
1. Scalars: non-blank strings are stripped and kept, else documented defaults
2. Collections: bare strings become minimal records; an empty collection
   gets exactly one default entry
3. Names unique per sibling collection (and per table for columns):
   input order, collisions get _2, _3, ...
4. Column types mapped through the synonym table
5. Command I/O unwrapped, placeholder-free, typed, template-filled when empty
6. Screens/commands/tables sorted by name, mvp_plan/acceptance_tests sorted
7. Citations re-keyed to final names and post-sort test indices

Running the normalizer on its own output changes nothing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from topic_miner.bridge.canonical_schemas import IO_BASE_TYPES, SCHEMA_VERSION, is_placeholder_key
from topic_miner.bridge.wire_schemas import WireDocument

logger = logging.getLogger(__name__)


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_APP_NAME = "Untitled App"
DEFAULT_ONE_LINER = "A desktop app generated from repository evidence."
DEFAULT_SCREEN_PURPOSE = "Main workflow screen"
DEFAULT_SCREEN_ACTIONS = ["Open", "Run"]
DEFAULT_COMMAND_PURPOSE = "Execute core operation"
DEFAULT_ACCEPTANCE_TEST = "Given valid input, when run, then result is stored and displayed."
DEFAULT_MVP_TASK = "week 1: Implement MVP flow"

FALLBACK_INPUT = {"payload": "json"}
FALLBACK_OUTPUT = {"ok": "boolean", "result": "json?"}

# Top-level wire keys that feed the canonical document
_CONSUMED_KEYS = frozenset({
    "schema_version", "app", "core_loop", "screens", "rust_commands",
    "data_model", "mvp_plan", "acceptance_tests", "citations",
})

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_DIGITS_RE = re.compile(r"\d+")
_TYPE_BASE_RE = re.compile(r"[(<\[\s]")


# =============================================================================
# Column type vocabulary
# =============================================================================

def _synonyms(canonical: str, words: Iterable[str]) -> Dict[str, str]:
    return {w: canonical for w in words}


COLUMN_TYPE_SYNONYMS: Dict[str, str] = {}
COLUMN_TYPE_SYNONYMS.update(_synonyms("INTEGER", (
    "int", "integer", "i8", "i16", "i32", "i64", "i128", "u8", "u16", "u32",
    "u64", "u128", "isize", "usize", "bigint", "smallint", "tinyint",
    "mediumint", "serial", "bigserial", "long", "short",
)))
COLUMN_TYPE_SYNONYMS.update(_synonyms("REAL", (
    "float", "double", "real", "decimal", "number", "numeric", "f32", "f64",
    "float4", "float8", "money",
)))
COLUMN_TYPE_SYNONYMS.update(_synonyms("BOOLEAN", ("bool", "boolean")))
COLUMN_TYPE_SYNONYMS.update(_synonyms("BLOB", (
    "blob", "binary", "bytes", "bytea", "varbinary", "buffer", "vec<u8>",
)))
COLUMN_TYPE_SYNONYMS.update(_synonyms("JSON", (
    "json", "jsonb", "object", "map", "dict", "array", "list", "set", "any",
    "enum", "vec", "hashmap", "btreemap", "record", "tuple",
)))
COLUMN_TYPE_SYNONYMS.update(_synonyms("DATETIME", (
    "datetime", "timestamp", "timestamptz", "date", "time", "instant",
)))

# Column type -> command I/O token, used by the default command template
COLUMN_TO_IO = {
    "INTEGER": "int",
    "REAL": "float",
    "BOOLEAN": "boolean",
    "BLOB": "string",
    "JSON": "json",
    "DATETIME": "timestamp",
    "TEXT": "string",
}

_IO_SYNONYMS = {
    "str": "string",
    "text": "string",
    "bool": "boolean",
    "integer": "int",
    "number": "float",
    "double": "float",
    "datetime": "timestamp",
    "date": "timestamp",
    "object": "json",
    "array": "json",
    "any": "json",
}


def canonical_column_type(raw: Any) -> str:
    """Map a free-form column type onto TEXT|INTEGER|REAL|BOOLEAN|BLOB|JSON|DATETIME."""
    if not isinstance(raw, str):
        return "TEXT"
    token = raw.strip().lower()
    if not token or token.endswith("?"):
        return "TEXT"
    if token in COLUMN_TYPE_SYNONYMS:
        return COLUMN_TYPE_SYNONYMS[token]
    if token.endswith("[]"):
        return "JSON"
    base = _TYPE_BASE_RE.split(token, maxsplit=1)[0]
    return COLUMN_TYPE_SYNONYMS.get(base, "TEXT")


def coerce_io_type(value: Any) -> str:
    """Infer an I/O type token from a JSON value (or an existing token)."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if value is None:
        return "json?"
    if isinstance(value, (list, dict)):
        return "json"
    if isinstance(value, str):
        token = value.strip().lower()
        optional = token.endswith("?")
        base = token[:-1] if optional else token
        base = _IO_SYNONYMS.get(base, base)
        if base in IO_BASE_TYPES:
            return base + "?" if optional else base
        return "string"
    return "json"


# =============================================================================
# Result
# =============================================================================

@dataclass
class NormalizeResult:
    canonical: Dict[str, Any]
    fixes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonical": self.canonical,
            "fixes": list(self.fixes),
            "warnings": list(self.warnings),
        }


# =============================================================================
# Helpers
# =============================================================================

def _as_str(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _uniquify(entries: List[Dict[str, Any]], label: str, fixes: List[str]) -> None:
    """Rename colliding entries in place, in input order."""
    used = set()
    for entry in entries:
        base = entry["name"]
        name = base
        n = 2
        while name in used:
            name = f"{base}_{n}"
            n += 1
        if name != base:
            fixes.append(f"{label} '{base}' renamed to '{name}'")
            entry["renamed"] = True
        used.add(name)
        entry["name"] = name


def _register(lookup: Dict[str, str], label: Any, final_name: str) -> None:
    if isinstance(label, str) and label.strip():
        lookup.setdefault(label.strip(), final_name)


def _verb_matches(name: str, *verbs: str) -> bool:
    lowered = name.lower()
    return any(lowered == v or lowered.startswith(v + "_") for v in verbs)


def _parse_week(value: Any, idx: int) -> int:
    week: Optional[int] = None
    if isinstance(value, bool):
        week = None
    elif isinstance(value, int):
        week = value
    elif isinstance(value, float):
        try:
            week = int(value)
        except (ValueError, OverflowError):
            week = None
    elif isinstance(value, str):
        try:
            week = int(value.strip())
        except ValueError:
            match = _DIGITS_RE.search(value)
            week = int(match.group(0)) if match else None
    if week is None:
        week = idx + 1
    return max(1, week)


# =============================================================================
# Sections
# =============================================================================

def _normalize_app(doc: Dict[str, Any], fixes: List[str]) -> Dict[str, str]:
    app = doc.get("app") if isinstance(doc.get("app"), dict) else {}
    name = _as_str(app.get("name"), DEFAULT_APP_NAME)
    one_liner = _as_str(app.get("one_liner"), _as_str(app.get("one_sentence"), DEFAULT_ONE_LINER))
    if name == DEFAULT_APP_NAME and app.get("name") != DEFAULT_APP_NAME:
        fixes.append("app.name defaulted")
    if one_liner == DEFAULT_ONE_LINER and app.get("one_liner") != DEFAULT_ONE_LINER:
        fixes.append("app.one_liner defaulted")
    return {"name": name, "one_liner": one_liner}


def _normalize_screens(
    doc: Dict[str, Any], fixes: List[str], warnings: List[str]
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    entries: List[Dict[str, Any]] = []
    for idx, item in enumerate(_as_list(doc.get("screens"))):
        if isinstance(item, str):
            if not item.strip():
                warnings.append(f"screens[{idx}]: blank entry dropped")
                continue
            text = item.strip()
            entries.append({
                "name": text, "purpose": text,
                "primary_actions": list(DEFAULT_SCREEN_ACTIONS), "labels": [text],
            })
        elif isinstance(item, dict):
            name = _as_str(item.get("name"), _as_str(item.get("id"), f"Screen {idx + 1}"))
            actions = [a.strip() for a in _as_list(item.get("primary_actions")) if isinstance(a, str) and a.strip()]
            if not actions:
                actions = list(DEFAULT_SCREEN_ACTIONS)
            entries.append({
                "name": name,
                "purpose": _as_str(item.get("purpose"), DEFAULT_SCREEN_PURPOSE),
                "primary_actions": actions,
                "labels": [item.get("name"), item.get("id")],
            })
        else:
            warnings.append(f"screens[{idx}]: unsupported entry dropped")

    if not entries:
        entries.append({
            "name": "Main", "purpose": "Primary workflow screen",
            "primary_actions": ["Input", "Run", "Export"], "labels": [],
        })
        fixes.append("screens defaulted to single main screen")

    _uniquify(entries, "screen", fixes)
    lookup: Dict[str, str] = {}
    for entry in entries:
        _register(lookup, entry["name"], entry["name"])
    for entry in entries:
        labels = entry["labels"][1:] if entry.get("renamed") else entry["labels"]
        for label in labels:
            _register(lookup, label, entry["name"])

    entries.sort(key=lambda e: e["name"])
    screens = [
        {"name": e["name"], "purpose": e["purpose"], "primary_actions": e["primary_actions"]}
        for e in entries
    ]
    return screens, lookup


def _normalize_columns(table_name: str, raw_columns: List[Any], fixes: List[str]) -> List[Dict[str, str]]:
    columns: List[Dict[str, Any]] = []
    for item in raw_columns:
        if isinstance(item, str):
            if item.strip():
                columns.append({"name": item.strip(), "type": "TEXT"})
        elif isinstance(item, dict):
            raw_type = item.get("type")
            col_type = canonical_column_type(raw_type)
            name = _as_str(item.get("name"), "field")
            if isinstance(raw_type, str) and raw_type.strip() != col_type:
                fixes.append(f"table {table_name}: column {name} type '{raw_type.strip()}' -> {col_type}")
            columns.append({"name": name, "type": col_type})
    if not columns:
        columns.append({"name": "id", "type": "TEXT"})
    _uniquify(columns, f"table {table_name}: column", fixes)
    return [{"name": c["name"], "type": c["type"]} for c in columns]


def _normalize_tables(
    doc: Dict[str, Any], fixes: List[str], warnings: List[str]
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    data_model = doc.get("data_model") if isinstance(doc.get("data_model"), dict) else {}
    entries: List[Dict[str, Any]] = []
    for idx, item in enumerate(_as_list(data_model.get("tables"))):
        if isinstance(item, str):
            if not item.strip():
                warnings.append(f"data_model.tables[{idx}]: blank entry dropped")
                continue
            entries.append({"name": item.strip(), "raw_columns": [], "labels": [item]})
        elif isinstance(item, dict):
            raw_columns = item.get("columns")
            if not isinstance(raw_columns, list):
                raw_columns = _as_list(item.get("fields"))
            entries.append({
                "name": _as_str(item.get("name"), f"table_{idx + 1}"),
                "raw_columns": raw_columns,
                "labels": [item.get("name")],
            })
        else:
            warnings.append(f"data_model.tables[{idx}]: unsupported entry dropped")

    if not entries:
        entries.append({
            "name": "records",
            "raw_columns": [{"name": "id", "type": "TEXT"}, {"name": "created_at", "type": "TEXT"}],
            "labels": [],
        })
        fixes.append("data_model.tables defaulted to records")

    _uniquify(entries, "table", fixes)
    lookup: Dict[str, str] = {}
    for entry in entries:
        _register(lookup, entry["name"], entry["name"])
    for entry in entries:
        if not entry.get("renamed"):
            for label in entry["labels"]:
                _register(lookup, label, entry["name"])

    entries.sort(key=lambda e: e["name"])
    tables = [
        {"name": e["name"], "columns": _normalize_columns(e["name"], e["raw_columns"], fixes)}
        for e in entries
    ]
    return tables, lookup


def _clean_io(raw: Any) -> Dict[str, str]:
    """Unwrap `request`, drop placeholders, type every value, sort keys."""
    if not isinstance(raw, dict):
        return {}
    merged: Dict[Any, Any] = {}
    request = raw.get("request")
    if isinstance(request, dict):
        merged.update(request)
    for key, value in raw.items():
        if key == "request" and isinstance(value, dict):
            continue
        merged[key] = value

    out: Dict[str, str] = {}
    for key, value in merged.items():
        if not isinstance(key, str) or not key.strip() or is_placeholder_key(key):
            continue
        out[key.strip()] = coerce_io_type(value)
    return dict(sorted(out.items()))


def _template_io(name: str, tables: List[Dict[str, Any]]) -> Tuple[str, Dict[str, str], Dict[str, str]]:
    """Pick a verb template for a command by name prefix."""
    if _verb_matches(name, "lint"):
        return "lint", {"file_path": "string", "tool_type": "string?"}, \
            {"diagnostics": "json?", "message": "string?", "ok": "boolean"}
    if _verb_matches(name, "apply", "fix"):
        return "apply", {"file_path": "string", "fix_ids": "json?"}, \
            {"changed": "boolean?", "diff": "string?", "message": "string?", "ok": "boolean"}
    if _verb_matches(name, "connect"):
        return "connect", {"endpoint": "string", "token": "string?"}, \
            {"connected": "boolean", "message": "string?"}
    if _verb_matches(name, "list"):
        return "list", {"limit": "int?", "offset": "int?", "query": "string?"}, \
            {"items": "json", "total": "int?"}

    input_io: Dict[str, str] = {}
    if tables:
        for column in tables[0]["columns"]:
            if column["name"].lower() == "id":
                continue
            input_io[column["name"]] = COLUMN_TO_IO.get(column["type"], "string")
    if not input_io:
        return "fallback", dict(FALLBACK_INPUT), dict(FALLBACK_OUTPUT)
    return "default", dict(sorted(input_io.items())), dict(FALLBACK_OUTPUT)


def _normalize_commands(
    doc: Dict[str, Any], tables: List[Dict[str, Any]], fixes: List[str], warnings: List[str]
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    entries: List[Dict[str, Any]] = []
    for idx, item in enumerate(_as_list(doc.get("rust_commands"))):
        if isinstance(item, str):
            text = item.strip()
            if not text:
                warnings.append(f"rust_commands[{idx}]: blank entry dropped")
                continue
            if _IDENT_RE.match(text):
                entries.append({
                    "name": text, "purpose": DEFAULT_COMMAND_PURPOSE, "async": True,
                    "input": None, "output": None, "labels": [text],
                })
            else:
                entries.append({
                    "name": f"cmd_{idx + 1}", "purpose": text, "async": True,
                    "input": None, "output": None, "labels": [],
                })
        elif isinstance(item, dict):
            is_async = item.get("async")
            entries.append({
                "name": _as_str(item.get("name"), f"cmd_{idx + 1}"),
                "purpose": _as_str(item.get("purpose"), DEFAULT_COMMAND_PURPOSE),
                "async": is_async if isinstance(is_async, bool) else True,
                "input": item.get("input"),
                "output": item.get("output"),
                "labels": [item.get("name")],
            })
        else:
            warnings.append(f"rust_commands[{idx}]: unsupported entry dropped")

    if not entries:
        entries.append({
            "name": "run_main_flow", "purpose": "Execute core flow", "async": True,
            "input": None, "output": None, "labels": [],
        })
        fixes.append("rust_commands defaulted to run_main_flow")

    _uniquify(entries, "command", fixes)
    lookup: Dict[str, str] = {}
    for entry in entries:
        _register(lookup, entry["name"], entry["name"])
    for entry in entries:
        if not entry.get("renamed"):
            for label in entry["labels"]:
                _register(lookup, label, entry["name"])

    entries.sort(key=lambda e: e["name"])
    commands = []
    for entry in entries:
        name = entry["name"]
        input_io = _clean_io(entry["input"])
        output_io = _clean_io(entry["output"])
        if not input_io or not output_io:
            template, template_in, template_out = _template_io(name, tables)
            if not input_io:
                input_io = template_in
                fixes.append(f"command {name}: input filled from {template} template")
            if not output_io:
                output_io = template_out
                fixes.append(f"command {name}: output filled from {template} template")
        commands.append({
            "name": name,
            "purpose": entry["purpose"],
            "async": entry["async"],
            "input": input_io,
            "output": output_io,
        })
    return commands, lookup


def _normalize_mvp_plan(doc: Dict[str, Any], fixes: List[str]) -> List[str]:
    raw = doc.get("mvp_plan")
    if isinstance(raw, dict):
        source = _as_list(raw.get("milestones"))
    else:
        source = _as_list(raw)

    plan: List[str] = []
    for idx, item in enumerate(source):
        if isinstance(item, str):
            if item.strip():
                plan.append(item.strip())
        elif isinstance(item, dict):
            week = _parse_week(item.get("week"), idx)
            for task in _as_list(item.get("tasks")):
                if isinstance(task, str) and task.strip():
                    plan.append(f"week {week}: {task.strip()}")

    if not plan:
        plan.append(DEFAULT_MVP_TASK)
        fixes.append("mvp_plan defaulted to one task")
    return sorted(plan)


def _normalize_acceptance_tests(
    doc: Dict[str, Any], fixes: List[str]
) -> Tuple[List[str], Dict[str, str]]:
    """Returns sorted tests plus raw-index -> final-index mapping."""
    entries: List[Tuple[int, str]] = []
    for idx, item in enumerate(_as_list(doc.get("acceptance_tests"))):
        if isinstance(item, str):
            text = item.strip()
        elif isinstance(item, dict):
            text = _as_str(item.get("test"), "")
        else:
            text = ""
        if text:
            entries.append((idx, text))

    if not entries:
        fixes.append("acceptance_tests defaulted to one baseline test")
        return [DEFAULT_ACCEPTANCE_TEST], {}

    ordered = sorted(entries, key=lambda e: e[1])
    index_map = {str(raw_idx): str(final_idx) for final_idx, (raw_idx, _) in enumerate(ordered)}
    return [text for _, text in ordered], index_map


# =============================================================================
# Citations
# =============================================================================

_GROUP_PREFIX = {
    "screens": "screen",
    "commands": "command",
    "tables": "table",
    "acceptance_tests": "acceptance_test",
}


def _as_ids(value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]
    return None


def _wire_citation_pairs(raw: Any, warnings: List[str]) -> List[Tuple[str, Any]]:
    """Flatten map variant, list variant and logical keys into (key, ids) pairs."""
    pairs: List[Tuple[str, Any]] = []
    items: Optional[List[Any]] = None
    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, dict) and isinstance(raw.get("items"), list):
        items = raw["items"]

    if items is not None:
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("key"), str):
                pairs.append((item["key"].strip(), item.get("evidence_ids")))
            else:
                warnings.append("citations: unusable list entry dropped")
        return pairs

    if raw is None:
        return pairs
    if not isinstance(raw, dict):
        warnings.append("citations: unsupported shape dropped")
        return pairs

    for key, value in raw.items():
        if not isinstance(key, str):
            continue
        if key in _GROUP_PREFIX:
            if isinstance(value, dict):
                for sub_key, ids in value.items():
                    pairs.append((f"{_GROUP_PREFIX[key]}:{sub_key}", ids))
            else:
                warnings.append(f"citations.{key}: expected an object, dropped")
        else:
            pairs.append((key, value))
    return pairs


def _normalize_citations(
    doc: Dict[str, Any],
    lookups: Dict[str, Dict[str, str]],
    required: Dict[str, List[str]],
    warnings: List[str],
) -> Dict[str, Any]:
    """Re-key wire citations onto final names; every required key gets a list."""
    merged: Dict[str, Dict[str, List[str]]] = {group: {} for group in _GROUP_PREFIX}
    app_ids: List[str] = []
    core_ids: List[str] = []

    for key, value in _wire_citation_pairs(doc.get("citations"), warnings):
        ids = _as_ids(value)
        if ids is None:
            warnings.append(f"citations: '{key}' has no usable evidence ids, dropped")
            continue
        if key == "app":
            app_ids.extend(ids)
            continue
        if key == "core_loop":
            core_ids.extend(ids)
            continue
        prefix, sep, label = key.partition(":")
        group = next((g for g, p in _GROUP_PREFIX.items() if p == prefix), None)
        target = lookups[group].get(label.strip()) if (sep and group) else None
        if target is None:
            warnings.append(f"citations: dropped '{key}' (no matching entity)")
            continue
        merged[group].setdefault(target, []).extend(ids)

    citations: Dict[str, Any] = {
        "app": sorted(set(app_ids)),
        "core_loop": sorted(set(core_ids)),
    }
    for group in _GROUP_PREFIX:
        citations[group] = {name: sorted(set(merged[group].get(name, []))) for name in required[group]}
    return citations


# =============================================================================
# Entry point
# =============================================================================

def normalize_wire(wire: Any) -> NormalizeResult:
    """Turn a (validated or raw) wire document into a canonical candidate."""
    fixes: List[str] = []
    warnings: List[str] = []

    if isinstance(wire, WireDocument):
        doc = wire.to_plain()
    elif isinstance(wire, dict):
        doc = wire
    else:
        doc = {}
        warnings.append("wire document is not an object; all fields defaulted")

    for key in doc:
        if key not in _CONSUMED_KEYS:
            warnings.append(f"dropped wire field '{key}'")

    app = _normalize_app(doc, fixes)
    screens, screen_lookup = _normalize_screens(doc, fixes, warnings)
    tables, table_lookup = _normalize_tables(doc, fixes, warnings)
    commands, command_lookup = _normalize_commands(doc, tables, fixes, warnings)
    mvp_plan = _normalize_mvp_plan(doc, fixes)
    acceptance_tests, test_index_map = _normalize_acceptance_tests(doc, fixes)
    required = {
        "screens": [s["name"] for s in screens],
        "commands": [c["name"] for c in commands],
        "tables": [t["name"] for t in tables],
        "acceptance_tests": [str(i) for i in range(len(acceptance_tests))],
    }

    citations = _normalize_citations(
        doc,
        {
            "screens": screen_lookup,
            "commands": command_lookup,
            "tables": table_lookup,
            "acceptance_tests": test_index_map,
        },
        required,
        warnings,
    )

    canonical = {
        "schema_version": SCHEMA_VERSION,
        "app": app,
        "screens": screens,
        "rust_commands": commands,
        "data_model": {"tables": tables},
        "mvp_plan": mvp_plan,
        "acceptance_tests": acceptance_tests,
        "citations": citations,
    }
    logger.debug(f"[normalize] {len(fixes)} fixes, {len(warnings)} warnings")
    return NormalizeResult(canonical=canonical, fixes=fixes, warnings=warnings)


__all__ = [
    "NormalizeResult",
    "normalize_wire",
    "canonical_column_type",
    "coerce_io_type",
    "COLUMN_TYPE_SYNONYMS",
    "COLUMN_TO_IO",
    "FALLBACK_INPUT",
    "FALLBACK_OUTPUT",
]
