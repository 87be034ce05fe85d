# FILE: tests/test_normalize.py
"""Tests for the deterministic wire -> canonical normalizer."""

import pytest

from conftest import make_wire
from topic_miner.bridge.canonical_schemas import validate_canonical
from topic_miner.bridge.normalize import (
    DEFAULT_ACCEPTANCE_TEST,
    DEFAULT_MVP_TASK,
    FALLBACK_OUTPUT,
    canonical_column_type,
    coerce_io_type,
    normalize_wire,
)
from topic_miner.bridge.wire_schemas import validate_wire


class TestHappyPath:
    def test_full_wire_document(self, wire_doc):
        canonical = normalize_wire(wire_doc).canonical
        assert canonical["app"] == {"name": "Notes", "one_liner": "Local-first note taking."}
        assert canonical["screens"] == [
            {"name": "Main", "purpose": "Edit notes", "primary_actions": ["Save", "Search"]},
        ]
        assert canonical["rust_commands"][0]["input"] == {"body": "string", "title": "string"}
        assert canonical["data_model"]["tables"][0]["columns"] == [
            {"name": "id", "type": "INTEGER"},
            {"name": "title", "type": "TEXT"},
        ]
        assert canonical["mvp_plan"] == ["week 1: Editor"]

    def test_citations_rekeyed_to_names(self, wire_doc):
        """Screen citations keyed by id land on the screen name."""
        citations = normalize_wire(wire_doc).canonical["citations"]
        assert citations["screens"] == {"Main": ["E-RD-002"]}
        assert citations["commands"] == {"save_note": ["E-IS-001"]}
        assert citations["acceptance_tests"] == {"0": ["E-IS-001"]}

    def test_accepts_validated_wire(self, wire_doc):
        from_dict = normalize_wire(wire_doc).canonical
        from_model = normalize_wire(validate_wire(wire_doc)).canonical
        assert from_dict == from_model

    def test_unconsumed_fields_warned(self, wire_doc):
        result = normalize_wire(wire_doc)
        assert "dropped wire field 'meta'" in result.warnings
        assert "dropped wire field 'overall_recommendation'" in result.warnings

    def test_output_validates(self, wire_doc):
        validate_canonical(normalize_wire(wire_doc).canonical)


class TestDefaults:
    def test_empty_document(self):
        result = normalize_wire({})
        c = result.canonical
        assert c["app"]["name"] == "Untitled App"
        assert [s["name"] for s in c["screens"]] == ["Main"]
        assert [cmd["name"] for cmd in c["rust_commands"]] == ["run_main_flow"]
        assert c["data_model"]["tables"][0]["name"] == "records"
        assert [col["name"] for col in c["data_model"]["tables"][0]["columns"]] == ["id", "created_at"]
        assert c["acceptance_tests"] == [DEFAULT_ACCEPTANCE_TEST]
        assert c["mvp_plan"] == [DEFAULT_MVP_TASK]
        assert "screens defaulted to single main screen" in result.fixes
        validate_canonical(c)

    def test_non_object_input(self):
        result = normalize_wire("not json at all")
        assert "wire document is not an object; all fields defaulted" in result.warnings
        validate_canonical(result.canonical)

    def test_one_sentence_fills_one_liner(self):
        c = normalize_wire({"app": {"name": "X", "one_sentence": "Does things."}}).canonical
        assert c["app"]["one_liner"] == "Does things."

    def test_every_required_key_gets_citation_list(self):
        c = normalize_wire({"screens": ["Home"]}).canonical
        assert c["citations"]["screens"] == {"Home": []}
        assert c["citations"]["acceptance_tests"] == {"0": []}


class TestNames:
    def test_duplicate_screens_suffixed(self):
        result = normalize_wire({"screens": ["Search", "Search", "Search"]})
        names = [s["name"] for s in result.canonical["screens"]]
        assert names == ["Search", "Search_2", "Search_3"]
        assert "screen 'Search' renamed to 'Search_2'" in result.fixes

    def test_duplicate_screen_citations_follow_ids(self):
        result = normalize_wire({
            "screens": [{"id": "a", "name": "Home"}, {"id": "b", "name": "Home"}],
            "citations": {"screens": {"a": ["E-RD-001"], "b": ["E-RD-002"]}},
        })
        assert result.canonical["citations"]["screens"] == {
            "Home": ["E-RD-001"],
            "Home_2": ["E-RD-002"],
        }

    def test_duplicate_columns_suffixed(self):
        tables = normalize_wire({
            "data_model": {"tables": [{"name": "t", "columns": ["id", "id"]}]},
        }).canonical["data_model"]["tables"]
        assert [c["name"] for c in tables[0]["columns"]] == ["id", "id_2"]

    def test_prose_command_gets_generated_name(self):
        commands = normalize_wire({"rust_commands": ["Sync all the notes"]}).canonical["rust_commands"]
        assert commands[0]["name"] == "cmd_1"
        assert commands[0]["purpose"] == "Sync all the notes"


class TestCommandIO:
    def test_null_io_filled_from_list_template(self):
        result = normalize_wire({"rust_commands": [{"name": "list_notes", "input": None, "output": None}]})
        cmd = result.canonical["rust_commands"][0]
        assert cmd["input"] == {"limit": "int?", "offset": "int?", "query": "string?"}
        assert cmd["output"] == {"items": "json", "total": "int?"}
        assert "command list_notes: input filled from list template" in result.fixes

    def test_empty_io_filled_from_first_table(self, wire_doc):
        wire_doc["rust_commands"][0]["input"] = {}
        wire_doc["rust_commands"][0]["output"] = []
        cmd = normalize_wire(wire_doc).canonical["rust_commands"][0]
        assert cmd["input"] == {"title": "string"}
        assert cmd["output"] == FALLBACK_OUTPUT

    def test_placeholder_keys_dropped(self):
        cmd = normalize_wire({
            "rust_commands": [{"name": "save", "input": {"placeholder": "x", "title": "str"}, "output": {"ok": True}}],
        }).canonical["rust_commands"][0]
        assert cmd["input"] == {"title": "string"}
        assert cmd["output"] == {"ok": "boolean"}

    def test_request_wrapper_unwrapped(self):
        cmd = normalize_wire({
            "rust_commands": [{"name": "get", "input": {"request": {"id": "integer"}}, "output": {"note": {}}}],
        }).canonical["rust_commands"][0]
        assert cmd["input"] == {"id": "int"}
        assert cmd["output"] == {"note": "json"}

    def test_scalar_request_field_kept(self):
        cmd = normalize_wire({
            "rust_commands": [{"name": "send", "input": {"request": "string", "retries": 3}, "output": {"ok": True}}],
        }).canonical["rust_commands"][0]
        assert cmd["input"] == {"request": "string", "retries": "int"}

    def test_async_defaults_true(self):
        cmd = normalize_wire({"rust_commands": [{"name": "go", "async": "yes"}]}).canonical["rust_commands"][0]
        assert cmd["async"] is True


class TestColumnTypes:
    @pytest.mark.parametrize("raw,expected", [
        ("i64", "INTEGER"),
        ("BigInt", "INTEGER"),
        ("f64", "REAL"),
        ("bool", "BOOLEAN"),
        ("Vec<u8>", "BLOB"),
        ("jsonb", "JSON"),
        ("string[]", "JSON"),
        ("timestamp", "DATETIME"),
        ("varchar(255)", "TEXT"),
        ("uuid", "TEXT"),
        (None, "TEXT"),
    ])
    def test_synonyms(self, raw, expected):
        assert canonical_column_type(raw) == expected

    def test_fix_recorded(self):
        result = normalize_wire({
            "data_model": {"tables": [{"name": "t", "fields": [{"name": "n", "type": "i32"}]}]},
        })
        assert "table t: column n type 'i32' -> INTEGER" in result.fixes


class TestIoTypes:
    @pytest.mark.parametrize("value,expected", [
        (True, "boolean"),
        (3, "int"),
        (1.5, "float"),
        (None, "json?"),
        ([1], "json"),
        ("str", "string"),
        ("Integer?", "int?"),
        ("uuid", "string"),
    ])
    def test_coerce(self, value, expected):
        assert coerce_io_type(value) == expected


class TestOrdering:
    def test_collections_sorted(self):
        c = normalize_wire({
            "screens": ["Zed", "Alpha"],
            "rust_commands": ["zap", "add"],
            "mvp_plan": ["week 2: b", "week 1: a"],
        }).canonical
        assert [s["name"] for s in c["screens"]] == ["Alpha", "Zed"]
        assert [cmd["name"] for cmd in c["rust_commands"]] == ["add", "zap"]
        assert c["mvp_plan"] == ["week 1: a", "week 2: b"]

    def test_acceptance_test_citations_follow_sort(self):
        c = normalize_wire({
            "acceptance_tests": ["b runs", "a runs"],
            "citations": {"acceptance_tests": {"0": ["E-IS-001"], "1": ["E-IS-002"]}},
        }).canonical
        assert c["acceptance_tests"] == ["a runs", "b runs"]
        assert c["citations"]["acceptance_tests"] == {"0": ["E-IS-002"], "1": ["E-IS-001"]}

    def test_milestone_week_parsed(self):
        c = normalize_wire({"mvp_plan": {"milestones": [{"week": "Week 2", "tasks": ["Sync"]}, {"tasks": ["Core"]}]}})
        assert c.canonical["mvp_plan"] == ["week 2: Core", "week 2: Sync"]


class TestCitationShapes:
    def test_list_variant(self, wire_doc):
        wire_doc["citations"] = {"items": [{"key": "command:save_note", "evidence_ids": ["E-IS-002"]}]}
        c = normalize_wire(wire_doc).canonical
        assert c["citations"]["commands"] == {"save_note": ["E-IS-002"]}

    def test_logical_keys_in_map(self, wire_doc):
        wire_doc["citations"] = {"table:notes": "E-RD-001", "app": ["E-RD-002", "E-RD-001", "E-RD-002"]}
        c = normalize_wire(wire_doc).canonical
        assert c["citations"]["tables"] == {"notes": ["E-RD-001"]}
        assert c["citations"]["app"] == ["E-RD-001", "E-RD-002"]

    def test_unmatched_key_dropped_with_warning(self, wire_doc):
        wire_doc["citations"]["screens"]["nowhere"] = ["E-RD-001"]
        result = normalize_wire(wire_doc)
        assert "citations: dropped 'screen:nowhere' (no matching entity)" in result.warnings
        assert "nowhere" not in result.canonical["citations"]["screens"]


class TestIdempotence:
    def test_full_document(self, wire_doc):
        first = normalize_wire(wire_doc).canonical
        second = normalize_wire(first)
        assert second.canonical == first
        assert second.fixes == []

    def test_defaulted_document(self):
        first = normalize_wire({"rust_commands": [{"name": "list_x"}]}).canonical
        assert normalize_wire(first).canonical == first

    def test_renamed_document(self, wire_doc):
        """A document the normalizer had to rename stays fixed on a second pass."""
        wire_doc["screens"].append({"id": "main_alt", "name": "Main", "purpose": "Browse notes"})
        wire_doc["rust_commands"].append(dict(wire_doc["rust_commands"][0], purpose="Persist a draft"))
        wire_doc["data_model"]["tables"][0]["fields"].append({"name": "title", "type": "varchar(36)"})
        wire_doc["citations"]["screens"]["main_alt"] = ["E-RD-001"]

        first_result = normalize_wire(wire_doc)
        first = first_result.canonical
        assert [s["name"] for s in first["screens"]] == ["Main", "Main_2"]
        assert [c["name"] for c in first["rust_commands"]] == ["save_note", "save_note_2"]
        columns = first["data_model"]["tables"][0]["columns"]
        assert [(c["name"], c["type"]) for c in columns] == [("id", "INTEGER"), ("title", "TEXT"), ("title_2", "TEXT")]
        assert first["citations"]["screens"] == {"Main": ["E-RD-002"], "Main_2": ["E-RD-001"]}
        assert any("renamed" in fix for fix in first_result.fixes)

        second = normalize_wire(first)
        assert second.canonical == first
        assert not [fix for fix in second.fixes if "renamed" in fix]
        assert second.fixes == []
