# FILE: tests/test_canonical_schemas.py
"""Tests for the strict canonical document schema."""

import pytest

from conftest import make_canonical
from topic_miner.bridge.canonical_schemas import (
    DISK_TOP_LEVEL_KEYS,
    CanonicalDocument,
    is_io_type,
    is_placeholder_key,
    validate_canonical,
)
from topic_miner.bridge.errors import SchemaError


def _doc_dict():
    return make_canonical().to_dict()


class TestValidateCanonical:
    def test_normalized_wire_validates(self):
        doc = make_canonical()
        assert isinstance(doc, CanonicalDocument)
        assert doc.schema_version == 3
        assert doc.rust_commands[0].is_async is True

    def test_revalidates_document_instance(self):
        doc = make_canonical()
        assert validate_canonical(doc) == doc

    def test_rejects_non_object(self):
        with pytest.raises(SchemaError):
            validate_canonical("nope")

    def test_rejects_wrong_schema_version(self):
        data = _doc_dict()
        data["schema_version"] = 2
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_rejects_extra_top_level_key(self):
        data = _doc_dict()
        data["meta"] = {}
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_no_str_to_bool_coercion(self):
        data = _doc_dict()
        data["rust_commands"][0]["async"] = "true"
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_rejects_unknown_column_type(self):
        data = _doc_dict()
        data["data_model"]["tables"][0]["columns"][0]["type"] = "VARCHAR"
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_rejects_unknown_io_type(self):
        data = _doc_dict()
        data["rust_commands"][0]["input"] = {"title": "str"}
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_optional_io_type_allowed(self):
        data = _doc_dict()
        data["rust_commands"][0]["output"] = {"ok": "boolean", "note": "string?"}
        assert validate_canonical(data).rust_commands[0].output["note"] == "string?"

    def test_rejects_empty_io(self):
        data = _doc_dict()
        data["rust_commands"][0]["output"] = {}
        with pytest.raises(SchemaError) as exc:
            validate_canonical(data)
        assert any("must not be empty" in issue for issue in exc.value.issues)

    def test_rejects_placeholder_io_key(self):
        data = _doc_dict()
        data["rust_commands"][0]["input"] = {"TODO": "string"}
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_rejects_duplicate_screen_names(self):
        data = _doc_dict()
        data["screens"].append(dict(data["screens"][0]))
        with pytest.raises(SchemaError) as exc:
            validate_canonical(data)
        assert "duplicate screen names" in str(exc.value)

    def test_rejects_duplicate_columns(self):
        data = _doc_dict()
        columns = data["data_model"]["tables"][0]["columns"]
        columns.append(dict(columns[0]))
        with pytest.raises(SchemaError):
            validate_canonical(data)

    def test_rejects_table_without_columns(self):
        data = _doc_dict()
        data["data_model"]["tables"][0]["columns"] = []
        with pytest.raises(SchemaError):
            validate_canonical(data)


class TestDiskForm:
    def test_disk_dict_has_exact_keys(self):
        disk = make_canonical().to_disk_dict()
        assert set(disk) == set(DISK_TOP_LEVEL_KEYS)
        assert "citations" not in disk

    def test_disk_dict_uses_async_alias(self):
        disk = make_canonical().to_disk_dict()
        assert disk["rust_commands"][0]["async"] is True


class TestCitationEntries:
    def test_logical_keys(self):
        keys = [key for key, _ in make_canonical().citation_entries()]
        assert keys == [
            "app",
            "core_loop",
            "screen:Main",
            "command:save_note",
            "table:notes",
            "acceptance_test:0",
        ]

    def test_all_cited_ids_includes_orphans(self):
        """Ids under names that match no entity are still reported."""
        data = _doc_dict()
        data["citations"]["screens"]["Ghost"] = ["E-XX-001"]
        doc = validate_canonical(data)
        assert "E-XX-001" in doc.all_cited_ids()

    def test_all_cited_ids_deduplicated(self):
        ids = make_canonical().all_cited_ids()
        assert len(ids) == len(set(ids))
        assert ids[0] == "E-RD-001"


class TestVocabularyHelpers:
    def test_is_io_type(self):
        assert is_io_type("timestamp")
        assert is_io_type("json?")
        assert not is_io_type("uuid")
        assert not is_io_type(3)

    def test_is_placeholder_key(self):
        assert is_placeholder_key(" Placeholder ")
        assert is_placeholder_key("tbd")
        assert not is_placeholder_key("title")
