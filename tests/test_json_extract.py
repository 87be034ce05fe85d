# FILE: tests/test_json_extract.py
"""Tests for JSON extraction from model output."""

from topic_miner.llm.json_extract import NOT_FOUND, extract_json_from_llm_output, extract_json_value


class TestExtractJsonValue:
    def test_clean_json(self):
        assert extract_json_value('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        raw = 'Here it is:\n```json\n{"a": [1, 2]}\n```\nThanks.'
        assert extract_json_value(raw) == {"a": [1, 2]}

    def test_leading_prose(self):
        assert extract_json_value('Result: {"ok": true} done') == {"ok": True}

    def test_braces_inside_strings(self):
        assert extract_json_value('x {"s": "a}b{", "n": 1} y') == {"s": "a}b{", "n": 1}

    def test_array_value(self):
        assert extract_json_value("items: [1, 2, 3]") == [1, 2, 3]

    def test_json_null_is_a_value(self):
        assert extract_json_value("null") is None

    def test_already_decoded(self):
        doc = {"a": 1}
        assert extract_json_value(doc) is doc

    def test_not_found(self):
        assert extract_json_value("no json here") is NOT_FOUND
        assert extract_json_value("   ") is NOT_FOUND

    def test_objects_only_skips_array(self):
        assert extract_json_value('[1] then {"a": 1}', objects_only=True) == {"a": 1}


class TestExtractJsonObject:
    def test_object(self):
        assert extract_json_from_llm_output('```\n{"app": ["E-RD-001"]}\n```') == {"app": ["E-RD-001"]}

    def test_array_only(self):
        assert extract_json_from_llm_output("[1, 2]") is None

    def test_garbage(self):
        assert extract_json_from_llm_output("{not json") is None
