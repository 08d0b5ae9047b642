"""Tests for shared LLM response parsing utilities."""

from responder.common.llm_utils import parse_llm_json


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"template_id": "YES_SEND"}') == {"template_id": "YES_SEND"}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"template_id": "THANK_YOU", "flags": {"abuse": false}}\n```'
        assert parse_llm_json(raw) == {"template_id": "THANK_YOU", "flags": {"abuse": False}}

    def test_json_embedded_in_text(self):
        raw = 'Classification: {"template_id": "INTERESTED"} hope that helps'
        assert parse_llm_json(raw) == {"template_id": "INTERESTED"}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("This is not JSON at all") == {}

    def test_empty_string_returns_empty_dict(self):
        assert parse_llm_json("") == {}

    def test_non_object_json_returns_empty_dict(self):
        assert parse_llm_json('["INTERESTED"]') == {}
        assert parse_llm_json('"INTERESTED"') == {}

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"broken: json') == {}
