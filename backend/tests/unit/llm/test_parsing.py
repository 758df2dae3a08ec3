"""Unit tests for completion JSON parsing."""

import pytest

from memo_service.llm.errors import MalformedResponseError
from memo_service.llm.parsing import parse_json_object, repair_unicode_escapes, strip_code_fences


class TestParseJsonObject:
    """Tests for parse_json_object."""

    def test_plain_object(self):
        assert parse_json_object('{"verdict": "Pass"}') == {"verdict": "Pass"}

    def test_fenced_object(self):
        text = '```json\n{"verdict": "Pass"}\n```'
        assert parse_json_object(text) == {"verdict": "Pass"}

    def test_surrounding_prose(self):
        text = 'Here is the section:\n{"narrative": {"paragraphs": []}}\nHope this helps.'
        assert parse_json_object(text) == {"narrative": {"paragraphs": []}}

    def test_broken_unicode_escape_repaired(self):
        text = '{"text": "caf\\u00e9 and \\u00 broken"}'
        assert parse_json_object(text) == {"text": "café and  broken"}

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty(self, text):
        with pytest.raises(MalformedResponseError, match="Empty AI response for Market section"):
            parse_json_object(text, "Market section")

    def test_unparseable(self):
        with pytest.raises(MalformedResponseError, match="Unparseable"):
            parse_json_object("not json", "VC Quick Take")

    def test_array_rejected(self):
        with pytest.raises(MalformedResponseError, match="Expected a JSON object"):
            parse_json_object("[1, 2]")


class TestHelpers:
    """Tests for the cleaning helpers."""

    def test_strip_code_fences(self):
        assert strip_code_fences("```\n{}\n```") == "{}"

    def test_repair_keeps_valid_escapes(self):
        assert repair_unicode_escapes("\\u00e9") == "\\u00e9"

    def test_repair_drops_short_escapes(self):
        assert repair_unicode_escapes("a\\u12 b") == "a b"


class TestParserLimits:
    """Completions that trip interpreter limits are malformed, not crashes."""

    def test_integer_past_conversion_limit(self):
        with pytest.raises(MalformedResponseError, match="ValueError"):
            parse_json_object('{"score": ' + "9" * 5000 + "}", "completeness")

    def test_nesting_past_recursion_limit(self):
        text = '{"a": ' * 50000 + "1" + "}" * 50000
        with pytest.raises(MalformedResponseError, match="RecursionError"):
            parse_json_object(text, "Market section")

    def test_limit_hit_after_escape_repair(self):
        text = '{"text": "\\u00", "score": ' + "9" * 5000 + "}"
        with pytest.raises(MalformedResponseError, match="Unparseable AI response for Team section"):
            parse_json_object(text, "Team section")
