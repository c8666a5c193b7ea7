"""
Tests for robust JSON parsing utilities.
"""

from discubot.utils.json_parser import (
    clean_json_string,
    ensure_list,
    extract_json_from_text,
    parse_analysis_json,
    parse_json_safely,
)


class TestExtractJsonFromText:
    """Tests for extract_json_from_text."""

    def test_extracts_from_json_code_block(self):
        text = '```json\n{"key": "value"}\n```'
        assert extract_json_from_text(text) == '{"key": "value"}'

    def test_extracts_from_plain_code_block(self):
        text = '```\n{"key": "value"}\n```'
        assert extract_json_from_text(text) == '{"key": "value"}'

    def test_extracts_json_object_from_text(self):
        text = 'Here is the result: {"key": "value"} and some more text'
        assert extract_json_from_text(text) == '{"key": "value"}'

    def test_returns_none_when_no_json(self):
        assert extract_json_from_text("Just plain text") is None


class TestCleanJsonString:
    """Tests for clean_json_string."""

    def test_removes_trailing_commas(self):
        assert clean_json_string('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'

    def test_removes_comments(self):
        text = '{\n  // note\n  "a": 1 /* inline */\n}'
        assert parse_json_safely(clean_json_string(text)) == {"a": 1}


class TestParseJsonSafely:
    """Tests for parse_json_safely."""

    def test_parses_valid_json(self):
        assert parse_json_safely('{"a": 1}') == {"a": 1}

    def test_parses_fenced_json_with_prose(self):
        text = 'Sure! Here you go:\n```json\n{"a": 1,}\n```\nLet me know.'
        assert parse_json_safely(text) == {"a": 1}

    def test_repairs_missing_closing_brace(self):
        assert parse_json_safely('{"a": {"b": 1}') == {"a": {"b": 1}}

    def test_returns_default_for_garbage(self):
        assert parse_json_safely("not json at all", default={}) == {}

    def test_returns_default_for_empty(self):
        assert parse_json_safely("   ") is None

    def test_non_object_returns_default(self):
        assert parse_json_safely("[1, 2, 3]", default={"x": 1}) == {"x": 1}


class TestParseAnalysisJson:
    """Tests for the combined summary/task response parser."""

    def test_flat_shape(self):
        text = """
        {
          "summary": "Agreed to ship the banner.",
          "keyPoints": ["Banner ships Friday"],
          "sentiment": "positive",
          "confidence": 0.8,
          "isMultiTask": false,
          "tasks": [{"title": "Ship banner", "domain": "design"}]
        }
        """

        data = parse_analysis_json(text)

        assert data["summary"] == "Agreed to ship the banner."
        assert data["key_points"] == ["Banner ships Friday"]
        assert data["sentiment"] == "positive"
        assert data["confidence"] == 0.8
        assert data["is_multi_task"] is False
        assert data["tasks"] == [{"title": "Ship banner", "domain": "design"}]

    def test_nested_summary_shape(self):
        text = (
            '{"summary": {"summary": "Short", "keyPoints": "one point", "confidence": 0.7}, '
            '"tasks": []}'
        )

        data = parse_analysis_json(text)

        assert data["summary"] == "Short"
        assert data["key_points"] == ["one point"]
        assert data["summary_confidence"] == 0.7
        assert data["sentiment"] == "neutral"
        assert data["tasks"] == []

    def test_missing_tasks_is_rejected(self):
        assert parse_analysis_json('{"summary": "only a summary"}') is None

    def test_tasks_not_a_list_is_rejected(self):
        assert parse_analysis_json('{"summary": "x", "tasks": "none"}') is None

    def test_non_dict_tasks_are_dropped(self):
        data = parse_analysis_json('{"summary": "x", "tasks": ["bad", {"title": "ok"}]}')
        assert data["tasks"] == [{"title": "ok"}]

    def test_unparseable_response(self):
        assert parse_analysis_json("I could not find any tasks.") is None


class TestEnsureList:
    """Tests for ensure_list."""

    def test_variants(self):
        assert ensure_list(None) == []
        assert ensure_list("a") == ["a"]
        assert ensure_list("  ") == []
        assert ensure_list(["a", "", None, "b"]) == ["a", "b"]
        assert ensure_list(3) == []
