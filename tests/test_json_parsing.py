"""Tests for LLM JSON response parsing."""

from chatmem.lib.json_parsing import extract_json_from_response, parse_json_dict


class TestExtractJson:
    def test_fenced_block(self):
        assert extract_json_from_response('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_unlabeled_fence(self):
        assert extract_json_from_response('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_surrounding_prose(self):
        assert extract_json_from_response('Sure! {"a": 1} Hope that helps.') == '{"a": 1}'

    def test_plain_json(self):
        assert extract_json_from_response('  {"a": 1}  ') == '{"a": 1}'


class TestParseJsonDict:
    def test_valid(self):
        assert parse_json_dict('{"name": "Sam"}') == {"name": "Sam"}

    def test_invalid_returns_fallback(self):
        assert parse_json_dict("not json", fallback={"x": 1}) == {"x": 1}

    def test_empty_returns_empty_dict(self):
        assert parse_json_dict("") == {}

    def test_list_is_rejected(self):
        assert parse_json_dict("[1, 2]", fallback={}) == {}

    def test_quiet_mode(self, caplog):
        parse_json_dict("nope", log_errors=False)
        assert caplog.text == ""
