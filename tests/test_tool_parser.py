"""Tests for tool_call / tool_result parsing and prefix helpers."""

import json

from chatbridge.tools import ToolCall, is_error_result, parse_tool_call_json, strip_tool_prefix


class TestParseToolCallJson:
    def test_parameters_key_is_accepted(self):
        call = parse_tool_call_json('{"name": "web_search", "parameters": {"search_term": "python"}}')
        assert call == ToolCall(name="web_search", arguments={"search_term": "python"})

    def test_arguments_key_takes_precedence(self):
        call = parse_tool_call_json('{"name": "f", "arguments": {"a": 1}, "parameters": {"b": 2}}')
        assert call is not None
        assert call.arguments == {"a": 1}

    def test_string_encoded_arguments_are_decoded(self):
        call = parse_tool_call_json(json.dumps({"name": "f", "arguments": '{"x": "y"}'}))
        assert call is not None
        assert call.arguments == {"x": "y"}

    def test_missing_arguments_default_to_empty(self):
        call = parse_tool_call_json('{"name": "proton_info"}')
        assert call is not None
        assert call.arguments == {}

    def test_invalid_json_returns_none(self):
        assert parse_tool_call_json('{"name": ') is None

    def test_non_string_name_returns_none(self):
        assert parse_tool_call_json('{"name": 3}') is None
        assert parse_tool_call_json('["web_search"]') is None

    def test_to_dict_and_arguments_json(self):
        call = ToolCall(name="weather", arguments={"city": "Zürich"})
        assert call.to_dict() == {"name": "weather", "arguments": {"city": "Zürich"}}
        assert call.arguments_json() == '{"city": "Zürich"}'


class TestIsErrorResult:
    def test_error_true(self):
        assert is_error_result('{"error": true}')

    def test_error_must_be_boolean_true(self):
        assert not is_error_result('{"error": "true"}')
        assert not is_error_result('{"error": false}')

    def test_regular_result(self):
        assert not is_error_result('{"results": []}')

    def test_invalid_json(self):
        assert not is_error_result("{oops")


class TestStripToolPrefix:
    def test_strips_matching_prefix(self):
        assert strip_tool_prefix("client_do_homework", "client_") == "do_homework"

    def test_leaves_other_names(self):
        assert strip_tool_prefix("web_search", "client_") == "web_search"

    def test_empty_prefix(self):
        assert strip_tool_prefix("client_x", "") == "client_x"
