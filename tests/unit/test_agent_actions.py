"""
Unit tests for parsing model replies into agent actions.

Tests cover:
- JSON extraction from prose and code fences
- Repair of common model mistakes
- Action parsing and the final-answer fallback
"""

import pytest

from toolshed.agent.actions import (
    CallTool,
    Final,
    SearchFacts,
    extract_json,
    parse_action,
    parse_json_safely,
    repair_json,
)


class TestExtractJson:
    """Tests for extract_json()."""

    def test_plain_object(self) -> None:
        assert extract_json('{"a": 1}') == '{"a": 1}'

    def test_object_in_prose(self) -> None:
        text = 'Sure! Here you go: {"a": {"b": 2}} hope that helps'
        assert extract_json(text) == '{"a": {"b": 2}}'

    def test_code_fence(self) -> None:
        text = 'Answer:\n```json\n{"a": 1}\n```\n'
        assert extract_json(text) == '{"a": 1}'

    def test_braces_inside_strings(self) -> None:
        text = 'x {"text": "a } b", "n": 1} y'
        assert extract_json(text) == '{"text": "a } b", "n": 1}'

    @pytest.mark.parametrize("text", ["", "   ", "no json here"])
    def test_nothing_to_extract(self, text: str) -> None:
        assert extract_json(text) is None


class TestRepairJson:
    """Tests for repair_json()."""

    @pytest.mark.parametrize(
        ("broken", "expected"),
        [
            ('{"a": 1,}', '{"a": 1}'),
            ("{'a': 'b'}", '{"a": "b"}'),
            ('{a: 1}', '{"a": 1}'),
            ('{"a": True, "b": None}', '{"a": true, "b": null}'),
        ],
    )
    def test_repairs(self, broken: str, expected: str) -> None:
        assert repair_json(broken) == expected

    def test_valid_json_unchanged(self) -> None:
        assert repair_json('{"a": [1, 2]}') == '{"a": [1, 2]}'

    def test_unrepairable(self) -> None:
        assert repair_json('{"a": ') is None


class TestParseJsonSafely:
    """Tests for parse_json_safely()."""

    def test_valid(self) -> None:
        assert parse_json_safely('{"a": 1}') == ({"a": 1}, None)

    def test_wrapped_and_broken(self) -> None:
        data, error = parse_json_safely("Here: {'action': 'final', 'response': 'hi',}")
        assert error is None
        assert data == {"action": "final", "response": "hi"}

    def test_empty(self) -> None:
        assert parse_json_safely("  ") == (None, "Empty input")

    def test_no_json(self) -> None:
        assert parse_json_safely("just words") == (None, "No JSON object found")


class TestParseAction:
    """Tests for parse_action()."""

    def test_final(self) -> None:
        assert parse_action('{"action": "final", "response": "Done."}') == Final("Done.")

    def test_call_tool(self) -> None:
        action = parse_action('{"action": "call_tool", "tool": " add ", "input": {"a": 1, "b": 2}}')
        assert action == CallTool(tool="add", input={"a": 1, "b": 2})

    def test_call_tool_without_input(self) -> None:
        assert parse_action('{"action": "call_tool", "tool": "time"}') == CallTool(tool="time")
        assert parse_action('{"action": "call_tool", "tool": "time", "input": null}') == CallTool(
            tool="time"
        )

    def test_search_facts(self) -> None:
        action = parse_action('{"action": "search_facts", "terms": ["birthday", "", 3]}')
        assert action == SearchFacts(terms=["birthday", "3"])

    def test_fenced_action(self) -> None:
        text = '```json\n{"action": "final", "response": "ok"}\n```'
        assert parse_action(text) == Final("ok")

    @pytest.mark.parametrize(
        "text",
        [
            "Hello there!",
            '{"action": "dance"}',
            '{"action": "call_tool", "tool": ""}',
            '{"action": "call_tool", "tool": "add", "input": [1, 2]}',
            '{"action": "search_facts", "terms": "birthday"}',
            '{"action": "final", "response": 42}',
            "[1, 2, 3]",
        ],
    )
    def test_falls_back_to_final_text(self, text: str) -> None:
        assert parse_action(text) == Final(text.strip())
