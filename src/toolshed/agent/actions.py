"""
Agent actions parsed from model output.

The model answers every step with one JSON object:

    {"action": "call_tool", "tool": "echo", "input": {"text": "hi"}}
    {"action": "search_facts", "terms": ["birthday"]}
    {"action": "final", "response": "..."}

Models are sloppy: the JSON may be wrapped in prose or a code fence, carry
trailing commas, or use Python literals. parse_json_safely() extracts and
repairs what it can. Anything that still does not describe a known action
is taken as the final answer, verbatim.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

# Maximum number of repair passes
MAX_REPAIR_ATTEMPTS = 3

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


@dataclass(frozen=True)
class CallTool:
    """Run a tool through the invocation pipeline."""

    tool: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchFacts:
    """Look up remembered facts."""

    terms: list[str]


@dataclass(frozen=True)
class Final:
    """Answer the user and end the turn."""

    response: str


AgentAction = CallTool | SearchFacts | Final


# =============================================================================
# JSON extraction and repair
# =============================================================================


def extract_json(text: str) -> str | None:
    """
    Pull the JSON object out of mixed model output.

    A fenced code block wins if it holds an object; otherwise the span from
    the first "{" to its matching "}" is returned.
    """
    if not text or not text.strip():
        return None
    text = text.strip()

    match = _CODE_FENCE.search(text)
    if match and match.group(1).strip().startswith("{"):
        return match.group(1).strip()

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False
    for i, char in enumerate(text[start:], start):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    # Unbalanced: fall back to the outermost braces
    end = text.rfind("}")
    return text[start : end + 1] if end > start else None


def _apply_repairs(text: str) -> str:
    """Apply one round of repairs for common model mistakes."""
    text = re.sub(r",\s*([}\]])", r"\1", text)
    if '"' not in text and "'" in text:
        text = text.replace("'", '"')
    text = re.sub(r"([{,])\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*:", r'\1"\2":', text)
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)
    return text


def repair_json(text: str) -> str | None:
    """Repair malformed JSON, or return None if it cannot be fixed."""
    for _ in range(MAX_REPAIR_ATTEMPTS):
        try:
            json.loads(text)
            return text
        except json.JSONDecodeError:
            pass
        repaired = _apply_repairs(text)
        if repaired == text:
            break
        text = repaired

    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        return None


def parse_json_safely(text: str) -> tuple[Any, str | None]:
    """
    Parse model output as JSON with extraction and repair.

    Returns:
        (object, None) on success, (None, error_description) on failure
    """
    if not text or not text.strip():
        return None, "Empty input"

    try:
        return json.loads(text), None
    except json.JSONDecodeError:
        pass

    extracted = extract_json(text)
    if extracted is None:
        return None, "No JSON object found"

    repaired = repair_json(extracted)
    if repaired is None:
        return None, "JSON could not be repaired"
    return json.loads(repaired), None


# =============================================================================
# Actions
# =============================================================================


def parse_action(text: str) -> AgentAction:
    """
    Interpret one model reply.

    Never raises: unparseable or unknown replies become Final(text).
    """
    fallback = Final(response=text.strip())

    data, error = parse_json_safely(text)
    if error or not isinstance(data, dict):
        return fallback

    action = data.get("action")
    if action == "final" and isinstance(data.get("response"), str):
        return Final(response=data["response"])

    if action == "search_facts" and isinstance(data.get("terms"), list):
        terms = [str(term) for term in data["terms"] if str(term).strip()]
        return SearchFacts(terms=terms)

    if action == "call_tool" and isinstance(data.get("tool"), str) and data["tool"].strip():
        tool_input = data.get("input", {})
        if tool_input is None:
            tool_input = {}
        if isinstance(tool_input, dict):
            return CallTool(tool=data["tool"].strip(), input=tool_input)

    return fallback
