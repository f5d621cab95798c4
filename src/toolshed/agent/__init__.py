"""
Agent module for toolshed.

The orchestrator runs one chat turn as a bounded loop of model actions:
call a tool, search remembered facts, or answer.
"""

from toolshed.agent.actions import (
    AgentAction,
    CallTool,
    Final,
    SearchFacts,
    parse_action,
    parse_json_safely,
)
from toolshed.agent.facts import FactExtractor, LLMFactExtractor
from toolshed.agent.orchestrator import (
    FALLBACK_REPLY,
    AgentConfig,
    AgentOrchestrator,
    TurnResult,
)

__all__ = [
    "FALLBACK_REPLY",
    "AgentAction",
    "AgentConfig",
    "AgentOrchestrator",
    "CallTool",
    "FactExtractor",
    "Final",
    "LLMFactExtractor",
    "SearchFacts",
    "TurnResult",
    "parse_action",
    "parse_json_safely",
]
