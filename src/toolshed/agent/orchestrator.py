"""
Agent orchestrator for toolshed.

Runs one chat turn as a bounded loop:

1. Save the user's message and load recent history
2. Ask the model for the next action (JSON)
3. call_tool -> run it through the invocation pipeline
   search_facts -> look up remembered facts
   final -> answer and stop
4. Feed the observation back as a system message and repeat
5. Save the reply, then extract facts from the user's message

Design Principles:
    - The model is untrusted: every tool call goes through the pipeline's
      secret and approval gates
    - Denied or failed tool calls are observations, not crashes
    - The loop is bounded by max_steps
    - Fact extraction is best-effort: its failures are logged, never raised
"""

import json
import logging
from dataclasses import dataclass, field

from toolshed.agent.actions import AgentAction, CallTool, Final, SearchFacts, parse_action
from toolshed.agent.facts import FactExtractor
from toolshed.invocation.pipeline import InvocationPipeline, InvocationResult
from toolshed.llm.provider import ChatProvider
from toolshed.schema import ChatMessage, FactRecord
from toolshed.store.db import ToolshedDB

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I could not complete the request."

SYSTEM_PROMPT = """You are a helpful assistant that can use tools and remembered facts.

Respond with ONLY one JSON object, no other text:
- To call a tool: {{"action": "call_tool", "tool": "<name>", "input": {{...}}}}
- To look up facts about the user: {{"action": "search_facts", "terms": ["term1", "term2"]}}
- To answer the user: {{"action": "final", "response": "..."}}

If you are unsure of an answer, try a fact search before saying you don't know.
Keep search terms short and specific. Tool results arrive as system messages.

Available tools:
{tool_list}"""


@dataclass
class AgentConfig:
    """
    Configuration for the chat loop.

    Attributes:
        max_steps: Model calls allowed per turn before giving up
        history_limit: Number of recent messages sent as context
        fact_limit: Maximum facts returned by one search
        temperature: Sampling temperature for action selection
        model: Model override (provider default if None)
    """

    max_steps: int = 5
    history_limit: int = 20
    fact_limit: int = 8
    temperature: float = 0.0
    model: str | None = None


@dataclass
class TurnResult:
    """
    Outcome of one chat turn.

    Attributes:
        reply: Text shown to the user
        actions: Every action the model took, in order
        invocations: Results of the tool calls made during the turn
        completed: False if the turn ran out of steps
    """

    reply: str
    actions: list[AgentAction] = field(default_factory=list)
    invocations: list[InvocationResult] = field(default_factory=list)
    completed: bool = True


class AgentOrchestrator:
    """
    Drives the model through one chat turn at a time.

    Usage:
        agent = AgentOrchestrator(provider, db, pipeline)
        result = agent.chat("Order me a pizza")
        print(result.reply)
    """

    def __init__(
        self,
        provider: ChatProvider,
        db: ToolshedDB,
        pipeline: InvocationPipeline,
        config: AgentConfig | None = None,
        fact_extractor: FactExtractor | None = None,
    ) -> None:
        self.provider = provider
        self.db = db
        self.pipeline = pipeline
        self.config = config or AgentConfig()
        self.fact_extractor = fact_extractor

    def system_prompt(self) -> str:
        """System prompt listing the tools in the current catalog."""
        lines = []
        for tool in self.pipeline.catalog:
            notes = []
            if tool.requires_approval:
                notes.append("requires approval")
            if tool.required_secrets:
                notes.append(f"needs secrets: {', '.join(tool.required_secrets)}")
            suffix = f" ({'; '.join(notes)})" if notes else ""
            lines.append(f"- {tool.name}: {tool.description}{suffix}")
        tool_list = "\n".join(lines) if lines else "(none)"
        return SYSTEM_PROMPT.format(tool_list=tool_list)

    def chat(self, user_input: str) -> TurnResult:
        """
        Run one turn for a user message.

        Raises:
            LLMError: If the model cannot be reached
            StorageError: If the memory database fails
        """
        user_message = ChatMessage.user(user_input)
        self.db.save_message(user_message)
        history = self.db.get_recent_messages(self.config.history_limit)

        base = [ChatMessage.system(self.system_prompt()), *history]
        observations: list[ChatMessage] = []
        result = TurnResult(reply=FALLBACK_REPLY, completed=False)

        for _ in range(self.config.max_steps):
            raw = self.provider.chat(
                base + observations,
                model=self.config.model,
                temperature=self.config.temperature,
            )
            action = parse_action(raw)
            result.actions.append(action)

            if isinstance(action, Final):
                result.reply = action.response
                result.completed = True
                break

            if isinstance(action, SearchFacts):
                logger.info("search_facts: %s", ", ".join(action.terms))
                facts = self.db.search_facts(action.terms, self.config.fact_limit)
                observation = render_facts(facts)
            else:
                observation = self._call_tool(action, result)

            observations.extend([
                ChatMessage.assistant(raw),
                ChatMessage.system(observation),
            ])
        else:
            logger.warning("Turn ended after %d steps without a final answer", self.config.max_steps)

        self.db.save_message(ChatMessage.assistant(result.reply))
        self._extract_facts([user_message])
        return result

    def _extract_facts(self, messages: list[ChatMessage]) -> None:
        if self.fact_extractor is None:
            return
        try:
            facts = self.fact_extractor.extract(messages)
            if facts:
                self.db.upsert_facts(facts)
                logger.info("Saved facts: %s", ", ".join(facts))
        except Exception as e:
            logger.warning("Fact extraction failed: %s", e)

    def _call_tool(self, action: CallTool, result: TurnResult) -> str:
        logger.info("call_tool: %s", action.tool)
        invocation = self.pipeline.invoke(action.tool, action.input)
        result.invocations.append(invocation)
        return f"Tool result: {json.dumps(invocation.to_dict(), default=str)}"


def render_facts(facts: list[FactRecord]) -> str:
    """Fact search results as a system message body."""
    if not facts:
        return "Fact search results: none found."
    lines = [f"- {fact.key}: {fact.value}" for fact in facts]
    return "Fact search results:\n" + "\n".join(lines)
