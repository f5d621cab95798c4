"""
Fact extraction for the chat loop.

After every turn the orchestrator hands the user's latest message to a
FactExtractor. Extracted facts are upserted into the memory database, where
the agent's search_facts action can find them on later turns.

The model is asked for a JSON array:

    [{"key": "favorite_color", "value": "green"}]

Keys are normalized to short lowercase snake_case. Entries that are not
string pairs are dropped.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from toolshed.agent.actions import repair_json
from toolshed.llm.provider import ChatProvider
from toolshed.schema import ChatMessage, Role

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = (
    "You extract user facts from messages. Return ONLY a JSON array of objects "
    'with keys "key" and "value". Use short, stable, lowercase keys with underscores. '
    "Only include facts explicitly stated by the user. If no facts, return []."
)


class FactExtractor(ABC):
    """Interface for pulling durable facts out of a conversation."""

    @abstractmethod
    def extract(self, messages: list[ChatMessage]) -> dict[str, str]:
        """
        Extract facts from the given messages.

        Returns:
            Mapping of normalized key to value (empty if nothing was found)
        """
        ...


class LLMFactExtractor(FactExtractor):
    """
    Asks a chat model to list the facts stated in the latest user message.

    Usage:
        extractor = LLMFactExtractor(provider)
        facts = extractor.extract([ChatMessage.user("My name is Ada")])
    """

    def __init__(
        self,
        provider: ChatProvider,
        model: str | None = None,
        temperature: float = 0.0,
    ) -> None:
        self.provider = provider
        self.model = model
        self.temperature = temperature

    def extract(self, messages: list[ChatMessage]) -> dict[str, str]:
        """
        Raises:
            LLMError: If the model cannot be reached
        """
        latest = next(
            (message for message in reversed(messages) if message.role == Role.USER),
            None,
        )
        if latest is None or not latest.content.strip():
            return {}

        reply = self.provider.chat(
            [ChatMessage.system(EXTRACTION_PROMPT), ChatMessage.user(latest.content)],
            model=self.model,
            temperature=self.temperature,
        )
        return parse_facts(reply)


def parse_facts(text: str) -> dict[str, str]:
    """
    Parse a model reply holding a JSON array of key/value objects.

    Never raises: malformed replies yield no facts.
    """
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        return {}

    repaired = repair_json(text[start : end + 1])
    if repaired is None:
        return {}
    items = json.loads(repaired)
    if not isinstance(items, list):
        return {}

    facts: dict[str, str] = {}
    for item in items:
        fact = _normalize_fact(item)
        if fact is not None:
            facts[fact[0]] = fact[1]
    return facts


def normalize_key(key: str) -> str:
    """Lowercase, drop punctuation, and join words with underscores."""
    key = re.sub(r"[^a-z0-9\s_-]", "", key.strip().lower())
    return re.sub(r"\s+", "_", key)


def _normalize_fact(item: Any) -> tuple[str, str] | None:
    if not isinstance(item, dict):
        return None
    key, value = item.get("key"), item.get("value")
    if not isinstance(key, str) or not isinstance(value, str):
        return None
    key, value = normalize_key(key), value.strip()
    if not key or not value:
        return None
    return key, value
