"""Chat model providers for the agent."""

from toolshed.llm.provider import (
    ChatProvider,
    OpenAICompatibleProvider,
    ProviderConfig,
)

__all__ = [
    "ChatProvider",
    "OpenAICompatibleProvider",
    "ProviderConfig",
]
