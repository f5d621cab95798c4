"""
Chat model providers.

The agent only needs one operation from a language model:
chat(messages) -> text. This module defines that interface and an adapter
for any server speaking the OpenAI chat-completions protocol.

Usage:
    from toolshed.llm.provider import OpenAICompatibleProvider, ProviderConfig

    provider = OpenAICompatibleProvider(ProviderConfig(api_key="...", model="gpt-4o-mini"))
    reply = provider.chat([ChatMessage.user("hello")])
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from toolshed.errors import LLMError
from toolshed.schema import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7


class ChatProvider(ABC):
    """Interface for a chat model."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name for display."""
        ...

    @abstractmethod
    def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """
        Send a conversation and return the assistant's reply.

        Raises:
            LLMError: If the request fails or the reply is empty
        """
        ...


@dataclass
class ProviderConfig:
    """
    Configuration for an OpenAI-compatible endpoint.

    Attributes:
        api_key: Bearer token sent with every request
        base_url: Server root; /v1/chat/completions is appended
        model: Default model name
        timeout_seconds: Per-request timeout
    """

    api_key: str = ""
    base_url: str = "https://api.openai.com"
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 60.0


class OpenAICompatibleProvider(ChatProvider):
    """ChatProvider for OpenAI-compatible chat-completions servers. No retries."""

    def __init__(self, config: ProviderConfig, client: httpx.Client | None = None) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "openai-compatible"

    @property
    def url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/v1/chat/completions"

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout_seconds)
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "OpenAICompatibleProvider":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        payload = {
            "model": model or self.config.model,
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            "messages": [message.to_wire() for message in messages],
        }
        headers = {"Authorization": f"Bearer {self.config.api_key}"}

        logger.debug("POST %s model=%s messages=%d", self.url, payload["model"], len(messages))
        try:
            response = self._get_client().post(
                self.url,
                json=payload,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise LLMError(
                url=self.url,
                underlying_error=f"timed out after {self.config.timeout_seconds}s",
            ) from e
        except httpx.HTTPError as e:
            raise LLMError(url=self.url, underlying_error=str(e)) from e

        if not response.is_success:
            raise LLMError(
                url=self.url,
                status_code=response.status_code,
                underlying_error=f"HTTP {response.status_code}: {response.text[:500]}",
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(
                url=self.url,
                status_code=response.status_code,
                underlying_error=f"Invalid JSON from model server: {e}",
            ) from e

        content = _first_choice_content(data)
        if not content:
            raise LLMError(
                url=self.url,
                status_code=response.status_code,
                underlying_error="LLM returned empty response",
            )
        return content


def _first_choice_content(data: Any) -> str:
    """Extract choices[0].message.content, or "" if the shape is off."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content.strip() if isinstance(content, str) else ""
