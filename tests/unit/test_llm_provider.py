"""
Unit tests for the OpenAI-compatible chat provider.

Tests cover:
- Request URL, headers and payload
- Reply extraction
- Error mapping to LLMError
"""

import json
from typing import Any

import httpx
import pytest

from toolshed.errors import LLMError
from toolshed.llm.provider import OpenAICompatibleProvider, ProviderConfig
from toolshed.schema import ChatMessage


def completion(content: Any) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_provider(
    handler: Any, base_url: str = "https://llm.example.com/"
) -> OpenAICompatibleProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    config = ProviderConfig(api_key="sk-test", base_url=base_url, model="test-model")
    return OpenAICompatibleProvider(config, client=client)


class TestRequest:
    """Tests for what the provider sends."""

    def test_posts_chat_completion(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=completion("hello"))

        provider = make_provider(handler)
        reply = provider.chat([ChatMessage.system("be brief"), ChatMessage.user("hi")])

        assert reply == "hello"
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://llm.example.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = json.loads(request.content)
        assert payload == {
            "model": "test-model",
            "temperature": 0.7,
            "messages": [
                {"role": "system", "content": "be brief"},
                {"role": "user", "content": "hi"},
            ],
        }

    def test_model_and_temperature_overrides(self) -> None:
        seen: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=completion("ok"))

        make_provider(handler).chat([ChatMessage.user("hi")], model="other", temperature=0.0)

        assert seen[0]["model"] == "other"
        assert seen[0]["temperature"] == 0.0

    def test_reply_is_stripped(self) -> None:
        provider = make_provider(lambda request: httpx.Response(200, json=completion("  hi \n")))
        assert provider.chat([ChatMessage.user("x")]) == "hi"


class TestErrors:
    """Tests for failure handling."""

    def test_http_error_status(self) -> None:
        provider = make_provider(lambda request: httpx.Response(429, text="slow down"))

        with pytest.raises(LLMError) as exc_info:
            provider.chat([ChatMessage.user("hi")])

        assert exc_info.value.status_code == 429
        assert "slow down" in exc_info.value.message

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(LLMError, match="timed out"):
            make_provider(handler).chat([ChatMessage.user("hi")])

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LLMError, match="refused"):
            make_provider(handler).chat([ChatMessage.user("hi")])

    def test_invalid_json(self) -> None:
        provider = make_provider(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(LLMError, match="Invalid JSON"):
            provider.chat([ChatMessage.user("hi")])

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"choices": []},
            {"choices": ["text"]},
            completion(""),
            completion("   "),
            completion(None),
            completion(["parts"]),
            ["not", "an", "object"],
        ],
    )
    def test_empty_reply(self, body: Any) -> None:
        provider = make_provider(lambda request: httpx.Response(200, json=body))
        with pytest.raises(LLMError, match="empty response"):
            provider.chat([ChatMessage.user("hi")])


def test_injected_client_not_closed() -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with OpenAICompatibleProvider(ProviderConfig(), client=client):
        pass
    assert not client.is_closed
    client.close()
