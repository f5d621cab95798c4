"""
Unit tests for the registry client.

Uses httpx.MockTransport so no network is touched.

Tests cover:
- Request paths and query parameters
- Strict response validation
- Transport failures, timeouts and non-2xx statuses
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from toolshed.errors import NetworkError, ValidationError
from toolshed.registry.client import RegistryClient

BASE_URL = "https://registry.example.com"

Handler = Callable[[httpx.Request], httpx.Response]


def make_client(handler: Handler) -> RegistryClient:
    transport = httpx.MockTransport(handler)
    return RegistryClient(BASE_URL, client=httpx.Client(transport=transport))


def json_handler(
    payload: Any,
    status_code: int = 200,
    seen: list[httpx.Request] | None = None,
) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


class TestConstruction:
    """Tests for client setup."""

    def test_strips_trailing_slashes(self) -> None:
        client = RegistryClient("https://registry.example.com///")
        assert client.base_url == "https://registry.example.com"

    @pytest.mark.parametrize("base_url", ["", "   "])
    def test_rejects_empty_base_url(self, base_url: str) -> None:
        with pytest.raises(ValueError):
            RegistryClient(base_url)

    def test_does_not_close_injected_client(self) -> None:
        http_client = httpx.Client(transport=httpx.MockTransport(json_handler({})))
        with RegistryClient(BASE_URL, client=http_client):
            pass
        assert not http_client.is_closed
        http_client.close()


class TestSearchTools:
    """Tests for GET /v1/tools/search."""

    def test_sends_query_parameters(self, make_manifest_data: Any) -> None:
        summary = {
            k: v for k, v in make_manifest_data().items() if k not in ("description", "entry")
        }
        seen: list[httpx.Request] = []
        client = make_client(json_handler({"results": [summary], "total": 7}, seen=seen))

        result = client.search_tools("weather", limit=5, offset=10, tags=["http", "geo"])

        assert result.total == 7
        assert result.results[0].name == "weather"
        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/v1/tools/search"
        assert request.url.params["q"] == "weather"
        assert request.url.params["limit"] == "5"
        assert request.url.params["offset"] == "10"
        assert request.url.params["tags"] == "http,geo"

    def test_omits_unset_parameters(self) -> None:
        seen: list[httpx.Request] = []
        client = make_client(json_handler({"results": [], "total": 0}, seen=seen))

        client.search_tools("anything")

        params = seen[0].url.params
        assert params["q"] == "anything"
        assert "limit" not in params
        assert "offset" not in params
        assert "tags" not in params

    def test_malformed_result_fails_whole_call(self) -> None:
        client = make_client(json_handler({"results": [{"id": "x"}], "total": 1}))
        with pytest.raises(ValidationError) as exc_info:
            client.search_tools("x")
        assert "search response" in exc_info.value.message


class TestDescribeTool:
    """Tests for GET /v1/tools/{id}."""

    def test_returns_manifest(self, make_manifest_data: Any) -> None:
        seen: list[httpx.Request] = []
        client = make_client(json_handler(make_manifest_data(), seen=seen))

        manifest = client.describe_tool("weather")

        assert manifest.ref == "weather@1.0.0"
        assert seen[0].url.path == "/v1/tools/weather"

    def test_quotes_id_as_single_segment(self, make_manifest_data: Any) -> None:
        seen: list[httpx.Request] = []
        client = make_client(json_handler(make_manifest_data(id="acme/weather"), seen=seen))

        client.describe_tool("acme/weather")

        assert seen[0].url.raw_path == b"/v1/tools/acme%2Fweather"

    def test_rejects_empty_id(self) -> None:
        client = make_client(json_handler({}))
        with pytest.raises(ValueError):
            client.describe_tool("")

    def test_rejects_foreign_runtime(self, make_manifest_data: Any) -> None:
        data = make_manifest_data(entry={"runtime": "node", "main": "index.js"})
        client = make_client(json_handler(data))
        with pytest.raises(ValidationError):
            client.describe_tool("weather")


class TestDownloadBundle:
    """Tests for GET /v1/tools/{id}/versions/{version}/bundle."""

    def test_returns_bundle(self, make_bundle_data: Any) -> None:
        seen: list[httpx.Request] = []
        client = make_client(json_handler(make_bundle_data(), seen=seen))

        bundle = client.download_tool_bundle("weather", "1.0.0")

        assert bundle.manifest.version == "1.0.0"
        assert seen[0].url.path == "/v1/tools/weather/versions/1.0.0/bundle"

    def test_rejects_bundle_for_other_version(self, make_bundle_data: Any) -> None:
        client = make_client(json_handler(make_bundle_data(version="9.9.9")))
        with pytest.raises(ValidationError) as exc_info:
            client.download_tool_bundle("weather", "1.0.0")
        assert "weather@9.9.9" in exc_info.value.message

    def test_rejects_traversal_path(self, make_bundle_data: Any) -> None:
        data = make_bundle_data(files=[{"path": "../../evil.py", "content": "x"}])
        client = make_client(json_handler(data))
        with pytest.raises(ValidationError):
            client.download_tool_bundle("weather", "1.0.0")


class TestTransportFailures:
    """Tests for network-level failures."""

    def test_non_2xx_carries_status_and_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="no such tool")

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            client.describe_tool("ghost")
        assert exc_info.value.status_code == 404
        assert exc_info.value.body == "no such tool"
        assert exc_info.value.url == f"{BASE_URL}/v1/tools/ghost"

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            client.describe_tool("weather")
        assert "timed out" in exc_info.value.message
        assert exc_info.value.status_code is None

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            client.search_tools("x")
        assert "refused" in exc_info.value.message

    def test_invalid_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        client = make_client(handler)
        with pytest.raises(ValidationError) as exc_info:
            client.describe_tool("weather")
        assert "not valid JSON" in exc_info.value.message

    def test_non_object_json(self) -> None:
        client = make_client(json_handler(["weather"]))
        with pytest.raises(ValidationError):
            client.describe_tool("weather")

    def test_no_retry_after_failure(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, content=json.dumps({"error": "boom"}).encode())

        client = make_client(handler)
        with pytest.raises(NetworkError):
            client.describe_tool("weather")
        assert len(calls) == 1
