"""
Registry protocol client.

Stateless HTTP client for the tool registry:
    GET /v1/tools/search?q=&limit=&offset=&tags=   -> SearchResult
    GET /v1/tools/{id}                              -> ToolManifest
    GET /v1/tools/{id}/versions/{version}/bundle    -> ToolBundle

Every response is validated strictly before it is returned; a partially
valid payload fails the whole call. Requests are bounded by a timeout and
never retried, the caller decides whether to re-issue a command.

Usage:
    with RegistryClient("https://registry.example.com") as registry:
        manifest = registry.describe_tool("weather")
        bundle = registry.download_tool_bundle(manifest.id, manifest.version)
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from toolshed.errors import NetworkError, ValidationError
from toolshed.registry.models import (
    SearchResult,
    ToolBundle,
    ToolManifest,
    parse_model,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0

# Cap on how much of an error body is folded into NetworkError
MAX_ERROR_BODY_CHARS = 2000


class RegistryClient:
    """
    Client for a remote tool registry.

    Attributes:
        base_url: Registry root URL without trailing slashes
        timeout_seconds: Per-request timeout
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Registry root URL (e.g., "https://registry.example.com")
            timeout_seconds: Timeout applied to every request
            client: Optional preconfigured httpx client (tests, custom transports)
        """
        if not base_url or not base_url.strip():
            msg = "Registry base_url cannot be empty"
            raise ValueError(msg)
        self.base_url = base_url.strip().rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "RegistryClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Registry Operations
    # =========================================================================

    def search_tools(
        self,
        query: str,
        limit: int | None = None,
        offset: int | None = None,
        tags: list[str] | None = None,
    ) -> SearchResult:
        """
        Search the registry.

        Args:
            query: Free-text query
            limit: Maximum number of results (sent only when set)
            offset: Result offset for paging (sent only when set)
            tags: Restrict to tools carrying these tags

        Returns:
            Validated SearchResult

        Raises:
            NetworkError: Timeout, transport failure or non-2xx status
            ValidationError: Response does not match the search schema
        """
        params: dict[str, str] = {"q": query}
        if limit:
            params["limit"] = str(limit)
        if offset:
            params["offset"] = str(offset)
        if tags:
            params["tags"] = ",".join(tags)

        data = self._get_json("/v1/tools/search", params=params)
        return parse_model(SearchResult, data, "search response")

    def describe_tool(self, tool_id: str) -> ToolManifest:
        """
        Fetch the current manifest of a tool.

        Raises:
            NetworkError: Timeout, transport failure or non-2xx status
            ValidationError: Response is not a valid manifest
        """
        data = self._get_json(f"/v1/tools/{_segment(tool_id)}")
        return parse_model(ToolManifest, data, "tool manifest")

    def download_tool_bundle(self, tool_id: str, version: str) -> ToolBundle:
        """
        Download the bundle for one tool version.

        Raises:
            NetworkError: Timeout, transport failure or non-2xx status
            ValidationError: Response is not a valid bundle, or describes
                a different tool/version than the one requested
        """
        path = f"/v1/tools/{_segment(tool_id)}/versions/{_segment(version)}/bundle"
        data = self._get_json(path)
        bundle = parse_model(ToolBundle, data, "tool bundle")

        manifest = bundle.manifest
        if manifest.id != tool_id or manifest.version != version:
            raise ValidationError(
                subject="tool bundle",
                detail=(
                    f"requested {tool_id}@{version} but bundle contains "
                    f"{manifest.id}@{manifest.version}"
                ),
            )
        return bundle

    # =========================================================================
    # Transport
    # =========================================================================

    def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """Perform a GET and decode the JSON body."""
        client = self._get_client()
        url = f"{self.base_url}{path}"
        logger.debug("GET %s params=%s", url, params)

        try:
            response = client.get(url, params=params, timeout=self.timeout_seconds)
        except httpx.TimeoutException as e:
            raise NetworkError(
                url=url,
                message=f"Registry request timed out after {self.timeout_seconds}s: {url}",
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                url=url,
                message=f"Registry request failed: {e}",
            ) from e

        if not response.is_success:
            raise NetworkError(
                url=url,
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_CHARS],
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(
                subject="registry response",
                detail=f"body is not valid JSON: {e}",
            ) from e


def _segment(value: str) -> str:
    """Quote a value for use as a single URL path segment."""
    if not value or not value.strip():
        msg = "URL path segment cannot be empty"
        raise ValueError(msg)
    return quote(value, safe="")
