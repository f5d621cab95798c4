"""
Pytest configuration and fixtures for toolshed tests.

This module provides shared fixtures used across unit, integration,
and security tests: manifest/bundle factories, a temporary tool store,
in-memory databases, and a counting tool for gate tests.
"""

import tempfile
import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest

from toolshed.registry.models import ToolBundle, ToolManifest
from toolshed.store.db import ToolshedDB
from toolshed.store.tool_store import LocalToolStore
from toolshed.tools.base import Tool, ToolContext
from toolshed.vault.secret_store import SqliteSecretStore

# Entry module that exports nothing but an execute function via a mapping
PLAIN_ENTRY = textwrap.dedent(
    """
    def execute(args):
        return {"echo": args}

    tool = {"execute": execute}
    """
)


def manifest_data(**overrides: Any) -> dict[str, Any]:
    """Wire-format (camelCase) manifest for a tool called "weather"."""
    data: dict[str, Any] = {
        "id": "weather",
        "name": "weather",
        "version": "1.0.0",
        "summary": "Weather lookup",
        "description": "Look up the weather for a city",
        "entry": {"runtime": "python", "main": "main.py"},
    }
    data.update(overrides)
    return data


def bundle_data(
    files: list[dict[str, Any]] | None = None,
    **manifest_overrides: Any,
) -> dict[str, Any]:
    """Wire-format bundle; defaults to one plain entry module."""
    if files is None:
        files = [{"path": "main.py", "content": PLAIN_ENTRY}]
    return {"manifest": manifest_data(**manifest_overrides), "files": files}


class CountingTool(Tool):
    """Tool that records every execute() call."""

    def __init__(
        self,
        name: str = "counter",
        required_secrets: list[str] | None = None,
        requires_approval: bool = False,
        result: Any = "done",
    ) -> None:
        self._name = name
        self._required_secrets = required_secrets or []
        self._requires_approval = requires_approval
        self.result = result
        self.calls: list[tuple[dict[str, Any], ToolContext]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def required_secrets(self) -> list[str]:
        return list(self._required_secrets)

    @property
    def requires_approval(self) -> bool:
        return self._requires_approval

    def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        self.calls.append((args, context))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_manifest() -> Callable[..., ToolManifest]:
    """Factory for validated manifests."""

    def _make(**overrides: Any) -> ToolManifest:
        return ToolManifest.model_validate(manifest_data(**overrides))

    return _make


@pytest.fixture
def make_bundle() -> Callable[..., ToolBundle]:
    """Factory for validated bundles."""

    def _make(files: list[dict[str, Any]] | None = None, **manifest_overrides: Any) -> ToolBundle:
        return ToolBundle.model_validate(bundle_data(files, **manifest_overrides))

    return _make


@pytest.fixture
def store(temp_dir: Path) -> LocalToolStore:
    """An initialized, empty tool store."""
    tool_store = LocalToolStore(temp_dir / "tools")
    tool_store.init()
    return tool_store


@pytest.fixture
def secrets() -> Generator[SqliteSecretStore, None, None]:
    """In-memory secret store."""
    secret_store = SqliteSecretStore(":memory:")
    secret_store.init()
    yield secret_store
    secret_store.close()


@pytest.fixture
def db() -> Generator[ToolshedDB, None, None]:
    """In-memory memory database."""
    database = ToolshedDB(":memory:")
    yield database
    database.close()


@pytest.fixture
def make_manifest_data() -> Callable[..., dict[str, Any]]:
    """Factory for raw wire-format manifests."""
    return manifest_data


@pytest.fixture
def make_bundle_data() -> Callable[..., dict[str, Any]]:
    """Factory for raw wire-format bundles."""
    return bundle_data


@pytest.fixture
def make_counting_tool() -> type[CountingTool]:
    """The CountingTool class, for tests that need call counters."""
    return CountingTool


# Entry module for a registry tool that needs an API key and a sibling helper
WEATHER_ENTRY = textwrap.dedent(
    """
    from .forecast import describe


    def execute(args, context):
        city = args.get("city", "")
        return {
            "city": city,
            "forecast": describe(city),
            "authorized": context.get_secret("api_key") is not None,
        }


    tool = {"execute": execute}
    """
)

FORECAST_HELPER = 'def describe(city):\n    return f"Sunny in {city}"\n'


def weather_bundle_data(version: str = "1.0.0") -> dict[str, Any]:
    """Bundle for a weather tool declaring an api_key secret."""
    return bundle_data(
        files=[
            {"path": "main.py", "content": WEATHER_ENTRY},
            {"path": "forecast.py", "content": FORECAST_HELPER},
        ],
        version=version,
        requiredSecrets=["api_key"],
        tags=["weather"],
    )


def registry_transport(bundles: list[dict[str, Any]]) -> httpx.MockTransport:
    """
    In-memory registry serving the given bundles.

    The last bundle for an id is its current version.
    """
    by_id: dict[str, dict[str, dict[str, Any]]] = {}
    for bundle in bundles:
        manifest = bundle["manifest"]
        by_id.setdefault(manifest["id"], {})[manifest["version"]] = bundle

    def summary(manifest: dict[str, Any]) -> dict[str, Any]:
        return {
            key: value
            for key, value in manifest.items()
            if key not in ("description", "entry", "schema")
        }

    def handler(request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        if parts == ["v1", "tools", "search"]:
            query = request.url.params.get("q", "").lower()
            results = [
                summary(list(versions.values())[-1]["manifest"])
                for tool_id, versions in by_id.items()
                if query in tool_id.lower()
            ]
            return httpx.Response(200, json={"results": results, "total": len(results)})
        if len(parts) == 3 and parts[:2] == ["v1", "tools"] and parts[2] in by_id:
            current = list(by_id[parts[2]].values())[-1]
            return httpx.Response(200, json=current["manifest"])
        if len(parts) == 6 and parts[3] == "versions" and parts[5] == "bundle":
            bundle = by_id.get(parts[2], {}).get(parts[4])
            if bundle is not None:
                return httpx.Response(200, json=bundle)
        return httpx.Response(404, json={"error": "not found"})

    return httpx.MockTransport(handler)


@pytest.fixture
def make_weather_bundle_data() -> Callable[..., dict[str, Any]]:
    """Factory for raw weather bundles (api_key secret, helper module)."""
    return weather_bundle_data


@pytest.fixture
def make_registry_transport() -> Callable[[list[dict[str, Any]]], httpx.MockTransport]:
    """Factory for in-memory registries."""
    return registry_transport
