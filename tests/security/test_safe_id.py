"""
Security tests for mapping tool ids to directory names.

Tool ids come from the registry and become directory names under the
store root. Whatever the id, the result must be a single path component
that stays inside the root.
"""

import re
from pathlib import Path
from typing import Any

import pytest

from toolshed.errors import ToolIdCollisionError
from toolshed.store.tool_store import LocalToolStore, safe_id

SAFE_NAME = re.compile(r"^[A-Za-z0-9._-]+$")

HOSTILE_IDS = [
    "../../etc",
    "..",
    ".",
    "...",
    "/absolute",
    "a/b",
    "a\\b",
    "a:b",
    "weather\x00",
    "tool name with spaces",
    "ünïcödé",
    "~root",
    "$HOME",
]


@pytest.mark.parametrize("tool_id", HOSTILE_IDS)
def test_safe_id_is_single_safe_component(tool_id: str) -> None:
    result = safe_id(tool_id)
    assert SAFE_NAME.match(result)
    assert result not in (".", "..")
    assert "/" not in result


@pytest.mark.parametrize(("tool_id", "expected"), [(".", "_"), ("..", "__"), ("...", "___")])
def test_dot_names_rewritten(tool_id: str, expected: str) -> None:
    assert safe_id(tool_id) == expected


def test_plain_ids_unchanged() -> None:
    assert safe_id("acme.weather-v2_beta") == "acme.weather-v2_beta"


def test_empty_id_rejected() -> None:
    with pytest.raises(ValueError):
        safe_id("")


@pytest.mark.parametrize("tool_id", HOSTILE_IDS)
def test_tool_dir_stays_under_root(store: LocalToolStore, tool_id: str) -> None:
    tool_dir = store.tool_dir(tool_id)
    assert tool_dir.parent == store.root
    assert tool_dir.resolve().is_relative_to(store.root.resolve())


@pytest.mark.parametrize("tool_id", ["../../escape", "a/b", ".."])
def test_install_with_hostile_id_stays_in_root(
    store: LocalToolStore, temp_dir: Path, make_bundle: Any, tool_id: str
) -> None:
    store.install_bundle(make_bundle(id=tool_id))

    children = [child.name for child in store.root.iterdir()]
    assert children == [safe_id(tool_id)]
    assert not (temp_dir / "escape").exists()
    assert store.get_active(tool_id).id == tool_id


@pytest.mark.parametrize("version", ["../../1.0", "1.0/../..", ".."])
def test_hostile_version_stays_in_tool_dir(
    store: LocalToolStore, make_bundle: Any, version: str
) -> None:
    store.install_bundle(make_bundle(version=version))
    tool_dir = store.tool_dir("weather")
    assert (tool_dir / safe_id(version)).is_dir()
    assert sorted(p.name for p in store.root.iterdir()) == ["weather"]


def test_colliding_ids_cannot_overwrite(store: LocalToolStore, make_bundle: Any) -> None:
    store.install_bundle(make_bundle(id="acme/weather"))

    with pytest.raises(ToolIdCollisionError):
        store.install_bundle(make_bundle(id="acme:weather"))

    assert store.get_active("acme/weather").id == "acme/weather"
