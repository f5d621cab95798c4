"""
Tool catalog for toolshed.

The catalog is the merged set of currently callable tools, built-in plus
installed. It is a snapshot: build it with build_catalog() whenever the
installed set changes and hand the new value to whoever invokes tools.

Design:
    - Immutable after construction (no register/unregister)
    - Built-in tools come first and can never be shadowed by an installed
      tool of the same name
    - Clear error messages for unknown tools

Usage:
    from toolshed.tools.catalog import build_catalog

    catalog = build_catalog(builtin_tools(), store.load_tools().tools)
    tool = catalog.get("echo")
"""

import logging
from collections.abc import Iterable, Iterator

from toolshed.errors import ToolNotFoundError
from toolshed.tools.base import Tool

logger = logging.getLogger(__name__)


class Catalog:
    """
    Read-only mapping from tool names to tool instances.

    Attributes:
        shadowed: Names of installed tools that were hidden by an earlier tool
    """

    def __init__(self, tools: Iterable[Tool] = (), shadowed: Iterable[str] = ()) -> None:
        """
        Build a catalog from tools in priority order.

        The first tool seen for a name wins.

        Raises:
            ValueError: If a tool is None or has an empty name
        """
        entries: dict[str, Tool] = {}
        for tool in tools:
            if tool is None:
                msg = "Cannot add None to a catalog"
                raise ValueError(msg)
            name = tool.name
            if not name:
                msg = "Tool must have a non-empty name"
                raise ValueError(msg)
            entries.setdefault(name, tool)
        self._tools = entries
        self.shadowed = tuple(shadowed)

    def get(self, name: str) -> Tool:
        """
        Look up a tool by name.

        Raises:
            ToolNotFoundError: If no tool with that name is in the catalog
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(tool=name)
        return tool

    def get_optional(self, name: str) -> Tool | None:
        """Look up a tool by name, returning None if not found."""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        """Check if a tool is in the catalog."""
        return name in self._tools

    def list_tools(self) -> list[str]:
        """List all tool names in sorted order."""
        return sorted(self._tools.keys())

    def __len__(self) -> int:
        """Return the number of tools."""
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        """Iterate over all tools in priority order."""
        return iter(self._tools.values())

    def __contains__(self, name: object) -> bool:
        """Check if a tool is in the catalog using 'in' operator."""
        return name in self._tools

    def __repr__(self) -> str:
        """String representation of the catalog."""
        tools = ", ".join(self.list_tools())
        return f"<Catalog: [{tools}]>"


def build_catalog(builtins: Iterable[Tool], installed: Iterable[Tool]) -> Catalog:
    """
    Merge built-in and installed tools into a new catalog.

    Built-ins are placed first. An installed tool whose name is already taken
    is dropped and reported in Catalog.shadowed.

    Args:
        builtins: In-process tools
        installed: Tools loaded from the local tool store

    Returns:
        A fresh Catalog
    """
    ordered: list[Tool] = []
    seen: set[str] = set()
    shadowed: list[str] = []

    for tool in builtins:
        ordered.append(tool)
        seen.add(tool.name)

    for tool in installed:
        if tool.name in seen:
            logger.warning("Installed tool %r is shadowed by an existing tool", tool.name)
            shadowed.append(tool.name)
            continue
        ordered.append(tool)
        seen.add(tool.name)

    return Catalog(ordered, shadowed=shadowed)
