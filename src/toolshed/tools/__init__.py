"""
Tools module for toolshed.

This module provides the tool interface, the built-in tools and the
catalog that merges them with tools installed from the registry.

Built-in tools:
    - echo: Echo back input text
    - time: Current time
    - add: Add two numbers
    - order_pizza: Mock pizza order (requires approval)

Architecture:
    - Tool: Abstract base class defining the tool interface
    - LoadedTool: Validating adapter for tools loaded from bundles
    - Catalog: Immutable name -> tool snapshot, built by build_catalog()
    - ToolContext: Runtime context passed to tools (declared secrets only)
    - ToolOutput: Optional structured result from tool execution

Gating (secrets, approval) happens BEFORE tool execution, not within tools.
"""

from toolshed.tools.base import Tool, ToolContext, ToolOutput
from toolshed.tools.builtin import (
    AddTool,
    EchoTool,
    PizzaOrderTool,
    TimeTool,
    builtin_tools,
)
from toolshed.tools.catalog import Catalog, build_catalog
from toolshed.tools.loaded import ExportShapeError, LoadedTool, resolve_export

__all__ = [
    "AddTool",
    "Catalog",
    "EchoTool",
    "ExportShapeError",
    "LoadedTool",
    "PizzaOrderTool",
    "TimeTool",
    "Tool",
    "ToolContext",
    "ToolOutput",
    "build_catalog",
    "builtin_tools",
    "resolve_export",
]
