"""
Registry module for toolshed.

This module talks to the remote tool registry and defines the data model
for what it returns.

Key Components:
    - RegistryClient: search, describe and download over HTTP
    - ToolManifest / ToolBundle: strict Pydantic models for registry payloads
    - check_bundle_path: the path-safety rule shared with the local store
"""

from toolshed.registry.client import RegistryClient
from toolshed.registry.models import (
    SUPPORTED_RUNTIME,
    SearchResult,
    ToolBundle,
    ToolBundleFile,
    ToolEntry,
    ToolManifest,
    ToolSchema,
    ToolSummary,
    check_bundle_path,
    parse_model,
)

__all__ = [
    "SUPPORTED_RUNTIME",
    "RegistryClient",
    "SearchResult",
    "ToolBundle",
    "ToolBundleFile",
    "ToolEntry",
    "ToolManifest",
    "ToolSchema",
    "ToolSummary",
    "check_bundle_path",
    "parse_model",
]
