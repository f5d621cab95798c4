"""
Storage module for toolshed.

Two kinds of local state live here:

Local tool store (filesystem):
    - One directory per installed tool id, one subdirectory per version
    - An active.json pointer naming the version that gets loaded

Memory database (SQLite):
    - chat_messages: the chat transcript
    - facts: remembered key/value facts
    - execution_logs: one record per tool invocation attempt
"""

from toolshed.store.db import ToolshedDB, compute_hash, generate_id, now_iso
from toolshed.store.tool_store import (
    ActiveToolRecord,
    LoadResult,
    LocalToolStore,
    safe_id,
)

__all__ = [
    "ActiveToolRecord",
    "LoadResult",
    "LocalToolStore",
    "ToolshedDB",
    "compute_hash",
    "generate_id",
    "now_iso",
    "safe_id",
]
