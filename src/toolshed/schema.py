"""
Schema definitions for toolshed.

This module defines the Pydantic models shared across components:
- ChatMessage: One message in a chat transcript
- FactRecord: A remembered key/value fact
- ExecutionLog: Audit record of one tool invocation attempt

Registry payloads (manifests, bundles) live in toolshed.registry.models.

Design Decisions:
    - Models are immutable (frozen=True) and reject unknown fields
    - Timestamps are timezone-aware UTC datetimes
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LogStatus(str, Enum):
    """Outcome recorded for a tool invocation."""

    SUCCESS = "success"
    ERROR = "error"
    DENIED = "denied"


# =============================================================================
# Memory Models
# =============================================================================


class ChatMessage(BaseModel):
    """A single chat message as sent to (or received from) the model."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    role: Role = Field(..., description="Who wrote the message")
    content: str = Field(..., description="Message text")

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role=Role.ASSISTANT, content=content)

    def to_wire(self) -> dict[str, str]:
        """Chat-completions message shape."""
        return {"role": self.role.value, "content": self.content}


class FactRecord(BaseModel):
    """A remembered fact about the user or the conversation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str = Field(..., description="Fact name")
    value: str = Field(..., description="Fact value")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the fact was last written",
    )


# =============================================================================
# Execution Log
# =============================================================================


class ExecutionLog(BaseModel):
    """
    Audit record of one tool invocation attempt.

    Exactly one is written per invocation, whatever the outcome.

    Attributes:
        log_id: Assigned when the record is stored
        tool_name: Name the tool was requested under
        input: Arguments passed to the tool
        output: Tool output (successful invocations only)
        error: Denial or failure message
        status: success, error or denied
        started_at: When the invocation began
        finished_at: When it reached a terminal state
        input_hash: SHA256 of the JSON-serialized input
        output_hash: SHA256 of the JSON-serialized output
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    log_id: str | None = Field(default=None, description="Storage id")
    tool_name: str = Field(..., description="Requested tool name")
    input: Any = Field(default=None, description="Arguments passed")
    output: Any | None = Field(default=None, description="Output data")
    error: str | None = Field(default=None, description="Denial or failure message")
    status: LogStatus = Field(..., description="Outcome status")
    started_at: datetime = Field(..., description="When the invocation began")
    finished_at: datetime = Field(..., description="When the invocation ended")
    input_hash: str = Field(default="", description="SHA256 hash of input")
    output_hash: str = Field(default="", description="SHA256 hash of output")
