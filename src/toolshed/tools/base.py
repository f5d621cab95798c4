"""
Base classes for the tool interface.

This module defines the core abstractions for tools in toolshed:
- Tool: Abstract base class every callable capability implements
- ToolContext: Runtime context passed to tools during execution
- ToolOutput: Optional structured result a tool may return

Design Principles:
    - Tools are stateless - all state comes from ToolContext
    - Tools only see the secrets they declared (least privilege)
    - Gating (secrets, approval) happens BEFORE execute(), not within tools
    - Raising from execute() marks the invocation as failed; it never
      crashes the caller
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolOutput:
    """
    Structured output from tool execution.

    Tools may return any JSON-serializable value. Returning a ToolOutput lets
    a tool report an expected failure without raising.

    Attributes:
        success: Whether the tool executed successfully
        data: The output data from the tool (type varies by tool)
        error: Error message if success is False
        metadata: Additional metadata about the execution
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolOutput":
        """Create a successful output."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolOutput":
        """Create a failed output."""
        return cls(success=False, error=error, metadata=metadata)


@dataclass
class ToolContext:
    """
    Runtime context passed to tools during execution.

    Attributes:
        tool_name: Name the tool was invoked under
        invocation_id: Unique identifier for this invocation
        secrets: Declared secrets only, keyed by secret name
        metadata: Additional context-specific metadata
    """

    tool_name: str
    invocation_id: str
    secrets: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_secret(self, name: str) -> str | None:
        """Return a declared secret, or None if it was not declared."""
        return self.secrets.get(name)


class Tool(ABC):
    """
    Abstract base class for all toolshed tools.

    Subclasses must implement:
    - name property: The tool's unique identifier in the catalog
    - execute(): Performs the tool's action

    Subclasses may override:
    - description, required_secrets, requires_approval
    - get_approval_message(): Text shown to the human before a gated call

    Example:
        class EchoTool(Tool):
            @property
            def name(self) -> str:
                return "echo"

            def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
                return {"text": args.get("text", "")}
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The unique identifier for this tool."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        return f"Tool: {self.name}"

    @property
    def required_secrets(self) -> list[str]:
        """Names of secrets that must be stored before this tool may run."""
        return []

    @property
    def requires_approval(self) -> bool:
        """Whether a human must confirm each invocation."""
        return False

    def get_approval_message(self, args: dict[str, Any]) -> str | None:
        """
        Build the confirmation prompt for a gated invocation.

        Returns:
            Prompt text, or None to use the generic confirmation
        """
        return None

    @abstractmethod
    def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        """
        Execute the tool with the given arguments.

        Args:
            args: The input for this call (tool-specific)
            context: Runtime context with the declared secrets

        Returns:
            Any JSON-serializable value, or a ToolOutput

        Raises:
            Exception: Any exception marks the invocation as failed
        """
        ...

    def __repr__(self) -> str:
        """String representation of the tool."""
        return f"<Tool: {self.name}>"
