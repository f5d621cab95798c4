"""
Exception hierarchy for toolshed.

All toolshed exceptions inherit from ToolshedError, allowing callers to catch
every toolshed-specific failure with a single except clause.

Exception Categories:
    - Registry errors: malformed registry responses, transport failures
    - Store errors: unsafe bundle paths, id collisions, broken installs
    - Invocation errors: unknown tools, missing secrets, denied approvals
    - Storage errors: SQLite failures
    - LLM and config errors

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (tool, stage, path where applicable)
    - Structural/safety violations are fatal to the operation that found them
    - Denials are reported as data by the invocation pipeline, not raised
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Registry errors: 1xxx
ERROR_REGISTRY_VALIDATION = 1001
ERROR_REGISTRY_NETWORK = 1002

# Store errors: 2xxx
ERROR_STORE_IO = 2001
ERROR_STORE_PATH_UNSAFE = 2002
ERROR_STORE_ID_COLLISION = 2003
ERROR_STORE_NOT_INSTALLED = 2004
ERROR_STORE_LOAD_FAILED = 2005
ERROR_STORE_INSTALL_FAILED = 2006

# Invocation errors: 3xxx
ERROR_TOOL_NOT_FOUND = 3001
ERROR_TOOL_MISSING_SECRET = 3002
ERROR_TOOL_APPROVAL_DENIED = 3003
ERROR_TOOL_EXECUTION_FAILED = 3004

# Storage errors: 4xxx
ERROR_STORAGE_CONNECTION = 4001
ERROR_STORAGE_WRITE = 4002
ERROR_STORAGE_READ = 4003

# LLM errors: 5xxx
ERROR_LLM_REQUEST = 5001

# Config errors: 6xxx
ERROR_CONFIG_INVALID = 6001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ToolshedError(Exception):
    """
    Base exception for all toolshed errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Registry Errors
# =============================================================================


@dataclass
class ValidationError(ToolshedError):
    """
    Raised when a registry response or bundle does not match the expected shape.

    A half-valid manifest is never trusted: the whole call fails.

    Attributes:
        subject: What was being parsed (e.g., "tool manifest")
        detail: Description of the offending field(s)
    """

    subject: str = ""
    detail: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid {self.subject}: {self.detail}"
        if self.code == 0:
            self.code = ERROR_REGISTRY_VALIDATION
        self.context.update({
            "subject": self.subject,
            "detail": self.detail,
        })


@dataclass
class NetworkError(ToolshedError):
    """Raised when a registry request times out, fails, or returns non-2xx."""

    url: str = ""
    status_code: int | None = None
    body: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            if self.status_code is not None:
                self.message = f"HTTP {self.status_code} from {self.url}: {self.body}"
            else:
                self.message = f"Request to {self.url} failed"
        if self.code == 0:
            self.code = ERROR_REGISTRY_NETWORK
        self.context.update({
            "url": self.url,
            "status_code": self.status_code,
            "body": self.body,
        })


# =============================================================================
# Store Errors
# =============================================================================


@dataclass
class StoreError(ToolshedError):
    """
    Base class for local tool store failures.

    Attributes:
        tool_id: The tool id being operated on (if applicable)
        operation: The store operation that failed
    """

    tool_id: str = ""
    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool store {self.operation or 'operation'} failed"
        if self.code == 0:
            self.code = ERROR_STORE_IO
        self.context.update({
            "tool_id": self.tool_id,
            "operation": self.operation,
        })


@dataclass
class PathSafetyError(StoreError):
    """Raised when a bundle path would escape the install directory."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unsafe bundle path: {self.path!r}"
        if self.code == 0:
            self.code = ERROR_STORE_PATH_UNSAFE
        if not self.suggestion:
            self.suggestion = "Bundle paths must be relative and stay inside the bundle"
        super().__post_init__()
        self.context["path"] = self.path


@dataclass
class ToolIdCollisionError(StoreError):
    """Raised when two distinct tool ids map to the same install directory."""

    existing_id: str = ""
    safe_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Tool id {self.tool_id!r} collides with installed tool "
                f"{self.existing_id!r} (both stored as {self.safe_id!r})"
            )
        if self.code == 0:
            self.code = ERROR_STORE_ID_COLLISION
        if not self.suggestion:
            self.suggestion = f"Remove {self.existing_id!r} before installing {self.tool_id!r}"
        super().__post_init__()
        self.context.update({
            "existing_id": self.existing_id,
            "safe_id": self.safe_id,
        })


@dataclass
class ToolNotInstalledError(StoreError):
    """Raised when an installed tool or version is required but missing."""

    version: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            target = f"{self.tool_id}@{self.version}" if self.version else self.tool_id
            self.message = f"Tool not installed: {target}"
        if self.code == 0:
            self.code = ERROR_STORE_NOT_INSTALLED
        super().__post_init__()
        self.context["version"] = self.version


@dataclass
class ToolLoadError(StoreError):
    """Raised when an installed tool cannot be loaded into a callable tool."""

    version: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to load {self.tool_id}@{self.version}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_STORE_LOAD_FAILED
        super().__post_init__()
        self.context.update({
            "version": self.version,
            "reason": self.reason,
        })


@dataclass
class InstallError(StoreError):
    """Raised when installing from the registry fails at some stage."""

    stage: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool install failed during {self.stage}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORE_INSTALL_FAILED
        super().__post_init__()
        self.context.update({
            "stage": self.stage,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Invocation Errors
# =============================================================================


@dataclass
class InvocationError(ToolshedError):
    """
    Base class for tool invocation errors.

    Attributes:
        tool: Name of the tool being invoked
        tool_args: Arguments that were provided
    """

    tool: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "tool": self.tool,
            "tool_args": self.tool_args,
        })


@dataclass
class ToolNotFoundError(InvocationError):
    """Raised when a tool is not in the catalog."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool not found: {self.tool}"
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Check the tool name or install it from the registry"
        super().__post_init__()


@dataclass
class MissingSecretError(InvocationError):
    """A tool was denied because declared secrets are not stored."""

    missing: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Missing secrets for {self.tool}: {', '.join(self.missing)}"
        if self.code == 0:
            self.code = ERROR_TOOL_MISSING_SECRET
        if not self.suggestion:
            self.suggestion = f"Set them with `toolshed secrets set {self.tool} <name>`"
        super().__post_init__()
        self.context["missing"] = list(self.missing)


@dataclass
class ApprovalDeniedError(InvocationError):
    """A tool was denied because the human did not approve it."""

    prompt: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Approval denied for {self.tool}"
        if self.code == 0:
            self.code = ERROR_TOOL_APPROVAL_DENIED
        super().__post_init__()
        self.context["prompt"] = self.prompt


@dataclass
class ToolExecutionError(InvocationError):
    """A tool's own logic failed."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool {self.tool} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_TOOL_EXECUTION_FAILED
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(ToolshedError):
    """
    Base class for SQLite storage errors.

    Attributes:
        operation: The operation that failed (e.g., "save_message")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# LLM / Config Errors
# =============================================================================


@dataclass
class LLMError(ToolshedError):
    """Raised when a chat completion request fails."""

    url: str = ""
    status_code: int | None = None
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"LLM request failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_LLM_REQUEST
        self.context.update({
            "url": self.url,
            "status_code": self.status_code,
        })


@dataclass
class ConfigError(ToolshedError):
    """Raised when configuration cannot be loaded or is invalid."""

    source: str = ""
    detail: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration ({self.source}): {self.detail}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context.update({
            "source": self.source,
            "detail": self.detail,
        })
