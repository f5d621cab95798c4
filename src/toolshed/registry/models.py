"""
Registry data model.

This module defines the Pydantic models for everything the registry sends:
- ToolSummary / SearchResult: search hits
- ToolManifest (with ToolEntry / ToolSchema): a tool's declared identity
- ToolBundleFile / ToolBundle: the files implementing one tool version

Design Decisions:
    - All fields use strict types (no coercion) and extra="forbid"
    - Models are frozen (immutable after creation)
    - Wire names are camelCase; Python attributes are snake_case
    - Registry output is untrusted: a single bad field fails the whole parse
"""

import base64
import binascii
import math
import re
from pathlib import PurePosixPath
from typing import Any, TypeVar

import pydantic
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from toolshed.errors import ValidationError

# The only runtime whose entry point can be loaded in-process
SUPPORTED_RUNTIME = "python"

SUPPORTED_ENCODINGS = ("utf8", "base64")

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")

ModelT = TypeVar("ModelT", bound=BaseModel)


def check_bundle_path(path: str) -> str:
    """
    Validate a bundle-relative path and return its normalized POSIX form.

    Rejects empty paths, absolute paths (POSIX, UNC or drive-letter), NUL
    bytes and any ``..`` segment. Backslashes are treated as separators.

    Args:
        path: Path as declared by the bundle

    Returns:
        Normalized relative path (e.g., "lib/util.py")

    Raises:
        ValueError: If the path could escape the bundle directory
    """
    if not path or not path.strip():
        raise ValueError("path cannot be empty")
    if "\x00" in path:
        raise ValueError(f"path contains NUL byte: {path!r}")

    unified = path.replace("\\", "/")
    if unified.startswith("/") or _WINDOWS_DRIVE.match(unified):
        raise ValueError(f"absolute path not allowed: {path!r}")

    parts = [part for part in PurePosixPath(unified).parts if part not in ("", ".")]
    if not parts:
        raise ValueError(f"path does not name a file: {path!r}")
    if ".." in parts:
        raise ValueError(f"path escapes bundle root: {path!r}")

    return "/".join(parts)


def _require_non_blank(value: str, label: str) -> str:
    if not value.strip():
        msg = f"{label} cannot be blank"
        raise ValueError(msg)
    return value


class RegistryModel(BaseModel):
    """Common configuration for everything parsed from the registry."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize using camelCase wire names, omitting absent fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =============================================================================
# Manifest Models
# =============================================================================


class ToolEntry(RegistryModel):
    """
    How to load a tool bundle.

    Attributes:
        runtime: Must be "python"
        main: Bundle-relative path of the module to load
        export_name: Module attribute holding the tool (optional)
    """

    runtime: StrictStr
    main: StrictStr
    export_name: StrictStr | None = None

    @field_validator("runtime")
    @classmethod
    def validate_runtime(cls, v: str) -> str:
        """Only in-process Python entry points are accepted."""
        if v != SUPPORTED_RUNTIME:
            msg = f"Unsupported runtime: {v!r}. Expected {SUPPORTED_RUNTIME!r}"
            raise ValueError(msg)
        return v

    @field_validator("main")
    @classmethod
    def validate_main(cls, v: str) -> str:
        """Entry module must be a safe bundle-relative path."""
        return check_bundle_path(v)

    @field_validator("export_name", mode="before")
    @classmethod
    def blank_export_is_absent(cls, v: Any) -> Any:
        """Treat a blank export name as not declared."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ToolSchema(RegistryModel):
    """Optional input/output JSON schemas, passed through untouched."""

    input: Any = None
    output: Any = None


class _ToolIdentity(RegistryModel):
    """Fields shared by search summaries and full manifests."""

    id: StrictStr
    name: StrictStr
    version: StrictStr
    summary: StrictStr
    tags: list[StrictStr] | None = None
    provider: StrictStr | None = None
    requires_approval: StrictBool | None = None
    required_secrets: list[StrictStr] | None = None

    @field_validator("id", "name", "version", "summary")
    @classmethod
    def validate_required_strings(cls, v: str, info: pydantic.ValidationInfo) -> str:
        """Required strings must be non-blank."""
        return _require_non_blank(v, info.field_name)

    @field_validator("provider", mode="before")
    @classmethod
    def blank_provider_is_absent(cls, v: Any) -> Any:
        """Treat a blank provider as not declared."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("required_secrets")
    @classmethod
    def validate_secret_names(cls, v: list[str] | None) -> list[str] | None:
        """Secret names become part of a storage key, so they must be non-blank."""
        if v is None:
            return v
        for name in v:
            _require_non_blank(name, "secret name")
        return list(dict.fromkeys(v))


class ToolSummary(_ToolIdentity):
    """A single registry search hit."""


class ToolManifest(_ToolIdentity):
    """
    Declared identity, version and capabilities of one tool version.

    Identity is (id, version); id is stable across versions.
    """

    description: StrictStr
    entry: ToolEntry
    io_schema: ToolSchema | None = Field(default=None, alias="schema")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Description must be non-blank."""
        return _require_non_blank(v, "description")

    @property
    def ref(self) -> str:
        """Human-readable id@version reference."""
        return f"{self.id}@{self.version}"


class SearchResult(RegistryModel):
    """Registry search response."""

    results: list[ToolSummary]
    total: StrictInt | StrictFloat

    @field_validator("total")
    @classmethod
    def validate_total(cls, v: int | float) -> int | float:
        """Total must be a finite, non-negative number."""
        if not math.isfinite(v) or v < 0:
            msg = f"total must be a finite non-negative number, got {v!r}"
            raise ValueError(msg)
        return v


# =============================================================================
# Bundle Models
# =============================================================================


class ToolBundleFile(RegistryModel):
    """
    One file of a tool bundle.

    Attributes:
        path: Bundle-relative path (validated, normalized)
        content: File content, text or base64
        encoding: "utf8" (default) or "base64"
    """

    path: StrictStr
    content: StrictStr
    encoding: StrictStr = "utf8"

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject paths that could escape the bundle directory."""
        return check_bundle_path(v)

    @field_validator("encoding", mode="before")
    @classmethod
    def validate_encoding(cls, v: Any) -> Any:
        """Missing encoding means utf8; anything unknown is rejected."""
        if v is None:
            return "utf8"
        if v not in SUPPORTED_ENCODINGS:
            msg = f"Unsupported file encoding: {v!r}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_base64_content(self) -> "ToolBundleFile":
        """Base64 content must decode."""
        if self.encoding == "base64":
            try:
                base64.b64decode(self.content, validate=True)
            except (binascii.Error, ValueError) as e:
                msg = f"Invalid base64 content for {self.path}: {e}"
                raise ValueError(msg) from e
        return self

    def decoded(self) -> bytes:
        """Return the raw bytes to write to disk."""
        if self.encoding == "base64":
            return base64.b64decode(self.content, validate=True)
        return self.content.encode("utf-8")


class ToolBundle(RegistryModel):
    """A manifest plus the files implementing that tool version."""

    manifest: ToolManifest
    files: list[ToolBundleFile]

    @model_validator(mode="after")
    def validate_unique_paths(self) -> "ToolBundle":
        """Two files cannot claim the same path."""
        seen: set[str] = set()
        for bundle_file in self.files:
            if bundle_file.path in seen:
                msg = f"Duplicate bundle path: {bundle_file.path}"
                raise ValueError(msg)
            seen.add(bundle_file.path)
        return self


# =============================================================================
# Parsing Helpers
# =============================================================================


def _describe_errors(exc: pydantic.ValidationError) -> str:
    """Flatten pydantic errors into one line: 'entry.runtime: ...; id: ...'."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "<root>"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def parse_model(model_cls: type[ModelT], data: Any, subject: str) -> ModelT:
    """
    Validate untrusted data against a registry model.

    Args:
        model_cls: The model to validate against
        data: Decoded JSON payload
        subject: What is being parsed, for the error message

    Returns:
        The validated model

    Raises:
        ValidationError: If the data does not match the model exactly
    """
    if not isinstance(data, dict):
        raise ValidationError(
            subject=subject,
            detail=f"expected an object, got {type(data).__name__}",
        )
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(subject=subject, detail=_describe_errors(e)) from e
