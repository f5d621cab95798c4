"""
Adapter for tools loaded from installed bundles.

A bundle's entry module is untrusted code. Whatever it exports is never used
directly: it is adapted into a LoadedTool through from_export(), which
checks the shape explicitly and rejects anything malformed instead of
coercing it.

Export resolution order:
    1. The attribute named by the manifest's entry.exportName
    2. An attribute named "tool"
    3. An attribute named "default"

An exported Tool subclass is instantiated with no arguments. Mappings with
the same keys as the attribute protocol are accepted too.

Manifest metadata wins: requiredSecrets / requiresApproval declared by the
manifest override whatever the module claims.
"""

import inspect
from collections.abc import Callable, Mapping
from types import ModuleType
from typing import Any

from toolshed.registry.models import ToolManifest
from toolshed.tools.base import Tool, ToolContext

CONVENTIONAL_EXPORTS = ("tool", "default")

_MISSING = object()


class ExportShapeError(ValueError):
    """Raised when an exported value cannot be adapted into a tool."""


def _read(candidate: Any, key: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(key, _MISSING)
    return getattr(candidate, key, _MISSING)


def _accepts_context(func: Callable[..., Any]) -> bool:
    """Whether execute() takes a second positional argument for the context."""
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return True

    positional = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


class LoadedTool(Tool):
    """
    A tool backed by a dynamically loaded bundle export.

    Attributes:
        manifest: The manifest of the installed version this tool came from
    """

    def __init__(
        self,
        *,
        name: str,
        description: str,
        execute: Callable[..., Any],
        manifest: ToolManifest,
        required_secrets: list[str] | None = None,
        requires_approval: bool = False,
        approval_message: Callable[[dict[str, Any]], Any] | None = None,
    ) -> None:
        self._name = name
        self._description = description
        self._execute = execute
        self._pass_context = _accepts_context(execute)
        self._required_secrets = list(required_secrets or [])
        self._requires_approval = requires_approval
        self._approval_message = approval_message
        self.manifest = manifest

    @classmethod
    def from_export(cls, candidate: Any, manifest: ToolManifest) -> "LoadedTool":
        """
        Adapt an exported value into a tool, validating its shape.

        Args:
            candidate: The exported object, Tool subclass, or mapping
            manifest: Manifest of the installed version

        Returns:
            A LoadedTool with manifest metadata applied

        Raises:
            ExportShapeError: If the export is not a usable tool
        """
        if inspect.isclass(candidate):
            if not issubclass(candidate, Tool):
                raise ExportShapeError(f"exported class {candidate.__name__} is not a Tool")
            try:
                candidate = candidate()
            except Exception as e:
                raise ExportShapeError(f"cannot instantiate {candidate.__name__}: {e}") from e

        if candidate is None or isinstance(candidate, (str, bytes, int, float, bool)):
            raise ExportShapeError(f"export is a {type(candidate).__name__}, not a tool")

        execute = _read(candidate, "execute")
        if execute is _MISSING or not callable(execute):
            raise ExportShapeError("export has no callable execute")
        if inspect.iscoroutinefunction(execute) or inspect.iscoroutinefunction(
            getattr(execute, "__call__", None)
        ):
            raise ExportShapeError("execute must be a regular function, not a coroutine function")

        name = cls._read_text(candidate, "name", manifest.name)
        if isinstance(candidate, Tool) and type(candidate).description is Tool.description:
            description = manifest.description
        else:
            description = cls._read_text(candidate, "description", manifest.description)

        claimed_secrets = _read(candidate, "required_secrets")
        if claimed_secrets is _MISSING or claimed_secrets is None:
            claimed_secrets = []
        elif not isinstance(claimed_secrets, (list, tuple)) or not all(
            isinstance(item, str) and item.strip() for item in claimed_secrets
        ):
            raise ExportShapeError("required_secrets must be a list of non-empty strings")

        claimed_approval = _read(candidate, "requires_approval")
        if claimed_approval is _MISSING or claimed_approval is None:
            claimed_approval = False
        elif not isinstance(claimed_approval, bool):
            raise ExportShapeError("requires_approval must be a boolean")

        approval_message = _read(candidate, "get_approval_message")
        if approval_message is _MISSING or approval_message is None:
            approval_message = None
        elif not callable(approval_message):
            raise ExportShapeError("get_approval_message must be callable")

        required_secrets = (
            manifest.required_secrets
            if manifest.required_secrets is not None
            else list(claimed_secrets)
        )
        requires_approval = (
            manifest.requires_approval
            if manifest.requires_approval is not None
            else claimed_approval
        )

        return cls(
            name=name,
            description=description,
            execute=execute,
            manifest=manifest,
            required_secrets=required_secrets,
            requires_approval=requires_approval,
            approval_message=approval_message,
        )

    @staticmethod
    def _read_text(candidate: Any, key: str, fallback: str) -> str:
        value = _read(candidate, key)
        if value is _MISSING or value is None:
            return fallback
        if not isinstance(value, str) or not value.strip():
            raise ExportShapeError(f"{key} must be a non-empty string")
        return value

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def required_secrets(self) -> list[str]:
        return list(self._required_secrets)

    @property
    def requires_approval(self) -> bool:
        return self._requires_approval

    def get_approval_message(self, args: dict[str, Any]) -> str | None:
        if self._approval_message is None:
            return None
        message = self._approval_message(args)
        if isinstance(message, str) and message.strip():
            return message
        return None

    def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        if self._pass_context:
            return self._execute(args, context)
        return self._execute(args)


def resolve_export(module: ModuleType, manifest: ToolManifest) -> LoadedTool:
    """
    Find and adapt the tool exported by a bundle's entry module.

    Candidates are tried in order (declared export, "tool", "default"); the
    first one that adapts cleanly wins.

    Raises:
        ExportShapeError: If no candidate is a usable tool
    """
    keys: list[str] = []
    if manifest.entry.export_name:
        keys.append(manifest.entry.export_name)
    keys.extend(key for key in CONVENTIONAL_EXPORTS if key not in keys)

    problems = []
    for key in keys:
        if not hasattr(module, key):
            continue
        try:
            return LoadedTool.from_export(getattr(module, key), manifest)
        except ExportShapeError as e:
            problems.append(f"{key}: {e}")

    if not problems:
        raise ExportShapeError(f"no export found (looked for {', '.join(keys)})")
    raise ExportShapeError("; ".join(problems))
