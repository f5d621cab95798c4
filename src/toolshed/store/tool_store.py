"""
Local tool store.

On-disk, versioned installation tree for tools downloaded from the registry:

    {root}/{safeId}/active.json          {"id": ..., "version": ...}
    {root}/{safeId}/{version}/tool.json  manifest snapshot (camelCase)
    {root}/{safeId}/{version}/<files>    bundle files as declared

Design Principles:
    - Every bundle path is validated BEFORE anything is written
    - Files are written into a private staging directory, published by
      rename, and only then is active.json replaced (temp file + os.replace)
    - Listing and loading tolerate broken installs: one bad tool is excluded
      and reported, it never blocks the others
    - Manifest metadata (required secrets, approval) wins over whatever a
      loaded module claims about itself

Bundle entry modules run with full interpreter privileges; there is no
sandbox below the process.
"""

import hashlib
import importlib.util
import json
import logging
import os
import re
import shutil
import sys
import tempfile
import types
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, StrictStr

from toolshed.errors import (
    PathSafetyError,
    StoreError,
    ToolIdCollisionError,
    ToolLoadError,
    ToolNotInstalledError,
    ToolshedError,
)
from toolshed.registry.models import ToolBundle, ToolManifest, check_bundle_path, parse_model
from toolshed.tools.base import Tool
from toolshed.tools.loaded import resolve_export

logger = logging.getLogger(__name__)

ACTIVE_FILE = "active.json"
MANIFEST_FILE = "tool.json"

# Scratch directories inside {root}/{safeId}/ that are never versions
STAGING_PREFIX = ".staging-"
RETIRED_PREFIX = ".retired-"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_id(tool_id: str) -> str:
    """
    Map a tool id (or version) to a single safe directory name.

    Every character outside [A-Za-z0-9._-] becomes "_". Results made only of
    dots ("." / "..") are rewritten too, so the name can never refer to the
    current or parent directory.

    Raises:
        ValueError: If the id is empty
    """
    if not tool_id:
        msg = "Tool id cannot be empty"
        raise ValueError(msg)
    result = _UNSAFE_ID_CHARS.sub("_", tool_id)
    if set(result) == {"."}:
        result = "_" * len(result)
    return result


class ActiveToolRecord(BaseModel):
    """Pointer naming the version of a tool that is currently loaded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: StrictStr
    version: StrictStr


@dataclass
class LoadResult:
    """
    Best-effort outcome of loading every active tool.

    Attributes:
        tools: Tools that loaded and validated
        errors: One human-readable line per tool that did not
    """

    tools: list[Tool] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class _InstalledEntry:
    version_dir: Path
    manifest: ToolManifest


class LocalToolStore:
    """
    Versioned install tree with one active version per tool id.

    The store is the only writer of the tree. It supports a single writer;
    readers may run while an install is in progress.

    Usage:
        store = LocalToolStore("~/.toolshed/tools")
        store.init()
        store.install_bundle(bundle)
        result = store.load_tools()
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser()
        # tool id -> synthetic package of the version loaded last
        self._loaded_packages: dict[str, str] = {}

    def init(self) -> None:
        """
        Create the root directory. Idempotent.

        Raises:
            StoreError: If the directory cannot be created
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(
                operation="init",
                message=f"Failed to init tool store at {self.root}: {e}",
            ) from e

    def tool_dir(self, tool_id: str) -> Path:
        """Directory holding every version of a tool."""
        return self.root / safe_id(tool_id)

    # =========================================================================
    # Install / Activate / Remove
    # =========================================================================

    def install_bundle(self, bundle: ToolBundle) -> ToolManifest:
        """
        Install a bundle and make its version the active one.

        Args:
            bundle: Validated bundle from the registry

        Returns:
            The installed manifest

        Raises:
            PathSafetyError: If any file path would escape the version directory
            ToolIdCollisionError: If another tool id already owns the directory
            StoreError: If writing to disk fails
        """
        manifest = bundle.manifest
        tool_dir = self.tool_dir(manifest.id)
        version_name = safe_id(manifest.version)

        relative_paths = self._validate_bundle_paths(bundle)
        self._check_collision(tool_dir, manifest.id)

        staging: Path | None = None
        try:
            tool_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=tool_dir))

            staging_root = staging.resolve()
            for relative, bundle_file in zip(relative_paths, bundle.files):
                target = staging / relative
                if not target.resolve().is_relative_to(staging_root):
                    raise PathSafetyError(
                        tool_id=manifest.id,
                        operation="install",
                        path=bundle_file.path,
                    )
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(bundle_file.decoded())

            (staging / MANIFEST_FILE).write_text(
                json.dumps(manifest.to_wire(), indent=2), encoding="utf-8"
            )

            self._publish_version(staging, tool_dir / version_name)
            staging = None
            self._write_active(tool_dir, ActiveToolRecord(id=manifest.id, version=manifest.version))
        except OSError as e:
            raise StoreError(
                tool_id=manifest.id,
                operation="install",
                message=f"Failed to install {manifest.ref}: {e}",
            ) from e
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
                _remove_if_empty(tool_dir)

        logger.info("Installed %s into %s", manifest.ref, tool_dir / version_name)
        return manifest

    def activate_version(self, tool_id: str, version: str) -> ToolManifest:
        """
        Point a tool at an already-installed version (e.g., to roll back).

        Raises:
            ToolNotInstalledError: If that version is missing or corrupt
            ToolIdCollisionError: If another tool id owns the directory
        """
        tool_dir = self.tool_dir(tool_id)
        self._check_collision(tool_dir, tool_id, "activate")

        version_dir = tool_dir / safe_id(version)
        try:
            manifest = self._read_manifest(version_dir)
        except (OSError, ValueError, ToolshedError) as e:
            raise ToolNotInstalledError(
                tool_id=tool_id,
                version=version,
                operation="activate",
                message=f"Tool not installed: {tool_id}@{version} ({e})",
            ) from e
        if manifest.id != tool_id or manifest.version != version:
            raise ToolNotInstalledError(tool_id=tool_id, version=version, operation="activate")

        try:
            self._write_active(tool_dir, ActiveToolRecord(id=tool_id, version=version))
        except OSError as e:
            raise StoreError(
                tool_id=tool_id,
                operation="activate",
                message=f"Failed to activate {tool_id}@{version}: {e}",
            ) from e

        logger.info("Activated %s", manifest.ref)
        return manifest

    def remove_tool(self, tool_id: str) -> bool:
        """
        Delete every installed version of a tool.

        Returns:
            True if anything was removed, False if the tool was not installed

        Raises:
            ToolIdCollisionError: If the directory belongs to another tool id
            StoreError: If deletion fails
        """
        tool_dir = self.tool_dir(tool_id)
        if not tool_dir.exists():
            return False
        self._check_collision(tool_dir, tool_id, "remove")

        try:
            shutil.rmtree(tool_dir)
        except OSError as e:
            raise StoreError(
                tool_id=tool_id,
                operation="remove",
                message=f"Failed to remove {tool_id}: {e}",
            ) from e

        self._unload(tool_id)
        logger.info("Removed %s", tool_id)
        return True

    def prune_versions(self, tool_id: str) -> list[str]:
        """
        Delete every version directory except the active one.

        Returns:
            Names of the removed version directories

        Raises:
            ToolNotInstalledError: If the tool has no readable active pointer
            StoreError: If deletion fails
        """
        tool_dir = self.tool_dir(tool_id)
        record = self._read_active(tool_dir)
        if record is None or record.id != tool_id:
            raise ToolNotInstalledError(tool_id=tool_id, operation="prune")

        active_name = safe_id(record.version)
        removed = []
        for name in self.list_versions(tool_id):
            if name == active_name:
                continue
            try:
                shutil.rmtree(tool_dir / name)
            except OSError as e:
                raise StoreError(
                    tool_id=tool_id,
                    operation="prune",
                    message=f"Failed to remove {tool_id}@{name}: {e}",
                ) from e
            removed.append(name)

        if removed:
            logger.info("Pruned %s: %s", tool_id, ", ".join(removed))
        return removed

    # =========================================================================
    # Queries
    # =========================================================================

    def list_versions(self, tool_id: str) -> list[str]:
        """Version directories present on disk for a tool, sorted."""
        tool_dir = self.tool_dir(tool_id)
        if not tool_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in tool_dir.iterdir()
            if entry.is_dir() and not _is_scratch(entry.name)
        )

    def get_active(self, tool_id: str) -> ActiveToolRecord | None:
        """Read a tool's active pointer, or None if missing or corrupt."""
        return self._read_active(self.tool_dir(tool_id))

    def list_installed(self) -> list[ToolManifest]:
        """
        Manifests of every active tool, sorted by id.

        Broken installs are excluded and logged.
        """
        try:
            entries, problems = self._scan()
        except OSError as e:
            raise StoreError(
                operation="list",
                message=f"Failed to list installed tools: {e}",
            ) from e
        for problem in problems:
            logger.warning("Excluding installed tool: %s", problem)
        return [entry.manifest for entry in entries]

    def load_tools(self) -> LoadResult:
        """
        Load every active tool's entry module.

        Never raises: each failure becomes one line in LoadResult.errors and
        that tool is skipped.
        """
        result = LoadResult()
        try:
            entries, problems = self._scan()
        except OSError as e:
            result.errors.append(f"Tool load failed: {e}")
            return result
        result.errors.extend(problems)

        for entry in entries:
            manifest = entry.manifest
            try:
                result.tools.append(self._load_entry(entry))
            except (Exception, SystemExit) as e:
                error = ToolLoadError(
                    tool_id=manifest.id,
                    version=manifest.version,
                    operation="load",
                    reason=str(e) or type(e).__name__,
                )
                logger.warning(error.message)
                result.errors.append(error.message)

        active = {entry.manifest.id for entry in entries}
        for tool_id in [known for known in self._loaded_packages if known not in active]:
            self._unload(tool_id)

        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _validate_bundle_paths(self, bundle: ToolBundle) -> list[str]:
        """Re-check every declared path before touching the disk."""
        manifest = bundle.manifest
        relative_paths = []
        for bundle_file in bundle.files:
            try:
                relative = check_bundle_path(bundle_file.path)
            except ValueError as e:
                raise PathSafetyError(
                    tool_id=manifest.id,
                    operation="install",
                    path=bundle_file.path,
                    message=f"Unsafe bundle path {bundle_file.path!r}: {e}",
                ) from e
            if relative == MANIFEST_FILE:
                raise StoreError(
                    tool_id=manifest.id,
                    operation="install",
                    message=f"Bundle file {MANIFEST_FILE!r} is reserved for the manifest snapshot",
                )
            relative_paths.append(relative)

        try:
            check_bundle_path(manifest.entry.main)
        except ValueError as e:
            raise PathSafetyError(
                tool_id=manifest.id,
                operation="install",
                path=manifest.entry.main,
            ) from e
        return relative_paths

    def _check_collision(self, tool_dir: Path, tool_id: str, operation: str = "install") -> None:
        existing = self._read_active(tool_dir)
        if existing is not None and existing.id != tool_id:
            raise ToolIdCollisionError(
                tool_id=tool_id,
                operation=operation,
                existing_id=existing.id,
                safe_id=tool_dir.name,
            )

    def _publish_version(self, staging: Path, version_dir: Path) -> None:
        """Move a fully written staging directory into place."""
        retired: Path | None = None
        if version_dir.exists():
            retired = version_dir.with_name(f"{RETIRED_PREFIX}{uuid.uuid4().hex[:8]}")
            version_dir.rename(retired)
        try:
            staging.rename(version_dir)
        except OSError:
            if retired is not None:
                retired.rename(version_dir)
            raise
        if retired is not None:
            shutil.rmtree(retired, ignore_errors=True)

    def _write_active(self, tool_dir: Path, record: ActiveToolRecord) -> None:
        """Atomically replace the active pointer."""
        fd, tmp_name = tempfile.mkstemp(prefix=".active-", suffix=".tmp", dir=tool_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(record.model_dump(), handle, indent=2)
            os.replace(tmp_name, tool_dir / ACTIVE_FILE)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read_active(self, tool_dir: Path) -> ActiveToolRecord | None:
        path = tool_dir / ACTIVE_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            record = ActiveToolRecord.model_validate(data)
        except (OSError, ValueError):
            return None
        if not record.id or not record.version:
            return None
        return record

    def _read_manifest(self, version_dir: Path) -> ToolManifest:
        data = json.loads((version_dir / MANIFEST_FILE).read_text(encoding="utf-8"))
        return parse_model(ToolManifest, data, "installed manifest")

    def _scan(self) -> tuple[list[_InstalledEntry], list[str]]:
        """Resolve every active pointer to its manifest."""
        if not self.root.is_dir():
            return [], []

        entries: list[_InstalledEntry] = []
        problems: list[str] = []
        for tool_dir in sorted(self.root.iterdir()):
            if not tool_dir.is_dir() or tool_dir.name.startswith("."):
                continue
            if not (tool_dir / ACTIVE_FILE).exists():
                logger.debug("No active version in %s", tool_dir)
                continue

            record = self._read_active(tool_dir)
            if record is None:
                problems.append(f"Corrupt active pointer in {tool_dir.name}")
                continue
            if safe_id(record.id) != tool_dir.name:
                problems.append(f"Active pointer in {tool_dir.name} names foreign tool {record.id!r}")
                continue

            ref = f"{record.id}@{record.version}"
            try:
                manifest = self._read_manifest(tool_dir / safe_id(record.version))
            except FileNotFoundError:
                problems.append(f"Missing manifest for {ref}")
                continue
            except (OSError, ValueError, ToolshedError) as e:
                problems.append(f"Corrupt manifest for {ref}: {e}")
                continue

            if manifest.id != record.id or manifest.version != record.version:
                problems.append(f"Manifest for {ref} describes {manifest.ref}")
                continue

            entries.append(_InstalledEntry(tool_dir / safe_id(record.version), manifest))

        entries.sort(key=lambda entry: entry.manifest.id)
        return entries, problems

    def _load_entry(self, entry: _InstalledEntry) -> Tool:
        """Import a bundle's entry module and adapt its export."""
        manifest = entry.manifest
        version_root = entry.version_dir.resolve()
        module_path = (entry.version_dir / check_bundle_path(manifest.entry.main)).resolve()
        if not module_path.is_relative_to(version_root):
            msg = f"entry module escapes version directory: {manifest.entry.main}"
            raise ValueError(msg)
        if not module_path.is_file():
            msg = f"entry module not found: {manifest.entry.main}"
            raise FileNotFoundError(msg)

        package_name = _bundle_package_name(manifest)
        if self._loaded_packages.get(manifest.id, package_name) != package_name:
            self._unload(manifest.id)
        module = _import_bundle_module(module_path, manifest)
        self._loaded_packages[manifest.id] = package_name
        return resolve_export(module, manifest)

    def _unload(self, tool_id: str) -> None:
        package_name = self._loaded_packages.pop(tool_id, None)
        if package_name is not None:
            _forget_modules(package_name)


def _import_bundle_module(module_path: Path, manifest: ToolManifest) -> types.ModuleType:
    """
    Execute an entry module in a fresh, private package namespace.

    The entry's directory becomes the package path, so the module can use
    relative imports for its sibling files. Any previous load of the same
    tool version is discarded first.
    """
    package_name = _bundle_package_name(manifest)
    _forget_modules(package_name)

    package = types.ModuleType(package_name)
    package.__path__ = [str(module_path.parent)]
    package.__package__ = package_name
    sys.modules[package_name] = package

    module_name = f"{package_name}.{module_path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        _forget_modules(package_name)
        msg = f"cannot import {module_path.name}"
        raise ImportError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        _forget_modules(package_name)
        raise
    return module


def _bundle_package_name(manifest: ToolManifest) -> str:
    digest = hashlib.sha256(manifest.ref.encode("utf-8")).hexdigest()[:12]
    return f"_toolshed_bundle_{digest}"


def _forget_modules(package_name: str) -> None:
    prefix = f"{package_name}."
    for name in [n for n in sys.modules if n == package_name or n.startswith(prefix)]:
        del sys.modules[name]


def _is_scratch(name: str) -> bool:
    return name.startswith((STAGING_PREFIX, RETIRED_PREFIX))


def _remove_if_empty(path: Path) -> None:
    try:
        path.rmdir()
    except OSError:
        pass

