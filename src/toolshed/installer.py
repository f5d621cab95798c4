"""
Tool installer.

Composes the registry client and the local tool store into a single
install-by-id operation. It holds no state of its own.
"""

import logging

from toolshed.errors import InstallError, ToolshedError
from toolshed.registry.client import RegistryClient
from toolshed.registry.models import ToolManifest
from toolshed.store.tool_store import LocalToolStore

logger = logging.getLogger(__name__)


class ToolInstaller:
    """Install tools from a registry into a local tool store."""

    def __init__(self, registry: RegistryClient, store: LocalToolStore) -> None:
        self.registry = registry
        self.store = store

    def install_from_registry(self, tool_id: str, version: str | None = None) -> ToolManifest:
        """
        Download and install a tool, making it the active version.

        Args:
            tool_id: Registry id of the tool
            version: Version to install; the registry's current version if None

        Returns:
            The installed manifest

        Raises:
            InstallError: Naming the stage (describe, download, install) that
                failed, chained to the underlying error
        """
        stage = "describe"
        try:
            if version is None:
                version = self.registry.describe_tool(tool_id).version
                logger.debug("Resolved %s to version %s", tool_id, version)

            stage = "download"
            bundle = self.registry.download_tool_bundle(tool_id, version)

            stage = "install"
            manifest = self.store.install_bundle(bundle)
        except (ToolshedError, ValueError) as e:
            raise InstallError(
                tool_id=tool_id,
                operation="install",
                stage=stage,
                underlying_error=getattr(e, "message", None) or str(e),
            ) from e

        logger.info("Installed %s from %s", manifest.ref, self.registry.base_url)
        return manifest
