"""
Plugin registry.

Resolves the ordered list of plugin descriptors for a project: built-ins in a
fixed sequence, then project plugins in manifest order.
"""

import importlib
import logging
from typing import List, Optional, Sequence

from . import __version__
from .errors import PluginLoadError
from .loader import descriptor_from_module, load_plugin
from .manifest import PluginDescriptor, ProjectManifest
from .utils import is_plugin

logger = logging.getLogger(__name__)

BUILTIN_PREFIX = "built-in:"

# Config plugins are order sensitive: later ones override earlier graph edits.
BUILTIN_PLUGINS = (
    "commands.dev",
    "commands.build",
    "commands.inspect",
    "commands.help",
    "config.base",
    "config.dev",
    "config.prod",
)


class PluginRegistry:
    """
    Discovers, loads and orders plugin descriptors.

    Resolution never re-runs mid-run; callers keep the returned list.
    """

    def __init__(self, builtin_plugins: Optional[Sequence[str]] = None):
        """
        Initialize PluginRegistry.

        Args:
            builtin_plugins: Built-in plugin modules relative to forgepack.builtin
        """
        self.builtin_plugins = list(BUILTIN_PLUGINS if builtin_plugins is None else builtin_plugins)
        self.warnings: List[str] = []

    def resolve_builtins(self) -> List[PluginDescriptor]:
        """Load the built-in plugins in their hard-coded order."""
        descriptors = []
        for name in self.builtin_plugins:
            plugin_id = BUILTIN_PREFIX + name.replace(".", "/")
            try:
                module = importlib.import_module(f"forgepack.builtin.{name}")
            except Exception as e:
                raise PluginLoadError(plugin_id, e) from e
            descriptors.append(
                descriptor_from_module(plugin_id, module, version=__version__, builtin=True)
            )
        return descriptors

    def resolve_project(self, manifest: ProjectManifest, cwd: str) -> List[PluginDescriptor]:
        """
        Load project plugins in the order their dependency lists are enumerated.

        Optional plugins that fail to load become no-op descriptors and a
        warning is recorded; any other failure propagates.
        """
        descriptors = []
        for dep_id in manifest.declared_ids():
            if not is_plugin(dep_id):
                continue

            if manifest.is_optional(dep_id):
                try:
                    descriptors.append(load_plugin(dep_id, cwd, optional=True))
                except PluginLoadError as e:
                    message = f"Optional dependency {dep_id} is not installed."
                    logger.warning(message)
                    logger.debug(f"Load failure for '{dep_id}': {e.cause}")
                    self.warnings.append(message)
                    descriptors.append(PluginDescriptor.noop(dep_id))
            else:
                descriptors.append(load_plugin(dep_id, cwd))

        return descriptors

    def resolve(self, manifest: ProjectManifest, cwd: str, use_builtin: bool = True) -> List[PluginDescriptor]:
        """
        Resolve all plugins for a project.

        Args:
            manifest: Parsed project manifest
            cwd: Project root
            use_builtin: Include built-in plugins ahead of project plugins

        Returns:
            Ordered list of descriptors

        Raises:
            PluginLoadError: If a non-optional plugin cannot be loaded
        """
        self.warnings = []
        plugins = self.resolve_builtins() if use_builtin else []
        plugins.extend(self.resolve_project(manifest, cwd))
        logger.info(f"Resolved {len(plugins)} plugins")
        return plugins
