"""
Service orchestrating plugins for one project.

Resolves plugins, runs each entry point once with its own PluginAPI, and
exposes configuration materialization, commands and migrations.
"""

import asyncio
import copy
import inspect
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from .api import PluginAPI
from .chain import ConfigGraph
from .env import load_env
from .errors import CommandNotFoundError, ConfigurationError, ForgeError, PluginLoadError
from .loader import resolve_callable
from .manifest import CommandDefinition, PluginDescriptor, read_project_manifest
from .migrations import DOWN, UP, Migrator, RegisteredMigration
from .records import RecordStore
from .registry import PluginRegistry
from .utils import matches_plugin_id

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = "forgepack.config.yaml"
PROJECT_CONFIG_ID = "project:config"


def default_options() -> Dict[str, Any]:
    return {
        "output_dir": "dist",
        "src_dir": "src",
        "entry": None,
        "production_source_map": False,
    }


def defaults_deep(target: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Fill keys missing from target with values from defaults, recursively."""
    result = copy.deepcopy(target)
    for key, value in defaults.items():
        if key not in result or result[key] is None and value is not None:
            result[key] = copy.deepcopy(value)
        elif isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = defaults_deep(result[key], value)
    return result


class ForgeService:
    """
    Orchestrator for a project's plugins.

    Plugins are resolved once in the constructor. init() runs every entry
    point in resolution order; after that, and once materialization starts,
    registrations are rejected.
    """

    def __init__(
        self,
        cwd: Optional[str] = None,
        plugins: Optional[Sequence[PluginDescriptor]] = None,
        use_builtin: bool = True,
        inline_options: Optional[Dict[str, Any]] = None,
        registry: Optional[PluginRegistry] = None,
        record_store: Optional[RecordStore] = None,
        bundler: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ):
        """
        Initialize ForgeService.

        Args:
            cwd: Project root (defaults to the current directory)
            plugins: Project plugins to use instead of the manifest's
            use_builtin: Include built-in plugins ahead of project plugins
            inline_options: Options merged over forgepack.config.yaml
            registry: PluginRegistry instance
            record_store: RecordStore instance (defaults to <cwd>/.forgepack)
            bundler: Called with the materialized config by build commands
        """
        self.cwd = str(Path(cwd or os.getcwd()).resolve())
        self.initialized = False
        self.env: Optional[str] = None
        self.inline_options = inline_options or {}
        self.bundler = bundler

        try:
            self.manifest = read_project_manifest(self.cwd)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ForgeError(f"Invalid project manifest: {e}") from e
        self.registry = registry or PluginRegistry()
        self.record_store = record_store or RecordStore(self.cwd)

        self.plugins: List[PluginDescriptor] = self.resolve_plugins(plugins, use_builtin)

        self.config_fns: List[Tuple[str, Callable[[ConfigGraph], None]]] = []
        self.commands: Dict[str, CommandDefinition] = {}
        self.migrations: List[RegisteredMigration] = []
        self.project_options: Dict[str, Any] = {}
        self.default_envs = self.resolve_default_envs()

        self._materialization_started = False

    @property
    def warnings(self) -> List[str]:
        return self.registry.warnings

    @property
    def materialization_started(self) -> bool:
        return self._materialization_started

    def resolve_plugins(
        self,
        plugins: Optional[Sequence[PluginDescriptor]],
        use_builtin: bool,
    ) -> List[PluginDescriptor]:
        if plugins is None:
            return self.registry.resolve(self.manifest, self.cwd, use_builtin=use_builtin)
        builtins = self.registry.resolve_builtins() if use_builtin else []
        return builtins + list(plugins)

    def resolve_default_envs(self) -> Dict[str, str]:
        envs: Dict[str, str] = {}
        for plugin in self.plugins:
            envs.update(plugin.default_envs)
        return envs

    def has_plugin(self, plugin_id: str) -> bool:
        return any(
            matches_plugin_id(plugin.id, plugin_id)
            for plugin in self.plugins
            if not plugin.is_noop
        )

    def load_options(self) -> Dict[str, Any]:
        """
        Load project options.

        forgepack.config.yaml is merged over the defaults, then inline
        options over the result.
        """
        options: Dict[str, Any] = {}
        path = Path(self.cwd) / PROJECT_CONFIG_FILE
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ForgeError(f"Invalid project config {path}: {e}") from e
            if not isinstance(loaded, dict):
                raise ForgeError(f"Invalid project config {path}: expected a mapping")
            options = loaded

        options = defaults_deep(self.inline_options, options)
        return defaults_deep(options, default_options())

    def init(self, env: Optional[str] = None) -> None:
        """
        Load env files and options, then run every plugin entry point once.

        Args:
            env: Runtime environment label, e.g. "development" or "production"

        Raises:
            PluginLoadError: If an entry point raises
            APIMisuseError: If an entry point misuses the API
        """
        if self.initialized:
            return

        self.env = env
        if env:
            load_env(self.cwd, env)
        load_env(self.cwd)

        self.project_options = self.load_options()

        try:
            for plugin in self.plugins:
                api = PluginAPI(plugin.id, self)
                try:
                    plugin.apply(api, self.project_options)
                except ForgeError:
                    raise
                except Exception as e:
                    raise PluginLoadError(plugin.id, e) from e
                finally:
                    api.close()
        except ForgeError:
            # A retried init() starts from empty registrations
            self.config_fns.clear()
            self.commands.clear()
            self.migrations.clear()
            raise

        # The project's own override always runs last
        chain_config = self.project_options.get("chain_config")
        if chain_config:
            if isinstance(chain_config, str):
                try:
                    chain_config = resolve_callable(chain_config, self.cwd)
                except (ImportError, AttributeError, ValueError) as e:
                    raise ForgeError(f"Cannot load chain_config '{chain_config}': {e}") from e
            self.config_fns.append((PROJECT_CONFIG_ID, chain_config))

        self.initialized = True
        logger.info(
            f"Initialized {len(self.plugins)} plugins: {len(self.commands)} commands, "
            f"{len(self.config_fns)} config mutators, {len(self.migrations)} migrations"
        )

    def resolve_chainable_config(self) -> ConfigGraph:
        """
        Replay every configuration mutator on a fresh graph.

        Raises:
            ConfigurationError: If a mutator raises; no graph is returned
        """
        if not self.initialized:
            raise ForgeError("Service must call init() before resolving the configuration.")
        self._materialization_started = True

        graph = ConfigGraph()
        for plugin_id, fn in self.config_fns:
            try:
                fn(graph)
            except ForgeError:
                raise
            except Exception as e:
                logger.error(f"Configuration mutator from '{plugin_id}' failed: {e}")
                raise ConfigurationError(plugin_id, e) from e
        return graph

    def materialize(self) -> Dict[str, Any]:
        """
        Produce the final build configuration.

        Every call re-runs all mutators, since they may read environment
        variables that changed in between.
        """
        return self.resolve_chainable_config().to_config()

    async def run(self, name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a registered command.

        The env is taken from args["env"], then from the plugins' default
        envs for this command, then "development".

        Raises:
            CommandNotFoundError: If no plugin registered the command
        """
        args = dict(args or {})
        args.setdefault("_", [])
        env = args.get("env") or self.default_envs.get(name) or "development"

        self.init(env)

        command = self.commands.get(name) if name else None
        if command is None and name:
            raise CommandNotFoundError(name)
        if command is None or args.get("help"):
            command = self.commands.get("help")
            if command is None:
                raise CommandNotFoundError("help")

        result = command.handler(args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def create_migrator(self) -> Migrator:
        if not self.initialized:
            self.init(self.env or "development")
        return Migrator(
            self.cwd,
            self.plugins,
            self.migrations,
            record_store=self.record_store,
            options=self.project_options,
        )

    async def migrate(self, direction: str = UP, plugin_ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        Apply (up) or revert (down) migrations.

        Returns:
            Qualified ids of the migrations that ran
        """
        migrator = self.create_migrator()
        if direction == UP:
            return await migrator.up()
        if direction == DOWN:
            return await migrator.down(plugin_ids)
        raise ValueError(f"Unknown migration direction: {direction}")


def run_migrations(direction: str, cwd: str, plugin_ids: Optional[Iterable[str]] = None) -> List[str]:
    """Synchronous entry point for a migration run in a project directory."""
    service = ForgeService(cwd)
    return asyncio.run(service.migrate(direction, plugin_ids))
