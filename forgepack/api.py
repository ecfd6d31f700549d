"""
Plugin API for registration of commands, configuration and migrations.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

from .chain import ConfigGraph
from .errors import APIMisuseError
from .manifest import CommandDefinition
from .migrations import MigrationBody, MigrationDefinition, Predicate, RegisteredMigration, always
from .records import ProjectState

if TYPE_CHECKING:
    from .service import ForgeService

logger = logging.getLogger(__name__)


class PluginAPI:
    """
    API provided to plugins for registration.

    Each plugin receives its own instance in apply(api, options). Registration
    methods only work while the plugin's apply() is running and before any
    configuration has been materialized.
    """

    def __init__(self, plugin_id: str, service: "ForgeService"):
        """
        Initialize PluginAPI.

        Args:
            plugin_id: Id of the plugin using this API
            service: Service that owns the registered collections
        """
        self.plugin_id = plugin_id
        self.service = service
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        """End the plugin's initialization pass."""
        self._open = False

    def _check_registration(self, method: str) -> None:
        if self.service.materialization_started:
            raise APIMisuseError(self.plugin_id, method, "after materialization has begun")
        if not self._open:
            raise APIMisuseError(self.plugin_id, method, "after initialization")

    def register_command(
        self,
        name: str,
        opts: Union[Dict[str, Any], Callable, None],
        handler: Optional[Callable] = None,
    ) -> None:
        """
        Register a command.

        Args:
            name: Command name
            opts: Description, usage, options and details; may be omitted by
                passing the handler in its place
            handler: Command implementation, called with the parsed args dict
        """
        self._check_registration("register_command")
        if handler is None and callable(opts):
            handler, opts = opts, None
        if handler is None:
            raise APIMisuseError(self.plugin_id, "register_command", "without a handler")

        opts = opts or {}
        command = CommandDefinition(
            name=name,
            handler=handler,
            plugin_id=self.plugin_id,
            description=opts.get("description", ""),
            usage=opts.get("usage", ""),
            options=dict(opts.get("options", {})),
            details=opts.get("details", ""),
        )
        existing = self.service.commands.get(name)
        if existing is not None:
            logger.warning(
                f"Command '{name}' from plugin '{self.plugin_id}' overrides the one from '{existing.plugin_id}'"
            )
        self.service.commands[name] = command
        logger.debug(f"Registered command: {name} (from {self.plugin_id})")

    def chain_config(self, fn: Callable[[ConfigGraph], None]) -> None:
        """
        Contribute a configuration mutator.

        Args:
            fn: Called with the shared ConfigGraph on every materialization
        """
        self._check_registration("chain_config")
        self.service.config_fns.append((self.plugin_id, fn))

    def register_migration(
        self,
        definition: Optional[MigrationDefinition] = None,
        *,
        id: Optional[str] = None,
        title: str = "",
        up: Optional[MigrationBody] = None,
        down: Optional[MigrationBody] = None,
        applies_when: Optional[Predicate] = None,
    ) -> MigrationDefinition:
        """
        Register a migration.

        Either pass a MigrationDefinition or its fields as keywords.

        Returns:
            The registered definition

        Raises:
            APIMisuseError: Outside initialization, or on a duplicate id
        """
        self._check_registration("register_migration")
        if definition is None:
            if not id or up is None or down is None:
                raise APIMisuseError(
                    self.plugin_id, "register_migration", "without an id, up() and down()"
                )
            definition = MigrationDefinition(
                id=id,
                title=title or id,
                up=up,
                down=down,
                applies_when=applies_when or always,
            )

        for existing in self.service.migrations:
            if existing.plugin_id == self.plugin_id and existing.id == definition.id:
                raise APIMisuseError(
                    self.plugin_id, "register_migration", f"with duplicate id '{definition.id}'"
                )

        self.service.migrations.append(RegisteredMigration(self.plugin_id, definition))
        logger.debug(f"Registered migration: {self.plugin_id}:{definition.id}")
        return definition

    def from_version(self, specifier: str) -> Predicate:
        """
        Applicability predicate on this plugin's last recorded version.

        Args:
            specifier: PEP 440 specifier, e.g. "<0.8.0"
        """
        plugin_id = self.plugin_id

        def predicate(state: ProjectState) -> bool:
            return state.from_version(plugin_id, specifier)

        return predicate

    def has_plugin(self, plugin_id: str) -> bool:
        return self.service.has_plugin(plugin_id)

    def get_cwd(self) -> str:
        return self.service.cwd

    def resolve(self, *parts: str) -> str:
        """Absolute path inside the project."""
        return str(Path(self.service.cwd).joinpath(*parts))

    def resolve_config(self) -> Dict[str, Any]:
        """Materialized configuration; only valid from command handlers."""
        return self.service.materialize()

    def log_info(self, message: str) -> None:
        """Log info message with plugin context."""
        logger.info(f"[{self.plugin_id}] {message}")

    def log_warning(self, message: str) -> None:
        """Log warning message with plugin context."""
        logger.warning(f"[{self.plugin_id}] {message}")

    def log_error(self, message: str) -> None:
        """Log error message with plugin context."""
        logger.error(f"[{self.plugin_id}] {message}")
