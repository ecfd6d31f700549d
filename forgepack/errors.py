"""
Typed failures raised by the engine.

Components raise these; only the CLI decides whether to log and exit.
"""

from typing import Optional


class ForgeError(RuntimeError):
    """Base class for every fatal engine failure."""


class PluginLoadError(ForgeError):
    """A non-optional plugin module is missing or failed at import time."""

    def __init__(self, plugin_id: str, cause: Optional[BaseException] = None):
        self.plugin_id = plugin_id
        self.cause = cause
        message = f"Failed to load plugin '{plugin_id}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class APIMisuseError(ForgeError):
    """A plugin called a registration method outside its initialization pass."""

    def __init__(self, plugin_id: str, method: str, reason: str = "after initialization"):
        self.plugin_id = plugin_id
        self.method = method
        super().__init__(f"Plugin '{plugin_id}' called {method}() {reason}")


class ConfigurationError(ForgeError):
    """A configuration mutator raised during materialization."""

    def __init__(self, plugin_id: str, cause: BaseException):
        self.plugin_id = plugin_id
        self.cause = cause
        super().__init__(f"Configuration from '{plugin_id}' failed: {cause}")


class MigrationError(ForgeError):
    """An up() or down() body raised; the run halted."""

    def __init__(self, plugin_id: str, migration_id: str, direction: str, cause: BaseException):
        self.plugin_id = plugin_id
        self.migration_id = migration_id
        self.direction = direction
        self.cause = cause
        super().__init__(
            f"Migration '{plugin_id}:{migration_id}' failed while running {direction}: {cause}"
        )


class RecordStoreError(ForgeError):
    """Reading or writing a persisted record document failed."""


class PreferencesError(ForgeError):
    """The global preference file is unreadable or invalid."""


class CommandNotFoundError(ForgeError):
    """No plugin registered the requested command."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'command "{name}" does not exist.')
