"""
forgepack plugin composition and migration engine

Provides:
- Plugin resolution (built-in and project plugins, optional dependencies)
- Per-plugin registration API for commands, configuration and migrations
- Lazy materialization of the build configuration graph
- Versioned, reversible migrations with a persisted record store
"""

__version__ = "0.4.0"

from .errors import (
    ForgeError,
    PluginLoadError,
    APIMisuseError,
    ConfigurationError,
    MigrationError,
    RecordStoreError,
    PreferencesError,
    CommandNotFoundError,
)
from .manifest import PluginDescriptor, CommandDefinition, ProjectManifest, read_project_manifest
from .chain import ConfigGraph, ConfigNode, ChainedList, PluginSpec
from .records import MigrationRecord, ProjectState, RecordStore
from .migrations import MigrationDefinition, RegisteredMigration, MigrationContext, FileInfo, Migrator
from .api import PluginAPI
from .registry import PluginRegistry
from .global_options import GlobalOptions, GlobalOptionsStore
from .service import ForgeService, run_migrations

__all__ = [
    "ForgeError",
    "PluginLoadError",
    "APIMisuseError",
    "ConfigurationError",
    "MigrationError",
    "RecordStoreError",
    "PreferencesError",
    "CommandNotFoundError",
    "PluginDescriptor",
    "CommandDefinition",
    "ProjectManifest",
    "read_project_manifest",
    "ConfigGraph",
    "ConfigNode",
    "ChainedList",
    "PluginSpec",
    "MigrationRecord",
    "ProjectState",
    "RecordStore",
    "MigrationDefinition",
    "RegisteredMigration",
    "MigrationContext",
    "FileInfo",
    "Migrator",
    "PluginAPI",
    "PluginRegistry",
    "GlobalOptions",
    "GlobalOptionsStore",
    "ForgeService",
    "run_migrations",
]
