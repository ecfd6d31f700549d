"""
Migration definitions, the context handed to migration bodies, and the
migrator that applies and reverts them.

Migration bodies mutate the project tree without transactions. A record is
written only after a body completes, so bodies must be safe to re-run on a
partially migrated tree.
"""

import copy
import inspect
import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .errors import ForgeError, MigrationError
from .manifest import PluginDescriptor
from .records import ProjectState, RecordStore
from .utils import matches_plugin_id

logger = logging.getLogger(__name__)

MigrationBody = Callable[["MigrationContext", Dict[str, Any]], Union[None, Awaitable[None]]]
Predicate = Callable[[ProjectState], bool]

UP = "up"
DOWN = "down"


def always(state: ProjectState) -> bool:
    return True


@dataclass(frozen=True)
class MigrationDefinition:
    """A reversible change registered by a plugin."""
    id: str
    title: str
    up: MigrationBody
    down: MigrationBody
    applies_when: Predicate = always


@dataclass(frozen=True)
class RegisteredMigration:
    """A migration together with the plugin that registered it."""
    plugin_id: str
    definition: MigrationDefinition

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def key(self) -> str:
        return f"{self.plugin_id}:{self.definition.id}"


@dataclass(frozen=True)
class FileInfo:
    """
    A file matched by MigrationContext.move().

    For "config/db.py": path="config/", name="db", ext="py".
    """
    full: str
    path: str
    name: str
    ext: str


def expand_braces(pattern: str) -> List[str]:
    """Expand "{a,b}" alternatives, innermost group first."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(pattern[:match.start()] + option + pattern[match.end():]))
    return expanded


def _target_name(relative: Path) -> Path:
    """Template file name to project file name: "_gitignore" -> ".gitignore", "x.j2" -> "x"."""
    parts = [("." + part[1:]) if part.startswith("_") else part for part in relative.parts]
    target = Path(*parts)
    if target.suffix == ".j2":
        target = target.with_suffix("")
    return target


class MigrationContext:
    """
    File operations available to migration bodies.

    Templates are resolved relative to the owning plugin's directory; all
    other paths are relative to the project root.
    """

    def __init__(
        self,
        cwd: Union[str, Path],
        plugin: PluginDescriptor,
        plugin_ids: Sequence[str] = (),
    ):
        self.cwd = Path(cwd)
        self.plugin = plugin
        self.plugin_id = plugin.id
        self._plugin_ids = list(plugin_ids)

    def resolve(self, *parts: str) -> Path:
        return self.cwd.joinpath(*parts)

    def has_plugin(self, plugin_id: str) -> bool:
        return any(matches_plugin_id(existing, plugin_id) for existing in self._plugin_ids)

    def _template_dir(self, template: Union[str, Path]) -> Path:
        path = Path(template)
        if not path.is_absolute():
            base = Path(self.plugin.source_dir) if self.plugin.source_dir else self.cwd
            path = base / path
        if not path.is_dir():
            raise FileNotFoundError(f"Template directory not found: {path}")
        return path

    def _template_files(self, template_dir: Path) -> List[Tuple[Path, Path]]:
        files = sorted(p for p in template_dir.rglob("*") if p.is_file())
        return [(source, _target_name(source.relative_to(template_dir))) for source in files]

    def render(self, template: Union[str, Path], data: Optional[Dict[str, Any]] = None) -> List[Path]:
        """
        Render every file of a template directory into the project.

        Existing files are overwritten. Files that are not UTF-8 text are
        copied unchanged.

        Args:
            template: Template directory, relative to the plugin
            data: Variables available to the templates

        Returns:
            Written project paths
        """
        template_dir = self._template_dir(template)
        env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        context = dict(data or {})
        context.setdefault("plugin_id", self.plugin_id)

        written = []
        for source, target in self._template_files(template_dir):
            destination = self.cwd / target
            destination.parent.mkdir(parents=True, exist_ok=True)
            try:
                source.read_bytes().decode("utf-8")
            except UnicodeDecodeError:
                shutil.copyfile(source, destination)
            else:
                template_name = source.relative_to(template_dir).as_posix()
                content = env.get_template(template_name).render(**context)
                destination.write_text(content, encoding="utf-8")
            written.append(destination)
            logger.debug(f"[{self.plugin_id}] rendered {target}")
        return written

    def unrender(self, template: Union[str, Path]) -> List[Path]:
        """
        Remove the files a template directory would render.

        Directories left empty are pruned up to the project root.
        """
        template_dir = self._template_dir(template)
        removed = []
        for _, target in self._template_files(template_dir):
            destination = self.cwd / target
            if destination.exists():
                destination.unlink()
                removed.append(destination)
                logger.debug(f"[{self.plugin_id}] removed {target}")
                self._prune_empty_dirs(destination.parent)
        return removed

    def _prune_empty_dirs(self, folder: Path) -> None:
        root = self.cwd.resolve()
        current = folder.resolve()
        while current != root and root in current.parents:
            if any(current.iterdir()):
                break
            current.rmdir()
            current = current.parent

    def move(self, pattern: str, rename: Callable[[FileInfo], str]) -> List[Tuple[Path, Path]]:
        """
        Move or rename files matching a glob pattern.

        Args:
            pattern: Glob relative to the project root, "{a,b}" alternatives allowed
            rename: Receives a FileInfo and returns the new relative path

        Returns:
            List of (old, new) paths that were moved
        """
        matches = set()
        for expanded in expand_braces(pattern):
            matches.update(p for p in self.cwd.glob(expanded) if p.is_file())

        moved = []
        for source in sorted(matches):
            relative = source.relative_to(self.cwd).as_posix()
            folder, _, filename = relative.rpartition("/")
            stem, dot, ext = filename.rpartition(".")
            info = FileInfo(
                full=relative,
                path=f"{folder}/" if folder else "",
                name=stem if dot else filename,
                ext=ext if dot else "",
            )
            new_relative = rename(info)
            if not new_relative or new_relative == relative:
                continue
            destination = self.cwd / new_relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, destination)
            moved.append((source, destination))
            logger.debug(f"[{self.plugin_id}] moved {relative} -> {new_relative}")
        return moved


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class Migrator:
    """
    Applies and reverts registered migrations against one project.

    Forward runs follow registration order (plugin resolution order, then
    per-plugin registration order); rollbacks follow the reverse order.
    Everything runs sequentially on the calling event loop.
    """

    def __init__(
        self,
        cwd: Union[str, Path],
        plugins: Sequence[PluginDescriptor],
        migrations: Sequence[RegisteredMigration],
        record_store: Optional[RecordStore] = None,
        options: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Migrator.

        Args:
            cwd: Project root
            plugins: Resolved plugins, in resolution order
            migrations: Registered migrations, in registration order
            record_store: Store for records (defaults to <cwd>/.forgepack)
            options: Project options, base of every migration's options
        """
        self.cwd = Path(cwd)
        self.plugins = {plugin.id: plugin for plugin in plugins}
        self.migrations = list(migrations)
        self.store = record_store or RecordStore(self.cwd)
        self.options = options or {}

    def _active_plugin_ids(self) -> List[str]:
        return [pid for pid, plugin in self.plugins.items() if not plugin.is_noop]

    def _context(self, plugin_id: str) -> MigrationContext:
        plugin = self.plugins.get(plugin_id) or PluginDescriptor.noop(plugin_id, optional=False)
        return MigrationContext(self.cwd, plugin, self._active_plugin_ids())

    def _options_for(self, plugin_id: str, project_config: Dict[str, Any]) -> Dict[str, Any]:
        plugin_options = (project_config.get("plugins") or {}).get(plugin_id) or {}
        if not isinstance(plugin_options, dict):
            plugin_options = {}
        return _deep_merge(self.options, plugin_options)

    async def _invoke(self, body: MigrationBody, ctx: MigrationContext, options: Dict[str, Any]) -> None:
        # Bodies may be plain functions or coroutine functions
        result = body(ctx, options)
        if inspect.isawaitable(result):
            await result

    def pending(self, state: Optional[ProjectState] = None) -> List[RegisteredMigration]:
        """Migrations a forward run would apply, evaluated against the current records."""
        state = state or self.store.load()
        return [
            migration for migration in self.migrations
            if not state.is_applied(migration.plugin_id, migration.id)
            and migration.definition.applies_when(state)
        ]

    async def up(self) -> List[str]:
        """
        Apply every outstanding, applicable migration.

        Returns:
            Qualified ids ("plugin:migration") of applied migrations

        Raises:
            MigrationError: If a predicate or an up() body fails; no record is
                written for the failing migration and the run stops
            RecordStoreError: If records cannot be read or written
        """
        state = self.store.load()
        project_config = self.store.read_config()
        applied: List[str] = []
        considered: List[str] = []

        for migration in self.migrations:
            plugin_id = migration.plugin_id
            if plugin_id not in considered:
                considered.append(plugin_id)

            if state.is_applied(plugin_id, migration.id):
                logger.debug(f"Skipping {migration.key}: already applied")
                continue

            try:
                applicable = migration.definition.applies_when(state)
            except ForgeError:
                raise
            except Exception as e:
                raise MigrationError(plugin_id, migration.id, "applies_when", e) from e
            if not applicable:
                logger.debug(f"Skipping {migration.key}: not applicable")
                continue

            logger.info(f"Applying migration {migration.key}: {migration.definition.title}")
            try:
                await self._invoke(
                    migration.definition.up,
                    self._context(plugin_id),
                    self._options_for(plugin_id, project_config),
                )
            except Exception as e:
                logger.error(f"Migration {migration.key} failed: {e}")
                raise MigrationError(plugin_id, migration.id, UP, e) from e

            self.store.record_applied(plugin_id, migration.id)
            state.mark_applied(plugin_id, migration.id)
            applied.append(migration.key)

        versions = {}
        for plugin_id in considered:
            plugin = self.plugins.get(plugin_id)
            if plugin is not None and plugin.version is not None:
                versions[plugin_id] = plugin.version
        self.store.record_plugin_versions(versions)

        logger.info(f"Applied {len(applied)} migration(s)")
        return applied

    async def down(self, plugin_ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        Revert applied migrations in reverse registration order.

        Args:
            plugin_ids: Restrict the rollback to these plugins (full or short ids)

        Returns:
            Qualified ids of reverted migrations

        Raises:
            MigrationError: If a down() body fails; its record is kept and the
                run stops
            RecordStoreError: If records cannot be read or written
        """
        targets = list(plugin_ids) if plugin_ids is not None else None
        state = self.store.load()
        project_config = self.store.read_config()
        reverted: List[str] = []
        selected = [
            migration for migration in reversed(self.migrations)
            if targets is None or any(matches_plugin_id(migration.plugin_id, t) for t in targets)
        ]

        try:
            for migration in selected:
                plugin_id = migration.plugin_id
                if not state.is_applied(plugin_id, migration.id):
                    continue

                logger.info(f"Reverting migration {migration.key}: {migration.definition.title}")
                try:
                    await self._invoke(
                        migration.definition.down,
                        self._context(plugin_id),
                        self._options_for(plugin_id, project_config),
                    )
                except Exception as e:
                    logger.error(f"Rollback of {migration.key} failed: {e}")
                    raise MigrationError(plugin_id, migration.id, DOWN, e) from e

                self.store.record_reverted(plugin_id, migration.id)
                state.mark_reverted(plugin_id, migration.id)
                reverted.append(migration.key)
        finally:
            self._forget_cleared_versions(state, selected)

        logger.info(f"Reverted {len(reverted)} migration(s)")
        return reverted

    def _forget_cleared_versions(self, state: ProjectState, selected: List[RegisteredMigration]) -> None:
        # Plugins with nothing left applied are treated as new on the next run.
        still_applied = {plugin_id for plugin_id, _ in state.applied}
        cleared = {
            migration.plugin_id for migration in selected
            if migration.plugin_id not in still_applied
            and migration.plugin_id in state.plugin_versions
        }
        if cleared:
            self.store.forget_plugin_versions(sorted(cleared))
            for plugin_id in cleared:
                state.plugin_versions.pop(plugin_id, None)
