"""
Record store: what has already happened to a project.

The applied-migration records and the plugin version snapshot are the only
persisted inputs to applicability decisions.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from packaging.specifiers import SpecifierSet
from packaging.version import InvalidVersion, Version

from .config_files import (
    FILE_CONFIG,
    FILE_MIGRATION_PLUGIN_VERSIONS,
    FILE_MIGRATION_RECORDS,
    ensure_config_folder,
    get_config_folder,
    read_config_file,
    write_config_file,
)
from .errors import RecordStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationRecord:
    """Persisted fact that a migration's up() completed."""
    plugin_id: str
    migration_id: str
    applied_at: str

    def to_dict(self) -> Dict[str, str]:
        return {"plugin": self.plugin_id, "id": self.migration_id, "applied_at": self.applied_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationRecord":
        return cls(
            plugin_id=str(data["plugin"]),
            migration_id=str(data["id"]),
            applied_at=str(data.get("applied_at", "")),
        )


@dataclass
class ProjectState:
    """In-memory view of the record store for the duration of one run."""
    plugin_versions: Dict[str, str] = field(default_factory=dict)
    applied: Set[Tuple[str, str]] = field(default_factory=set)

    def is_applied(self, plugin_id: str, migration_id: str) -> bool:
        return (plugin_id, migration_id) in self.applied

    def mark_applied(self, plugin_id: str, migration_id: str) -> None:
        self.applied.add((plugin_id, migration_id))

    def mark_reverted(self, plugin_id: str, migration_id: str) -> None:
        self.applied.discard((plugin_id, migration_id))

    def previous_version(self, plugin_id: str) -> Optional[str]:
        return self.plugin_versions.get(plugin_id)

    def from_version(self, plugin_id: str, specifier: str) -> bool:
        """
        Check the last recorded version of a plugin against a version range.

        Args:
            plugin_id: Plugin whose recorded version is checked
            specifier: PEP 440 specifier, e.g. "<0.8.0"

        Returns:
            True if the plugin was never recorded or its recorded version
            falls in the range

        Raises:
            RecordStoreError: If the recorded version is not a PEP 440 version
        """
        previous = self.previous_version(plugin_id)
        if previous is None:
            return True
        try:
            recorded = Version(previous)
        except InvalidVersion as e:
            raise RecordStoreError(
                f"Recorded version '{previous}' of plugin {plugin_id} is invalid; "
                f"fix or remove it in {FILE_MIGRATION_PLUGIN_VERSIONS}"
            ) from e
        return SpecifierSet(specifier).contains(recorded, prereleases=True)


class RecordStore:
    """
    JSON-backed record store under <cwd>/.forgepack.

    Each mutation re-reads and rewrites a whole document. Callers run
    migrations sequentially so writes never interleave.
    """

    def __init__(self, cwd: Union[str, Path]):
        self.cwd = Path(cwd)
        self._initialized = False

    @property
    def folder(self) -> Path:
        return get_config_folder(self.cwd)

    def _ensure_folder(self) -> None:
        if self._initialized:
            return
        try:
            ensure_config_folder(self.cwd)
        except OSError as e:
            raise RecordStoreError(f"Cannot initialize {self.folder}: {e}") from e
        self._initialized = True

    def _read(self, name: str, default: Any) -> Any:
        try:
            return read_config_file(self.cwd, name, default)
        except (OSError, ValueError) as e:
            raise RecordStoreError(f"Cannot read {self.folder / name}: {e}") from e

    def _write(self, name: str, content: Any) -> None:
        self._ensure_folder()
        try:
            write_config_file(self.cwd, name, content)
        except (OSError, TypeError, ValueError) as e:
            raise RecordStoreError(f"Cannot write {self.folder / name}: {e}") from e

    def read_records(self) -> List[MigrationRecord]:
        data = self._read(FILE_MIGRATION_RECORDS, [])
        if not isinstance(data, list):
            raise RecordStoreError(f"{FILE_MIGRATION_RECORDS} must contain a JSON array")
        try:
            return [MigrationRecord.from_dict(item) for item in data]
        except (KeyError, TypeError) as e:
            raise RecordStoreError(f"Malformed record in {FILE_MIGRATION_RECORDS}: {e}") from e

    def read_plugin_versions(self) -> Dict[str, str]:
        data = self._read(FILE_MIGRATION_PLUGIN_VERSIONS, {})
        if not isinstance(data, dict):
            raise RecordStoreError(f"{FILE_MIGRATION_PLUGIN_VERSIONS} must contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def load(self) -> ProjectState:
        """Reconstruct the project state from disk."""
        records = self.read_records()
        return ProjectState(
            plugin_versions=self.read_plugin_versions(),
            applied={(r.plugin_id, r.migration_id) for r in records},
        )

    def record_applied(self, plugin_id: str, migration_id: str) -> MigrationRecord:
        records = [
            r for r in self.read_records()
            if (r.plugin_id, r.migration_id) != (plugin_id, migration_id)
        ]
        record = MigrationRecord(
            plugin_id=plugin_id,
            migration_id=migration_id,
            applied_at=datetime.now(timezone.utc).isoformat(),
        )
        records.append(record)
        self._write(FILE_MIGRATION_RECORDS, [r.to_dict() for r in records])
        logger.debug(f"Recorded migration {plugin_id}:{migration_id}")
        return record

    def record_reverted(self, plugin_id: str, migration_id: str) -> None:
        records = self.read_records()
        remaining = [r for r in records if (r.plugin_id, r.migration_id) != (plugin_id, migration_id)]
        if len(remaining) == len(records):
            logger.debug(f"No record to remove for {plugin_id}:{migration_id}")
            return
        self._write(FILE_MIGRATION_RECORDS, [r.to_dict() for r in remaining])
        logger.debug(f"Removed record for {plugin_id}:{migration_id}")

    def record_plugin_version(self, plugin_id: str, version: str) -> None:
        self.record_plugin_versions({plugin_id: version})

    def record_plugin_versions(self, versions: Mapping[str, str]) -> None:
        if not versions:
            return
        current = self.read_plugin_versions()
        current.update({k: str(v) for k, v in versions.items()})
        self._write(FILE_MIGRATION_PLUGIN_VERSIONS, current)

    def forget_plugin_versions(self, plugin_ids: Iterable[str]) -> None:
        """Drop version entries so the plugins are treated as new."""
        plugin_ids = list(plugin_ids)
        if not plugin_ids:
            return
        current = self.read_plugin_versions()
        remaining = {k: v for k, v in current.items() if k not in plugin_ids}
        if len(remaining) != len(current):
            self._write(FILE_MIGRATION_PLUGIN_VERSIONS, remaining)

    def read_config(self) -> Dict[str, Any]:
        """Free-form project config document."""
        data = self._read(FILE_CONFIG, {})
        if not isinstance(data, dict):
            raise RecordStoreError(f"{FILE_CONFIG} must contain a JSON object")
        return data

    def write_config(self, data: Dict[str, Any]) -> None:
        self._write(FILE_CONFIG, data)

    def update_config(self, values: Dict[str, Any]) -> Dict[str, Any]:
        config = self.read_config()
        config.update(values)
        self.write_config(config)
        return config
