"""
Plugin descriptor and project manifest definitions.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

MANIFEST_FILE = "forgepack.yaml"


def _noop_apply(api: Any, options: Dict[str, Any]) -> None:
    return None


@dataclass(frozen=True)
class PluginDescriptor:
    """Resolved identity and entry point of one plugin."""
    id: str
    apply: Callable[[Any, Dict[str, Any]], None]
    version: Optional[str] = None
    builtin: bool = False
    optional: bool = False
    default_envs: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    source_dir: Optional[str] = None  # Base directory for migration templates

    @classmethod
    def noop(cls, plugin_id: str, optional: bool = True) -> "PluginDescriptor":
        """Placeholder for an optional plugin that could not be loaded."""
        return cls(id=plugin_id, apply=_noop_apply, optional=optional)

    @property
    def is_noop(self) -> bool:
        return self.apply is _noop_apply

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "id": self.id,
            "version": self.version,
            "builtin": self.builtin,
            "optional": self.optional,
            "default_envs": dict(self.default_envs),
        }


@dataclass
class CommandDefinition:
    """Command registered by a plugin."""
    name: str
    handler: Callable
    plugin_id: str
    description: str = ""
    usage: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    details: str = ""


@dataclass
class ProjectManifest:
    """Project-level declaration of plugin dependencies."""
    name: str
    version: str = "0.0.0"
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    optional_dependencies: Dict[str, str] = field(default_factory=dict)
    source_path: Optional[str] = None

    def declared_ids(self) -> List[str]:
        """
        Enumerate declared dependency ids in declaration order.

        Dev dependencies come first, then dependencies, then optional ones.
        An id declared in several lists keeps its first position.
        """
        seen = set()
        ids = []
        for group in (self.dev_dependencies, self.dependencies, self.optional_dependencies):
            for dep_id in group:
                if dep_id not in seen:
                    seen.add(dep_id)
                    ids.append(dep_id)
        return ids

    def is_optional(self, dep_id: str) -> bool:
        """An id also declared as a regular dependency is not optional."""
        return (
            dep_id in self.optional_dependencies
            and dep_id not in self.dependencies
            and dep_id not in self.dev_dependencies
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        data: Dict[str, Any] = {"name": self.name, "version": self.version}
        if self.dev_dependencies:
            data["dev_dependencies"] = dict(self.dev_dependencies)
        if self.dependencies:
            data["dependencies"] = dict(self.dependencies)
        if self.optional_dependencies:
            data["optional_dependencies"] = dict(self.optional_dependencies)
        return data


def _as_dependency_map(value: Any, field_name: str, path: Path) -> Dict[str, str]:
    if value is None:
        return {}
    if isinstance(value, list):
        return {str(dep_id): "*" for dep_id in value}
    if isinstance(value, dict):
        return {str(dep_id): str(spec if spec is not None else "*") for dep_id, spec in value.items()}
    raise ValueError(f"'{field_name}' in {path} must be a mapping or a list")


def read_project_manifest(cwd: str) -> ProjectManifest:
    """
    Parse the forgepack.yaml manifest of a project.

    Args:
        cwd: Project root directory

    Returns:
        ProjectManifest; an empty one named after the directory if the file is missing

    Raises:
        ValueError: If the manifest exists but is malformed
    """
    path = Path(cwd) / MANIFEST_FILE
    if not path.exists():
        logger.debug(f"No {MANIFEST_FILE} in {cwd}, using an empty manifest")
        return ProjectManifest(name=Path(cwd).resolve().name)

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Invalid manifest in {path}: expected a mapping")

    return ProjectManifest(
        name=str(data.get("name") or Path(cwd).resolve().name),
        version=str(data.get("version", "0.0.0")),
        dependencies=_as_dependency_map(data.get("dependencies"), "dependencies", path),
        dev_dependencies=_as_dependency_map(data.get("dev_dependencies"), "dev_dependencies", path),
        optional_dependencies=_as_dependency_map(
            data.get("optional_dependencies"), "optional_dependencies", path
        ),
        source_path=str(path),
    )


def write_project_manifest(cwd: str, manifest: ProjectManifest) -> Path:
    """Write a manifest back to forgepack.yaml."""
    path = Path(cwd) / MANIFEST_FILE
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(manifest.to_dict(), f, sort_keys=False)
    return path
