"""
Plugin module loading.

Turns a plugin id into a PluginDescriptor by importing its module with the
project directory on the import path.
"""

import importlib
import logging
import sys
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Any, Callable, Iterator, Optional

from packaging.version import InvalidVersion, Version

from .errors import PluginLoadError
from .manifest import PluginDescriptor
from .utils import to_module_name

logger = logging.getLogger(__name__)


@contextmanager
def project_import_path(cwd: str) -> Iterator[None]:
    """Put the project directory first on sys.path for the duration of an import."""
    entry = str(Path(cwd).resolve())
    added = entry not in sys.path
    if added:
        sys.path.insert(0, entry)
    try:
        yield
    finally:
        if added:
            try:
                sys.path.remove(entry)
            except ValueError:
                pass


def load_module(dep_id: str, cwd: str) -> ModuleType:
    """
    Import the module backing a plugin id.

    Args:
        dep_id: Plugin id from the project manifest
        cwd: Project root, searched before site-packages

    Returns:
        Imported module

    Raises:
        PluginLoadError: If the module is missing or raises while importing
    """
    module_name = to_module_name(dep_id)
    try:
        with project_import_path(cwd):
            return importlib.import_module(module_name)
    except Exception as e:
        raise PluginLoadError(dep_id, e) from e


def _valid_version(dep_id: str, version: str) -> Optional[str]:
    try:
        Version(version)
    except InvalidVersion:
        logger.warning(f"Ignoring version '{version}' of plugin {dep_id}: not a PEP 440 version")
        return None
    return version


def plugin_version(dep_id: str, module: Optional[ModuleType] = None) -> Optional[str]:
    """
    Installed distribution version of a plugin, falling back to module.__version__.

    Versions that are not PEP 440 compliant are dropped so they never reach
    the version snapshot.
    """
    for dist_name in (dep_id, to_module_name(dep_id)):
        try:
            return _valid_version(dep_id, metadata.version(dist_name))
        except metadata.PackageNotFoundError:
            continue
        except ValueError:
            continue
    if module is not None:
        version = getattr(module, "__version__", None)
        if version:
            return _valid_version(dep_id, str(version))
    return None


def descriptor_from_module(
    dep_id: str,
    module: ModuleType,
    version: Optional[str] = None,
    builtin: bool = False,
    optional: bool = False,
) -> PluginDescriptor:
    """
    Build a descriptor from a plugin module.

    The module must expose apply(api, options); default_envs is optional.
    """
    apply = getattr(module, "apply", None)
    if not callable(apply):
        raise PluginLoadError(dep_id, TypeError(f"module '{module.__name__}' has no apply(api, options)"))

    default_envs = getattr(module, "default_envs", None) or {}
    if not isinstance(default_envs, dict):
        raise PluginLoadError(dep_id, TypeError("default_envs must be a mapping"))

    source_file = getattr(module, "__file__", None)
    source_dir = str(Path(source_file).resolve().parent) if source_file else None

    return PluginDescriptor(
        id=dep_id,
        apply=apply,
        version=version if version is not None else plugin_version(dep_id, module),
        builtin=builtin,
        optional=optional,
        default_envs=MappingProxyType(dict(default_envs)),
        source_dir=source_dir,
    )


def load_plugin(dep_id: str, cwd: str, optional: bool = False) -> PluginDescriptor:
    """Load a project plugin by id."""
    module = load_module(dep_id, cwd)
    descriptor = descriptor_from_module(dep_id, module, optional=optional)
    logger.debug(f"Loaded plugin module: {module.__name__} ({descriptor.version or 'unversioned'})")
    return descriptor


def resolve_callable(ref: str, cwd: str) -> Callable[..., Any]:
    """
    Resolve a "module:function" (or "module.function") reference from a project.

    Raises:
        ImportError: If the module cannot be imported
        AttributeError: If the attribute is missing or not callable
    """
    if ":" in ref:
        module_path, func_name = ref.split(":", 1)
    else:
        module_path, func_name = ref.rsplit(".", 1)

    with project_import_path(cwd):
        module = importlib.import_module(module_path)

    func = getattr(module, func_name)
    if not callable(func):
        raise AttributeError(f"'{ref}' is not callable")
    return func
