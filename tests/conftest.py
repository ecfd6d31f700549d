"""
Shared fixtures for forgepack tests.
"""

import importlib
import os
import sys
import textwrap
import uuid
from pathlib import Path

import pytest

from forgepack.manifest import PluginDescriptor

PLUGINS_CONTRIB = Path(__file__).resolve().parent.parent / "plugins_contrib"


@pytest.fixture(autouse=True)
def isolated_environ(monkeypatch, tmp_path):
    """Each test gets its own environment and preference file."""
    saved = dict(os.environ)
    for key in list(os.environ):
        if key.startswith("FORGEPACK_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("FORGEPACK_RC_PATH", str(tmp_path / "home" / ".forgepackrc"))
    yield
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture
def project(tmp_path):
    """Empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def plugin_module(project):
    """
    Write a plugin module into the project and return its plugin id.

    Module names are unique per call so sys.modules never serves a module
    written by another test.
    """
    created = []

    def write(source, dep_id=None):
        dep_id = dep_id or f"forgepack-plugin-t{uuid.uuid4().hex[:10]}"
        module_name = dep_id.replace("-", "_")
        (project / f"{module_name}.py").write_text(textwrap.dedent(source), encoding="utf-8")
        importlib.invalidate_caches()
        created.append(module_name)
        return dep_id

    yield write

    for module_name in created:
        sys.modules.pop(module_name, None)


@pytest.fixture
def example_plugin(monkeypatch):
    """Make plugins_contrib importable and return the example plugin id."""
    monkeypatch.syspath_prepend(str(PLUGINS_CONTRIB))
    yield "forgepack-plugin-example"
    sys.modules.pop("forgepack_plugin_example", None)


@pytest.fixture
def make_plugin():
    """Factory for in-test plugin descriptors."""
    def make(plugin_id, apply, version=None, default_envs=None, source_dir=None):
        return PluginDescriptor(
            id=plugin_id,
            apply=apply,
            version=version,
            default_envs=default_envs or {},
            source_dir=str(source_dir) if source_dir else None,
        )

    return make
