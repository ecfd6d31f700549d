"""
End-to-end tests with the example plugin from plugins_contrib.
"""

import pytest

from forgepack.manifest import ProjectManifest, write_project_manifest
from forgepack.migrations import DOWN, UP
from forgepack.records import RecordStore
from forgepack.service import ForgeService, run_migrations


def _tree(root):
    return sorted(
        p.relative_to(root).as_posix() for p in root.rglob("*")
        if p.is_file() and ".forgepack" not in p.parts
    )


class TestExamplePlugin:
    """Test the example plugin through a project manifest."""

    def _write_manifest(self, project, example_plugin, optional=None):
        manifest = ProjectManifest(
            name="demo",
            dependencies={example_plugin: "*"},
            optional_dependencies={name: "*" for name in optional or []},
        )
        write_project_manifest(str(project), manifest)

    def test_resolved_after_builtins(self, project, example_plugin):
        """Test resolution, version and registered contributions."""
        self._write_manifest(project, example_plugin)
        service = ForgeService(str(project))
        service.init("development")

        plugin = service.plugins[-1]
        assert plugin.id == example_plugin
        assert plugin.version == "0.9.0"
        assert service.default_envs["greet"] == "development"
        assert "greet" in service.commands
        assert [m.key for m in service.migrations] == [
            f"{example_plugin}:templates",
            f"{example_plugin}:rename-db-config",
        ]
        alias = service.materialize()["resolve"]["alias"]
        assert alias["@settings"] == str(project.resolve() / "config" / "settings.py")

    @pytest.mark.asyncio
    async def test_greet_command(self, project, example_plugin):
        """Test the example command."""
        self._write_manifest(project, example_plugin)
        service = ForgeService(str(project))
        assert await service.run("greet", {"_": ["Ada"]}) == "Hello Ada"

    def test_fresh_project_round_trip(self, project, example_plugin):
        """Test applying then reverting everything on a new project."""
        self._write_manifest(project, example_plugin)
        before = _tree(project)

        applied = run_migrations(UP, str(project))

        assert applied == [f"{example_plugin}:templates", f"{example_plugin}:rename-db-config"]
        settings = (project / "config" / "settings.py").read_text(encoding="utf-8")
        assert '"""Settings for project."""' in settings
        assert "sqlite:///app.db" in settings
        assert (project / ".env.example").exists()
        assert RecordStore(project).read_plugin_versions() == {example_plugin: "0.9.0"}

        assert run_migrations(UP, str(project)) == []

        reverted = run_migrations(DOWN, str(project))

        assert reverted == [f"{example_plugin}:rename-db-config", f"{example_plugin}:templates"]
        assert _tree(project) == before
        assert RecordStore(project).load().applied == set()

    def test_options_from_project_config(self, project, example_plugin):
        """Test per-plugin options stored in .forgepack/config.json."""
        self._write_manifest(project, example_plugin)
        RecordStore(project).write_config({
            "plugins": {example_plugin: {"database_url": "postgresql://db/app"}},
        })

        run_migrations(UP, str(project))

        assert "postgresql://db/app" in (project / ".env.example").read_text(encoding="utf-8")

    def test_upgrade_from_old_version(self, project, example_plugin):
        """Test that the rename runs for projects created before 0.8.0 only."""
        self._write_manifest(project, example_plugin)
        (project / "config").mkdir()
        (project / "config" / "db.py").write_text("URL = 'legacy'\n", encoding="utf-8")
        store = RecordStore(project)
        store.record_plugin_version(example_plugin, "0.7.2")

        run_migrations(UP, str(project))

        assert not (project / "config" / "db.py").exists()
        assert (project / "config" / "database.py").read_text(encoding="utf-8") == "URL = 'legacy'\n"

        run_migrations(DOWN, str(project), [example_plugin])
        assert (project / "config" / "db.py").read_text(encoding="utf-8") == "URL = 'legacy'\n"

    def test_new_project_skips_rename_after_upgrade(self, project, example_plugin):
        """Test that a project already on 0.8.0 or later never renames."""
        self._write_manifest(project, example_plugin)
        (project / "config").mkdir()
        (project / "config" / "db.py").write_text("", encoding="utf-8")
        RecordStore(project).record_plugin_version(example_plugin, "0.8.1")

        applied = run_migrations(UP, str(project))

        assert applied == [f"{example_plugin}:templates"]
        assert (project / "config" / "db.py").exists()

    def test_missing_optional_plugin(self, project, example_plugin):
        """Test that a missing optional plugin doesn't stop the run."""
        self._write_manifest(project, example_plugin, optional=["forgepack-plugin-not-installed-x4"])
        service = ForgeService(str(project))

        assert service.warnings == ["Optional dependency forgepack-plugin-not-installed-x4 is not installed."]
        assert not service.has_plugin("not-installed-x4")
        assert service.has_plugin("example")
