"""
Tests for the forgepack command line.
"""

import json

from forgepack.cli import main, parse_command_args
from forgepack.global_options import GlobalOptionsStore
from forgepack.manifest import ProjectManifest, read_project_manifest, write_project_manifest
from forgepack.records import RecordStore


class TestParseCommandArgs:
    """Test command argument parsing."""

    def test_flags_values_and_positionals(self):
        """Test every token form."""
        args = parse_command_args(["app.py", "--env=test", "--watch", "--no-clean", "--dry-run"])
        assert args == {
            "_": ["app.py"],
            "env": "test",
            "watch": True,
            "clean": False,
            "dry_run": True,
        }


class TestMain:
    """Test CLI subcommands and exit codes."""

    def test_run_help(self, project, capsys):
        """Test running the built-in help command."""
        assert main(["--cwd", str(project), "run", "help"]) == 0
        assert "Commands:" in capsys.readouterr().out

    def test_unknown_command_exit_code(self, project, caplog):
        """Test that engine errors give a non-zero exit."""
        assert main(["--cwd", str(project), "run", "deploy"]) == 1
        assert 'command "deploy" does not exist.' in caplog.text

    def test_run_inspect_with_args(self, project, capsys):
        """Test passing arguments through to a command."""
        assert main(["--cwd", str(project), "run", "inspect", "mode", "--env=production"]) == 0
        assert json.loads(capsys.readouterr().out) == {"mode": "production"}

    def test_migrate_without_migrations(self, project, capsys):
        """Test a migration run with nothing registered."""
        assert main(["--cwd", str(project), "migrate"]) == 0
        assert "Nothing to do." in capsys.readouterr().out

    def test_migrate_missing_plugin(self, project):
        """Test that a missing required plugin fails the run."""
        (project / "forgepack.yaml").write_text(
            "dependencies:\n  forgepack-plugin-not-installed-x3: '*'\n", encoding="utf-8"
        )
        assert main(["--cwd", str(project), "migrate"]) == 1

    def test_config_set_and_get(self, tmp_path, capsys):
        """Test global preference commands."""
        preferences = GlobalOptionsStore(tmp_path / "rc")
        assert main(["config", "set", "package_manager", "uv"], preferences=preferences) == 0
        assert main(["config", "set", "use_registry_mirror", "true"], preferences=preferences) == 0
        capsys.readouterr()

        assert main(["config", "get"], preferences=preferences) == 0
        assert json.loads(capsys.readouterr().out) == {
            "package_manager": "uv",
            "use_registry_mirror": True,
        }

        assert main(["config", "get", "package_manager"], preferences=preferences) == 0
        assert json.loads(capsys.readouterr().out) == "uv"

    def test_config_set_invalid(self, tmp_path):
        """Test that invalid preferences fail."""
        preferences = GlobalOptionsStore(tmp_path / "rc")
        assert main(["config", "set", "package_manager", "npm"], preferences=preferences) == 1

    def test_create_empty_project(self, tmp_path):
        """Test creating a project without plugins."""
        preferences = GlobalOptionsStore(tmp_path / "rc")
        code = main(
            ["--cwd", str(tmp_path), "create", "demo", "--package-manager", "poetry", "--save-preference"],
            preferences=preferences,
        )

        assert code == 0
        target = tmp_path / "demo"
        assert read_project_manifest(str(target)).name == "demo"
        assert RecordStore(target).read_config()["package_manager"] == "poetry"
        assert (target / ".forgepack" / ".gitignore").exists()
        assert GlobalOptionsStore(tmp_path / "rc").load().package_manager == "poetry"

    def test_create_existing_directory(self, tmp_path):
        """Test that a non-empty target needs --force."""
        target = tmp_path / "demo"
        target.mkdir()
        (target / "file.txt").write_text("", encoding="utf-8")
        preferences = GlobalOptionsStore(tmp_path / "rc")

        assert main(["--cwd", str(tmp_path), "create", "demo"], preferences=preferences) == 1
        assert main(["--cwd", str(tmp_path), "create", "demo", "--force"], preferences=preferences) == 0
        assert not (target / "file.txt").exists()

    def test_create_invalid_name(self, tmp_path):
        """Test project name validation."""
        preferences = GlobalOptionsStore(tmp_path / "rc")
        assert main(["--cwd", str(tmp_path), "create", "bad name"], preferences=preferences) == 1

    def test_add_plugin(self, project, example_plugin, capsys):
        """Test adding a plugin by short id and applying its migrations."""
        write_project_manifest(str(project), ProjectManifest(name="demo"))

        assert main(["--cwd", str(project), "add", "example"]) == 0

        assert read_project_manifest(str(project)).dependencies == {example_plugin: "*"}
        assert f"Applied {example_plugin}:templates" in capsys.readouterr().out
        assert (project / "config" / "settings.py").exists()
        assert RecordStore(project).load().is_applied(example_plugin, "templates")

        assert main(["--cwd", str(project), "add", example_plugin]) == 0
        assert "0 migration(s) applied" in capsys.readouterr().out

    def test_add_dev_plugin(self, project, example_plugin):
        """Test --dev and --spec."""
        write_project_manifest(str(project), ProjectManifest(name="demo"))

        assert main(["--cwd", str(project), "add", example_plugin, "--dev", "--spec", ">=0.9"]) == 0

        manifest = read_project_manifest(str(project))
        assert manifest.dev_dependencies == {example_plugin: ">=0.9"}
        assert manifest.dependencies == {}

    def test_add_without_manifest(self, project):
        """Test that add needs an existing project."""
        assert main(["--cwd", str(project), "add", "example"]) == 1
        assert not (project / "forgepack.yaml").exists()
