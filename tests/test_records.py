"""
Tests for the record store and the .forgepack folder.
"""

import json

import pytest

from forgepack.config_files import (
    FILE_CONFIG,
    FILE_MIGRATION_PLUGIN_VERSIONS,
    FILE_MIGRATION_RECORDS,
    ensure_config_folder,
    read_config_file,
    write_config_file,
)
from forgepack.errors import RecordStoreError
from forgepack.records import ProjectState, RecordStore


class TestConfigFolder:
    """Test the generated .forgepack folder."""

    def test_ensure_config_folder(self, project):
        """Test generated files on first initialization."""
        folder = ensure_config_folder(project)
        assert (folder / ".gitignore").read_text(encoding="utf-8") == "/temp\n/config.json\n"
        assert (folder / "README.md").exists()
        assert json.loads((folder / FILE_CONFIG).read_text(encoding="utf-8")) == {}

    def test_existing_config_is_kept(self, project):
        """Test that re-initialization does not reset config.json."""
        write_config_file(project, FILE_CONFIG, {"package_manager": "uv"})
        ensure_config_folder(project)
        assert read_config_file(project, FILE_CONFIG) == {"package_manager": "uv"}

    def test_write_leaves_no_temp_files(self, project):
        """Test that writes go through a replaced temp file."""
        write_config_file(project, "data.json", {"a": 1})
        write_config_file(project, "data.json", {"a": 2})
        names = sorted(p.name for p in (project / ".forgepack").iterdir())
        assert names == ["data.json"]
        assert read_config_file(project, "data.json") == {"a": 2}


class TestRecordStore:
    """Test RecordStore persistence."""

    def setup_method(self):
        """Set up the plugin id used by every test."""
        self.plugin_id = "forgepack-plugin-db"

    def test_empty_store(self, project):
        """Test loading a project that never ran migrations."""
        state = RecordStore(project).load()
        assert state.applied == set()
        assert state.plugin_versions == {}

    def test_record_applied_and_reverted(self, project):
        """Test adding and removing records."""
        store = RecordStore(project)
        record = store.record_applied(self.plugin_id, "init")
        store.record_applied(self.plugin_id, "seed")

        assert record.applied_at
        assert store.load().applied == {(self.plugin_id, "init"), (self.plugin_id, "seed")}

        store.record_reverted(self.plugin_id, "init")
        assert store.load().applied == {(self.plugin_id, "seed")}

        data = json.loads((project / ".forgepack" / FILE_MIGRATION_RECORDS).read_text(encoding="utf-8"))
        assert data[0]["plugin"] == self.plugin_id
        assert data[0]["id"] == "seed"

    def test_records_survive_new_store(self, project):
        """Test that records are read back by a fresh store."""
        RecordStore(project).record_applied(self.plugin_id, "init")
        assert RecordStore(project).load().is_applied(self.plugin_id, "init")

    def test_record_applied_twice_keeps_one_record(self, project):
        """Test that re-recording a migration replaces its record."""
        store = RecordStore(project)
        store.record_applied(self.plugin_id, "init")
        store.record_applied(self.plugin_id, "init")
        assert len(store.read_records()) == 1

    def test_plugin_versions(self, project):
        """Test recording and forgetting plugin versions."""
        store = RecordStore(project)
        store.record_plugin_version(self.plugin_id, "0.7.0")
        store.record_plugin_versions({self.plugin_id: "0.9.0", "forgepack-plugin-cache": "1.0.0"})
        assert store.read_plugin_versions() == {
            self.plugin_id: "0.9.0",
            "forgepack-plugin-cache": "1.0.0",
        }

        store.forget_plugin_versions([self.plugin_id])
        assert store.read_plugin_versions() == {"forgepack-plugin-cache": "1.0.0"}
        assert (project / ".forgepack" / FILE_MIGRATION_PLUGIN_VERSIONS).exists()

    def test_config_document(self, project):
        """Test the free-form project config."""
        store = RecordStore(project)
        store.write_config({"plugins": {self.plugin_id: {"dialect": "sqlite"}}})
        config = store.update_config({"package_manager": "pip"})
        assert config["package_manager"] == "pip"
        assert store.read_config()["plugins"][self.plugin_id] == {"dialect": "sqlite"}

    def test_corrupt_records(self, project):
        """Test that unreadable records raise RecordStoreError."""
        folder = project / ".forgepack"
        folder.mkdir()
        (folder / FILE_MIGRATION_RECORDS).write_text("{not json", encoding="utf-8")
        with pytest.raises(RecordStoreError):
            RecordStore(project).load()

    def test_wrong_document_shape(self, project):
        """Test that a records document must be a list."""
        folder = project / ".forgepack"
        folder.mkdir()
        (folder / FILE_MIGRATION_RECORDS).write_text('{"a": 1}', encoding="utf-8")
        with pytest.raises(RecordStoreError):
            RecordStore(project).read_records()


class TestProjectState:
    """Test version predicates on ProjectState."""

    def test_from_version(self):
        """Test specifier matching against the recorded version."""
        state = ProjectState(plugin_versions={"forgepack-plugin-db": "0.7.9"})
        assert state.from_version("forgepack-plugin-db", "<0.8.0")
        assert not state.from_version("forgepack-plugin-db", ">=0.8.0")
        assert state.from_version("forgepack-plugin-new", "<0.1.0")

    def test_from_version_invalid_record(self):
        """Test that an unparseable recorded version names the plugin."""
        state = ProjectState(plugin_versions={"forgepack-plugin-db": "nightly-build"})
        with pytest.raises(RecordStoreError) as exc_info:
            state.from_version("forgepack-plugin-db", "<0.8.0")
        assert "forgepack-plugin-db" in str(exc_info.value)
        assert "nightly-build" in str(exc_info.value)

    def test_mark_applied_and_reverted(self):
        """Test in-memory updates."""
        state = ProjectState()
        state.mark_applied("p", "m")
        assert state.is_applied("p", "m")
        state.mark_reverted("p", "m")
        assert not state.is_applied("p", "m")
