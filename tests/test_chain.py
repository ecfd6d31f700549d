"""
Tests for the chainable configuration graph.
"""

import pytest

from forgepack.chain import ChainedList, ConfigGraph, ConfigNode


class TestChainedList:
    """Test ChainedList ordering and uniqueness."""

    def test_add_keeps_order_and_uniqueness(self):
        """Test that add() appends new values only."""
        items = ChainedList().add("a").add("b").add("a")
        assert items.values() == ["a", "b"]
        assert len(items) == 2

    def test_prepend_moves_existing_value(self):
        """Test that prepend() moves a value to the front."""
        items = ChainedList().merge(["a", "b", "c"]).prepend("c")
        assert items.values() == ["c", "a", "b"]

    def test_delete_and_clear(self):
        """Test value removal."""
        items = ChainedList().merge(["a", "b"])
        items.delete("a").delete("missing")
        assert items.values() == ["b"]
        assert items.clear().values() == []

    def test_end_returns_parent(self):
        """Test that end() returns to the owning node."""
        node = ConfigNode()
        assert node.list("extensions").add(".py").end() is node


class TestConfigNode:
    """Test ConfigNode editing and rendering."""

    def test_set_get_has_delete(self):
        """Test basic value operations."""
        node = ConfigNode().set("mode", "production")
        assert node.get("mode") == "production"
        assert node.has("mode")
        node.delete("mode")
        assert not node.has("mode")
        assert node.get("mode", "fallback") == "fallback"

    def test_nested_nodes_chain(self):
        """Test that node() creates children once and end() climbs back."""
        root = ConfigNode()
        root.node("output").set("path", "dist").end().set("target", "python")
        assert root.node("output") is root.node("output")
        assert root.to_config() == {"output": {"path": "dist"}, "target": "python"}

    def test_node_on_plain_value_raises(self):
        """Test that a plain value can't be used as a section."""
        root = ConfigNode().set("mode", "development")
        with pytest.raises(TypeError):
            root.node("mode")
        with pytest.raises(TypeError):
            root.list("mode")

    def test_empty_sections_are_omitted(self):
        """Test that untouched sections do not show up in the output."""
        root = ConfigNode()
        root.node("optimization")
        root.list("extensions")
        assert root.to_config() == {}

    def test_merge_deep(self):
        """Test merging plain data into nodes and lists."""
        root = ConfigNode()
        root.list("extensions").add(".py")
        root.merge({
            "output": {"path": "dist", "nested": {"a": 1}},
            "extensions": [".json", ".py"],
            "mode": "production",
        })
        assert root.to_config() == {
            "output": {"path": "dist", "nested": {"a": 1}},
            "extensions": [".py", ".json"],
            "mode": "production",
        }

    def test_when(self):
        """Test conditional editing."""
        root = ConfigNode()
        root.when(True, lambda n: n.set("minimize", True), lambda n: n.set("minimize", False))
        root.when(False, lambda n: n.set("devtool", "x"))
        assert root.to_config() == {"minimize": True}

    def test_to_config_is_a_copy(self):
        """Test that the rendered output does not alias graph values."""
        root = ConfigNode().set("aliases", {"@": "src"})
        rendered = root.to_config()
        rendered["aliases"]["@"] = "changed"
        assert root.get("aliases") == {"@": "src"}


class TestConfigGraph:
    """Test ConfigGraph shorthands and plugin specs."""

    def test_entries_and_output(self):
        """Test entry lists and the output section."""
        graph = ConfigGraph()
        graph.entry("app").add("/project/main.py")
        graph.output.set("path", "/project/dist")
        assert graph.to_config() == {
            "entry": {"app": ["/project/main.py"]},
            "output": {"path": "/project/dist"},
        }

    def test_plugins_rendered_in_insertion_order(self):
        """Test bundler plugin specs."""
        graph = ConfigGraph()
        graph.plugin("define").use("define", [{"A": "1"}])
        graph.plugin("copy").use("copy")
        graph.plugin("define").tap(lambda args: [dict(args[0], B="2")])

        config = graph.to_config()
        assert [p["name"] for p in config["plugins"]] == ["define", "copy"]
        assert config["plugins"][0]["args"] == [{"A": "1", "B": "2"}]
        assert graph.plugin("copy").end() is graph

    def test_delete_plugin(self):
        """Test removing a plugin spec."""
        graph = ConfigGraph()
        graph.plugin("define").use("define")
        assert graph.has_plugin("define")
        graph.delete_plugin("define")
        assert not graph.has_plugin("define")
        assert "plugins" not in graph.to_config()

    def test_same_edits_produce_equal_output(self):
        """Test that replaying the same edits gives equal configurations."""
        def edits(graph):
            graph.set("mode", "production")
            graph.resolve.list("extensions").merge([".py", ".json"])
            graph.plugin("define").use("define", [{"FORGEPACK_MODE": "production"}])

        first, second = ConfigGraph(), ConfigGraph()
        edits(first)
        edits(second)
        assert first.to_config() == second.to_config()
