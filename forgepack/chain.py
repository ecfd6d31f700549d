"""
Chainable configuration graph.

Plugins edit a shared ConfigGraph in place; to_config() produces the plain
data handed to the bundler.
"""

import copy
from typing import Any, Callable, Dict, Iterable, List, Optional


class ChainedList:
    """Ordered list of unique values."""

    def __init__(self, parent: Optional["ConfigNode"] = None):
        self._parent = parent
        self._items: List[Any] = []

    def add(self, value: Any) -> "ChainedList":
        if value not in self._items:
            self._items.append(value)
        return self

    def prepend(self, value: Any) -> "ChainedList":
        if value in self._items:
            self._items.remove(value)
        self._items.insert(0, value)
        return self

    def delete(self, value: Any) -> "ChainedList":
        if value in self._items:
            self._items.remove(value)
        return self

    def clear(self) -> "ChainedList":
        self._items.clear()
        return self

    def has(self, value: Any) -> bool:
        return value in self._items

    def merge(self, values: Iterable[Any]) -> "ChainedList":
        for value in values:
            self.add(value)
        return self

    def values(self) -> List[Any]:
        return list(self._items)

    def end(self) -> Optional["ConfigNode"]:
        return self._parent

    def __len__(self) -> int:
        return len(self._items)

    def to_config(self) -> List[Any]:
        return copy.deepcopy(self._items)


class PluginSpec:
    """A named bundler plugin: a factory plus its constructor arguments."""

    def __init__(self, name: str, parent: Optional["ConfigGraph"] = None):
        self.name = name
        self._parent = parent
        self.factory: Any = None
        self.args: List[Any] = []

    def use(self, factory: Any, args: Optional[List[Any]] = None) -> "PluginSpec":
        self.factory = factory
        self.args = list(args or [])
        return self

    def tap(self, fn: Callable[[List[Any]], List[Any]]) -> "PluginSpec":
        """Replace the arguments with fn(current arguments)."""
        self.args = list(fn(copy.deepcopy(self.args)))
        return self

    def end(self) -> Optional["ConfigGraph"]:
        return self._parent

    def to_config(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "factory": self.factory,
            "args": copy.deepcopy(self.args),
        }


class ConfigNode:
    """
    Mapping node of the configuration graph.

    Values are plain data, nested ConfigNode instances or ChainedList
    instances. Every mutating method returns the node so calls chain;
    end() returns to the parent.
    """

    def __init__(self, parent: Optional["ConfigNode"] = None):
        self._parent = parent
        self._values: Dict[str, Any] = {}

    def set(self, key: str, value: Any) -> "ConfigNode":
        self._values[key] = value
        return self

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._values

    def delete(self, key: str) -> "ConfigNode":
        self._values.pop(key, None)
        return self

    def keys(self) -> List[str]:
        return list(self._values)

    def node(self, key: str) -> "ConfigNode":
        """Child node for key, created on first access."""
        current = self._values.get(key)
        if isinstance(current, ConfigNode):
            return current
        if current is not None:
            raise TypeError(f"Config key '{key}' holds a value, not a section")
        child = ConfigNode(self)
        self._values[key] = child
        return child

    def list(self, key: str) -> ChainedList:
        """Child ordered list for key, created on first access."""
        current = self._values.get(key)
        if isinstance(current, ChainedList):
            return current
        if current is not None:
            raise TypeError(f"Config key '{key}' holds a value, not a list")
        child = ChainedList(self)
        self._values[key] = child
        return child

    def merge(self, data: Dict[str, Any]) -> "ConfigNode":
        """Deep-merge plain data into this node."""
        for key, value in data.items():
            current = self._values.get(key)
            if isinstance(value, dict) and (current is None or isinstance(current, ConfigNode)):
                self.node(key).merge(value)
            elif isinstance(value, (list, tuple)) and isinstance(current, ChainedList):
                current.merge(value)
            else:
                self._values[key] = value
        return self

    def when(
        self,
        condition: bool,
        when_true: Optional[Callable[["ConfigNode"], None]] = None,
        when_false: Optional[Callable[["ConfigNode"], None]] = None,
    ) -> "ConfigNode":
        if condition and when_true is not None:
            when_true(self)
        elif not condition and when_false is not None:
            when_false(self)
        return self

    def end(self) -> Optional["ConfigNode"]:
        return self._parent

    def to_config(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in self._values.items():
            if isinstance(value, (ConfigNode, ChainedList)):
                rendered = value.to_config()
                if rendered:
                    result[key] = rendered
            else:
                result[key] = copy.deepcopy(value)
        return result


class ConfigGraph(ConfigNode):
    """Root of the build configuration."""

    def __init__(self):
        super().__init__(None)
        self._plugins: Dict[str, PluginSpec] = {}

    def entry(self, name: str) -> ChainedList:
        return self.node("entry").list(name)

    def plugin(self, name: str) -> PluginSpec:
        if name not in self._plugins:
            self._plugins[name] = PluginSpec(name, self)
        return self._plugins[name]

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    def delete_plugin(self, name: str) -> "ConfigGraph":
        self._plugins.pop(name, None)
        return self

    @property
    def output(self) -> ConfigNode:
        return self.node("output")

    @property
    def resolve(self) -> ConfigNode:
        return self.node("resolve")

    @property
    def module(self) -> ConfigNode:
        return self.node("module")

    @property
    def optimization(self) -> ConfigNode:
        return self.node("optimization")

    def to_config(self) -> Dict[str, Any]:
        result = super().to_config()
        if self._plugins:
            result["plugins"] = [spec.to_config() for spec in self._plugins.values()]
        return result
