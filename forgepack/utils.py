"""
Utility functions for plugin ids.
"""

import re
from typing import Iterable

_PLUGIN_RE = re.compile(r"^(?:[A-Za-z_][\w]*\.)*forgepack[-_]plugin[-_][\w.-]+$")
_SHORT_ID_RE = re.compile(r"^(?:(?P<ns>(?:[A-Za-z_][\w]*\.)*))forgepack[-_]plugin[-_]")


def is_plugin(dep_id: str) -> bool:
    """
    Check if a dependency id names a forgepack plugin.

    Args:
        dep_id: Dependency id, e.g. "forgepack-plugin-db" or "acme.forgepack_plugin_db"

    Returns:
        True if the id follows the plugin naming convention
    """
    return bool(_PLUGIN_RE.match(dep_id))


def to_module_name(dep_id: str) -> str:
    """Map a dependency id to an importable module name."""
    return dep_id.replace("-", "_")


def to_short_plugin_id(dep_id: str) -> str:
    """
    Strip the plugin prefix from an id.

    "forgepack-plugin-db" -> "db", "acme.forgepack_plugin_db" -> "acme.db"
    """
    match = _SHORT_ID_RE.match(dep_id)
    if not match:
        return dep_id
    return f"{match.group('ns') or ''}{dep_id[match.end():]}"


def matches_plugin_id(dep_id: str, query: str) -> bool:
    """Match a full id against a full or short id."""
    return dep_id == query or to_short_plugin_id(dep_id) == query


def format_features(plugin_ids: Iterable[str], lead: str = "", joiner: str = ", ") -> str:
    """Format plugin ids by their short name for display."""
    return joiner.join(f"{lead}{to_short_plugin_id(dep_id)}" for dep_id in plugin_ids)
