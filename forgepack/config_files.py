"""
Project-local .forgepack folder.

Holds the migration records, the plugin version snapshot and the free-form
project config. Every JSON write replaces the whole document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)

CONFIG_FOLDER = ".forgepack"

# Applied migrations are recorded in this file.
FILE_MIGRATION_RECORDS = "migration-records.json"

# Last version of each plugin that had migrations considered.
FILE_MIGRATION_PLUGIN_VERSIONS = "migration-plugin-versions.json"

FILE_CONFIG = "config.json"

FILE_CONTENT_GITIGNORE = """/temp
/config.json
"""

FILE_CONTENT_README = """# forgepack internal config files

Add this folder to version control. Modify at your own risk!
"""


def get_config_folder(cwd: Union[str, Path]) -> Path:
    return Path(cwd) / CONFIG_FOLDER


def write_config_file(cwd: Union[str, Path], name: str, content: Any) -> Path:
    """
    Write a file in the config folder through a temp file and os.replace.

    Strings are written verbatim, anything else is serialized as JSON.
    """
    folder = get_config_folder(cwd)
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / name
    text = content if isinstance(content, str) else json.dumps(content, indent=2) + "\n"

    fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=str(folder))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def read_config_file(cwd: Union[str, Path], name: str, default: Any = None) -> Any:
    """Read a JSON document from the config folder, or default if it does not exist."""
    path = get_config_folder(cwd) / name
    if not path.exists():
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def ensure_config_file(cwd: Union[str, Path], name: str, default_content: Any) -> None:
    """Create a config file with default content if it doesn't exist."""
    if not (get_config_folder(cwd) / name).exists():
        write_config_file(cwd, name, default_content)


def ensure_config_folder(cwd: Union[str, Path]) -> Path:
    """
    Ensure the config folder exists with its generated files.

    .gitignore and README.md are always rewritten; config.json is only
    created when missing.
    """
    folder = get_config_folder(cwd)
    created = not folder.exists()
    folder.mkdir(parents=True, exist_ok=True)
    write_config_file(cwd, ".gitignore", FILE_CONTENT_GITIGNORE)
    write_config_file(cwd, "README.md", FILE_CONTENT_README)
    ensure_config_file(cwd, FILE_CONFIG, {})
    if created:
        logger.info(f"Initialized {folder}")
    return folder
