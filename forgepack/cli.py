"""
forgepack command line.

This is the only place that turns engine failures into exit codes.
"""

import argparse
import asyncio
import json
import logging
import re
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from . import __version__
from .errors import ForgeError
from .global_options import GlobalOptionsStore
from .manifest import MANIFEST_FILE, ProjectManifest, read_project_manifest, write_project_manifest
from .migrations import DOWN, UP
from .records import RecordStore
from .service import ForgeService
from .utils import format_features, is_plugin, to_short_plugin_id

logger = logging.getLogger(__name__)

_PROJECT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def parse_command_args(raw: List[str]) -> Dict[str, Any]:
    """
    Parse command arguments into a dict.

    "--key=value" and "--flag" set keys, "--no-flag" sets False, everything
    else is collected under "_".
    """
    args: Dict[str, Any] = {"_": []}
    for token in raw:
        if token.startswith("--no-"):
            args[token[5:].replace("-", "_")] = False
        elif token.startswith("--"):
            key, sep, value = token[2:].partition("=")
            args[key.replace("-", "_")] = value if sep else True
        else:
            args["_"].append(token)
    return args


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def cmd_migrate(args: argparse.Namespace) -> int:
    service = ForgeService(args.cwd)
    if args.dry_run:
        migrator = service.create_migrator()
        for migration in migrator.pending():
            print(f"{migration.key}  {migration.definition.title}")
        return 0

    direction = DOWN if args.down else UP
    keys = asyncio.run(service.migrate(direction, args.plugin or None))
    verb = "Reverted" if direction == DOWN else "Applied"
    for key in keys:
        print(f"{verb} {key}")
    if not keys:
        print("Nothing to do.")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    command_args = parse_command_args(args.args)
    service = ForgeService(args.cwd)
    asyncio.run(service.run(args.command, command_args))
    return 0


def cmd_create(args: argparse.Namespace, preferences: GlobalOptionsStore) -> int:
    cwd = Path(args.cwd or ".").resolve()
    in_current = args.name == "."
    name = cwd.name if in_current else args.name
    target = cwd if in_current else cwd / args.name

    if not _PROJECT_NAME_RE.match(name):
        raise ForgeError(f'Invalid project name: "{name}"')

    if target.exists() and any(target.iterdir()):
        if args.force and not in_current:
            logger.info(f"Removing {target}...")
            shutil.rmtree(target)
        elif not in_current:
            raise ForgeError(f"Target directory {target} already exists. Use --force to overwrite it.")
    target.mkdir(parents=True, exist_ok=True)

    plugins = list(dict.fromkeys(args.plugin or []))
    manifest = ProjectManifest(name=name, dependencies={plugin_id: "*" for plugin_id in plugins})
    write_project_manifest(str(target), manifest)

    package_manager = args.package_manager or preferences.load().package_manager or "pip"
    if args.save_preference:
        preferences.save({"package_manager": package_manager})

    RecordStore(target).update_config({"package_manager": package_manager})

    if plugins:
        logger.info(f"Creating project {name} with plugins: {format_features(plugins)}")
    else:
        logger.info(f"Creating project {name}")

    service = ForgeService(str(target))
    applied = asyncio.run(service.migrate(UP))
    print(f"Created project {name} in {target} ({len(applied)} migration(s) applied)")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    cwd = Path(args.cwd or ".").resolve()
    if not (cwd / MANIFEST_FILE).exists():
        raise ForgeError(f"No {MANIFEST_FILE} in {cwd}. Run 'forgepack create' first.")

    plugin_id = args.plugin if is_plugin(args.plugin) else f"forgepack-plugin-{args.plugin}"
    try:
        manifest = read_project_manifest(str(cwd))
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ForgeError(f"Invalid project manifest: {e}") from e

    group = manifest.dev_dependencies if args.dev else manifest.dependencies
    if plugin_id in manifest.dependencies or plugin_id in manifest.dev_dependencies:
        logger.info(f"{plugin_id} is already a dependency")
    else:
        group[plugin_id] = args.spec
        write_project_manifest(str(cwd), manifest)
        logger.info(f"Added {plugin_id} to {MANIFEST_FILE}")

    service = ForgeService(str(cwd))
    applied = asyncio.run(service.migrate(UP))
    for key in applied:
        print(f"Applied {key}")
    print(f"Added {to_short_plugin_id(plugin_id)} ({len(applied)} migration(s) applied)")
    return 0


def cmd_config(args: argparse.Namespace, preferences: GlobalOptionsStore) -> int:
    if args.action == "set":
        if args.key is None or args.value is None:
            raise ForgeError("Usage: forgepack config set KEY VALUE")
        saved = preferences.save({args.key: _parse_value(args.value)})
        if args.key not in saved.to_dict():
            logger.warning(f"Unknown preference '{args.key}' was not saved")
        return 0

    options = preferences.load().to_dict()
    if args.key:
        print(json.dumps(options.get(args.key), indent=2))
    else:
        print(json.dumps(options, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forgepack", description="Plugin-driven project builds and migrations")
    parser.add_argument("--version", action="version", version=f"forgepack {__version__}")
    parser.add_argument("--cwd", default=None, help="Project directory (default: current directory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    migrate = subparsers.add_parser("migrate", help="Apply or revert project migrations")
    migrate.add_argument("--down", action="store_true", help="Revert applied migrations")
    migrate.add_argument("--plugin", action="append", help="Only revert migrations of this plugin")
    migrate.add_argument("--dry-run", action="store_true", help="List pending migrations without applying them")

    run = subparsers.add_parser("run", help="Run a plugin command")
    run.add_argument("command", nargs="?", default="help")
    run.add_argument("args", nargs=argparse.REMAINDER)

    create = subparsers.add_parser("create", help="Create a new project")
    create.add_argument("name")
    create.add_argument("--plugin", action="append", help="Plugin to add to the project")
    create.add_argument("--force", action="store_true", help="Overwrite the target directory")
    create.add_argument("--package-manager", choices=["pip", "uv", "poetry", "pdm"])
    create.add_argument("--save-preference", action="store_true", help="Remember the package manager")

    add = subparsers.add_parser("add", help="Add a plugin to the project and apply its migrations")
    add.add_argument("plugin", help="Plugin id or short id, e.g. 'db'")
    add.add_argument("--spec", default="*", help="Version range recorded in the manifest")
    add.add_argument("--dev", action="store_true", help="Add as a dev dependency")

    config = subparsers.add_parser("config", help="Read or change global preferences")
    config.add_argument("action", choices=["get", "set"])
    config.add_argument("key", nargs="?")
    config.add_argument("value", nargs="?")

    return parser


def main(argv: Optional[List[str]] = None, preferences: Optional[GlobalOptionsStore] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    preferences = preferences or GlobalOptionsStore()

    try:
        if args.subcommand == "migrate":
            return cmd_migrate(args)
        if args.subcommand == "run":
            return cmd_run(args)
        if args.subcommand == "create":
            return cmd_create(args, preferences)
        if args.subcommand == "add":
            return cmd_add(args)
        if args.subcommand == "config":
            return cmd_config(args, preferences)
    except ForgeError as e:
        logger.error(str(e))
        if args.verbose and e.__cause__ is not None:
            logger.debug("Caused by", exc_info=e.__cause__)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted; migrations in progress were not recorded and will be retried")
        return 130

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
