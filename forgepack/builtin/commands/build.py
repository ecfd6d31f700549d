"""
build command: materialize the configuration and hand it to the bundler.
"""

import inspect
import logging
import shutil
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

default_envs = {
    "build": "production",
}

DEFAULT_ARGS = {
    "clean": True,
}


async def bundle(api, args: Dict[str, Any], clean: bool) -> Any:
    """
    Resolve the configuration and pass it to the service's bundler.

    A positional argument replaces the entries for this build only.
    """
    graph = api.service.resolve_chainable_config()
    positionals = args.get("_") or []
    if positionals and isinstance(positionals[0], str):
        graph.delete("entry")
        graph.entry("app").add(api.resolve(positionals[0]))

    config = graph.to_config()
    target_dir = Path(config["output"]["path"])

    if clean and target_dir.exists():
        logger.info(f"Removing {target_dir}")
        shutil.rmtree(target_dir)

    bundler = api.service.bundler
    if bundler is None:
        logger.warning("No bundler configured, only the configuration was resolved")
        return config

    result = bundler(config)
    if inspect.isawaitable(result):
        result = await result
    return result


def apply(api, options):
    async def build(args):
        for key, value in DEFAULT_ARGS.items():
            if args.get(key) is None:
                args[key] = value

        logger.info("Preparing production build...")
        result = await bundle(api, args, clean=bool(args["clean"]))
        logger.info("Build complete! Your app is ready for production.")
        return result

    api.register_command(
        "build",
        {
            "description": "Build the app for production",
            "usage": "forgepack build [entry]",
            "options": {
                "--no-clean": "do not delete the output folder before building",
            },
        },
        build,
    )
