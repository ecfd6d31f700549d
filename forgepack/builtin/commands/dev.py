"""
dev command: development build without cleaning the output folder.
"""

import logging

from .build import bundle

logger = logging.getLogger(__name__)

default_envs = {
    "dev": "development",
}


def apply(api, options):
    async def dev(args):
        logger.info("Preparing development build...")
        return await bundle(api, args, clean=bool(args.get("clean", False)))

    api.register_command(
        "dev",
        {
            "description": "Build the app in development mode",
            "usage": "forgepack dev [entry]",
            "options": {
                "--clean": "delete the output folder before building",
            },
        },
        dev,
    )
