"""
Example plugin for forgepack.

Demonstrates:
- Command registration
- Configuration chaining
- Template and rename migrations gated on the previous plugin version
"""

import logging

logger = logging.getLogger(__name__)

__version__ = "0.9.0"

default_envs = {
    "greet": "development",
}


def render_templates(ctx, options):
    ctx.render("templates/default", {
        "project_name": ctx.cwd.name,
        "database_url": options.get("database_url", "sqlite:///app.db"),
    })


def unrender_templates(ctx, options):
    ctx.unrender("templates/default")


def rename_db_config(ctx, options):
    ctx.move("config/db.{py,yaml}", lambda file: f"{file.path}database.{file.ext}")


def restore_db_config(ctx, options):
    ctx.move("config/database.{py,yaml}", lambda file: f"{file.path}db.{file.ext}")


def apply(api, options):
    """
    Plugin entry point called once per run.

    Args:
        api: PluginAPI instance for registration
        options: Project options
    """
    def greet(args):
        names = args.get("_") or ["world"]
        message = ", ".join(f"Hello {name}" for name in names)
        api.log_info(message)
        return message

    api.register_command(
        "greet",
        {
            "description": "Say hello",
            "usage": "forgepack greet [name ...]",
        },
        greet,
    )

    def configure(config):
        config.resolve.node("alias").set("@settings", api.resolve("config", "settings.py"))

    api.chain_config(configure)

    api.register_migration(
        id="templates",
        title="Add settings and env example files",
        up=render_templates,
        down=unrender_templates,
    )

    # config/db.* was renamed in 0.8.0
    api.register_migration(
        id="rename-db-config",
        title="Rename config/db to config/database",
        applies_when=api.from_version("<0.8.0"),
        up=rename_db_config,
        down=restore_db_config,
    )

    api.log_info("Example plugin registered successfully")
