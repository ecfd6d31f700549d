"""
Base build configuration shared by every mode.
"""

import os

from ...env import current_mode, resolve_client_env

SUPPORTED_EXTENSIONS = [".py", ".pyi", ".json", ".yaml", ".yml"]


def apply(api, options):
    def configure(config):
        # Basics
        config.set("target", "python").set("context", api.get_cwd())

        # App entries
        app_entries = {}
        if options.get("entries"):
            for key, value in options["entries"].items():
                app_entries[key] = api.resolve(value)
        else:
            app_entries["app"] = api.resolve(options.get("entry") or "main.py")

        included = None
        if os.environ.get("FORGEPACK_ENTRIES"):
            included = [e for e in os.environ["FORGEPACK_ENTRIES"].replace(" ", "").split(",") if e]

        for key, path in app_entries.items():
            if included is None or key in included:
                config.entry(key).add(path)

        config.set(
            "source_map",
            bool(options.get("production_source_map")) or current_mode() != "production",
        )

        # Output
        output_path = api.resolve(
            os.environ.get("FORGEPACK_OUTPUT") or options.get("output_dir") or "dist"
        )
        config.output.set("path", output_path).set("filename", "{name}.py")

        # Resolve
        config.resolve.list("extensions").clear().merge(SUPPORTED_EXTENSIONS)
        (
            config.resolve.node("alias")
            .set("@root", api.resolve("."))
            .set("@config", api.resolve("config"))
            .set("@", api.resolve(options.get("src_dir") or "src"))
        )

        # Define
        client_env = resolve_client_env()
        client_env["FORGEPACK_ROOT"] = api.get_cwd()
        config.plugin("define").use("define", [client_env])

        config.node("watch_options").list("ignored").merge([
            "**/.git",
            "**/.forgepack",
            "**/temp",
            "**/__pycache__",
        ])

        config.node("cache").set("type", "filesystem").set(
            "name", f"env-{api.service.env}-{current_mode()}"
        )

    api.chain_config(configure)
