"""
inspect command: print the materialized configuration as JSON.
"""

import json


def _select(config, dotted_path):
    value = config
    for part in dotted_path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return None
    return value


def apply(api, options):
    def inspect_config(args):
        if args.get("plugins"):
            selected = [plugin.to_dict() for plugin in api.service.plugins]
            print(json.dumps(selected, indent=2))
            return selected

        config = api.resolve_config()
        paths = args.get("_") or []
        if paths:
            selected = {path: _select(config, path) for path in paths}
        else:
            selected = config
        output = json.dumps(selected, indent=2, default=repr)
        print(output)
        return selected

    api.register_command(
        "inspect",
        {
            "description": "Print the resolved build configuration",
            "usage": "forgepack inspect [path.to.key ...]",
            "options": {
                "--env": "resolve the configuration for this env",
                "--plugins": "list resolved plugins instead",
            },
        },
        inspect_config,
    )
