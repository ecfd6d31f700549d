"""
Production overrides, applied when FORGEPACK_MODE is production.
"""

from ...env import current_mode


def apply(api, options):
    def configure(config):
        if current_mode() != "production":
            return
        config.set("mode", "production")
        config.set("devtool", "source-map" if options.get("production_source_map") else False)
        config.optimization.set("minimize", True).set("concatenate_modules", False)
        config.node("cache").set("compression", "gzip")

    api.chain_config(configure)
