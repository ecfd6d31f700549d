"""
Development overrides, applied when FORGEPACK_MODE is development.
"""

from ...env import current_mode


def apply(api, options):
    def configure(config):
        if current_mode() != "development":
            return
        config.set("mode", "development").set("devtool", "inline-source-map")
        config.optimization.set("minimize", False)
        config.node("watch_options").set("aggregate_timeout", 300)

    api.chain_config(configure)
