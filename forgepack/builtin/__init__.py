"""Built-in plugins, applied before any project plugin."""
