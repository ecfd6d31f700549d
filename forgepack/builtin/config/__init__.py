"""
Built-in configuration plugins.

Order sensitive: base, then dev, then prod.
"""
