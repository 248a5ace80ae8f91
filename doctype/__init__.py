"""doctype: keep markdown documentation in sync with code signatures."""

__version__ = "0.1.0"
