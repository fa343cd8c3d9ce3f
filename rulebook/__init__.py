"""Rule metadata resolution, custom rules and quality profile activation."""

__version__ = "0.1.0"
