"""Document classification and extraction backend."""

__version__ = "0.1.0"
