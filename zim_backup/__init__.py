"""Mirror the latest dated ZIM snapshot of an offline content archive."""

__version__ = "0.1.0"
