"""Bank statement import: extraction, deduplication and directory sync."""

__version__ = "1.0.0"
