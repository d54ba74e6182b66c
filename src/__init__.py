# src/__init__.py
"""reprostore: repro bundle ingestion, deduplication and consistency validation."""

from reprostore.version import __version__

__all__ = ["__version__"]
