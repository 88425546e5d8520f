# src/__init__.py — v1
"""artcache: shared artwork knowledge cache."""

from artcache.version import __version__

__all__ = ["__version__"]
