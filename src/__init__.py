# src/__init__.py — v1
"""digestkit — progressive file enrichment through coordinated digesters."""

from digestkit.version import __version__

__all__ = ["__version__"]
