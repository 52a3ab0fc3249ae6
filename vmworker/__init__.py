"""vmworker - warm VM pool and assignment service."""

from ._version import __version__

__all__ = ["__version__"]
