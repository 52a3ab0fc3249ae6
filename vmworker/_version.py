"""Version information for vmworker."""

__version__ = "1.0.0"
