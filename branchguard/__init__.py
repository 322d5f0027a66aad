"""Guarded branch workflows: merge risk analysis and safe branch replacement."""

__version__ = "0.1.0"
