"""Inspect and strip privacy-leaking metadata from files."""

__version__ = "0.3.0"

__all__ = ["__version__"]
