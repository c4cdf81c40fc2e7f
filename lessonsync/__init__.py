"""
Core package for the lessonsync data layer.

Keeps numbered lessons, activities, units, half-terms, tags and lesson plans
consistent across a local cache and an optional remote mirror.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("lessonsync")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
