# =============================================================================
# GuildSync Main Package - Dynamic Version Loading
# =============================================================================
"""
GuildSync - Discord synchronization service

Version is loaded from installed package metadata, with pyproject.toml
as the fallback for source checkouts.
"""

from __future__ import annotations

import tomllib
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path


def _get_version() -> str:
    """
    Get package version from installed metadata.

    Falls back to reading pyproject.toml if the package is not installed.

    Returns:
        Version string (e.g., "0.3.0")
    """
    try:
        return version("guildsync")
    except PackageNotFoundError:
        pass

    pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
            return data["project"]["version"]

    return "0.1.0-unknown"


__version__: str = _get_version()
__description__: str = "GuildSync - Discord guild synchronization for the project platform"
__author__: str = "GuildSync Team"

# =============================================================================
# EXPORTS
# =============================================================================
__all__ = [
    "__version__",
    "__description__",
    "__author__",
]
