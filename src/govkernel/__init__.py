"""
govkernel distribution import namespace.

This package re-exports the core `assumption_governance` package
for convenience and shorter imports.
"""

from importlib.metadata import PackageNotFoundError, version

# src/govkernel/__init__.py
from assumption_governance import *  # noqa: F401,F403

try:
    from ._version import __version__  # canonical
except ImportError:  # pragma: no cover - fallback for editable/local non-built environments
    try:
        __version__ = version("govkernel")
    except PackageNotFoundError:
        __version__ = "0+unknown"

__all__ = ["__version__"]
