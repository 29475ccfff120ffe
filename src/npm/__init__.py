"""npm and node subprocess wrappers."""

from .client import NpmClient

__all__ = ["NpmClient"]
