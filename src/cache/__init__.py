"""Content-addressed dependency cache."""

from .store import CacheEntry, CacheKey, CacheStore, canonical_dependency_set, derive_cache_key

__all__ = ["CacheEntry", "CacheKey", "CacheStore", "canonical_dependency_set", "derive_cache_key"]
