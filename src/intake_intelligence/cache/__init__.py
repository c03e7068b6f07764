"""
Result caching for the Intake Intelligence System.
"""

from .cache_layer import CacheLayer, CacheStore, InMemoryCacheStore

__all__ = [
    "CacheLayer",
    "CacheStore",
    "InMemoryCacheStore",
]
