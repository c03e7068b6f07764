"""
Result cache for the Intake Intelligence System.

``CacheStore`` is the storage interface; ``InMemoryCacheStore`` is a
thread-safe TTL store kept in process memory. ``CacheLayer`` derives cache
keys from a request and stores independent copies of StructuredResults.

Typical usage example:
    cache = CacheLayer(InMemoryCacheStore(), ttl_seconds=86400)
    hit = cache.get(request)
    if hit is None:
        result = await run(request)
        cache.put(request, result)
"""

import copy
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from ..models.data_structures import AnalysisRequest, CacheEntry, StructuredResult
from ..utils.file_utils import hash_parts

logger = logging.getLogger(__name__)

KEY_PREFIX = "intake"


class CacheStore(ABC):
    """Key-value store with per-entry time to live."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the value for ``key``, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""


class InMemoryCacheStore(CacheStore):
    """
    Process-local TTL store.

    Values are deep-copied on the way in and out, so callers never share
    state with the store. Expired entries are dropped when read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key, value=copy.deepcopy(value), expires_at=self._clock() + ttl
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CacheLayer:
    """
    Request-keyed cache of StructuredResults.

    The key covers the image identities in request order, the first
    ``notes_prefix_length`` characters of the notes and the zip code.

    Attributes:
        store: Backing CacheStore.
        ttl_seconds: Lifetime of stored results.
        notes_prefix_length: Characters of the notes included in the key.
    """

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: float = 86400,
        notes_prefix_length: int = 100,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.notes_prefix_length = notes_prefix_length

    def key_for(self, request: AnalysisRequest) -> str:
        parts = [image.identity for image in request.images]
        parts.append(request.notes[: self.notes_prefix_length])
        parts.append(request.location.zip_code)
        return f"{KEY_PREFIX}:{hash_parts(parts)}"

    def get(self, request: AnalysisRequest) -> Optional[StructuredResult]:
        """Return a copy of the cached result for ``request``, if any."""
        key = self.key_for(request)
        cached = self.store.get(key)
        if cached is None:
            logger.debug(f"Cache miss for {key}")
            return None
        logger.debug(f"Cache hit for {key}")
        return copy.deepcopy(cached)

    def put(self, request: AnalysisRequest, result: StructuredResult) -> None:
        key = self.key_for(request)
        self.store.set(key, copy.deepcopy(result), self.ttl_seconds)
        logger.debug(f"Cached result under {key} for {self.ttl_seconds}s")

    def invalidate(self, request: AnalysisRequest) -> None:
        self.store.delete(self.key_for(request))
