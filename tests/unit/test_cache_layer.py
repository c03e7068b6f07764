"""
Unit tests for cache_layer module.
"""

import pytest

from intake_intelligence.cache.cache_layer import CacheLayer, InMemoryCacheStore
from intake_intelligence.models.data_structures import (
    AnalysisRequest,
    Location,
    ProcessingMeta,
    ProjectImage,
    StructuredResult,
)

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def request_for(notes="wood fence", zip_code="94509", paths=("a.jpg",)):
    images = tuple(ProjectImage(image_id=p, path=p) for p in paths)
    return AnalysisRequest(images=images, notes=notes, location=Location(zip_code=zip_code))


def result_for(project_type="fencing"):
    return StructuredResult(
        project_type=project_type,
        project_subtype="standard",
        dimensions={"length": 70.0},
        options={},
        detected_elements={},
        processing_meta=ProcessingMeta(processing_id="RUN-1"),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCacheStore(clock=clock)


class TestInMemoryCacheStore:
    """Tests for InMemoryCacheStore."""

    def test_set_and_get(self, store):
        store.set("k", {"v": 1}, ttl=10)
        assert store.get("k") == {"v": 1}

    def test_expiry(self, store, clock):
        store.set("k", "value", ttl=10)
        clock.now += 10

        assert store.get("k") is None
        assert len(store) == 0

    def test_non_positive_ttl_ignored(self, store):
        store.set("k", "value", ttl=0)
        assert store.get("k") is None

    def test_values_are_copied(self, store):
        value = {"items": [1]}
        store.set("k", value, ttl=10)
        value["items"].append(2)

        fetched = store.get("k")
        fetched["items"].append(3)

        assert store.get("k") == {"items": [1]}

    def test_delete_and_clear(self, store):
        store.set("a", 1, ttl=10)
        store.set("b", 2, ttl=10)

        store.delete("a")
        store.delete("missing")
        assert len(store) == 1

        store.clear()
        assert len(store) == 0


class TestCacheLayer:
    """Tests for CacheLayer."""

    def test_round_trip_returns_independent_copy(self, store):
        cache = CacheLayer(store)
        request = request_for()
        cache.put(request, result_for())

        first = cache.get(request)
        first.dimensions["length"] = 1.0

        assert cache.get(request).dimensions == {"length": 70.0}

    def test_key_depends_on_zip(self, store):
        cache = CacheLayer(store)
        assert cache.key_for(request_for(zip_code="94509")) != cache.key_for(request_for(zip_code="10001"))

    def test_key_depends_on_image_order(self, store):
        cache = CacheLayer(store)
        assert cache.key_for(request_for(paths=("a.jpg", "b.jpg"))) != cache.key_for(
            request_for(paths=("b.jpg", "a.jpg"))
        )

    def test_key_uses_notes_prefix_only(self, store):
        cache = CacheLayer(store, notes_prefix_length=10)
        same_prefix = cache.key_for(request_for(notes="0123456789 first")) == cache.key_for(
            request_for(notes="0123456789 second")
        )
        assert same_prefix
        assert cache.key_for(request_for(notes="x")) != cache.key_for(request_for(notes="y"))

    def test_key_ignores_options(self, store):
        cache = CacheLayer(store)
        request = request_for()
        assert cache.key_for(request) == cache.key_for(request.with_options(force_reprocess=True))

    def test_key_format(self, store):
        assert CacheLayer(store).key_for(request_for()).startswith("intake:")

    def test_ttl_applied(self, store, clock):
        cache = CacheLayer(store, ttl_seconds=60)
        request = request_for()
        cache.put(request, result_for())

        clock.now += 59
        assert cache.get(request) is not None
        clock.now += 1
        assert cache.get(request) is None

    def test_invalidate(self, store):
        cache = CacheLayer(store)
        request = request_for()
        cache.put(request, result_for())

        cache.invalidate(request)

        assert cache.get(request) is None

    def test_inline_images_keyed_by_content(self, store):
        cache = CacheLayer(store)
        first = AnalysisRequest(images=(ProjectImage(image_id="x", inline_bytes=b"abc"),))
        second = AnalysisRequest(images=(ProjectImage(image_id="y", inline_bytes=b"abc"),))

        assert cache.key_for(first) == cache.key_for(second)
