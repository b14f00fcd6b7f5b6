"""Tests for the warehouse client cache."""

from hogmetrics.db.cache import ClientCache


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _cache(warehouse_factory, clock, ttl=10):
    built = []

    def factory():
        client = warehouse_factory()
        built.append(client)
        return client

    return ClientCache(factory, ttl_seconds=ttl, clock=clock), built


def test_reuses_client_within_ttl(warehouse):
    clock = _Clock()
    cache, built = _cache(lambda: warehouse, clock)

    first = cache.get()
    clock.now = 9.9
    assert cache.get() is first
    assert len(built) == 1


def test_rebuilds_after_ttl(warehouse_factory):
    clock = _Clock()
    cache, built = _cache(warehouse_factory, clock)

    first = cache.get()
    clock.now = 10
    second = cache.get()

    assert second is not first
    assert first.closed
    assert len(built) == 2


def test_invalidate_forces_rebuild(warehouse_factory):
    clock = _Clock()
    cache, built = _cache(warehouse_factory, clock)

    first = cache.get()
    cache.invalidate()

    assert first.closed
    assert cache.get() is not first
