"""Tests for the category cache."""

from ai_tool_catalog.category_cache import CategoryCache
from ai_tool_catalog.schemas import CategoryCreate
from ai_tool_catalog.schemas import CategoryRef


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _counting_loader(refs):
    calls = []

    def loader():
        calls.append(1)
        return list(refs)

    return loader, calls


def test_serves_from_cache_within_ttl():
    loader, calls = _counting_loader([CategoryRef(id="a", name="A")])
    clock = FakeClock()
    cache = CategoryCache(loader, ttl_seconds=60, clock=clock)

    cache.get()
    clock.now = 59
    cache.get()

    assert len(calls) == 1
    assert cache.is_warm()


def test_reloads_after_ttl():
    loader, calls = _counting_loader([])
    clock = FakeClock()
    cache = CategoryCache(loader, ttl_seconds=60, clock=clock)

    cache.get()
    clock.now = 61
    assert not cache.is_warm()
    cache.get()

    assert len(calls) == 2


def test_invalidate_forces_reload():
    loader, calls = _counting_loader([])
    cache = CategoryCache(loader, clock=FakeClock())

    cache.get()
    cache.invalidate()
    cache.get()

    assert len(calls) == 2


def test_invalidate_during_load_is_not_overwritten():
    """A load that raced with invalidate() is returned but not cached."""
    cache = None

    def loader():
        cache.invalidate()
        return [CategoryRef(id="stale", name="Stale")]

    cache = CategoryCache(loader, clock=FakeClock())

    assert [c.id for c in cache.get()] == ["stale"]
    assert not cache.is_warm()


def test_returned_list_is_a_snapshot():
    loader, _ = _counting_loader([CategoryRef(id="a", name="A")])
    cache = CategoryCache(loader, clock=FakeClock())

    first = cache.get()
    first.clear()

    assert [c.id for c in cache.get()] == ["a"]


def test_store_mutations_invalidate_cache(store, add_category):
    """Deleted categories are never offered after the store changes."""
    cache = CategoryCache(store.category_refs, ttl_seconds=3600)
    store.add_category_listener(cache.invalidate)

    doomed = add_category("Doomed")
    assert [c.id for c in cache.get()] == [doomed.id]

    store.delete_category(doomed.id)
    assert cache.get() == []

    kept = store.create_category(CategoryCreate(name="Kept"))
    assert [c.id for c in cache.get()] == [kept.id]
