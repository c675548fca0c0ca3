from truckbot.persistence.kv_store import InMemoryKeyValueStore


def test_entries_expire_after_ttl(clock):
    store = InMemoryKeyValueStore(ttl_seconds=60, clock=clock)
    store.set("a", 1)

    clock.advance(59)
    assert store.get("a") == 1

    clock.advance(2)
    assert store.get("a") is None
    assert "a" not in store


def test_writes_refresh_ttl(clock):
    store = InMemoryKeyValueStore(ttl_seconds=60, clock=clock)
    store.set("a", 1)
    clock.advance(50)
    store.set("a", 2)
    clock.advance(50)

    assert store.get("a") == 2


def test_max_entries_drops_oldest_write(clock):
    store = InMemoryKeyValueStore(ttl_seconds=None, max_entries=2, clock=clock)
    store.set("a", 1)
    store.set("b", 2)
    store.set("a", 3)
    store.set("c", 4)

    assert store.get("b") is None
    assert store.get("a") == 3
    assert store.get("c") == 4
    assert len(store) == 2


def test_evict_and_evict_expired(clock):
    store = InMemoryKeyValueStore(ttl_seconds=10, clock=clock)
    store.set("a", 1)
    store.set("b", 2)
    store.evict("a")
    clock.advance(11)

    assert store.evict_expired() == ["b"]
    assert len(store) == 0
