# Overview: Pytest coverage for the injectable TTL cache.

from flask import Flask

from app.cache import InMemoryTTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = InMemoryTTLCache(default_ttl=30, clock=clock)
    cache.set("k", "v")

    clock.now += 29
    assert cache.get("k") == "v"
    clock.now += 1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_per_entry_ttl_overrides_default():
    clock = FakeClock()
    cache = InMemoryTTLCache(default_ttl=30, clock=clock)
    cache.set("short", 1, ttl=5)
    cache.set("long", 2)

    clock.now += 10
    assert cache.get("short", "missing") == "missing"
    assert cache.get("long") == 2


def test_get_or_set_skips_none():
    cache = InMemoryTTLCache(clock=FakeClock())
    calls = []

    def loader():
        calls.append(1)
        return None

    assert cache.get_or_set("k", loader) is None
    assert cache.get_or_set("k", loader) is None
    assert len(calls) == 2


def test_delete_and_clear():
    cache = InMemoryTTLCache(clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.delete("a")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0


def test_init_app_reads_ttl():
    app = Flask(__name__)
    app.config["TENANT_CACHE_TTL_SECONDS"] = 12
    cache = InMemoryTTLCache()

    cache.init_app(app)

    assert cache.default_ttl == 12
    assert app.extensions["tenant_cache"] is cache
