import threading

import pytest

from metaobjects import MetaobjectCache, normalize_handle


class CountingShopify:
    def __init__(self, nodes=None, error=None, gate=None):
        self.nodes = nodes or []
        self.error = error
        self.gate = gate
        self.calls = 0

    def fetch_metaobjects(self, metaobject_type):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error:
            raise self.error
        return self.nodes


def test_normalize_handle():
    assert normalize_handle(" Tie-Dye ") == "tiedye"
    assert normalize_handle("") == ""


def test_resolve_fetches_once():
    shopify = CountingShopify([{"id": "gid://1", "handle": "tie-dye"}, {"id": "gid://2", "handle": "solid"}])
    cache = MetaobjectCache(shopify)

    assert cache.resolve("pattern", "Tie Dye") == "gid://1"
    assert cache.resolve("pattern", "SOLID") == "gid://2"
    assert cache.resolve("pattern", "paisley") is None
    assert cache.resolve("pattern", "") is None
    assert shopify.calls == 1


def test_failed_fetch_is_not_cached():
    shopify = CountingShopify(error=ConnectionError("down"))
    cache = MetaobjectCache(shopify)

    with pytest.raises(ConnectionError):
        cache.load("pattern")

    shopify.error = None
    shopify.nodes = [{"id": "gid://1", "handle": "solid"}]
    assert cache.load("pattern") == {"solid": "gid://1"}
    assert shopify.calls == 2


def test_concurrent_loads_share_one_fetch():
    gate = threading.Event()
    shopify = CountingShopify([{"id": "gid://1", "handle": "solid"}], gate=gate)
    cache = MetaobjectCache(shopify)
    results = []

    threads = [threading.Thread(target=lambda: results.append(cache.load("pattern"))) for _ in range(5)]
    for thread in threads:
        thread.start()
    gate.set()
    for thread in threads:
        thread.join(timeout=5)

    assert results == [{"solid": "gid://1"}] * 5
    assert shopify.calls == 1


def test_clear_forces_refetch():
    shopify = CountingShopify([{"id": "gid://1", "handle": "solid"}])
    cache = MetaobjectCache(shopify)
    cache.load("pattern")
    cache.clear()
    cache.load("pattern")
    assert shopify.calls == 2
