# cobrina/tests/test_cache.py
from cobrina.cache import TTLCache, filter_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("k", {"total": 3})

    clock.now += 59
    assert cache.get("k") == {"total": 3}

    clock.now += 1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_get_or_compute_reuses_value_within_ttl():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    calls = []

    def compute():
        calls.append(1)
        return len(calls)

    assert cache.get_or_compute("a", compute) == 1
    assert cache.get_or_compute("a", compute) == 1
    clock.now += 11
    assert cache.get_or_compute("a", compute) == 2


def test_clear_drops_everything():
    cache = TTLCache(10)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.clear()
    assert cache.get("a") is None
    assert len(cache) == 0


def test_filter_key_ignores_empty_and_case():
    a = filter_key("resumen", {"operador": "JUAN", "cartera": "", "dni": None})
    b = filter_key("resumen", {"operador": "juan"})
    assert a == b
    assert filter_key("resumen", {"operador": "x"}) != filter_key("resumen", {"operador": "y"})
