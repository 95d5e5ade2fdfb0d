from services.query_cache import QueryCache


def test_invalidate_by_prefix():
    cache = QueryCache()
    cache.fetch(("goals", "user-1"), lambda: [1])
    cache.fetch(("goals", "user-2"), lambda: [2])
    cache.fetch(("budgets", "user-1"), lambda: [3])

    assert cache.invalidate(("goals",)) == 2

    assert ("goals", "user-1") not in cache
    assert cache.fetch(("budgets", "user-1"), lambda: ["reloaded"]) == [3]


def test_fetch_loads_once():
    cache = QueryCache()
    calls = []

    def loader():
        calls.append(1)
        return "value"

    assert cache.fetch(["k"], loader) == "value"
    assert cache.fetch(("k",), loader) == "value"
    assert calls == [1]
