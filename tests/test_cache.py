from modelscout.cache import TTLCache, make_cache_key
from modelscout.hub_client import SearchQuery


def test_get_returns_value_until_expiry(fresh_cache, fake_clock):
    fresh_cache.set("k", {"v": 1}, ttl_seconds=60)

    fake_clock.now += 60
    assert fresh_cache.get("k") == {"v": 1}

    fake_clock.now += 1
    assert fresh_cache.get("k") is None
    assert "k" not in fresh_cache
    assert len(fresh_cache) == 0


def test_miss_returns_none():
    assert TTLCache().get("missing") is None


def test_clear_drops_everything(fresh_cache):
    fresh_cache.set("a", 1, 10)
    fresh_cache.set("b", 2, 10)
    fresh_cache.clear()
    assert len(fresh_cache) == 0


def test_cache_key_is_stable_for_normalised_queries():
    first = SearchQuery(query="llama", tags=("gguf", "code")).normalized()
    second = SearchQuery(query=" llama ", tags=("code", "gguf", "code")).normalized()

    assert make_cache_key("hf:search", first) == make_cache_key("hf:search", second)


def test_cache_key_distinguishes_namespace_and_params():
    query = SearchQuery(query="llama").normalized()
    other = SearchQuery(query="mistral").normalized()

    assert make_cache_key("hf:search", query) != make_cache_key("comfyui:search", query)
    assert make_cache_key("hf:search", query) != make_cache_key("hf:search", other)


def test_cache_key_accepts_mappings():
    assert make_cache_key("ns", {"b": 1, "a": 2}) == make_cache_key("ns", {"a": 2, "b": 1})
