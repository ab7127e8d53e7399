"""Unit tests for StateCache."""

import threading

from mqtt_google_home.state_cache import StateCache


class TestStateCacheBasics:
    """Tests for get/set/contains"""

    def test_get_missing_returns_none(self):
        """Test that an untracked topic has no value"""
        cache = StateCache()

        assert cache.get("home/missing") is None
        assert not cache.contains("home/missing")
        assert "home/missing" not in cache

    def test_set_then_get(self):
        """Test that a publish is visible to the next read"""
        cache = StateCache({"home/light1/state": ""})

        cache.set("home/light1/state", "ON")

        assert cache.get("home/light1/state") == "ON"

    def test_set_overwrites(self):
        """Test that the last write wins"""
        cache = StateCache()
        cache.set("t", "1")
        cache.set("t", "2")

        assert cache.get("t") == "2"
        assert len(cache) == 1

    def test_in_operator_ignores_non_strings(self):
        """Test __contains__ with a non-string key"""
        cache = StateCache({"t": ""})

        assert 1 not in cache
        assert "t" in cache


class TestStateCacheTryAddRemove:
    """Tests for try_add/try_remove"""

    def test_try_add_new_topic_uses_empty_default(self):
        """Test that a newly tracked topic starts empty"""
        cache = StateCache()

        assert cache.try_add("t") is True
        assert cache.get("t") == ""

    def test_try_add_never_overwrites(self):
        """Test that a live value survives a later try_add"""
        cache = StateCache()
        _ = cache.try_add("t")
        cache.set("t", "ON")

        assert cache.try_add("t", "") is False
        assert cache.get("t") == "ON"

    def test_try_remove(self):
        """Test removing present and absent topics"""
        cache = StateCache({"t": "x"})

        assert cache.try_remove("t") is True
        assert cache.try_remove("t") is False
        assert "t" not in cache

    def test_keys_is_a_snapshot(self):
        """Test that keys() is not affected by later writes"""
        cache = StateCache({"a": "", "b": ""})
        keys = cache.keys()
        cache.set("c", "")

        assert keys == frozenset({"a", "b"})
        assert cache.keys() == frozenset({"a", "b", "c"})


class TestStateCacheConcurrency:
    """Tests for concurrent access"""

    def test_concurrent_writers_and_adders(self):
        """Test that racing try_add calls never clobber published values"""
        cache = StateCache()
        topics = [f"home/t{i}" for i in range(50)]

        def publisher():
            for topic in topics:
                cache.set(topic, "live")

        def reconciler():
            for topic in topics:
                _ = cache.try_add(topic, "")

        publisher_thread = threading.Thread(target=publisher)
        publisher_thread.start()
        publisher_thread.join()
        threads = [threading.Thread(target=reconciler) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(cache.get(topic) == "live" for topic in topics)
        assert len(cache) == len(topics)
