"""
Tests for the Network Check Cache
=================================
"""

import threading
from datetime import timedelta

import pytest

from linkguard.cache import Cache, CacheEntry, iso_timestamp

DAY = timedelta(hours=24)
NOW = 1_700_000_000.0


class TestCacheEntry:
    """Tests for entry freshness."""

    def test_fresh_immediately(self):
        """Test that a new success is fresh."""
        assert CacheEntry(timestamp=NOW, success=True).is_fresh(DAY, now=NOW)

    def test_fresh_just_before_timeout(self):
        """Test freshness one second before the timeout."""
        entry = CacheEntry(timestamp=NOW, success=True)
        assert entry.is_fresh(DAY, now=NOW + DAY.total_seconds() - 1)

    def test_stale_at_timeout(self):
        """Test that an entry is stale once the timeout has elapsed."""
        entry = CacheEntry(timestamp=NOW, success=True)
        assert not entry.is_fresh(DAY, now=NOW + DAY.total_seconds())
        assert not entry.is_fresh(DAY, now=NOW + DAY.total_seconds() + 3600)

    @pytest.mark.parametrize("elapsed", [0, 1, 3600, 10 ** 9])
    def test_failures_are_never_fresh(self, elapsed):
        """Test that cached failures are always checked again."""
        entry = CacheEntry(timestamp=NOW, success=False)
        assert not entry.is_fresh(DAY, now=NOW + elapsed)

    def test_future_timestamp_is_stale(self):
        """Test that an entry from the future is checked again."""
        entry = CacheEntry(timestamp=NOW + 60, success=True)
        assert not entry.is_fresh(DAY, now=NOW)

    def test_numeric_timeout(self):
        """Test a timeout given in seconds."""
        entry = CacheEntry(timestamp=NOW, success=True)
        assert entry.is_fresh(10, now=NOW + 5)
        assert not entry.is_fresh(10, now=NOW + 10)

    def test_age(self):
        """Test the age in seconds."""
        assert CacheEntry(timestamp=NOW, success=True).age(now=NOW + 42) == 42

    def test_checked_at(self):
        """Test the ISO-8601 form of the timestamp."""
        assert CacheEntry(timestamp=NOW, success=True).checked_at == "2023-11-14T22:13:20Z"
        assert iso_timestamp(0) == "1970-01-01T00:00:00Z"


class TestCache:
    """Tests for the shared cache."""

    def test_unknown_url_is_not_fresh(self):
        """Test that a URL never checked isn't fresh."""
        assert not Cache().is_fresh("https://example.com/", DAY, now=NOW)

    def test_record_then_fresh(self):
        """Test that a recorded success is fresh."""
        cache = Cache()
        cache.record("https://example.com/", True, now=NOW)
        assert cache.is_fresh("https://example.com/", DAY, now=NOW + 1)
        assert "https://example.com/" in cache
        assert len(cache) == 1

    def test_record_overwrites(self):
        """Test that a later record replaces the earlier one."""
        cache = Cache()
        cache.record("https://example.com/", True, now=NOW)
        cache.record("https://example.com/", False, now=NOW + 10)
        assert cache.lookup("https://example.com/") == CacheEntry(NOW + 10, False)
        assert not cache.is_fresh("https://example.com/", DAY, now=NOW + 11)

    def test_update_merges(self):
        """Test bulk update from another cache."""
        first = Cache()
        first.record("a", True, now=NOW)
        first.record("b", True, now=NOW)
        second = Cache()
        second.record("b", False, now=NOW + 1)
        second.record("c", True, now=NOW + 1)

        first.update(second)
        assert len(first) == 3
        assert first.lookup("b") == CacheEntry(NOW + 1, False)

    def test_clear(self):
        """Test forgetting every entry."""
        cache = Cache()
        cache.record("a", True, now=NOW)
        cache.clear()
        assert len(cache) == 0

    def test_concurrent_records(self):
        """Test inserts from several threads."""
        cache = Cache()

        def worker(n):
            for i in range(100):
                cache.record(f"https://example.com/{n}/{i}", True)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 800


class TestCacheRecords:
    """Tests for the serialized record layout."""

    def test_to_records(self):
        """Test records are sorted by URL and carry checked_at."""
        cache = Cache()
        cache.record("https://b.example/", False, now=NOW)
        cache.record("https://a.example/", True, now=NOW)
        records = cache.to_records()
        assert [r['url'] for r in records] == ["https://a.example/", "https://b.example/"]
        assert records[0]['timestamp'] == NOW
        assert records[0]['success'] is True
        assert records[0]['checked_at'] == "2023-11-14T22:13:20Z"

    def test_round_trip(self):
        """Test that from_records undoes to_records."""
        cache = Cache()
        cache.record("https://a.example/", True, now=NOW)
        cache.record("https://b.example/", False, now=NOW + 5)
        assert Cache.from_records(cache.to_records()) == cache

    def test_iso_timestamps(self):
        """Test that ISO-8601 timestamps are accepted."""
        cache = Cache.from_records([
            {'url': "https://a.example/", 'timestamp': "2023-11-14T22:13:20Z", 'success': True},
        ])
        assert cache.lookup("https://a.example/") == CacheEntry(NOW, True)

    def test_missing_timestamp(self):
        """Test that a record without a timestamp is rejected."""
        with pytest.raises(ValueError):
            Cache.from_records([{'url': "https://a.example/", 'success': True}])

    def test_bad_timestamp(self):
        """Test that an unparseable timestamp is rejected."""
        with pytest.raises(ValueError):
            Cache.from_records([{'url': "https://a.example/", 'timestamp': "yesterday"}])
