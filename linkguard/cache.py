"""
Network Check Cache
===================
Remembers the outcome of previous network probes so repeated validation
runs can skip URLs that were recently found to be reachable.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

Duration = Union[timedelta, float, int]


def _seconds(timeout: Duration) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


def _parse_timestamp(value: Union[str, float, int]) -> float:
    """Accept epoch seconds or an ISO-8601 string."""
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def iso_timestamp(timestamp: float) -> str:
    """Format epoch seconds as an ISO-8601 UTC string (``...Z``)."""
    return datetime.fromtimestamp(timestamp, timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass(frozen=True)
class CacheEntry:
    """
    A timestamped record of the last time a URL was checked.

    Attributes:
        timestamp: When the check finished (epoch seconds)
        success: Whether the URL was reachable
    """
    timestamp: float
    success: bool

    @property
    def checked_at(self) -> str:
        return iso_timestamp(self.timestamp)

    def age(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.timestamp

    def is_fresh(self, timeout: Duration, now: Optional[float] = None) -> bool:
        """Successful and checked less than ``timeout`` ago."""
        if not self.success:
            return False
        elapsed = self.age(now)
        # A timestamp in the future means the clock moved; treat as stale
        return 0 <= elapsed < _seconds(timeout)


class Cache:
    """
    Thread-safe mapping of URL -> CacheEntry.

    The lock is held for a single lookup or insert only, never while a
    probe is in flight.
    """

    def __init__(self, entries: Optional[Dict[str, CacheEntry]] = None):
        self._entries: Dict[str, CacheEntry] = dict(entries or {})
        self._lock = threading.Lock()

    def lookup(self, url: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(str(url))

    def insert(self, url: str, entry: CacheEntry):
        with self._lock:
            self._entries[str(url)] = entry

    def is_fresh(self, url: str, timeout: Duration, now: Optional[float] = None) -> bool:
        """Is there a recent successful check for this URL?"""
        entry = self.lookup(url)
        return entry is not None and entry.is_fresh(timeout, now)

    def record(self, url: str, success: bool, now: Optional[float] = None) -> CacheEntry:
        """Store the outcome of a probe, replacing any earlier entry."""
        entry = CacheEntry(timestamp=time.time() if now is None else now, success=bool(success))
        self.insert(url, entry)
        return entry

    def entries(self) -> List[Tuple[str, CacheEntry]]:
        """Snapshot of every entry, stale or not."""
        with self._lock:
            return list(self._entries.items())

    def update(self, items: Union['Cache', Dict[str, CacheEntry], Iterable[Tuple[str, CacheEntry]]]):
        """Bulk insert, overwriting existing URLs."""
        if isinstance(items, Cache):
            items = items.entries()
        elif isinstance(items, dict):
            items = list(items.items())
        with self._lock:
            for url, entry in items:
                self._entries[str(url)] = entry

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, url) -> bool:
        with self._lock:
            return str(url) in self._entries

    def __eq__(self, other) -> bool:
        if not isinstance(other, Cache):
            return NotImplemented
        return dict(self.entries()) == dict(other.entries())

    __hash__ = None

    def __repr__(self) -> str:
        return f"Cache({len(self)} entries)"

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_records(self) -> List[Dict[str, Any]]:
        """Render entries as ``{url, timestamp, success, checked_at}`` records."""
        return [
            {
                'url': url,
                'timestamp': entry.timestamp,
                'success': entry.success,
                'checked_at': entry.checked_at,
            }
            for url, entry in sorted(self.entries())
        ]

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> 'Cache':
        """
        Build a cache from serialized records.

        ``timestamp`` may be epoch seconds or an ISO-8601 string. Records
        missing a url or timestamp raise ValueError.
        """
        cache = cls()
        for record in records:
            try:
                url = record['url']
                timestamp = _parse_timestamp(record['timestamp'])
            except (KeyError, TypeError) as e:
                raise ValueError(f"Malformed cache record: {record!r}") from e
            cache.insert(url, CacheEntry(timestamp=timestamp, success=bool(record.get('success', False))))
        return cache
