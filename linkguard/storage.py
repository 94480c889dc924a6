"""
linkguard Cache Storage
=======================
Persist the network check cache between runs.

Two backends:
- CacheStorage: SQLite table, one row per URL
- load_json/save_json: a JSON list of records (handy for committing to a repo)
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Union

from .cache import Cache, CacheEntry, iso_timestamp

logger = logging.getLogger(__name__)


# =============================================================================
# SQLITE STORAGE
# =============================================================================

class CacheStorage:
    """
    SQLite-backed storage for a :class:`Cache`.

    Stores one row per URL in the ``link_cache`` table. Saving upserts, so
    several runs can share one database file.
    """

    def __init__(self, db_path: Union[str, Path]):
        """Initialize storage with database path."""
        self.db_path = str(db_path)
        self._init_tables()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_tables(self):
        """Initialize the cache table."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS link_cache (
                url TEXT PRIMARY KEY,
                timestamp REAL NOT NULL,
                success INTEGER DEFAULT 0,
                checked_at TEXT
            )
        ''')

        conn.commit()
        conn.close()

    def load(self) -> Cache:
        """Read every stored entry into a new Cache."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('SELECT url, timestamp, success FROM link_cache')
        rows = cursor.fetchall()
        conn.close()

        cache = Cache()
        cache.update(
            (row['url'], CacheEntry(timestamp=float(row['timestamp']), success=bool(row['success'])))
            for row in rows
        )
        logger.debug(f"Loaded {len(cache)} cache entries from {self.db_path}")
        return cache

    def save(self, cache: Cache) -> int:
        """
        Write every entry of ``cache``, replacing rows for the same URL.

        Returns the number of rows written.
        """
        records = cache.to_records()
        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.executemany('''
                INSERT INTO link_cache (url, timestamp, success, checked_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    timestamp = excluded.timestamp,
                    success = excluded.success,
                    checked_at = excluded.checked_at
            ''', [
                (r['url'], r['timestamp'], int(r['success']), r['checked_at'])
                for r in records
            ])
            conn.commit()
        finally:
            conn.close()

        logger.debug(f"Saved {len(records)} cache entries to {self.db_path}")
        return len(records)

    def clear(self) -> int:
        """Delete all stored entries. Returns the number removed."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('SELECT COUNT(*) FROM link_cache')
        deleted = cursor.fetchone()[0]
        cursor.execute('DELETE FROM link_cache')
        conn.commit()
        conn.close()
        return deleted

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            SELECT
                COUNT(*) as total,
                SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) as successful,
                MIN(timestamp) as oldest,
                MAX(timestamp) as newest
            FROM link_cache
        ''')

        row = cursor.fetchone()
        conn.close()

        total = row['total'] or 0
        successful = row['successful'] or 0
        return {
            'total': total,
            'successful': successful,
            'failed': total - successful,
            'oldest': iso_timestamp(row['oldest']) if row['oldest'] is not None else None,
            'newest': iso_timestamp(row['newest']) if row['newest'] is not None else None,
        }


# =============================================================================
# JSON FILES
# =============================================================================

def load_json(path: Union[str, Path]) -> Cache:
    """
    Load a cache from a JSON file written by :func:`save_json`.

    A missing file yields an empty cache.

    Raises:
        ValueError: If the file isn't a list of cache records
    """
    path = Path(path)
    if not path.exists():
        logger.debug(f"No cache file at {path}, starting empty")
        return Cache()

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Expected a list of cache records in {path}")
    return Cache.from_records(data)


def save_json(cache: Cache, path: Union[str, Path]):
    """Write a cache to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(cache.to_records(), f, indent=2)
    logger.debug(f"Saved {len(cache)} cache entries to {path}")
