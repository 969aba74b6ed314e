"""TTL caches for ZIP analyses and address-registry responses.

Values must be JSON-serializable (dicts/lists of primitives) so the memory and
SQLite backends behave the same.
"""

import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Cache(ABC):
    """Key/value cache with per-entry TTL."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float):
        """Store ``value`` for ``ttl`` seconds."""

    @abstractmethod
    def clear(self):
        ...

    @property
    @abstractmethod
    def size(self) -> int:
        ...


class MemoryCache(Cache):
    """In-process cache. Thread-safe; ``clock`` is injectable for tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float):
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def clear(self):
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)


class SQLiteCache(Cache):
    """SQLite-backed cache, shared across processes and restarts."""

    def __init__(self, db_path: Path, clock: Callable[[], float] = time.time):
        self.db_path = Path(db_path)
        self._clock = clock
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS tdsp_cache (
                cache_key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                created_at REAL NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_expires ON tdsp_cache(expires_at)
        """)
        self._conn.commit()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value_json FROM tdsp_cache WHERE cache_key = ? AND expires_at > ?",
                (key, self._clock()),
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"Cache: dropping unreadable entry {key}")
            return None

    def set(self, key: str, value: Any, ttl: float):
        now = self._clock()
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO tdsp_cache (cache_key, value_json, created_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (key, json.dumps(value), now, now + ttl),
            )
            self._conn.commit()

    def clear(self):
        with self._lock:
            self._conn.execute("DELETE FROM tdsp_cache")
            self._conn.commit()

    def clear_expired(self):
        """Remove all expired entries."""
        with self._lock:
            deleted = self._conn.execute(
                "DELETE FROM tdsp_cache WHERE expires_at <= ?", (self._clock(),)
            ).rowcount
            self._conn.commit()
        if deleted:
            logger.info(f"Cache: cleared {deleted} expired entries")

    @property
    def size(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM tdsp_cache WHERE expires_at > ?", (self._clock(),)
            ).fetchone()
        return row[0] if row else 0

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None


class NullCache(Cache):
    """Caching disabled."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: float):
        pass

    def clear(self):
        pass

    @property
    def size(self) -> int:
        return 0


def create_cache(backend: str = "memory", db_path: Optional[Path] = None) -> Cache:
    """Factory: 'memory', 'sqlite' or 'none'."""
    backend = (backend or "memory").lower()
    if backend == "memory":
        return MemoryCache()
    if backend == "sqlite":
        if db_path is None:
            raise ValueError("sqlite cache backend needs a db_path")
        logger.info(f"Cache: SQLite at {db_path}")
        return SQLiteCache(db_path)
    if backend in ("none", "off", "disabled"):
        return NullCache()
    raise ValueError(f"Unknown cache backend: {backend}")
