"""
cache/store.py -- Best-effort key/value cache for API read paths.

CacheService serializes values to JSON text and stores them in a pluggable
CacheBackend with an absolute expiry (default 30 minutes). The cache is
never allowed to break a request: every backend, serialization or
deserialization failure is logged and swallowed, and a failed get() returns
None exactly like a true miss.

Backends (all implement get/set/remove with TTL plus purge_expired/close):
    MemoryCacheBackend -- in-process dict guarded by a lock (default)
    SQLiteCacheBackend -- single table, survives restarts
    RedisCacheBackend  -- shared across processes; Redis expires keys itself

Usage:
    cache = CacheService(MemoryCacheBackend())
    cache.set("vehicle:id:1", vehicle)            # dataclass or pydantic model
    data = cache.get("vehicle:id:1")              # returns dict or None
    cache.remove("vehicle:id:1")
    cache.purge_expired()                         # call periodically
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

import redis
from pydantic import BaseModel

from core.config import Settings

logger = logging.getLogger("fleetadmin.cache")

_DEFAULT_DB = Path(__file__).parent / "fleetadmin_cache.db"
_DEFAULT_TTL = 30 * 60  # 30 minutes in seconds


class CacheKeys:
    """Key templates shared by every cache user."""

    VEHICLE_BY_ID = "vehicle:id:{}"
    STATISTICS = "statistics:general"


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def remove(self, key: str) -> None: ...

    def purge_expired(self) -> int: ...

    def close(self) -> None: ...


class MemoryCacheBackend:
    """In-process store. clock is injectable so tests can move time forward."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def close(self) -> None:
        with self._lock:
            self._entries.clear()


_DDL = """
CREATE TABLE IF NOT EXISTS cache_entries (
    cache_key   TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class SQLiteCacheBackend:
    def __init__(self, db_path: Path | str = _DEFAULT_DB) -> None:
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        """Return the stored text for key if it exists and hasn't expired."""
        with self._lock:
            row = self._conn.execute(
                "SELECT data, expires_at FROM cache_entries WHERE cache_key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            data, expires_at = row
            if time.time() >= expires_at:
                self._conn.execute("DELETE FROM cache_entries WHERE cache_key = ?", (key,))
                self._conn.commit()
                return None
            return data

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value for key, replacing any existing entry."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO cache_entries (cache_key, data, expires_at) VALUES (?, ?, ?)",
                (key, value, time.time() + ttl_seconds),
            )
            self._conn.commit()

    def remove(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM cache_entries WHERE cache_key = ?", (key,))
            self._conn.commit()

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (time.time(),))
            self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()


class RedisCacheBackend:
    """Redis-backed store. Expiry is delegated to Redis (SET ... EX)."""

    def __init__(self, url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None) -> None:
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._client.set(key, value, ex=ttl_seconds)

    def remove(self, key: str) -> None:
        self._client.delete(key)

    def purge_expired(self) -> int:
        return 0

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class CacheService:
    def __init__(self, backend: CacheBackend, default_ttl: int = _DEFAULT_TTL) -> None:
        self.backend = backend
        self.default_ttl = default_ttl

    def get(self, key: str, model: Optional[type] = None) -> Any:
        """Return the cached value for key, or None on a miss or any failure.

        With model (a pydantic model or dataclass type) the decoded JSON is
        rebuilt into that type; otherwise the plain decoded JSON is returned.
        """
        try:
            raw = self.backend.get(key)
            if not raw:
                return None
            data = json.loads(raw)
            if model is None:
                return data
            if isinstance(model, type) and issubclass(model, BaseModel):
                return model.model_validate(data)
            return model(**data)
        except Exception:
            logger.exception("Error reading cache key %s", key)
            return None

    def set(self, key: str, value: Any, expiry: Optional[timedelta | int] = None) -> None:
        """Store value under key. expiry defaults to default_ttl (30 minutes)."""
        if expiry is None:
            ttl = self.default_ttl
        elif isinstance(expiry, timedelta):
            ttl = int(expiry.total_seconds())
        else:
            ttl = int(expiry)
        try:
            serialized = json.dumps(value, default=_to_jsonable, separators=(",", ":"))
            self.backend.set(key, serialized, max(ttl, 1))
        except Exception:
            logger.exception("Error writing cache key %s", key)

    def remove(self, key: str) -> None:
        try:
            self.backend.remove(key)
        except Exception:
            logger.exception("Error removing cache key %s", key)

    def remove_by_pattern(self, pattern: str) -> None:
        # Not every backend can enumerate keys; callers remove known keys instead.
        logger.warning("remove_by_pattern(%r) is not supported by this cache backend", pattern)

    def purge_expired(self) -> int:
        try:
            return self.backend.purge_expired()
        except Exception:
            logger.exception("Error purging expired cache entries")
            return 0

    def close(self) -> None:
        try:
            self.backend.close()
        except Exception:
            logger.exception("Error closing cache backend")


def build_cache(settings: Settings) -> CacheService:
    """Create the CacheService selected by CACHE_BACKEND / CACHE_URL."""
    if settings.cache_backend == "redis":
        backend: CacheBackend = RedisCacheBackend(settings.cache_url or "redis://localhost:6379/0")
    elif settings.cache_backend == "sqlite":
        backend = SQLiteCacheBackend(settings.cache_url or _DEFAULT_DB)
    else:
        backend = MemoryCacheBackend()
    return CacheService(backend, default_ttl=settings.cache_default_ttl_seconds)
