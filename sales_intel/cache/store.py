"""SQLite-backed key-value store with TTL, transparent compression and type tags."""

from __future__ import annotations

import fnmatch
import json
import logging
import sqlite3
import zlib
from datetime import datetime, timedelta
from typing import Any, Callable

from sales_intel.models import CacheEntry, CacheType

logger = logging.getLogger(__name__)


class SqliteStore:
    """Single-table SQLite cache.

    Every failure degrades to a miss (reads) or a no-op (writes) so that
    pipeline stages never hard-fail on cache unavailability.
    """

    def __init__(
        self,
        db_path: str = ".sales_intel_cache.db",
        default_ttl_hours: float = 24,
        compress_threshold: int = 1024,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.default_ttl_hours = default_ttl_hours
        self.compress_threshold = compress_threshold
        self._clock = clock
        self.conn: sqlite3.Connection | None = None
        self._init_db()

    @classmethod
    def from_config(cls, config, clock: Callable[[], datetime] = datetime.now) -> SqliteStore:
        return cls(
            config.cache_db_path,
            default_ttl_hours=config.cache_ttl_hours,
            compress_threshold=config.cache_compress_threshold,
            clock=clock,
        )

    def _init_db(self) -> None:
        """Initialize database tables."""
        try:
            self.conn = sqlite3.connect(self.db_path, timeout=10, check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    type TEXT NOT NULL DEFAULT 'unknown',
                    compressed INTEGER NOT NULL DEFAULT 0,
                    ttl_hours REAL NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_cache_entries_type ON cache_entries(type);
            """)
            self.conn.commit()
        except sqlite3.Error as e:
            logger.warning("Cache init failed: %s, running without cache", e)
            self.conn = None

    def _ensure_connection(self) -> bool:
        """Verify the SQLite connection is alive, reconnect if needed."""
        if self.conn is None:
            self._init_db()
        if self.conn is None:
            return False
        try:
            self.conn.execute("SELECT 1")
            return True
        except (sqlite3.OperationalError, sqlite3.DatabaseError):
            logger.warning("SQLite connection lost, reconnecting")
            try:
                self.conn.close()
            except sqlite3.Error as e:
                logger.debug("Close failed on dead connection: %s", e)
            self.conn = None
            self._init_db()
            return self.conn is not None

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    # --- Core operations ---

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None on miss / expiry / store error."""
        entry = self.get_entry(key)
        return entry.value if entry else None

    def get_entry(self, key: str) -> CacheEntry | None:
        if not self._ensure_connection():
            return None
        try:
            row = self.conn.execute(
                "SELECT value, type, compressed, ttl_hours, created_at "
                "FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            logger.warning("Cache read error for %s: %s", key, e)
            return None
        if not row:
            return None
        raw, type_tag, compressed, ttl_hours, created_at = row
        if self._is_expired(created_at, ttl_hours):
            logger.debug("Cache entry expired: %s", key)
            return None
        try:
            value = _decode(raw, bool(compressed))
        except (zlib.error, ValueError) as e:
            logger.warning("Corrupt cache entry %s: %s", key, e)
            return None
        return CacheEntry(
            key=key,
            value=value,
            created_at=datetime.fromisoformat(created_at),
            ttl_hours=ttl_hours,
            compressed=bool(compressed),
            type=_as_type(type_tag),
        )

    def get_many(self, keys: list[str]) -> dict[str, Any]:
        """Return {key: value} for the keys that hit."""
        found = {}
        for key in keys:
            value = self.get(key)
            if value is not None:
                found[key] = value
        return found

    def set(
        self,
        key: str,
        value: Any,
        type: CacheType = CacheType.UNKNOWN,
        ttl_hours: float | None = None,
    ) -> None:
        """Write (or overwrite) an entry. Large payloads are compressed."""
        if not self._ensure_connection():
            return
        ttl = self.default_ttl_hours if ttl_hours is None else ttl_hours
        try:
            payload = json.dumps(value, default=str).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.warning("Cache value for %s is not serializable: %s", key, e)
            return
        compressed = len(payload) > self.compress_threshold
        if compressed:
            payload = zlib.compress(payload)
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO cache_entries "
                "(key, value, type, compressed, ttl_hours, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (key, payload, _as_type(type).value, int(compressed), ttl, self._clock().isoformat()),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            logger.warning("Cache write error for %s: %s", key, e)

    def delete(self, key: str) -> None:
        if not self._ensure_connection():
            return
        try:
            self.conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            logger.warning("Cache delete error for %s: %s", key, e)

    def list_keys(
        self,
        pattern: str | None = None,
        limit: int = 100,
        type: CacheType | None = None,
    ) -> list[str]:
        """List live keys, newest first.

        pattern is a glob ("*shopify*"); a pattern without wildcards matches
        as a substring.
        """
        if not self._ensure_connection():
            return []
        sql = "SELECT key, ttl_hours, created_at FROM cache_entries"
        params: tuple = ()
        if type is not None:
            sql += " WHERE type = ?"
            params = (_as_type(type).value,)
        sql += " ORDER BY created_at DESC"
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.warning("Cache list error: %s", e)
            return []

        if pattern and not any(c in pattern for c in "*?["):
            pattern = f"*{pattern}*"
        keys = []
        for key, ttl_hours, created_at in rows:
            if self._is_expired(created_at, ttl_hours):
                continue
            if pattern and not fnmatch.fnmatchcase(key, pattern):
                continue
            keys.append(key)
            if len(keys) >= limit:
                break
        return keys

    def clear(self, type: CacheType | None = None) -> int:
        """Delete all entries (or all of one type). Returns the number removed."""
        if not self._ensure_connection():
            return 0
        try:
            if type is None:
                cur = self.conn.execute("DELETE FROM cache_entries")
            else:
                cur = self.conn.execute(
                    "DELETE FROM cache_entries WHERE type = ?", (_as_type(type).value,),
                )
            self.conn.commit()
            return cur.rowcount
        except sqlite3.Error as e:
            logger.warning("Cache clear error: %s", e)
            return 0

    # --- Introspection ---

    def stats(self) -> dict:
        """Return entry counts per type plus compression and date range."""
        if not self._ensure_connection():
            return {}
        try:
            total, compressed, oldest, newest = self.conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(compressed), 0), MIN(created_at), MAX(created_at) "
                "FROM cache_entries"
            ).fetchone()
            by_type = dict(self.conn.execute(
                "SELECT type, COUNT(*) FROM cache_entries GROUP BY type"
            ).fetchall())
        except sqlite3.Error as e:
            logger.warning("Cache stats error: %s", e)
            return {}
        return {
            "total": total,
            "compressed": compressed,
            "oldest": oldest,
            "newest": newest,
            "by_type": by_type,
        }

    def health_check(self) -> bool:
        return self._ensure_connection()

    def _is_expired(self, created_at_str: str, ttl_hours: float) -> bool:
        """Check if a cache entry has expired."""
        try:
            created = datetime.fromisoformat(created_at_str)
        except (TypeError, ValueError):
            return True
        return self._clock() - created > timedelta(hours=ttl_hours)


def _decode(raw: bytes | str, compressed: bool) -> Any:
    if compressed:
        raw = zlib.decompress(raw)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)


def _as_type(value: CacheType | str | None) -> CacheType:
    if isinstance(value, CacheType):
        return value
    try:
        return CacheType(value)
    except ValueError:
        return CacheType.UNKNOWN
