"""Key-value store backends shared by the proxy cache and rate limiter.

Three implementations of ``StoreProtocol``:

- ``RedisStore``: networked store shared by every proxy instance.
- ``SqliteStore``: aiosqlite file store for single-host deployments.
- ``MemoryStore``: in-process fallback, used by tests and ``memory://``.

Every backend translates its own driver errors into ``StoreUnavailableError``.
Callers decide how to degrade: the cache treats it as a miss, the rate
limiter rejects the request.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import aiosqlite
import redis.asyncio as redis_asyncio
import structlog
from redis.exceptions import RedisError

from actionstracker.errors import StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

    from actionstracker.protocols import StoreProtocol

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------


class MemoryStore:
    """Dict-backed store. Expired keys are purged lazily on access.

    No await happens between reading and writing a counter, so each
    operation is atomic with respect to other tasks on the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, tuple[bytes, float]] = {}
        self._counters: dict[str, tuple[int, float]] = {}

    async def get(self, key: str) -> bytes | None:
        item = self._values.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None:
        self._values[key] = (value, self._clock() + ttl_seconds)

    async def increment(self, key: str, window_seconds: float) -> tuple[int, float]:
        now = self._clock()
        count, expires_at = self._counters.get(key, (0, now))
        if now >= expires_at:
            count, expires_at = 0, now + window_seconds
        count += 1
        self._counters[key] = (count, expires_at)
        return count, expires_at - now

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._counters.pop(key, None)

    async def close(self) -> None:
        self._values.clear()
        self._counters.clear()


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_CREATE_VALUES_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      BLOB NOT NULL,
    expires_at REAL NOT NULL
)
"""

_CREATE_COUNTERS_TABLE = """
CREATE TABLE IF NOT EXISTS counters (
    key        TEXT PRIMARY KEY,
    count      INTEGER NOT NULL,
    expires_at REAL NOT NULL
)
"""

_CREATE_VALUES_INDEX = "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv_store(expires_at)"

# A single statement, so concurrent increments cannot interleave. SQLite
# evaluates every SET expression against the pre-update row.
_INCREMENT_COUNTER = """
INSERT INTO counters (key, count, expires_at) VALUES (?, 1, ?)
ON CONFLICT(key) DO UPDATE SET
    count = CASE WHEN counters.expires_at <= ? THEN 1 ELSE counters.count + 1 END,
    expires_at = CASE
        WHEN counters.expires_at <= ? THEN excluded.expires_at
        ELSE counters.expires_at
    END
RETURNING count, expires_at
"""


class SqliteStore:
    """SQLite-backed store implementing StoreProtocol."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._clock = clock

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        try:
            await self._db.execute("PRAGMA journal_mode = WAL")
            await self._db.execute(_CREATE_VALUES_TABLE)
            await self._db.execute(_CREATE_COUNTERS_TABLE)
            await self._db.execute(_CREATE_VALUES_INDEX)
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"SQLite store initialisation failed: {exc}") from exc

    async def get(self, key: str) -> bytes | None:
        try:
            cursor = await self._db.execute(
                "SELECT value, expires_at FROM kv_store WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            if self._clock() >= row[1]:
                await self._db.execute(
                    "DELETE FROM kv_store WHERE key = ? AND expires_at <= ?",
                    (key, self._clock()),
                )
                await self._db.commit()
                return None
            return bytes(row[0])
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"SQLite read failed for {key}: {exc}") from exc

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None:
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, self._clock() + ttl_seconds),
            )
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"SQLite write failed for {key}: {exc}") from exc

    async def increment(self, key: str, window_seconds: float) -> tuple[int, float]:
        now = self._clock()
        try:
            cursor = await self._db.execute(
                _INCREMENT_COUNTER, (key, now + window_seconds, now, now)
            )
            row = await cursor.fetchone()
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"SQLite increment failed for {key}: {exc}") from exc
        if row is None:
            raise StoreUnavailableError(f"SQLite increment returned no row for {key}")
        return int(row[0]), float(row[1]) - now

    async def delete(self, key: str) -> None:
        try:
            await self._db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await self._db.execute("DELETE FROM counters WHERE key = ?", (key,))
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"SQLite delete failed for {key}: {exc}") from exc

    async def cleanup_expired(self) -> int:
        """Delete expired values and counters. Returns the number of rows removed."""
        now = self._clock()
        try:
            cursor = await self._db.execute("DELETE FROM kv_store WHERE expires_at <= ?", (now,))
            values_deleted = cursor.rowcount
            cursor = await self._db.execute("DELETE FROM counters WHERE expires_at <= ?", (now,))
            counters_deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"SQLite cleanup failed: {exc}") from exc
        log.info(
            "store_cleanup_complete",
            values_deleted=values_deleted,
            counters_deleted=counters_deleted,
        )
        return values_deleted + counters_deleted

    async def close(self) -> None:
        await self._db.close()


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisStore:
    """Redis-backed store implementing StoreProtocol.

    Expiry is native (``PX``); counters use ``SET NX`` + ``INCR`` inside a
    MULTI transaction so the window is created exactly once.
    """

    def __init__(self, client: redis_asyncio.Redis) -> None:
        self._redis = client

    async def get(self, key: str) -> bytes | None:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis read failed for {key}: {exc}") from exc

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None:
        try:
            await self._redis.set(key, value, px=_to_millis(ttl_seconds))
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis write failed for {key}: {exc}") from exc

    async def increment(self, key: str, window_seconds: float) -> tuple[int, float]:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, px=_to_millis(window_seconds), nx=True)
                pipe.incr(key)
                pipe.pttl(key)
                _, count, pttl = await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis increment failed for {key}: {exc}") from exc
        return int(count), max(int(pttl), 0) / 1000

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis delete failed for {key}: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()


def _to_millis(seconds: float) -> int:
    return max(1, int(seconds * 1000))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


async def open_store(url: str) -> StoreProtocol:
    """Open the store named by ``url``. Called once at startup.

    Supported schemes: ``redis://``, ``rediss://``, ``sqlite:///<path>``,
    ``memory://``.
    """
    scheme = urlsplit(url).scheme.lower()

    if scheme in ("redis", "rediss"):
        client = redis_asyncio.from_url(url)
        try:
            await client.ping()
        except RedisError:
            # The client reconnects on demand; until then every operation
            # raises StoreUnavailableError and callers degrade per request.
            log.warning("store_unreachable_at_startup", backend="redis", exc_info=True)
        else:
            log.info("store_opened", backend="redis")
        return RedisStore(client)

    if scheme == "sqlite":
        db_path = url.removeprefix("sqlite:///")
        if db_path != ":memory:":
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            db_path = str(path)
        db = await aiosqlite.connect(db_path)
        store = SqliteStore(db)
        await store.init_db()
        log.info("store_opened", backend="sqlite", path=db_path)
        return store

    if scheme == "memory":
        log.warning("store_opened", backend="memory", reason="degraded_single_process")
        return MemoryStore()

    raise ValueError(f"Unsupported store URL scheme: {scheme!r}")
