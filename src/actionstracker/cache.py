"""Cache-aside store for upstream responses.

Entries are keyed by the SHA-256 of the canonical upstream URL and written
with the store's native expiry. Reads also compare ``expires_at`` against
the current time, so an entry is never served past its TTL even on a
backend that purges lazily.

Store failures never cross the ProxyCache boundary: a failed read is a
cache miss, a failed write is logged and the fresh response is still
returned to the caller. Errors are logged with ``exc_info=True`` so they
remain observable.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pydantic
import structlog

from actionstracker.errors import StoreUnavailableError
from actionstracker.models.cache import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Callable

    from actionstracker.protocols import StoreProtocol

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProxyCache:
    """Upstream response cache implementing CacheProtocol."""

    def __init__(
        self,
        store: StoreProtocol,
        ttl_seconds: int,
        *,
        key_prefix: str = "proxyCache",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def key_for(self, url: str) -> str:
        return f"{self._key_prefix}:{hashlib.sha256(url.encode()).hexdigest()}"

    async def get(self, url: str) -> CacheEntry | None:
        """Read a fresh entry. Returns ``None`` on miss, expiry, or store failure."""
        try:
            raw = await self._store.get(self.key_for(url))
        except StoreUnavailableError:
            log.warning("cache_read_error", url=url, exc_info=True)
            return None

        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except pydantic.ValidationError:
            log.warning("cache_entry_corrupt", url=url, exc_info=True)
            return None

        if entry.is_expired(self._clock()):
            log.debug("cache_entry_stale", url=url, expires_at=entry.expires_at.isoformat())
            return None

        return entry

    async def set(self, url: str, body: bytes, content_type: str) -> CacheEntry:
        """Write an entry, overwriting any previous one. Non-fatal on failure."""
        now = self._clock()
        entry = CacheEntry(
            url=url,
            body=body,
            content_type=content_type,
            stored_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        try:
            await self._store.set(
                self.key_for(url),
                entry.model_dump_json().encode(),
                self._ttl_seconds,
            )
        except StoreUnavailableError:
            log.warning("cache_write_error", url=url, exc_info=True)
        return entry
