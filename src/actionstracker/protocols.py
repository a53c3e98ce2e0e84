"""Protocol interfaces for swappable components.

Handlers and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use the in-process MemoryStore and a mocked fetcher
- Production to run on Redis or SQLite without changing handler code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from actionstracker.models.cache import CacheEntry


class StoreProtocol(Protocol):
    """Key-value store with expiry and windowed counters.

    Implementations raise ``StoreUnavailableError`` when the backend cannot
    be reached.
    """

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None: ...

    async def increment(self, key: str, window_seconds: float) -> tuple[int, float]:
        """Atomically increment a windowed counter.

        Returns ``(count, seconds_until_reset)``. The first increment of a
        window creates the counter; later increments never extend its expiry.
        """
        ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class CacheProtocol(Protocol):
    """Interface for the upstream response cache."""

    async def get(self, url: str) -> CacheEntry | None: ...

    async def set(self, url: str, body: bytes, content_type: str) -> CacheEntry: ...


class FetcherProtocol(Protocol):
    """Interface for the outbound upstream fetcher."""

    async def fetch(self, url: str) -> tuple[bytes, str]: ...
