"""Per-client admission control.

Each client identifier gets ``points`` requests per ``duration``-second
window. The request that exceeds the budget places a block marker on the
client for ``block_duration`` seconds; while the marker exists every request
is rejected, regardless of the window resetting underneath it. The window
counter is dropped when the block starts, so the client comes back to a
full budget once the block lapses.

The limiter fails closed: if the store is unreachable the request is
rejected and the failure logged.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from actionstracker.errors import StoreUnavailableError
from actionstracker.models.proxy import Admission

if TYPE_CHECKING:
    from collections.abc import Callable

    from actionstracker.config import RateLimitSettings
    from actionstracker.protocols import StoreProtocol

log = structlog.get_logger()


class RateLimiter:
    def __init__(
        self,
        store: StoreProtocol,
        settings: RateLimitSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._points = settings.points
        self._duration = settings.duration
        self._block_duration = settings.block_duration
        self._key_prefix = settings.key_prefix
        self._clock = clock

    @property
    def points(self) -> int:
        return self._points

    async def admit(self, client_id: str) -> Admission:
        """Consume one point for ``client_id`` and decide whether to serve it."""
        # Distinct namespaces, so no client id can name another client's key
        counter_key = f"{self._key_prefix}:count:{client_id}"
        block_key = f"{self._key_prefix}:block:{client_id}"

        try:
            blocked_until = await self._store.get(block_key)
            if blocked_until is not None:
                retry_after = max(float(blocked_until) - self._clock(), 0.0)
                log.info("rate_limit_rejected", client_id=client_id, reason="blocked")
                return self._reject(retry_after)

            count, reset_in = await self._store.increment(counter_key, self._duration)
            if count > self._points:
                await self._block(client_id, counter_key, block_key)
                return self._reject(self._block_duration)
        except StoreUnavailableError:
            log.error("rate_limit_store_unavailable", client_id=client_id, exc_info=True)
            return self._reject(self._duration)

        return Admission(
            allowed=True,
            limit=self._points,
            remaining=self._points - count,
            reset_in=reset_in,
        )

    async def _block(self, client_id: str, counter_key: str, block_key: str) -> None:
        blocked_until = self._clock() + self._block_duration
        await self._store.set(block_key, repr(blocked_until).encode(), self._block_duration)
        await self._store.delete(counter_key)
        log.warning(
            "rate_limit_blocked",
            client_id=client_id,
            points=self._points,
            block_duration=self._block_duration,
        )

    def _reject(self, retry_after: float) -> Admission:
        return Admission(
            allowed=False,
            limit=self._points,
            remaining=0,
            retry_after=retry_after,
        )
