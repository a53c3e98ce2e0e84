"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and stored on ``app.state.tracker``, where every request handler reads it.
Tests build it directly with an in-process store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from actionstracker.config import Settings
    from actionstracker.protocols import CacheProtocol, FetcherProtocol, StoreProtocol
    from actionstracker.ratelimit import RateLimiter


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every request handler."""

    settings: Settings
    store: StoreProtocol
    rate_limiter: RateLimiter
    cache: CacheProtocol
    fetcher: FetcherProtocol
    http_client: httpx.AsyncClient | None = None
    started_at: float = field(default_factory=time.monotonic)
