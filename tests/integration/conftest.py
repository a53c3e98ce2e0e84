"""Integration test fixtures.

Provides a fully wired AppState on the in-memory store with a manually
advanced clock, and an httpx client talking to the ASGI app in-process.
Upstream traffic is intercepted with respx.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from actionstracker.cache import ProxyCache
from actionstracker.config import CacheSettings, RateLimitSettings, Settings
from actionstracker.fetcher import UpstreamFetcher
from actionstracker.ratelimit import RateLimiter
from actionstracker.server import create_app
from actionstracker.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from conftest import FakeClock
    from starlette.applications import Starlette

    from actionstracker.store import MemoryStore

RATE_LIMIT_POINTS = 5
CACHE_TTL_SECONDS = 300


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        cache=CacheSettings(ttl_seconds=CACHE_TTL_SECONDS, store_url="memory://"),
        rate_limit=RateLimitSettings(points=RATE_LIMIT_POINTS, duration=60, block_duration=300),
    )


@pytest.fixture()
async def app_state(
    settings: Settings, memory_store: MemoryStore, clock: FakeClock
) -> AsyncGenerator[AppState, None]:
    """AppState whose store, limiter and cache all read the same fake clock."""
    async with httpx.AsyncClient(follow_redirects=False) as http_client:
        yield AppState(
            settings=settings,
            store=memory_store,
            rate_limiter=RateLimiter(memory_store, settings.rate_limit, clock=clock),
            cache=ProxyCache(
                memory_store,
                settings.cache.ttl_seconds,
                clock=lambda: datetime.fromtimestamp(clock(), tz=UTC),
            ),
            fetcher=UpstreamFetcher(http_client),
            http_client=http_client,
        )


@pytest.fixture()
def app(app_state: AppState) -> Starlette:
    return create_app(state=app_state)


@pytest.fixture()
async def client(app: Starlette) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Client for the proxy app. Requests to it bypass respx."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as client:
        yield client


@pytest.fixture()
def upstream() -> respx.MockRouter:
    """Intercepts outbound calls to the upstream host."""
    with respx.mock(assert_all_called=False) as router:
        yield router
