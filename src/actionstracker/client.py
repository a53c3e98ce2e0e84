"""Feed client: local freshness cache plus proxied fetch with retry.

``FeedClient.load`` serves the local cache while it is fresh and otherwise
fetches the feed through the proxy. A failed attempt (non-2xx or transport
error) is retried up to ``max_retries`` times with a fixed delay. The retry
count is threaded through the retry loop as an argument, so concurrent loads
never share a counter and every load starts again from zero.
"""

from __future__ import annotations

import asyncio
import json
import os
import time
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import pydantic
import structlog

from actionstracker.errors import FeedUnavailableError
from actionstracker.feed import extract
from actionstracker.models.feed import ActionItem

if TYPE_CHECKING:
    from collections.abc import Callable

    from actionstracker.config import ClientSettings

log = structlog.get_logger()

ACTIONS_KEY = "actions"
TIMESTAMP_KEY = "actions_cached_at"


class LocalFeedCache:
    """Actions persisted to a JSON file under two fixed keys.

    The entry is valid while ``now - timestamp < ttl_seconds``. Unreadable
    or corrupt files are treated as empty.
    """

    def __init__(
        self,
        path: Path,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[ActionItem] | None:
        """Return cached actions if present and fresh, else ``None``."""
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            raw_actions = data[ACTIONS_KEY]
            cached_at = float(data[TIMESTAMP_KEY])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError):
            log.warning("local_cache_unreadable", path=str(self._path), exc_info=True)
            return None

        if self._clock() - cached_at >= self._ttl_seconds:
            log.debug("local_cache_expired", path=str(self._path))
            return None

        try:
            return [ActionItem.model_validate(raw) for raw in raw_actions]
        except (pydantic.ValidationError, TypeError):
            log.warning("local_cache_corrupt", path=str(self._path), exc_info=True)
            return None

    def save(self, actions: list[ActionItem]) -> bool:
        """Overwrite the cache wholesale with ``actions`` and the current time.

        Non-fatal: an unwritable cache location is logged and ``False``
        returned, leaving any previous entry in place.
        """
        payload = {
            ACTIONS_KEY: [action.model_dump() for action in actions],
            TIMESTAMP_KEY: self._clock(),
        }
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError:
            log.warning("local_cache_write_failed", path=str(self._path), exc_info=True)
            return False
        finally:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)
        return True

    def clear(self) -> None:
        """Drop both keys together."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            log.warning("local_cache_clear_failed", path=str(self._path), exc_info=True)


def build_client_http(settings: ClientSettings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout_seconds))


class FeedClient:
    """Loads Presidential Actions through the proxy."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: ClientSettings,
        cache: LocalFeedCache,
    ) -> None:
        self._client = http_client
        self._settings = settings
        self._cache = cache

    async def load(self, *, force_refresh: bool = False) -> list[ActionItem]:
        """Return actions from the local cache if fresh, else from the network."""
        if not force_refresh:
            cached = self._cache.load()
            if cached is not None:
                log.info("local_cache_hit", actions=len(cached))
                return cached

        document = await self._fetch_with_retry(retry_count=0)
        actions = extract(document)
        self._cache.save(actions)
        log.info("feed_loaded", actions=len(actions))
        return actions

    async def refresh(self) -> list[ActionItem]:
        """Clear the local cache and fetch a fresh copy."""
        self._cache.clear()
        return await self.load(force_refresh=True)

    async def _fetch_with_retry(self, retry_count: int) -> bytes:
        try:
            return await self._fetch_once()
        except httpx.HTTPError as exc:
            if retry_count >= self._settings.max_retries:
                log.error("feed_fetch_exhausted", attempts=retry_count + 1, error=str(exc))
                raise FeedUnavailableError(
                    "Failed to load presidential actions. Please try again later.",
                    attempts=retry_count + 1,
                ) from exc

            log.warning(
                "feed_fetch_retry",
                retry=retry_count + 1,
                max_retries=self._settings.max_retries,
                delay_seconds=self._settings.retry_delay_seconds,
                error=str(exc),
            )
            await asyncio.sleep(self._settings.retry_delay_seconds)
            return await self._fetch_with_retry(retry_count + 1)

    async def _fetch_once(self) -> bytes:
        response = await self._client.get(
            self._settings.proxy_url,
            params={"url": self._settings.feed_url},
        )
        response.raise_for_status()
        return response.content
