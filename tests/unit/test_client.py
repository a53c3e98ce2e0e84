"""Unit tests for the feed client and its local cache."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from actionstracker.client import ACTIONS_KEY, TIMESTAMP_KEY, FeedClient, LocalFeedCache
from actionstracker.config import ClientSettings
from actionstracker.errors import FeedUnavailableError
from actionstracker.models.feed import ActionItem

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import FakeClock

PROXY_URL = "http://proxy.test/proxy"

ACTION = ActionItem(
    title="Executive Order",
    link="https://www.whitehouse.gov/presidential-actions/2025/01/order-1/",
    pub_date="Tue, 21 Jan 2025 09:30:00 +0000",
    description="Text.",
)


@pytest.fixture()
def local_cache(tmp_path: Path, clock: FakeClock) -> LocalFeedCache:
    return LocalFeedCache(tmp_path / "actions.json", ttl_seconds=3600, clock=clock)


@pytest.fixture()
def settings(tmp_path: Path) -> ClientSettings:
    return ClientSettings(
        proxy_url=PROXY_URL,
        cache_path=str(tmp_path / "actions.json"),
        max_retries=3,
        retry_delay_seconds=2.0,
    )


# ---------------------------------------------------------------------------
# LocalFeedCache
# ---------------------------------------------------------------------------


class TestLocalFeedCache:
    def test_missing_file_is_empty(self, local_cache: LocalFeedCache) -> None:
        assert local_cache.load() is None

    def test_save_then_load(self, local_cache: LocalFeedCache) -> None:
        local_cache.save([ACTION])
        assert local_cache.load() == [ACTION]

    def test_saved_file_uses_fixed_keys(self, local_cache: LocalFeedCache, clock: FakeClock) -> None:
        local_cache.save([ACTION])
        data = json.loads(local_cache.path.read_text(encoding="utf-8"))
        assert set(data) == {ACTIONS_KEY, TIMESTAMP_KEY}
        assert data[TIMESTAMP_KEY] == clock.now

    def test_empty_list_is_a_valid_entry(self, local_cache: LocalFeedCache) -> None:
        local_cache.save([])
        assert local_cache.load() == []

    def test_entry_expires_after_ttl(self, local_cache: LocalFeedCache, clock: FakeClock) -> None:
        local_cache.save([ACTION])
        clock.advance(3599)
        assert local_cache.load() == [ACTION]
        clock.advance(1)
        assert local_cache.load() is None

    def test_corrupt_file_is_empty(self, local_cache: LocalFeedCache) -> None:
        local_cache.path.write_text("{not json", encoding="utf-8")
        assert local_cache.load() is None

    def test_missing_timestamp_is_empty(self, local_cache: LocalFeedCache) -> None:
        local_cache.path.write_text(json.dumps({ACTIONS_KEY: []}), encoding="utf-8")
        assert local_cache.load() is None

    def test_malformed_action_is_empty(self, local_cache: LocalFeedCache, clock: FakeClock) -> None:
        payload = {ACTIONS_KEY: [{"title": "only a title"}], TIMESTAMP_KEY: clock.now}
        local_cache.path.write_text(json.dumps(payload), encoding="utf-8")
        assert local_cache.load() is None

    def test_clear_removes_entry(self, local_cache: LocalFeedCache) -> None:
        local_cache.save([ACTION])
        local_cache.clear()
        assert not local_cache.path.exists()
        assert local_cache.load() is None

    def test_clear_without_entry_is_noop(self, local_cache: LocalFeedCache) -> None:
        local_cache.clear()

    def test_unwritable_location_is_non_fatal(self, tmp_path: Path, clock: FakeClock) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        cache = LocalFeedCache(blocker / "actions.json", ttl_seconds=3600, clock=clock)

        assert cache.save([ACTION]) is False
        assert cache.load() is None
        cache.clear()
        assert list(tmp_path.iterdir()) == [blocker]

    def test_failed_replace_leaves_no_temp_file(
        self, local_cache: LocalFeedCache, tmp_path: Path
    ) -> None:
        with patch("actionstracker.client.os.replace", side_effect=PermissionError("denied")):
            assert local_cache.save([ACTION]) is False

        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# FeedClient
# ---------------------------------------------------------------------------


class TestFeedClientLoad:
    async def test_fetches_through_proxy_and_caches(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
        sample_feed: str,
    ) -> None:
        with respx.mock:
            route = respx.get(PROXY_URL).mock(return_value=httpx.Response(200, text=sample_feed))
            async with httpx.AsyncClient() as http:
                actions = await FeedClient(http, settings, local_cache).load()

        assert len(actions) == 2
        assert route.calls.last.request.url.params["url"] == "https://www.whitehouse.gov/feed/"
        assert local_cache.load() == actions

    async def test_fresh_local_cache_skips_network(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
    ) -> None:
        local_cache.save([ACTION])
        with respx.mock(assert_all_called=False):
            route = respx.get(PROXY_URL)
            async with httpx.AsyncClient() as http:
                actions = await FeedClient(http, settings, local_cache).load()

        assert actions == [ACTION]
        assert route.call_count == 0

    async def test_stale_local_cache_refetches(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
        clock: FakeClock,
        sample_feed: str,
    ) -> None:
        local_cache.save([ACTION])
        clock.advance(3600)
        with respx.mock:
            route = respx.get(PROXY_URL).mock(return_value=httpx.Response(200, text=sample_feed))
            async with httpx.AsyncClient() as http:
                actions = await FeedClient(http, settings, local_cache).load()

        assert route.call_count == 1
        assert ACTION not in actions

    async def test_refresh_clears_and_refetches(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
        sample_feed: str,
    ) -> None:
        local_cache.save([ACTION])
        with respx.mock:
            route = respx.get(PROXY_URL).mock(return_value=httpx.Response(200, text=sample_feed))
            async with httpx.AsyncClient() as http:
                actions = await FeedClient(http, settings, local_cache).refresh()

        assert route.call_count == 1
        assert len(actions) == 2
        assert local_cache.load() == actions


class TestFeedClientRetry:
    async def test_recovers_after_two_failures(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
        sample_feed: str,
    ) -> None:
        with (
            respx.mock,
            patch("actionstracker.client.asyncio.sleep", new_callable=AsyncMock) as sleep,
        ):
            route = respx.get(PROXY_URL).mock(
                side_effect=[
                    httpx.Response(500),
                    httpx.ConnectError("Connection refused"),
                    httpx.Response(200, text=sample_feed),
                ]
            )
            async with httpx.AsyncClient() as http:
                actions = await FeedClient(http, settings, local_cache).load()

        assert len(actions) == 2
        assert route.call_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 2.0]

    async def test_gives_up_after_max_retries(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
    ) -> None:
        with (
            respx.mock,
            patch("actionstracker.client.asyncio.sleep", new_callable=AsyncMock) as sleep,
        ):
            route = respx.get(PROXY_URL).mock(return_value=httpx.Response(503))
            async with httpx.AsyncClient() as http:
                with pytest.raises(FeedUnavailableError) as exc_info:
                    await FeedClient(http, settings, local_cache).load()

        assert route.call_count == 4
        assert sleep.await_count == 3
        assert exc_info.value.attempts == 4
        assert "Please try again later" in exc_info.value.message
        assert local_cache.load() is None

    async def test_each_load_starts_with_fresh_retry_budget(
        self,
        settings: ClientSettings,
        local_cache: LocalFeedCache,
        sample_feed: str,
    ) -> None:
        with respx.mock, patch("actionstracker.client.asyncio.sleep", new_callable=AsyncMock):
            route = respx.get(PROXY_URL).mock(
                side_effect=[httpx.Response(500)] * 4
                + [httpx.Response(500)] * 3
                + [httpx.Response(200, text=sample_feed)]
            )
            async with httpx.AsyncClient() as http:
                client = FeedClient(http, settings, local_cache)
                with pytest.raises(FeedUnavailableError):
                    await client.load()
                actions = await client.load()

        assert route.call_count == 8
        assert len(actions) == 2

    async def test_zero_retries_fails_on_first_error(
        self,
        tmp_path: Path,
        local_cache: LocalFeedCache,
    ) -> None:
        settings = ClientSettings(proxy_url=PROXY_URL, max_retries=0)
        with respx.mock, patch("actionstracker.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            route = respx.get(PROXY_URL).mock(return_value=httpx.Response(500))
            async with httpx.AsyncClient() as http:
                with pytest.raises(FeedUnavailableError) as exc_info:
                    await FeedClient(http, settings, local_cache).load()

        assert route.call_count == 1
        assert sleep.await_count == 0
        assert exc_info.value.attempts == 1


class TestFeedClientUnwritableCache:
    async def test_fetched_actions_returned_when_cache_cannot_be_written(
        self, tmp_path: Path, clock: FakeClock, sample_feed: str
    ) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        cache = LocalFeedCache(blocker / "actions.json", ttl_seconds=3600, clock=clock)
        settings = ClientSettings(proxy_url=PROXY_URL, cache_path=str(blocker / "actions.json"))

        with respx.mock:
            route = respx.get(PROXY_URL).mock(return_value=httpx.Response(200, text=sample_feed))
            async with httpx.AsyncClient() as http:
                client = FeedClient(http, settings, cache)
                loaded = await client.load()
                refreshed = await client.refresh()

        assert len(loaded) == 2
        assert refreshed == loaded
        assert route.call_count == 2
