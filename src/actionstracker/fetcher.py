"""Outbound upstream fetcher.

All network I/O towards the upstream host goes through a single
UpstreamFetcher instance shared across requests. The fetcher receives an
httpx.AsyncClient via constructor injection; the lifespan owns the client
lifecycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from actionstracker.errors import UpstreamError, UpstreamTimeoutError

if TYPE_CHECKING:
    from actionstracker.config import UpstreamSettings

log = structlog.get_logger()

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def build_http_client(settings: UpstreamSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        # Redirect targets are never re-checked against the allow-list
        follow_redirects=False,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        ),
    )


class UpstreamFetcher:
    """Issues exactly one GET per call; retries are the caller's concern."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(self, url: str) -> tuple[bytes, str]:
        """Fetch ``url`` and return ``(body, content_type)``.

        Raises UpstreamTimeoutError when the bounded timeout elapses, and
        UpstreamError on any other transport failure or non-2xx status.
        """
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            log.warning("upstream_fetch_timeout", url=url)
            raise UpstreamTimeoutError(f"Timed out fetching {url}") from exc
        except httpx.HTTPError as exc:
            log.warning("upstream_fetch_failed", url=url, error=str(exc))
            raise UpstreamError(f"Network error fetching {url}: {exc}") from exc

        if not response.is_success:
            log.warning("upstream_fetch_failed", url=url, status_code=response.status_code)
            raise UpstreamError(f"HTTP {response.status_code} fetching {url}")

        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE)
        log.info(
            "upstream_fetch_complete",
            url=url,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response.content, content_type
