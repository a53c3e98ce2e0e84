"""Request handler for GET /proxy.

Receives AppState and orchestrates admission control → URL allow-listing →
cache lookup → upstream fetch → cache write. No Starlette imports;
server.py handles the HTTP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from actionstracker.allowlist import canonicalize, is_allowed
from actionstracker.errors import RateLimitError, UrlNotAllowedError, ValidationError
from actionstracker.models.proxy import ProxyResponse

if TYPE_CHECKING:
    from actionstracker.models.proxy import Admission
    from actionstracker.state import AppState


async def handle(
    url: str | None, client_id: str, state: AppState
) -> tuple[ProxyResponse, Admission]:
    """Handle a proxy request for ``url`` on behalf of ``client_id``."""
    log = structlog.get_logger().bind(handler="proxy", client_id=client_id)

    admission = await state.rate_limiter.admit(client_id)
    if not admission.allowed:
        raise RateLimitError(retry_after=admission.retry_after)

    if not url:
        raise ValidationError("Missing required query parameter: url")

    if not is_allowed(url):
        log.warning("url_rejected", url=url, reason="not_in_allowlist")
        raise UrlNotAllowedError(f"URL not in allowlist: {url}")

    return await proxy(url, state), admission


async def proxy(url: str, state: AppState) -> ProxyResponse:
    """Serve ``url`` from the cache, fetching and storing it on a miss.

    Only called once admission control and the allow-list have passed.
    """
    canonical = canonicalize(url)
    log = structlog.get_logger().bind(handler="proxy", url=canonical)

    cached_entry = await state.cache.get(canonical)
    if cached_entry is not None:
        log.info("proxy_cache_hit", stored_at=cached_entry.stored_at.isoformat())
        return ProxyResponse(
            url=canonical,
            body=cached_entry.body,
            content_type=cached_entry.content_type,
            cached=True,
        )

    log.info("proxy_cache_miss")
    body, content_type = await state.fetcher.fetch(canonical)

    # Write failures are logged and swallowed by ProxyCache
    await state.cache.set(canonical, body, content_type)

    return ProxyResponse(url=canonical, body=body, content_type=content_type, cached=False)
