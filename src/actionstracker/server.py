"""Proxy server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the Starlette lifespan context manager
- Register routes, middleware and error handlers
- Start uvicorn
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

import actionstracker.handlers.health as t_health
import actionstracker.handlers.proxy as t_proxy
from actionstracker import __version__
from actionstracker.cache import ProxyCache
from actionstracker.config import Settings
from actionstracker.errors import ErrorKind, StoreUnavailableError, TrackerError
from actionstracker.fetcher import UpstreamFetcher, build_http_client
from actionstracker.logging_config import setup_logging
from actionstracker.middleware import SecurityHeadersMiddleware
from actionstracker.ratelimit import RateLimiter
from actionstracker.state import AppState
from actionstracker.store import SqliteStore, open_store

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from actionstracker.protocols import StoreProtocol

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


async def build_state(settings: Settings) -> AppState:
    """Open the store and the outbound client and wire every component."""
    store = await open_store(settings.cache.store_url)
    http_client = build_http_client(settings.upstream)
    return AppState(
        settings=settings,
        store=store,
        rate_limiter=RateLimiter(store, settings.rate_limit),
        cache=ProxyCache(
            store,
            settings.cache.ttl_seconds,
            key_prefix=settings.cache.key_prefix,
        ),
        fetcher=UpstreamFetcher(http_client),
        http_client=http_client,
    )


async def _run_store_cleanup_scheduler(store: StoreProtocol, interval_hours: int) -> None:
    """Purge expired rows from the SQLite store on the configured interval.

    Redis and the in-memory store expire keys on their own.
    """
    if not isinstance(store, SqliteStore):
        return

    while True:
        try:
            await store.cleanup_expired()
        except StoreUnavailableError:
            log.warning("store_cleanup_error", exc_info=True)
        await asyncio.sleep(interval_hours * 3600)


@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    if getattr(app.state, "tracker", None) is not None:
        # State injected by the caller (tests); it owns the resources.
        yield
        return

    settings: Settings = app.state.settings
    log.info(
        "server_starting",
        version=__version__,
        environment=settings.server.environment,
        allowed_origins=settings.server.allowed_origins,
        cache_ttl_seconds=settings.cache.ttl_seconds,
    )

    state = await build_state(settings)
    app.state.tracker = state
    cleanup_task = asyncio.create_task(
        _run_store_cleanup_scheduler(state.store, settings.cache.cleanup_interval_hours)
    )

    log.info("server_started", host=settings.server.host, port=settings.server.port)

    try:
        yield
    finally:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
        if state.http_client is not None:
            await state.http_client.aclose()
        await state.store.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def client_identifier(request: Request) -> str:
    """Identify the caller: first X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    if request.client is not None:
        return request.client.host
    return "unknown"


def _error_response(
    kind: ErrorKind,
    message: str,
    status_code: int,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        {"error": kind.value, "message": message},
        status_code=status_code,
        headers=headers,
    )


async def proxy_route(request: Request) -> Response:
    """GET /proxy?url=<percent-encoded upstream URL>"""
    state: AppState = request.app.state.tracker
    client_id = client_identifier(request)
    try:
        result, admission = await t_proxy.handle(
            request.query_params.get("url"), client_id, state
        )
    except TrackerError as exc:
        log_method = log.error if exc.status_code >= 500 else log.warning
        log_method(
            "proxy_error",
            client_id=client_id,
            kind=exc.kind,
            message=exc.message,
            retryable=exc.retryable,
        )
        return _error_response(exc.kind, exc.message, exc.status_code, exc.headers)
    except Exception as exc:
        log.error("proxy_unexpected_error", client_id=client_id, exc_info=True)
        message = (
            str(exc)
            if state.settings.server.environment == "development"
            else "Please try again later"
        )
        return _error_response(ErrorKind.INTERNAL_ERROR, message, 500)

    return Response(
        content=result.body,
        status_code=200,
        headers={
            "Content-Type": result.content_type,
            "Cache-Control": f"public, max-age={state.settings.cache.ttl_seconds}",
            "X-Cache": "HIT" if result.cached else "MISS",
            "X-RateLimit-Limit": str(admission.limit),
            "X-RateLimit-Remaining": str(admission.remaining),
        },
    )


async def health_route(request: Request) -> Response:
    """GET /health"""
    state: AppState = request.app.state.tracker
    return JSONResponse(t_health.handle(state).model_dump())


_HTTP_ERROR_KINDS: dict[int, ErrorKind] = {
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.METHOD_NOT_ALLOWED,
}


async def _http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Render Starlette's routing errors (404, 405) in the proxy's error schema."""
    kind = _HTTP_ERROR_KINDS.get(exc.status_code, ErrorKind.INVALID_REQUEST)
    return _error_response(kind, exc.detail, exc.status_code, exc.headers)


def create_app(settings: Settings | None = None, *, state: AppState | None = None) -> Starlette:
    """Build the ASGI application.

    Pass ``state`` to run against pre-built components (tests); otherwise the
    lifespan opens the store and outbound client from ``settings``.
    """
    if settings is None:
        settings = state.settings if state is not None else Settings()

    app = Starlette(
        routes=[
            Route("/proxy", proxy_route, methods=["GET"]),
            Route("/health", health_route, methods=["GET"]),
        ],
        middleware=[
            Middleware(SecurityHeadersMiddleware),
            Middleware(
                CORSMiddleware,
                allow_origins=settings.server.origins,
                allow_methods=["GET"],
                allow_headers=["Content-Type"],
            ),
        ],
        exception_handlers={HTTPException: _http_exception_handler},
        lifespan=lifespan,
    )
    app.state.settings = settings
    if state is not None:
        app.state.tracker = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    setup_logging(settings.logging)

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
