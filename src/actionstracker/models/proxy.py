from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel


class ProxyResponse(BaseModel):
    """Upstream body returned by the proxy, from cache or fresh."""

    url: str
    body: bytes
    content_type: str
    cached: bool


class MemoryUsage(BaseModel):
    rss: int
    vms: int


class HealthResponse(BaseModel):
    status: str
    uptime: float  # Seconds since the service started
    timestamp: int  # Epoch milliseconds
    memoryUsage: MemoryUsage  # noqa: N815 - wire field name


@dataclass(frozen=True)
class Admission:
    """Result of a rate limiter check for one request."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: float = 0.0
    reset_in: float = 0.0  # Seconds until the current window resets
