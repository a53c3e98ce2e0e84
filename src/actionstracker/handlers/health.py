"""Request handler for GET /health."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import psutil

from actionstracker.models.proxy import HealthResponse, MemoryUsage

if TYPE_CHECKING:
    from actionstracker.state import AppState


def handle(state: AppState) -> HealthResponse:
    memory = psutil.Process().memory_info()
    return HealthResponse(
        status="ok",
        uptime=round(time.monotonic() - state.started_at, 3),
        timestamp=int(time.time() * 1000),
        memoryUsage=MemoryUsage(rss=memory.rss, vms=memory.vms),
    )
