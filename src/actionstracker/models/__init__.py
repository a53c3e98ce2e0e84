from __future__ import annotations

from actionstracker.models.cache import CacheEntry
from actionstracker.models.feed import ActionItem
from actionstracker.models.proxy import Admission, HealthResponse, MemoryUsage, ProxyResponse

__all__ = [
    # cache
    "CacheEntry",
    # feed
    "ActionItem",
    # proxy
    "Admission",
    "HealthResponse",
    "MemoryUsage",
    "ProxyResponse",
]
