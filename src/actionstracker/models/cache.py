from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CacheEntry(BaseModel):
    """Cached upstream response for a single canonical URL."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    url: str  # Canonical upstream URL
    body: bytes  # Raw upstream body, never transformed
    content_type: str
    stored_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
