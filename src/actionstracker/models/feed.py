from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime

from pydantic import BaseModel, ConfigDict


class ActionItem(BaseModel):
    """Single Presidential Action extracted from the feed.

    ``title`` and ``description`` are already HTML-escaped.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    link: str
    pub_date: str  # RFC 822 date string as published in the feed
    description: str

    @property
    def published(self) -> datetime | None:
        """Parsed ``pub_date``, or None if it is missing or malformed."""
        try:
            return parsedate_to_datetime(self.pub_date)
        except (TypeError, ValueError, IndexError):
            return None
