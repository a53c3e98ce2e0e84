"""Shared test fixtures for the actionstracker test suite."""

from __future__ import annotations

import pytest

from actionstracker.config import LoggingSettings
from actionstracker.logging_config import setup_logging
from actionstracker.store import MemoryStore

# Five items, exactly two tagged "Presidential Actions" (the second and fourth).
SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>The White House</title>
    <item>
      <title>Press Briefing by the Press Secretary</title>
      <link>https://www.whitehouse.gov/briefings-statements/briefing-1/</link>
      <pubDate>Mon, 20 Jan 2025 17:00:00 +0000</pubDate>
      <category>Briefings &amp; Statements</category>
      <description>Daily briefing.</description>
    </item>
    <item>
      <title>Executive Order on <![CDATA[<Border> & Security]]></title>
      <link>https://www.whitehouse.gov/presidential-actions/2025/01/order-1/</link>
      <pubDate>Tue, 21 Jan 2025 09:30:00 +0000</pubDate>
      <category>News</category>
      <category>Presidential Actions</category>
      <description><![CDATA[<p>By the authority vested in me</p>]]></description>
    </item>
    <item>
      <title>Presidential Actions Weekly Roundup</title>
      <link>https://www.whitehouse.gov/articles/roundup/</link>
      <pubDate>Wed, 22 Jan 2025 12:00:00 +0000</pubDate>
      <category>presidential actions</category>
      <description>Not an action itself.</description>
    </item>
    <item>
      <title>Memorandum for the Secretary of State</title>
      <link>https://www.whitehouse.gov/presidential-actions/2025/01/memo-2/</link>
      <pubDate>Thu, 23 Jan 2025 15:45:00 +0000</pubDate>
      <category>Presidential Actions</category>
      <description>Memorandum text.</description>
    </item>
    <item>
      <title>Remarks at the Signing Ceremony</title>
      <link>https://www.whitehouse.gov/remarks/signing/</link>
      <pubDate>Fri, 24 Jan 2025 18:00:00 +0000</pubDate>
      <category>Presidential Actions Archive</category>
      <description>Remarks.</description>
    </item>
  </channel>
</rss>
"""


class FakeClock:
    """Manually advanced clock for time-dependent components."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture()
def sample_feed() -> str:
    return SAMPLE_FEED


@pytest.fixture(autouse=True, scope="session")
def _configure_logging() -> None:
    """Route log output to stderr so stdout assertions only see rendered cards."""
    setup_logging(LoggingSettings(level="DEBUG", format="text"))
