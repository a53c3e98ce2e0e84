"""Upstream URL allow-list and canonicalisation.

The proxy only ever talks to one host. A URL is allowed when it is an
absolute ``https`` URL on ``www.whitehouse.gov`` whose first path segment is
one of a fixed set of content prefixes. Everything else is rejected:
this is an allow-list, never a deny-list.
"""

from __future__ import annotations

import re
from urllib.parse import unquote, urlsplit, urlunsplit

import structlog

from actionstracker.errors import UrlNotAllowedError

log = structlog.get_logger()

UPSTREAM_HOST = "www.whitehouse.gov"
ALLOWED_PATH_PREFIXES: frozenset[str] = frozenset({"feed", "briefing-room", "wp-json"})

_ALLOWED_NETLOCS = frozenset({UPSTREAM_HOST, f"{UPSTREAM_HOST}:443"})
_PERCENT_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")
# Escapes that would smuggle a separator or a dot segment past the path check
_ENCODED_SEPARATOR = re.compile(r"%(2[eEfF]|5[cC])")
_FORBIDDEN_CHARS = re.compile(r"[\x00-\x20\x7f\\]")


def is_allowed(url: str) -> bool:
    """Return True if ``url`` may be fetched from the upstream host."""
    if not url or _FORBIDDEN_CHARS.search(url):
        return False

    try:
        parts = urlsplit(url)
    except ValueError:
        return False

    if parts.scheme != "https" or parts.netloc.lower() not in _ALLOWED_NETLOCS:
        return False

    path = parts.path
    if _ENCODED_SEPARATOR.search(path):
        return False

    segments = path.split("/")
    # segments[0] is the empty string before the leading slash
    if len(segments) < 2 or segments[0] != "":
        return False
    if any(segment in (".", "..") for segment in segments):
        return False

    return segments[1] in ALLOWED_PATH_PREFIXES


def canonicalize(raw_url: str) -> str:
    """Decode ``raw_url`` once and return its canonical form.

    Raises UrlNotAllowedError if the decoded URL still carries a
    percent-encoded layer, or if decoding changes the allow-list verdict.
    The canonical form lower-cases scheme and host, drops the default port
    and any fragment, and never has an empty path.
    """
    decoded = unquote(raw_url)

    if _PERCENT_ESCAPE.search(decoded):
        log.warning("url_rejected", url=raw_url, reason="nested_encoding")
        raise UrlNotAllowedError("URL contains more than one layer of percent-encoding")

    allowed = is_allowed(decoded)
    if allowed != is_allowed(raw_url):
        log.warning("url_rejected", url=raw_url, reason="encoding_changes_verdict")
        raise UrlNotAllowedError("URL encoding changes whether it is allowed")
    if not allowed:
        log.warning("url_rejected", url=raw_url, reason="not_in_allowlist")
        raise UrlNotAllowedError(f"URL not in allowlist: {raw_url}")

    parts = urlsplit(decoded)
    return urlunsplit(("https", UPSTREAM_HOST, parts.path or "/", parts.query, ""))
