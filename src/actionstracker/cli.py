"""Terminal client entrypoint: ``actionstracker-client``.

Loads the Presidential Actions through the proxy (or the local cache),
optionally filters them, and prints the cards to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from actionstracker.client import FeedClient, LocalFeedCache, build_client_http
from actionstracker.config import Settings
from actionstracker.errors import FeedParseError, FeedUnavailableError
from actionstracker.logging_config import setup_logging
from actionstracker.models.feed import ActionItem
from actionstracker.render import Debouncer, render_actions, search

log = structlog.get_logger()

RETRY_HINT = "Run again with --refresh to retry."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="actionstracker-client",
        description="Show the latest Presidential Actions from whitehouse.gov.",
    )
    parser.add_argument("--search", "-s", default="", help="only show actions matching TERM")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="clear the local cache and fetch a fresh copy",
    )
    parser.add_argument("--format", choices=["text", "html"], default="text", dest="fmt")
    parser.add_argument(
        "--interactive",
        "-i",
        action="store_true",
        help="read search terms from stdin, one per line",
    )
    return parser


async def _interactive_search(actions: list[ActionItem], fmt: str) -> None:
    def show(term: str) -> None:
        print(render_actions(search(actions, term), fmt))  # type: ignore[arg-type]

    debounced = Debouncer(show, wait=0.3)
    show("")
    while True:
        try:
            term = await asyncio.to_thread(input, "search> ")
        except EOFError:
            break
        debounced(term)
    await debounced.flush()


async def run(args: argparse.Namespace, settings: Settings) -> int:
    cache = LocalFeedCache(
        Path(settings.client.cache_path).expanduser(),
        settings.client.cache_ttl_seconds,
    )
    async with build_client_http(settings.client) as http_client:
        client = FeedClient(http_client, settings.client, cache)
        try:
            actions = await client.refresh() if args.refresh else await client.load()
        except FeedUnavailableError as exc:
            print(f"{exc.message} {RETRY_HINT}", file=sys.stderr)
            return 1
        except FeedParseError:
            log.error("feed_parse_failed", exc_info=True)
            print(f"The feed could not be read. {RETRY_HINT}", file=sys.stderr)
            return 1

    if args.interactive:
        await _interactive_search(actions, args.fmt)
        return 0

    print(render_actions(search(actions, args.search), args.fmt))
    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(settings.logging)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
