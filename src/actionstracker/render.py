"""Rendering and search over loaded actions.

Cards are rendered either as plain text for the terminal or as the HTML
article fragments for embedding in a page. Search filters the already-loaded actions
and never triggers a fetch.
"""

from __future__ import annotations

import asyncio
import html
import inspect
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Callable

    from actionstracker.models.feed import ActionItem

NO_RESULTS_MESSAGE = "No presidential actions found."

RenderFormat = Literal["text", "html"]


def format_date(action: ActionItem) -> str:
    """Long-form date, e.g. ``January 20, 2025``; the raw string if unparseable."""
    published = action.published
    if published is None:
        return action.pub_date
    return f"{published:%B} {published.day}, {published.year}"


def render_card(action: ActionItem) -> str:
    # Fields are stored escaped; the terminal shows them as a browser would.
    return "\n".join(
        [
            format_date(action),
            html.unescape(action.title),
            html.unescape(action.description),
            f"Read Full Document: {action.link}",
        ]
    )


def render_card_html(action: ActionItem) -> str:
    return (
        '<article class="action-card">\n'
        f'  <p class="action-date">{html.escape(format_date(action))}</p>\n'
        f'  <h2 class="action-title">{action.title}</h2>\n'
        f'  <div class="action-summary">{action.description}</div>\n'
        f'  <a href="{html.escape(action.link)}" class="full-document-link" '
        'target="_blank" rel="noopener noreferrer">Read Full Document</a>\n'
        "</article>"
    )


def render_actions(actions: list[ActionItem], fmt: RenderFormat = "text") -> str:
    if not actions:
        return NO_RESULTS_MESSAGE
    if fmt == "html":
        return "\n".join(render_card_html(action) for action in actions)
    separator = "\n" + "-" * 72 + "\n"
    return separator.join(render_card(action) for action in actions)


def search(actions: list[ActionItem], term: str) -> list[ActionItem]:
    """Case-insensitive substring match over each card's rendered text."""
    needle = term.strip().lower()
    if not needle:
        return list(actions)
    return [action for action in actions if needle in render_card(action).lower()]


class Debouncer:
    """Run ``func`` only after ``wait`` seconds pass without another call.

    Each call cancels the pending one, so a burst of calls results in a
    single invocation with the last arguments.
    """

    def __init__(self, func: Callable[..., object], wait: float = 0.3) -> None:
        self._func = func
        self._wait = wait
        self._pending: asyncio.Task[None] | None = None

    def __call__(self, *args: object) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._run(args))

    async def _run(self, args: tuple[object, ...]) -> None:
        await asyncio.sleep(self._wait)
        result = self._func(*args)
        if inspect.isawaitable(result):
            await result

    async def flush(self) -> None:
        """Wait for the pending invocation, if any, to finish."""
        if self._pending is None:
            return
        try:
            await self._pending
        except asyncio.CancelledError:
            if not self._pending.cancelled():
                raise
