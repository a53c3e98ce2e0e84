"""Presidential Actions extraction from the upstream RSS document.

Single pass over ``<item>`` elements. An item is kept iff one of its
``<category>`` children reads exactly "Presidential Actions"; upstream order
is preserved. Title and description are HTML-escaped here so nothing
downstream can render them unescaped.
"""

from __future__ import annotations

import html
from xml.etree import ElementTree

import structlog

from actionstracker.errors import FeedParseError
from actionstracker.models.feed import ActionItem

log = structlog.get_logger()

PRESIDENTIAL_ACTIONS_CATEGORY = "Presidential Actions"


def _child_text(item: ElementTree.Element, tag: str) -> str:
    # find() returns the first match, so the first occurrence wins
    child = item.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text


def extract(document: bytes | str) -> list[ActionItem]:
    """Return the Presidential Actions in ``document``, in feed order.

    An empty list is a valid outcome. Raises FeedParseError if the document
    is not well-formed XML.
    """
    try:
        root = ElementTree.fromstring(document)
    except ElementTree.ParseError as exc:
        raise FeedParseError(f"Feed is not well-formed XML: {exc}") from exc

    actions: list[ActionItem] = []
    total = 0
    for item in root.iter("item"):
        total += 1
        categories = [category.text for category in item.findall("category")]
        if PRESIDENTIAL_ACTIONS_CATEGORY not in categories:
            continue

        actions.append(
            ActionItem(
                title=html.escape(_child_text(item, "title")),
                link=_child_text(item, "link"),
                pub_date=_child_text(item, "pubDate"),
                description=html.escape(_child_text(item, "description")),
            )
        )

    log.debug("feed_extracted", items=total, actions=len(actions))
    return actions
