"""Fetching and parsing RSS feeds."""

from __future__ import annotations

import html
import http.client
import urllib.error
import urllib.request
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

USER_AGENT = "gator"


class FeedError(Exception):
    """A feed could not be fetched or parsed."""


@dataclass
class RSSItem:
    """One entry of a feed."""

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RSSFeed:
    """A feed's channel and its items."""

    title: str = ""
    link: str = ""
    description: str = ""
    items: list[RSSItem] = field(default_factory=list)


def _local(tag: str) -> str:
    return tag.rpartition("}")[2]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _text(element: ET.Element, name: str) -> str:
    matches = _children(element, name)
    if not matches:
        return ""
    last = matches[-1]
    return (last.text or "") + "".join(child.tail or "" for child in last)


def parse_feed(data: bytes | str) -> RSSFeed:
    """Parse an RSS document, unescaping HTML in titles and descriptions."""
    try:
        root = ET.fromstring(data)
    except (ET.ParseError, ValueError) as exc:
        raise FeedError(f"failed to parse body as an RSS feed: {exc}") from exc
    channels = _children(root, "channel")
    if not channels:
        return RSSFeed()
    channel = channels[-1]
    items = [
        RSSItem(
            title=html.unescape(_text(item, "title")),
            link=_text(item, "link"),
            description=html.unescape(_text(item, "description")),
            pub_date=_text(item, "pubDate"),
        )
        for item in _children(channel, "item")
    ]
    return RSSFeed(
        title=html.unescape(_text(channel, "title")),
        link=_text(channel, "link"),
        description=html.unescape(_text(channel, "description")),
        items=items,
    )


def fetch_feed(url: str, timeout: float | None = None) -> RSSFeed:
    """Download the feed at ``url`` and parse it."""
    try:
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    except ValueError as exc:
        raise FeedError(f"failed to create new request: {exc}") from exc
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            body = response.read()
    except urllib.error.HTTPError as exc:
        # The body is parsed whatever the status, as a plain GET would.
        try:
            with exc:
                body = exc.read()
        except (OSError, http.client.HTTPException) as read_exc:
            raise FeedError(f"failed to read response body: {read_exc}") from read_exc
    except (OSError, ValueError, http.client.HTTPException) as exc:
        raise FeedError(f"failed to send request: {exc}") from exc
    return parse_feed(body)