"""
RSS 2.0 / Atom 1.0 rendering with feedgen.

Rendering never fails because of a sloppy item: missing optional fields are
left out or replaced with empty values, unparsable dates are dropped.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from feedgen.feed import FeedGenerator

from curatehub.plugins.rss.schemas import Feed, FeedItem, Person

# Anything outside the XML 1.0 Char production makes lxml refuse the document
_XML_INVALID = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def xml_safe(text: Optional[str]) -> str:
    return _XML_INVALID.sub("", text) if text else ""


def parse_date(dt_str: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO timestamps safely; always return a timezone-aware UTC datetime,
    or None when the value is missing or unreadable.
    """
    if not dt_str:
        return None
    try:
        # Handles "Z" suffix
        parsed = datetime.fromisoformat(str(dt_str).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _person(person: Person) -> dict[str, str]:
    author = {"name": xml_safe(person.name)}
    if person.email:
        author["email"] = xml_safe(person.email)
    if person.link:
        author["uri"] = xml_safe(person.link)
    return author


def item_link(base_url: str, feed_id: str, item: FeedItem) -> str:
    return xml_safe(item.link) or xml_safe(f"{base_url}/{feed_id}/{item.id}")


def _build(feed: Feed, base_url: str, feed_path: str) -> FeedGenerator:
    base = base_url.rstrip("/")
    options = feed.options
    now = datetime.now(timezone.utc)
    feed_id = xml_safe(options.id)
    title = xml_safe(options.title) or feed_id or "Untitled"
    link = xml_safe(options.link) or f"{base}/{feed_id}"

    fg = FeedGenerator()
    fg.id(link)
    fg.title(title)
    fg.link(href=link, rel="alternate")
    fg.link(href=f"{base}/{feed_id}/{feed_path}", rel="self")
    # RSS requires a channel description
    fg.description(xml_safe(options.description) or title)
    if options.language:
        fg.language(xml_safe(options.language))
    if options.copyright:
        fg.copyright(xml_safe(options.copyright))
    if options.favicon:
        fg.icon(xml_safe(options.favicon))
    if options.generator:
        fg.generator(xml_safe(options.generator))
    if options.author and xml_safe(options.author.name):
        fg.author(_person(options.author))
    for category in feed.categories:
        if xml_safe(category):
            fg.category({"term": xml_safe(category)})
    fg.updated(parse_date(options.updated) or now)
    fg.lastBuildDate(now)

    for item in feed.items:
        entry_id = xml_safe(item.guid) or xml_safe(item.id) or item_link(base, feed_id, item)
        fe = fg.add_entry(order="append")
        fe.id(entry_id)
        fe.guid(entry_id, permalink=False)
        fe.title(xml_safe(item.title) or xml_safe(item.id) or "Untitled")
        fe.link(href=item_link(base, feed_id, item))
        fe.description(xml_safe(item.description), isSummary=True)
        if xml_safe(item.content):
            fe.content(xml_safe(item.content), type="CDATA")
        published = parse_date(item.published) or parse_date(item.date)
        if published is not None:
            fe.published(published)
        # Atom entries must carry <updated>
        fe.updated(published or now)
        for category in item.category:
            labels = [xml_safe(label) for label in category.labels() if xml_safe(label)]
            if labels:
                fe.category({"term": labels[0], "label": xml_safe(category.name) or labels[0]})
        for person in item.author:
            if xml_safe(person.name):
                fe.author(_person(person))
    return fg


def generate_rss_xml(feed: Feed, base_url: str) -> str:
    return _build(feed, base_url, "rss").rss_str(pretty=True).decode("utf-8")


def generate_atom_xml(feed: Feed, base_url: str) -> str:
    return _build(feed, base_url, "atom").atom_str(pretty=True).decode("utf-8")
