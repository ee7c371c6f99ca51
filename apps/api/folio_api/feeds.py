from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime

from lxml import etree

from .config import SiteConfig
from .domain.entities import Article
from .util import rfc3339

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
ATOM_NS = "http://www.w3.org/2005/Atom"


def _serialize(root: etree._Element) -> str:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode("utf-8")


def render_sitemap(entries: list[tuple[str, datetime | None]]) -> str:
    """`entries` are (absolute url, lastmod) pairs; order is kept as given."""
    root = etree.Element(f"{{{SITEMAP_NS}}}urlset", nsmap={None: SITEMAP_NS})
    for loc, lastmod in entries:
        url = etree.SubElement(root, f"{{{SITEMAP_NS}}}url")
        etree.SubElement(url, f"{{{SITEMAP_NS}}}loc").text = loc
        if lastmod is not None:
            etree.SubElement(url, f"{{{SITEMAP_NS}}}lastmod").text = rfc3339(lastmod)
    return _serialize(root)


def _rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc))


def render_rss(site: SiteConfig, articles: list[Article], *, feed_url: str, limit: int | None = None) -> str:
    root = etree.Element("rss", version="2.0", nsmap={"atom": ATOM_NS})
    channel = etree.SubElement(root, "channel")
    etree.SubElement(channel, "title").text = site.title
    etree.SubElement(channel, "link").text = site.base_url
    etree.SubElement(channel, "description").text = site.description or f"Recent content on {site.title}"
    etree.SubElement(channel, "language").text = site.language_code
    link = etree.SubElement(channel, f"{{{ATOM_NS}}}link")
    link.set("href", feed_url)
    link.set("rel", "self")
    link.set("type", "application/rss+xml")

    items = articles[: limit or site.feed_limit]
    dated = [a.date for a in items if a.date is not None]
    if dated:
        # Derived from content rather than the clock so rebuilds stay byte-identical.
        etree.SubElement(channel, "lastBuildDate").text = _rfc822(max(dated))

    for a in items:
        item = etree.SubElement(channel, "item")
        etree.SubElement(item, "title").text = a.title
        etree.SubElement(item, "link").text = site.absurl(a.url)
        if a.date is not None:
            etree.SubElement(item, "pubDate").text = _rfc822(a.date)
        etree.SubElement(item, "guid").text = site.absurl(a.url)
        etree.SubElement(item, "description").text = a.description
        for term in a.categories:
            etree.SubElement(item, "category").text = term
    return _serialize(root)
