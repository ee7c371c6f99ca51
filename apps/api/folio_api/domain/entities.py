from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Article:
    path: str
    title: str
    slug: str
    section: str
    url: str
    date: datetime | None
    lastmod: datetime | None
    description: str
    tags: list[str]
    categories: list[str]
    draft: bool
    series: str | None
    series_order: int | None
    aliases: list[str]
    weight: int
    body_markdown: str
    frontmatter: dict
    content_hash: str

    def terms(self, taxonomy: str) -> list[str]:
        if taxonomy == "tags":
            return self.tags
        if taxonomy == "categories":
            return self.categories
        return _as_strings(self.frontmatter.get(taxonomy))


def _as_strings(raw: object) -> list[str]:
    if isinstance(raw, str):
        return [raw.strip()] if raw.strip() else []
    if isinstance(raw, list):
        return [v.strip() for v in raw if isinstance(v, str) and v.strip()]
    return []


@dataclass(frozen=True)
class SectionMeta:
    name: str
    title: str
    description: str


@dataclass(frozen=True)
class ContentSet:
    published: list[Article]
    drafts: list[Article]
    sections: dict[str, SectionMeta]
    warnings: list[str] = field(default_factory=list)

    def by_slug(self, slug: str) -> Article | None:
        for a in self.published:
            if a.slug == slug:
                return a
        return None

    def series(self, name: str) -> list[Article]:
        parts = [a for a in self.published if a.series == name]
        return sort_series(parts)


def sort_series(parts: list[Article]) -> list[Article]:
    return sorted(
        parts,
        key=lambda a: (
            a.series_order is None,
            a.series_order if a.series_order is not None else 0,
            a.date.timestamp() if a.date else 0.0,
            a.path,
        ),
    )
