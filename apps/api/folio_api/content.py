from __future__ import annotations

import logging
import math
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from .domain.entities import Article, ContentSet, SectionMeta
from .domain.exceptions import ContentError, PathError
from .parsing import coerce_bool, coerce_datetime, coerce_list, parse_frontmatter, slugify, summarize
from .util import normalize_newlines_for_hash, normalize_relative_path, sha256_hex

CONTENT_DIR = "content"
SECTION_INDEX = "_index.md"

LastmodSource = Callable[[str], Optional[datetime]]

logger = logging.getLogger("folio.content")


def normalize_content_path(path: str) -> str:
    p = PurePosixPath(normalize_relative_path(path))
    if p.suffix.lower() != ".md":
        p = p.with_suffix(".md")
    return p.as_posix()


def normalize_url(raw: str) -> str:
    cleaned = raw.strip().strip("/")
    return f"/{cleaned}/" if cleaned else "/"


def _int_field(meta: dict, key: str, path: str) -> int | None:
    raw = meta.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ContentError(f"{key}_invalid", path)
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ContentError(f"{key}_invalid", path) from e


def _series_name(raw: object) -> str | None:
    # Hugo themes usually declare `series: [name]`; a bare string is accepted too.
    values = coerce_list(raw)
    return values[0] if values else None


def sort_articles(articles: list[Article]) -> list[Article]:
    """Newest first; undated articles last; path breaks ties."""
    return sorted(articles, key=lambda a: (-a.date.timestamp() if a.date else math.inf, a.path))


def series_warnings(articles: list[Article]) -> list[str]:
    groups: dict[str, list[Article]] = {}
    for a in articles:
        if a.series:
            groups.setdefault(a.series, []).append(a)

    warnings: list[str] = []
    for name in sorted(groups):
        parts = groups[name]
        seen: dict[int, str] = {}
        for a in sorted(parts, key=lambda x: x.path):
            if a.series_order is None:
                warnings.append(f"series_order_missing:{name}:{a.path}")
                continue
            if a.series_order in seen:
                warnings.append(f"series_order_duplicate:{name}:{a.series_order}")
            seen.setdefault(a.series_order, a.path)

        dated = sorted(
            (a for a in parts if a.date is not None and a.series_order is not None),
            key=lambda x: (x.date, x.path),
        )
        orders = [a.series_order for a in dated]
        if any(b <= a for a, b in zip(orders, orders[1:])):
            warnings.append(f"series_order_not_increasing:{name}")
    return warnings


class ContentTree:
    def __init__(self, site_dir: Path, lastmod_source: LastmodSource | None = None) -> None:
        self.site_dir = site_dir
        self.content_dir = (site_dir / CONTENT_DIR).resolve()
        self.lastmod_source = lastmod_source

    def _abs_path(self, content_path: str) -> Path:
        return (self.content_dir / PurePosixPath(content_path)).resolve()

    def _ensure_under_content(self, abs_path: Path) -> None:
        if self.content_dir not in abs_path.parents:
            raise PathError("path_outside_content")

    def list_paths(self) -> list[str]:
        if not self.content_dir.exists():
            return []
        paths: list[str] = []
        for p in self.content_dir.rglob("*.md"):
            rel = p.relative_to(self.content_dir)
            if p.name == SECTION_INDEX or any(part.startswith(".") for part in rel.parts):
                continue
            paths.append(rel.as_posix())
        return sorted(paths)

    def read_article(self, path: str) -> Article:
        content_path = normalize_content_path(path)
        abs_path = self._abs_path(content_path)
        self._ensure_under_content(abs_path)
        if not abs_path.exists():
            raise FileNotFoundError(content_path)

        raw = abs_path.read_text(encoding="utf-8")
        fm = parse_frontmatter(raw)
        if fm.error:
            raise ContentError(fm.error, content_path)
        meta = fm.frontmatter

        title = meta.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ContentError("title_missing", content_path)

        try:
            date = coerce_datetime(meta.get("date"))
            lastmod = coerce_datetime(meta.get("lastmod"))
        except ValueError as e:
            raise ContentError("date_invalid", content_path) from e
        if lastmod is None and self.lastmod_source is not None:
            lastmod = self.lastmod_source(content_path)
        if lastmod is None:
            lastmod = date

        parts = PurePosixPath(content_path).parts
        stem = PurePosixPath(content_path).stem
        if stem == "index" and len(parts) >= 2:
            # Page bundle: the directory names the page.
            dir_parts = list(parts[:-2])
            default_slug = parts[-2]
        else:
            dir_parts = list(parts[:-1])
            default_slug = stem

        raw_slug = meta.get("slug")
        slug = slugify(raw_slug if isinstance(raw_slug, str) and raw_slug.strip() else default_slug)
        if not slug:
            raise ContentError("slug_empty", content_path)

        raw_url = meta.get("url")
        if isinstance(raw_url, str) and raw_url.strip():
            url = normalize_url(raw_url)
        else:
            url = normalize_url("/".join([*dir_parts, slug]))

        description = meta.get("description")
        if not isinstance(description, str) or not description.strip():
            description = summarize(fm.body)

        return Article(
            path=content_path,
            title=title.strip(),
            slug=slug,
            section=dir_parts[0] if dir_parts else "",
            url=url,
            date=date,
            lastmod=lastmod,
            description=description.strip(),
            tags=coerce_list(meta.get("tags")),
            categories=coerce_list(meta.get("categories")),
            draft=coerce_bool(meta.get("draft")),
            series=_series_name(meta.get("series")),
            series_order=_int_field(meta, "series_order", content_path),
            aliases=[normalize_url(a) for a in coerce_list(meta.get("aliases"))],
            weight=_int_field(meta, "weight", content_path) or 0,
            body_markdown=fm.body,
            frontmatter=meta,
            content_hash=sha256_hex(normalize_newlines_for_hash(raw)),
        )

    def read_section(self, section: str) -> SectionMeta:
        index_path = self.content_dir / section / SECTION_INDEX if section else self.content_dir / SECTION_INDEX
        default_title = section.replace("-", " ").replace("_", " ").title() if section else ""
        if not index_path.exists():
            return SectionMeta(name=section, title=default_title, description="")
        fm = parse_frontmatter(index_path.read_text(encoding="utf-8"))
        rel = index_path.relative_to(self.content_dir).as_posix()
        if fm.error:
            raise ContentError(fm.error, rel)
        title = fm.frontmatter.get("title")
        description = fm.frontmatter.get("description")
        return SectionMeta(
            name=section,
            title=title.strip() if isinstance(title, str) and title.strip() else default_title,
            description=description.strip() if isinstance(description, str) else summarize(fm.body),
        )

    def _partition(self, include_drafts: bool, errors: list[ContentError] | None) -> tuple[list[Article], list[Article]]:
        published: list[Article] = []
        drafts: list[Article] = []
        for content_path in self.list_paths():
            try:
                article = self.read_article(content_path)
            except ContentError as e:
                if errors is None:
                    raise
                errors.append(e)
                continue
            if article.draft and not include_drafts:
                drafts.append(article)
            else:
                published.append(article)

        urls: dict[str, str] = {}
        for a in sorted(published, key=lambda x: x.path):
            for url in (a.url, *a.aliases):
                if url in urls and urls[url] != a.path:
                    e = ContentError("url_conflict", a.path)
                    if errors is None:
                        raise e
                    errors.append(e)
                urls.setdefault(url, a.path)
        return published, drafts

    def load(self, include_drafts: bool = False) -> ContentSet:
        published, drafts = self._partition(include_drafts, errors=None)
        published = sort_articles(published)
        sections = {s: self.read_section(s) for s in sorted({a.section for a in published if a.section})}
        sections[""] = self.read_section("")
        warnings = series_warnings(published)
        for w in warnings:
            logger.warning("series_order", extra={"detail": w})
        return ContentSet(
            published=published,
            drafts=sorted(drafts, key=lambda a: a.path),
            sections=sections,
            warnings=warnings,
        )

    def check(self) -> tuple[list[ContentError], list[str]]:
        errors: list[ContentError] = []
        published, _drafts = self._partition(include_drafts=False, errors=errors)
        return errors, series_warnings(published)
