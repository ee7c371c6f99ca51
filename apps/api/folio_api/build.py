from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from markupsafe import Markup

from .config import SiteConfig
from .content import ContentTree, LastmodSource
from .domain.entities import Article, ContentSet, SectionMeta
from .domain.exceptions import BuildError, ContentError, PathError
from .feeds import render_rss, render_sitemap
from .minify import minify_html, minify_xml
from .modules import resolve_theme_dir
from .parsing import render_markdown, slugify
from .render import TemplateRenderer
from .util import list_files, staging_path, swap_directory, tree_digest

REQUIRED_LAYOUTS = ("single.html", "list.html", "index.html")

_REDIRECT_HTML = (
    '<!doctype html><html lang="{lang}"><head><title>{url}</title>'
    '<link rel="canonical" href="{url}"><meta name="robots" content="noindex">'
    '<meta charset="utf-8"><meta http-equiv="refresh" content="0; url={url}"></head></html>\n'
)

logger = logging.getLogger("folio.build")


@dataclass(frozen=True)
class Term:
    name: str
    slug: str
    url: str
    pages: list[Article]


@dataclass(frozen=True)
class BuildReport:
    output_dir: Path
    pages: list[str]
    drafts_skipped: list[str]
    files: int
    warnings: list[str]
    digest: str
    duration_ms: float


class _OutputWriter:
    def __init__(self, root: Path, minify: bool) -> None:
        self.root = root
        self.minify = minify
        self.written: set[str] = set()

    def page(self, url: str, html: str) -> None:
        rel = url.strip("/")
        self.file(f"{rel}/index.html" if rel else "index.html", html)

    def file(self, rel_path: str, text: str) -> None:
        if rel_path in self.written:
            raise BuildError(f"output_conflict:{rel_path}")
        self.written.add(rel_path)
        if self.minify:
            if rel_path.endswith(".html"):
                text = minify_html(text)
            elif rel_path.endswith(".xml"):
                text = minify_xml(text)
        target = self.root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(text.encode("utf-8"))


def collect_terms(taxonomy: str, articles: list[Article]) -> list[Term]:
    names: dict[str, str] = {}
    pages: dict[str, list[Article]] = {}
    for a in articles:
        for name in a.terms(taxonomy):
            slug = slugify(name)
            if not slug:
                continue
            names.setdefault(slug, name)
            bucket = pages.setdefault(slug, [])
            if a not in bucket:
                bucket.append(a)
    return [
        Term(name=names[slug], slug=slug, url=f"/{taxonomy}/{slug}/", pages=pages[slug])
        for slug in sorted(names)
    ]


class SiteBuilder:
    def __init__(
        self,
        site_dir: Path,
        site: SiteConfig,
        *,
        minify: bool = False,
        build_drafts: bool = False,
        lastmod_source: LastmodSource | None = None,
    ) -> None:
        self.site_dir = site_dir
        self.site = site
        self.minify = minify
        self.build_drafts = build_drafts
        self.lastmod_source = lastmod_source

    def build(self, output_dir: Path) -> BuildReport:
        start = time.perf_counter()
        theme_dir = resolve_theme_dir(self.site_dir, self.site.theme)
        renderer = TemplateRenderer([self.site_dir / "layouts", theme_dir / "layouts"], self.site)
        for name in REQUIRED_LAYOUTS:
            if not renderer.has(name):
                raise BuildError(f"template_missing:{name}")

        try:
            content = ContentTree(self.site_dir, self.lastmod_source).load(include_drafts=self.build_drafts)
        except (ContentError, PathError) as e:
            raise BuildError(str(e)) from e

        # Render into a sibling directory; the previous output is only replaced on success.
        staging = staging_path(output_dir, "build")
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        try:
            self._copy_static(theme_dir, staging)
            writer = _OutputWriter(staging, self.minify)
            self._render(renderer, content, writer)
            digest = tree_digest(staging)
            files = len(list_files(staging))
            swap_directory(staging, output_dir)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        report = BuildReport(
            output_dir=output_dir,
            pages=[a.url for a in content.published],
            drafts_skipped=[a.path for a in content.drafts],
            files=files,
            warnings=content.warnings,
            digest=digest,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        logger.info(
            "build_complete",
            extra={
                "pages": len(report.pages),
                "drafts_skipped": len(report.drafts_skipped),
                "files": report.files,
                "digest": report.digest,
                "ms": report.duration_ms,
            },
        )
        return report

    def _copy_static(self, theme_dir: Path, dest: Path) -> None:
        for static in (theme_dir / "static", self.site_dir / "static"):
            if static.is_dir():
                shutil.copytree(static, dest, dirs_exist_ok=True)

    def _list_context(
        self,
        title: str,
        pages: list[Article],
        kind: str,
        section: SectionMeta | None = None,
        term: Term | None = None,
    ) -> dict[str, Any]:
        return {"title": title, "pages": pages, "kind": kind, "section": section, "term": term}

    def _render(self, renderer: TemplateRenderer, content: ContentSet, writer: _OutputWriter) -> None:
        published = content.published
        home = content.sections.get("") or SectionMeta(name="", title="", description="")
        sections = [m for name, m in sorted(content.sections.items()) if name]

        for a in published:
            siblings = [p for p in published if p.section == a.section]
            idx = siblings.index(a)
            html = renderer.render(
                "single.html",
                title=a.title,
                page=a,
                content=Markup(render_markdown(a.body_markdown)),
                series_parts=content.series(a.series) if a.series else [],
                newer=siblings[idx - 1] if idx > 0 else None,
                older=siblings[idx + 1] if idx + 1 < len(siblings) else None,
            )
            writer.page(a.url, html)
            for alias in a.aliases:
                writer.page(alias, _REDIRECT_HTML.format(lang=self.site.language_code, url=self.site.absurl(a.url)))

        writer.page(
            "/",
            renderer.render(
                "index.html",
                title=home.title or self.site.title,
                # Top-level pages such as about.md are not posts.
                pages=[a for a in published if a.section],
                sections=sections,
                section=home,
            ),
        )

        for meta in sections:
            section_pages = [a for a in published if a.section == meta.name]
            writer.page(f"/{meta.name}/", renderer.render("list.html", **self._list_context(meta.title, section_pages, "section", section=meta)))

        has_taxonomy = renderer.has("taxonomy.html")
        term_template = "term.html" if renderer.has("term.html") else "list.html"
        for singular, plural in sorted(self.site.taxonomies.items(), key=lambda kv: kv[1]):
            terms = collect_terms(plural, published)
            if not terms:
                continue
            if has_taxonomy:
                writer.page(
                    f"/{plural}/",
                    renderer.render("taxonomy.html", title=plural.title(), taxonomy=plural, singular=singular, terms=terms),
                )
            for term in terms:
                writer.page(term.url, renderer.render(term_template, **self._list_context(term.name, term.pages, "term", term=term)))

        series_template = "series.html" if renderer.has("series.html") else "list.html"
        for name in sorted({a.series for a in published if a.series}):
            slug = slugify(name)
            if not slug:
                continue
            writer.page(f"/series/{slug}/", renderer.render(series_template, **self._list_context(name, content.series(name), "series")))

        if renderer.has("404.html"):
            writer.file("404.html", renderer.render("404.html", title="Page not found"))

        writer.file("sitemap.xml", render_sitemap(self._sitemap_entries(published, sections)))
        writer.file("index.xml", render_rss(self.site, published, feed_url=self.site.absurl("/index.xml")))

    def _sitemap_entries(self, published: list[Article], sections: list[SectionMeta]):
        lastmods = [a.lastmod for a in published if a.lastmod is not None]
        entries = [(self.site.absurl("/"), max(lastmods) if lastmods else None)]
        for meta in sections:
            section_mods = [a.lastmod for a in published if a.section == meta.name and a.lastmod is not None]
            entries.append((self.site.absurl(f"/{meta.name}/"), max(section_mods) if section_mods else None))
        for a in sorted(published, key=lambda x: x.url):
            entries.append((self.site.absurl(a.url), a.lastmod))
        return entries
