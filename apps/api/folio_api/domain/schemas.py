from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from .entities import Article


class PostSummaryOut(BaseModel):
    title: str
    slug: str
    path: str
    url: str
    section: str
    date: Optional[str] = None
    lastmod: Optional[str] = None
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    draft: bool = False
    series: Optional[str] = None
    series_order: Optional[int] = None

    @classmethod
    def from_article(cls, a: Article) -> "PostSummaryOut":
        return cls(**_summary_fields(a))


class PostDetailOut(PostSummaryOut):
    aliases: list[str] = Field(default_factory=list)
    frontmatter: dict[str, Any] = Field(default_factory=dict)
    content_markdown: str
    content_html: str
    content_hash: str

    @classmethod
    def from_article(cls, a: Article, content_html: str = "") -> "PostDetailOut":
        return cls(
            **_summary_fields(a),
            aliases=a.aliases,
            frontmatter={k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in a.frontmatter.items()},
            content_markdown=a.body_markdown,
            content_html=content_html,
            content_hash=a.content_hash,
        )


def _summary_fields(a: Article) -> dict[str, Any]:
    return {
        "title": a.title,
        "slug": a.slug,
        "path": a.path,
        "url": a.url,
        "section": a.section,
        "date": a.date.isoformat() if a.date else None,
        "lastmod": a.lastmod.isoformat() if a.lastmod else None,
        "description": a.description,
        "tags": a.tags,
        "categories": a.categories,
        "draft": a.draft,
        "series": a.series,
        "series_order": a.series_order,
    }


class SeriesOut(BaseModel):
    name: str
    parts: list[PostSummaryOut] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class StageOut(BaseModel):
    name: str
    status: str
    started_at: Optional[str] = None
    duration_ms: float = 0.0
    error: Optional[str] = None
    detail: dict[str, Any] = Field(default_factory=dict)


class RunOut(BaseModel):
    id: str
    trigger: str
    ref: Optional[str] = None
    commit: Optional[str] = None
    status: str
    created_at: str
    finished_at: Optional[str] = None
    error: Optional[str] = None
    stages: list[StageOut] = Field(default_factory=list)


class RunTriggerIn(BaseModel):
    commit: Optional[str] = None


class HookAckOut(BaseModel):
    ok: bool = True
    ignored: bool = False
    reason: Optional[str] = None
    run_id: Optional[str] = None
