from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

import yaml
from markdown_it import MarkdownIt


@dataclass(frozen=True)
class FrontmatterParse:
    frontmatter: dict
    body: str
    error: str | None


def parse_frontmatter(markdown: str) -> FrontmatterParse:
    markdown = markdown.lstrip("\ufeff")
    if not markdown.startswith("---"):
        return FrontmatterParse(frontmatter={}, body=markdown, error=None)

    first_newline = markdown.find("\n")
    if first_newline == -1:
        return FrontmatterParse(frontmatter={}, body=markdown, error=None)

    first_line = markdown[:first_newline].rstrip("\r")
    if first_line != "---":
        return FrontmatterParse(frontmatter={}, body=markdown, error=None)

    # Find a subsequent line that is exactly `---`
    search_from = first_newline + 1
    while True:
        next_newline = markdown.find("\n", search_from)
        if next_newline == -1:
            line = markdown[search_from:].rstrip("\r")
            if line != "---":
                return FrontmatterParse(frontmatter={}, body=markdown, error=None)
            next_newline = len(markdown)
        else:
            line = markdown[search_from:next_newline].rstrip("\r")
        if line == "---":
            yaml_block = markdown[first_newline + 1 : search_from]
            body = markdown[next_newline + 1 :]
            try:
                parsed = yaml.safe_load(yaml_block) or {}
            except yaml.YAMLError:
                return FrontmatterParse(frontmatter={}, body=markdown, error="frontmatter_yaml_error")
            if not isinstance(parsed, dict):
                return FrontmatterParse(frontmatter={}, body=markdown, error="frontmatter_not_mapping")
            return FrontmatterParse(frontmatter=parsed, body=body, error=None)
        search_from = next_newline + 1


def render_markdown_with_frontmatter(frontmatter: dict, body: str) -> str:
    if not frontmatter:
        return body
    yaml_text = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True).strip("\n")
    return f"---\n{yaml_text}\n---\n\n{body.lstrip()}"


_SLUG_RE = re.compile(r"[^\w]+", re.UNICODE)


def slugify(text: str) -> str:
    slug = _SLUG_RE.sub("-", text.strip().lower())
    return slug.strip("-_").replace("_", "-")


def normalize_tag(tag: str) -> str:
    return " ".join(tag.strip().lstrip("#").split())


def coerce_list(raw: object) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        values = [raw]
    elif isinstance(raw, (list, tuple)):
        values = [v for v in raw if isinstance(v, (str, int, float)) and not isinstance(v, bool)]
    else:
        return []
    out: list[str] = []
    for v in values:
        cleaned = normalize_tag(str(v))
        if cleaned and cleaned not in out:
            out.append(cleaned)
    return out


def coerce_datetime(raw: object) -> datetime | None:
    """YAML gives us datetimes, dates or strings depending on how the author wrote them."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, date):
        value = datetime.combine(raw, time.min)
    elif isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError("date_invalid") from e
    else:
        raise ValueError("date_invalid")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def coerce_bool(raw: object) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    if isinstance(raw, (int, float)):
        return raw != 0
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def _heading_open(self, tokens, idx, options, env):
    token = tokens[idx]
    inline = tokens[idx + 1] if idx + 1 < len(tokens) else None
    base = slugify(inline.content if inline is not None else "") or "section"
    seen = env.setdefault("heading_ids", {})
    count = seen.get(base, 0)
    seen[base] = count + 1
    token.attrSet("id", base if count == 0 else f"{base}-{count}")
    return self.renderToken(tokens, idx, options, env)


_md = MarkdownIt("commonmark", {"html": True}).enable(["table", "strikethrough"])
_md.add_render_rule("heading_open", _heading_open)


def render_markdown(body: str) -> str:
    if not body.strip():
        return ""
    return _md.render(body, {})


def summarize(body: str, *, max_chars: int = 280) -> str:
    """Plain text of the first paragraph, used when an article has no description."""
    tokens = _md.parse(body, {})
    for i, tok in enumerate(tokens):
        if tok.type != "paragraph_open" or i + 1 >= len(tokens):
            continue
        inline = tokens[i + 1]
        parts: list[str] = []
        for child in inline.children or []:
            if child.type in {"text", "code_inline"}:
                parts.append(child.content)
            elif child.type in {"softbreak", "hardbreak"}:
                parts.append(" ")
        text = " ".join("".join(parts).split())
        if not text:
            continue
        if len(text) > max_chars:
            text = text[:max_chars].rsplit(" ", 1)[0].rstrip(" ,.;:") + "…"
        return text
    return ""
