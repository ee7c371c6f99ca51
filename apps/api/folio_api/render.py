from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)

from .config import SiteConfig
from .domain.exceptions import BuildError
from .parsing import slugify
from .util import rfc3339


def format_date(value: datetime | None, fmt: str = "%Y-%m-%d") -> str:
    if value is None:
        return ""
    return value.strftime(fmt)


def isoformat(value: datetime | None) -> str:
    if value is None:
        return ""
    return rfc3339(value)


class TemplateRenderer:
    """Jinja2 layouts: the site's own `layouts/` overrides the theme's."""

    def __init__(self, layout_dirs: list[Path], site: SiteConfig) -> None:
        self.site = site
        self.env = Environment(
            loader=FileSystemLoader([str(d) for d in layout_dirs if d.is_dir()]),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["date"] = format_date
        self.env.filters["isoformat"] = isoformat
        self.env.filters["slugify"] = slugify
        self.env.filters["absurl"] = site.absurl
        self.env.globals["site"] = site

    def has(self, name: str) -> bool:
        try:
            self.env.get_template(name)
        except TemplateNotFound:
            return False
        except TemplateSyntaxError as e:
            raise BuildError(f"template_error:{name}") from e
        return True

    def render(self, name: str, **context: Any) -> str:
        try:
            template = self.env.get_template(name)
        except TemplateNotFound as e:
            raise BuildError(f"template_missing:{name}") from e
        except TemplateSyntaxError as e:
            raise BuildError(f"template_error:{name}") from e
        try:
            return template.render(**context)
        except TemplateError as e:
            raise BuildError(f"template_error:{name}") from e
