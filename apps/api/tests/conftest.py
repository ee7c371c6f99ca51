from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from folio_api.dependencies import get_content, get_run_queue, get_settings

SINGLE = """<!doctype html>
<html lang="{{ site.language_code }}">
<head>
  <title>{{ title }} | {{ site.title }}</title>
  <meta name="description" content="{{ page.description }}">
</head>
<body>
  <!-- single page -->
  <article>
    <h1>{{ page.title }}</h1>
    {% if page.date %}<time datetime="{{ page.date | isoformat }}">{{ page.date | date }}</time>{% endif %}
    {{ content }}
    {% for tag in page.tags %}
    <a class="tag" href="{{ ('/tags/' ~ (tag | slugify) ~ '/') | absurl }}">{{ tag }}</a>
    {% endfor %}
    {% if series_parts %}
    <ol class="series">
      {% for p in series_parts %}<li><a href="{{ p.url }}">{{ p.title }}</a></li>{% endfor %}
    </ol>
    {% endif %}
  </article>
</body>
</html>
"""

LIST = """<!doctype html>
<html>
<head><title>{{ title }} | {{ site.title }}</title></head>
<body>
  <h1>{{ title }}</h1>
  <ul>
    {% for p in pages %}
    <li><a href="{{ p.url }}">{{ p.title }}</a></li>
    {% endfor %}
  </ul>
</body>
</html>
"""

INDEX = """<!doctype html>
<html>
<head><title>{{ title }}</title></head>
<body>
  <nav>{% for s in sections %}<a href="/{{ s.name }}/">{{ s.title }}</a>{% endfor %}</nav>
  <ul>
    {% for p in pages %}
    <li><a href="{{ p.url }}">{{ p.title }}</a></li>
    {% endfor %}
  </ul>
</body>
</html>
"""

SITE_YAML = """title: Field Notes
base_url: https://example.org/
theme: paper
description: Notes on software architecture
"""


def article(title: str, body: str = "Body text.\n", **fields) -> str:
    lines = [f"title: {title!r}"]
    for key, value in fields.items():
        if isinstance(value, bool):
            lines.append(f"{key}: {'true' if value else 'false'}")
        elif isinstance(value, list):
            lines.append(f"{key}: [{', '.join(value)}]")
        else:
            lines.append(f"{key}: {value}")
    return "---\n" + "\n".join(lines) + "\n---\n\n" + body


def write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def write_theme(site_dir: Path, name: str = "paper") -> Path:
    theme = site_dir / "themes" / name
    write(theme, "layouts/single.html", SINGLE)
    write(theme, "layouts/list.html", LIST)
    write(theme, "layouts/index.html", INDEX)
    write(theme, "static/css/site.css", "body { margin: 0; }\n")
    return theme


def output_text(root: Path) -> str:
    return "\n".join(p.read_text(encoding="utf-8") for p in sorted(root.rglob("*")) if p.is_file())


def git(cwd: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.org", "-c", "protocol.file.allow=always", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return proc.stdout.strip()


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    site = tmp_path / "site"
    write(site, "site.yaml", SITE_YAML)
    write_theme(site)
    write(site, "content/posts/hello-world.md", article("Hello World", date="2024-01-10", tags=["python", "blog"]))
    write(site, "content/posts/layers.md", article("Layers", "On layered architecture.\n", date="2024-02-01", categories=["architecture"]))
    write(site, "content/posts/wip.md", article("Draft Post", date="2024-03-01", draft=True))
    write(site, "content/about.md", article("About", "Who writes this.\n"))
    return site


@pytest.fixture(autouse=True)
def clear_dependency_caches():
    for fn in (get_settings, get_content, get_run_queue):
        fn.cache_clear()
    yield
    for fn in (get_settings, get_content, get_run_queue):
        fn.cache_clear()
