import shutil
from pathlib import Path

import pytest
from conftest import article, output_text, write

from folio_api.build import SiteBuilder
from folio_api.config import load_site_config
from folio_api.domain.exceptions import BuildError
from folio_api.util import list_files, tree_digest


def _builder(site_dir, **kwargs) -> SiteBuilder:
    return SiteBuilder(site_dir, load_site_config(site_dir), **kwargs)


def test_draft_post_is_not_published_anywhere(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    report = _builder(site_dir).build(out)

    assert report.drafts_skipped == ["posts/wip.md"]
    assert not (out / "posts" / "wip").exists()
    assert "Draft Post" not in output_text(out)


def test_every_published_article_yields_exactly_one_page(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    report = _builder(site_dir).build(out)

    assert sorted(report.pages) == ["/about/", "/posts/hello-world/", "/posts/layers/"]
    for url in report.pages:
        page = out / url.strip("/") / "index.html"
        assert page.exists()
    singles = [p for p in list_files(out) if p.endswith("index.html") and "<article>" in (out / p).read_text()]
    assert len(singles) == 3


def test_build_with_drafts_renders_them(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    _builder(site_dir, build_drafts=True).build(out)
    assert (out / "posts" / "wip" / "index.html").exists()


def test_rebuild_is_byte_identical(site_dir, tmp_path) -> None:
    first = _builder(site_dir, minify=True).build(tmp_path / "a")
    second = _builder(site_dir, minify=True).build(tmp_path / "b")
    assert first.digest == second.digest
    assert tree_digest(tmp_path / "a") == tree_digest(tmp_path / "b")


def test_lists_taxonomies_feeds_and_static(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    _builder(site_dir).build(out)

    files = list_files(out)
    assert "index.html" in files
    assert "posts/index.html" in files
    assert "tags/python/index.html" in files
    assert "categories/architecture/index.html" in files
    assert "css/site.css" in files

    sitemap = (out / "sitemap.xml").read_text()
    assert "<loc>https://example.org/posts/layers/</loc>" in sitemap
    rss = (out / "index.xml").read_text()
    assert "<title>Hello World</title>" in rss
    assert "<link>https://example.org/posts/hello-world/</link>" in rss

    single = (out / "posts" / "hello-world" / "index.html").read_text()
    assert 'href="https://example.org/tags/python/"' in single


def test_series_and_alias_pages(site_dir, tmp_path) -> None:
    write(site_dir, "content/posts/p1.md", article("Part 1", date="2024-04-01", series="[arch]", series_order=1))
    write(site_dir, "content/posts/p2.md", article("Part 2", date="2024-04-02", series="[arch]", series_order=2, aliases=["/old/p2"]))
    out = tmp_path / "public"
    _builder(site_dir).build(out)

    series_page = (out / "series" / "arch" / "index.html").read_text()
    assert series_page.index("Part 1") < series_page.index("Part 2")
    redirect = (out / "old" / "p2" / "index.html").read_text()
    assert 'content="0; url=https://example.org/posts/p2/"' in redirect
    part2 = (out / "posts" / "p2" / "index.html").read_text()
    assert 'class="series"' in part2


def test_site_layouts_override_theme(site_dir, tmp_path) -> None:
    write(site_dir, "layouts/list.html", "<p>custom {{ title }}</p>\n")
    out = tmp_path / "public"
    _builder(site_dir).build(out)
    assert (out / "posts" / "index.html").read_text() == "<p>custom Posts</p>\n"


def test_minify_strips_comments_and_line_gaps(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    _builder(site_dir, minify=True).build(out)
    html = (out / "posts" / "hello-world" / "index.html").read_text()
    assert "<!--" not in html
    assert ">\n" not in html.rstrip("\n")


def test_missing_theme_fails_build(site_dir, tmp_path) -> None:
    shutil.rmtree(site_dir / "themes" / "paper")
    (site_dir / "themes" / "paper").mkdir()  # an uninitialised submodule is an empty directory
    with pytest.raises(BuildError) as exc:
        _builder(site_dir).build(tmp_path / "public")
    assert str(exc.value) == "theme_missing:paper"


def test_missing_required_layout_fails_build(site_dir, tmp_path) -> None:
    (site_dir / "themes" / "paper" / "layouts" / "single.html").unlink()
    with pytest.raises(BuildError) as exc:
        _builder(site_dir).build(tmp_path / "public")
    assert str(exc.value) == "template_missing:single.html"


def test_failed_build_leaves_previous_output_untouched(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    _builder(site_dir).build(out)
    before = tree_digest(out)

    write(site_dir, "content/posts/hello-world.md", article("Hello World", "{{ broken"))
    write(site_dir, "themes/paper/layouts/single.html", "{{ page.missing_field }}")
    with pytest.raises(BuildError):
        _builder(site_dir).build(out)

    assert tree_digest(out) == before
    assert [p.name for p in tmp_path.iterdir() if p.name.startswith(".public")] == []


def test_content_error_surfaces_as_build_error(site_dir, tmp_path) -> None:
    write(site_dir, "content/posts/bad.md", "---\ntitle: [oops\n---\n")
    with pytest.raises(BuildError) as exc:
        _builder(site_dir).build(tmp_path / "public")
    assert str(exc.value) == "frontmatter_yaml_error:posts/bad.md"


def test_bundled_site_builds(tmp_path) -> None:
    site = Path(__file__).resolve().parents[3] / "site"
    out = tmp_path / "public"
    report = _builder(site, minify=True).build(out)

    assert report.drafts_skipped == ["posts/draft-post.md"]
    assert "Draft Post" not in output_text(out)
    files = list_files(out)
    for rel in (
        "index.html",
        "404.html",
        "tags/index.html",
        "tags/architecture/index.html",
        "series/layered-architecture/index.html",
        "posts/adapters/index.html",
        "css/site.css",
    ):
        assert rel in files


def test_home_page_lists_only_section_articles(site_dir, tmp_path) -> None:
    out = tmp_path / "public"
    _builder(site_dir).build(out)
    home = (out / "index.html").read_text()
    assert "Hello World" in home
    assert "Layers" in home
    assert "About" not in home
    assert (out / "about" / "index.html").exists()
