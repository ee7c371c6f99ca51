from datetime import date, datetime, timezone

import pytest

from folio_api.parsing import (
    coerce_bool,
    coerce_datetime,
    coerce_list,
    parse_frontmatter,
    render_markdown,
    render_markdown_with_frontmatter,
    slugify,
    summarize,
)


def test_frontmatter_parses_at_byte_zero() -> None:
    md = "---\ntitle: Hello\ntags: [One, Two]\n---\n\nBody\n"
    fm = parse_frontmatter(md)
    assert fm.error is None
    assert fm.frontmatter["title"] == "Hello"
    assert "Body" in fm.body


def test_frontmatter_ignored_when_not_first_line() -> None:
    md = "\n---\ntitle: Hello\n---\nBody\n"
    fm = parse_frontmatter(md)
    assert fm.frontmatter == {}
    assert fm.error is None


def test_frontmatter_yaml_error_is_reported() -> None:
    md = "---\ntitle: [oops\n---\nBody\n"
    fm = parse_frontmatter(md)
    assert fm.frontmatter == {}
    assert fm.error == "frontmatter_yaml_error"


def test_frontmatter_must_be_a_mapping() -> None:
    fm = parse_frontmatter("---\n- a\n- b\n---\nBody\n")
    assert fm.error == "frontmatter_not_mapping"


def test_frontmatter_without_trailing_newline_and_bom() -> None:
    fm = parse_frontmatter("\ufeff---\ntitle: Only\n---")
    assert fm.frontmatter == {"title": "Only"}
    assert fm.body == ""


def test_render_markdown_with_frontmatter_round_trips_keys() -> None:
    text = render_markdown_with_frontmatter({"title": "T", "draft": True}, "\n\nBody\n")
    fm = parse_frontmatter(text)
    assert fm.frontmatter == {"title": "T", "draft": True}
    assert fm.body.strip() == "Body"


def test_render_markdown_assigns_unique_heading_ids() -> None:
    html = render_markdown("# Intro\n\ntext\n\n## Intro\n\n| a | b |\n|---|---|\n| 1 | 2 |\n")
    assert '<h1 id="intro">Intro</h1>' in html
    assert '<h2 id="intro-1">Intro</h2>' in html
    assert "<table>" in html


def test_render_markdown_ids_reset_between_documents() -> None:
    render_markdown("# Intro\n")
    assert 'id="intro"' in render_markdown("# Intro\n")


def test_summarize_uses_first_paragraph_plain_text() -> None:
    body = "# Title\n\nFirst *para* with `code`\nwrapped.\n\nSecond para.\n"
    assert summarize(body) == "First para with code wrapped."


def test_summarize_truncates_on_word_boundary() -> None:
    text = summarize("word " * 100, max_chars=20)
    assert text.endswith("…")
    assert len(text) <= 21


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Hello World", "hello-world"),
        ("  C++ & Rust!  ", "c-rust"),
        ("snake_case_name", "snake-case-name"),
        ("Über Café", "über-café"),
    ],
)
def test_slugify(raw: str, expected: str) -> None:
    assert slugify(raw) == expected


def test_coerce_datetime_accepts_yaml_and_string_forms() -> None:
    assert coerce_datetime(date(2024, 1, 2)) == datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert coerce_datetime("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert coerce_datetime(None) is None
    with pytest.raises(ValueError):
        coerce_datetime("yesterday")


def test_coerce_list_and_bool() -> None:
    assert coerce_list("solo") == ["solo"]
    assert coerce_list(["a", " #b ", "a", True, 3]) == ["a", "b", "3"]
    assert coerce_list({"not": "a list"}) == []
    assert coerce_bool("yes") is True
    assert coerce_bool(None) is False
