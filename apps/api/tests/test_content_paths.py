import pytest

from folio_api.content import normalize_content_path, normalize_url
from folio_api.domain.exceptions import PathError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("post", "post.md"),
        ("posts/hello", "posts/hello.md"),
        ("posts\\hello.md", "posts/hello.md"),
        ("  posts/hello.md ", "posts/hello.md"),
    ],
)
def test_normalize_content_path(raw: str, expected: str) -> None:
    assert normalize_content_path(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "/abs.md",
        "../escape.md",
        "a/../escape.md",
        ".folio/runs.md",
        "bad\x00name.md",
        "",
    ],
)
def test_normalize_content_path_rejects_invalid(raw: str) -> None:
    with pytest.raises(PathError):
        normalize_content_path(raw)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("about", "/about/"), ("/posts/x/", "/posts/x/"), ("", "/"), ("/", "/")],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected
