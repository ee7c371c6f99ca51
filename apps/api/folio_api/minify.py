from __future__ import annotations

import re

_PRESERVE_RE = re.compile(r"<(pre|textarea|script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--(?!\[if).*?-->", re.DOTALL)
# A tag, then whitespace spanning a line break, then the next tag (not consumed).
_TAG_GAP_RE = re.compile(r"(<[!/]?([A-Za-z][\w:-]*)[^<>]*>)\s*\n\s*(?=<[!/]?([A-Za-z][\w:-]*))")
_XML_GAP_RE = re.compile(r">\s*\n\s*<")
_WS_RE = re.compile(r"\s+")

BLOCK_TAGS = frozenset(
    """
    doctype html head body title meta link base script style noscript
    p div ul ol li dl dt dd h1 h2 h3 h4 h5 h6 hr br pre blockquote figure figcaption
    article nav header footer main aside section address form fieldset
    table caption thead tbody tfoot tr td th colgroup col
    """.split()
)


def _gap(m: re.Match) -> str:
    before, after = m.group(2).lower(), m.group(3).lower()
    if before in BLOCK_TAGS or after in BLOCK_TAGS:
        return m.group(1)
    return m.group(1) + " "


def _squeeze(segment: str) -> str:
    segment = _COMMENT_RE.sub("", segment)
    segment = _TAG_GAP_RE.sub(_gap, segment)
    return _WS_RE.sub(" ", segment)


def minify_html(text: str) -> str:
    """Collapse whitespace and drop comments outside of <pre>, <textarea>, <script> and <style>.

    A line break next to a block-level tag is removed. Between two inline tags it
    becomes a single space, since the browser renders it as one.
    """
    out: list[str] = []
    pos = 0
    for m in _PRESERVE_RE.finditer(text):
        out.append(_squeeze(text[pos : m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(_squeeze(text[pos:]))
    return "".join(out).strip() + "\n"


def minify_xml(text: str) -> str:
    return _XML_GAP_RE.sub("><", _COMMENT_RE.sub("", text)).strip() + "\n"
