from folio_api.minify import minify_html, minify_xml
from folio_api.parsing import render_markdown


def test_minify_html_drops_comments_and_block_gaps() -> None:
    html = "<html>\n  <!-- nav -->\n  <body>\n    <p>Hello   there</p>\n  </body>\n</html>\n"
    assert minify_html(html) == "<html><body><p>Hello there</p></body></html>\n"


def test_minify_html_keeps_inline_spacing() -> None:
    assert minify_html("<p><b>a</b> <i>b</i></p>") == "<p><b>a</b> <i>b</i></p>\n"


def test_minify_html_preserves_pre_and_script() -> None:
    html = "<div>\n  <pre>  line 1\n    line 2</pre>\n  <script>var a  =  1;\n</script>\n</div>"
    out = minify_html(html)
    assert "<pre>  line 1\n    line 2</pre>" in out
    assert "<script>var a  =  1;\n</script>" in out


def test_minify_html_keeps_conditional_comments() -> None:
    assert "<!--[if IE]>" in minify_html("<head>\n<!--[if IE]><p>old</p><![endif]-->\n</head>")


def test_minify_xml() -> None:
    xml = "<?xml version='1.0'?>\n<urlset>\n  <url>\n    <loc>x</loc>\n  </url>\n</urlset>\n"
    assert minify_xml(xml) == "<?xml version='1.0'?><urlset><url><loc>x</loc></url></urlset>\n"


def test_minify_html_keeps_soft_break_between_inline_tags() -> None:
    html = render_markdown("**alpha**\n*beta*\n")
    assert minify_html(html) == "<p><strong>alpha</strong> <em>beta</em></p>\n"


def test_minify_html_line_break_after_inline_tag_becomes_space() -> None:
    html = "<p>\n  <a href=\"/x/\">x</a>\n  <a href=\"/y/\">y</a>\n</p>\n"
    assert minify_html(html) == '<p><a href="/x/">x</a> <a href="/y/">y</a></p>\n'
