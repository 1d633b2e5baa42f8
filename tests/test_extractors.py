import pytest

from gitify import (
    HTML_REFERENCE_RULES,
    ReferenceKind,
    normalize_js,
    regex_allowed,
    scan_css,
    scan_html,
    scan_javascript,
    unescape_css,
    unescape_js,
)

BASE = "https://x/y/"


# -------------------- escapes --------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        (r"x\2e png", "x.png"),
        (r"\61\62 c", "abc"),
        (r"\000041", "A"),
        (r"\110000", "\ufffd"),
        (r"\0", "\ufffd"),
        (r"a\)b", r"a\)b"),
    ],
)
def test_unescape_css(raw, expected):
    assert unescape_css(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        (r"\101", "A"),
        (r"\0", "\x00"),
        (r"\8", "8"),
        (r"\x2f", "/"),
        (r"a", "a"),
        (r"\u{1F600}", "\U0001F600"),
        (r"\uD83D\uDE00", "\U0001F600"),
        (r"\uD800x", "\ufffdx"),
        (r"\u{110000}", "\ufffd"),
        (r"a\n\t\b\f\v\r", "a\n\t\b\f\v\r"),
        ("line\\\ncontinued", "linecontinued"),
        (r"\q\'\"", "q'\""),
        (r"\x4", "x4"),
    ],
)
def test_unescape_js(raw, expected):
    assert unescape_js(raw) == expected


# -------------------- HTML --------------------


def test_html_src_and_srcset():
    html = '<img src="a.png"><img srcset="b.png 1x, c.png 2x">'
    assert scan_html(BASE, html) == [
        "https://x/y/a.png",
        "https://x/y/b.png",
        "https://x/y/c.png",
    ]


def test_html_srcset_comma_needs_adjacent_whitespace():
    html = '<img srcset="a.png 1x,b.png 2x"><img srcset="c.png ,d.png">'
    assert scan_html(BASE, html) == [
        "https://x/y/a.png",
        "https://x/y/c.png",
        "https://x/y/d.png",
    ]


def test_html_base_element_overrides_document_url():
    html = '<head><base href="/assets/"></head><img src="i.png"><a ping="p1 p2">x</a>'
    links = scan_html("https://x/y/page.html", html)
    assert "https://x/assets/i.png" in links
    assert "https://x/assets/p1" in links
    assert "https://x/assets/p2" in links


def test_html_ping_is_split_on_html_whitespace():
    html = '<a href="a.html" ping="\tone  two\nthree "></a>'
    assert scan_html(BASE, html) == [
        "https://x/y/a.html",
        "https://x/y/one",
        "https://x/y/two",
        "https://x/y/three",
    ]


def test_html_rule_table_covers_each_kind():
    kinds = {rule.kind for rule in HTML_REFERENCE_RULES}
    assert kinds == set(ReferenceKind)
    needs_resolving = [
        (r.element, r.attribute)
        for r in HTML_REFERENCE_RULES
        if r.kind is ReferenceKind.SINGLE_NEEDS_RESOLVING
    ]
    assert needs_resolving == [("link", "id"), ("script", "id")]


def test_html_misc_elements():
    html = """
    <link rel="preload" imagesrcset="hero-1.jpg 1x, hero-2.jpg 2x" href="hero.jpg">
    <video src="v.mp4" poster="poster.jpg"></video>
    <object data="flash.swf"></object>
    <form action="submit.php"><button formaction="alt.php">go</button></form>
    <blockquote cite="quote.html"></blockquote>
    <script id="js/versioned.js" src="loader.js"></script>
    <picture><source srcset="wide.webp 800w"></picture>
    """
    links = set(scan_html(BASE, html))
    for name in (
        "hero.jpg",
        "hero-1.jpg",
        "hero-2.jpg",
        "v.mp4",
        "poster.jpg",
        "flash.swf",
        "submit.php",
        "alt.php",
        "quote.html",
        "js/versioned.js",
        "loader.js",
        "wide.webp",
    ):
        assert BASE + name in links


def test_html_inline_bodies_are_not_scanned():
    html = (
        '<style>body{background:url(bg.png)}</style>'
        '<script>var a = "x.png";</script>'
        '<iframe srcdoc="<img src=inner.png>"></iframe>'
        '<meta http-equiv="refresh" content="0; url=next.html">'
    )
    assert scan_html(BASE, html) == []


def test_html_unparseable_values_are_skipped():
    html = '<a href="http://[broken">x</a><img src="ok.png">'
    assert scan_html(BASE, html) == ["https://x/y/ok.png"]


def test_html_malformed_markup_degrades():
    links = scan_html(BASE, "<div><p><img src=a.png><a href=b.html>unclosed")
    assert "https://x/y/b.html" in links


# -------------------- CSS --------------------


def test_css_hex_escape_in_quoted_url():
    css = r".a{background:url( 'img/x\2e png' )}"
    assert scan_css("https://x/y/style.css", css) == ["https://x/y/img/x.png"]


def test_css_quote_styles_and_comments():
    css = """
    /* url(ignored.png) */
    .a { background: url(plain.png) }
    .b { background: url("double.png") }
    .c { background: url(  'single.png'  ) }
    """
    assert scan_css("https://x/y/css/site.css", css) == [
        "https://x/y/css/plain.png",
        "https://x/y/css/double.png",
        "https://x/y/css/single.png",
    ]


def test_css_unterminated_comment_runs_to_end():
    css = ".a{b:url(x.png)} /* .c{d:url(y.png)}"
    assert scan_css(BASE, css) == ["https://x/y/x.png"]


def test_css_mismatched_quote_is_discarded():
    assert scan_css(BASE, ".a{b:url('abc)}") == []
    assert scan_css(BASE, '.a{b:url("abc)}') == []


def test_css_escaped_quote_inside_string():
    assert scan_css(BASE, r'.a{b:url("a\"b.png")}') == ['https://x/y/a\\"b.png']


def test_css_absolute_and_root_relative():
    css = "@font-face{src:url(/fonts/f.woff2)} .a{b:url(https://cdn.example/x.png)}"
    assert scan_css(BASE, css) == [
        "https://x/fonts/f.woff2",
        "https://cdn.example/x.png",
    ]


# -------------------- JavaScript --------------------


def test_js_import_string_and_division():
    js = 'import a from "./mod.js"; const s = "icon.svg"; const r = a / b;'
    assert set(scan_javascript("https://x/y/app.js", js)) == {
        "https://x/y/mod.js",
        "https://x/y/icon.svg",
    }


def test_js_division_does_not_swallow_following_string():
    js = 'const r = a / b; const s = "x/y.png";'
    assert scan_javascript(BASE, js) == ["https://x/y/x/y.png"]


def test_js_regex_after_paren_is_skipped():
    js = "s.replace(/[\"']/g, \"\"); load(\"logo.png\");"
    assert scan_javascript(BASE, js) == ["https://x/y/logo.png"]


def test_js_regex_after_keyword_is_skipped():
    js = 'function f(x){return /"/.test(x) ? "a.css" : "b.js"}'
    assert scan_javascript(BASE, js) == ["https://x/y/a.css", "https://x/y/b.js"]


def test_js_import_forms():
    js = (
        'import "./side.js"\n'
        "import * as ns from './ns.mjs';"
        'import {a, b as c} from "./named.js";'
        'import d, { e } from "./both.js";'
        'import x from "./lib"'
    )
    links = scan_javascript("https://x/y/main.js", js)
    for name in ("side.js", "ns.mjs", "named.js", "both.js", "lib"):
        assert "https://x/y/" + name in links


def test_js_comments_are_stripped():
    js = '// "hidden.png"\n/* "also.png" */ var a = "shown.png";'
    assert scan_javascript(BASE, js) == ["https://x/y/shown.png"]


def test_js_extension_filter_and_templates():
    js = (
        'var a = "hello world", b = "a.toolong", c = "data.json";'
        " var t = `tpl.png`; var d = 'single.gif';"
    )
    assert scan_javascript(BASE, js) == [
        "https://x/y/data.json",
        "https://x/y/single.gif",
    ]


def test_js_escapes_in_strings():
    js = r'var p = "img\x2fa.png", q = "b.css";'
    assert scan_javascript(BASE, js) == ["https://x/y/img/a.png", "https://x/y/b.css"]


def test_js_unterminated_string_is_discarded():
    assert scan_javascript(BASE, 'var a = "broken.png') == []


def test_normalize_js_whitespace():
    assert normalize_js("a\t\u00a0b \r\n   c") == "a b\nc"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("/x/", True),
        ("a = (/x/", True),
        ("return /x/", True),
        ("typeof/x/", True),
        ("a + /x/", True),
        ("a++ /x/", False),
        ("a / b", False),
        ("x) /y/", False),
        ("preturn /x/", False),
    ],
)
def test_regex_allowed(text, expected):
    index = text.index("/")
    assert regex_allowed(text, index) is expected
