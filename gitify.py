#!/usr/bin/env python3
import argparse
import enum
import logging
import re
import subprocess
import sys
from collections import deque
from dataclasses import dataclass, field
from http.cookiejar import DefaultCookiePolicy
from pathlib import Path
from typing import Callable, Deque, Dict, Iterator, List, Optional, Set, Union
from urllib.parse import urljoin, urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup, FeatureNotFound
from requests.adapters import HTTPAdapter
from requests.utils import requote_uri
from urllib3.util.retry import Retry

# -------------------- Config --------------------

DEFAULT_HEADERS = {
    "User-Agent": "gitify/0.1 (static site mirror)",
    "Accept": "*/*",
}

HTTP_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}
INDEX_FILE = "index.html"
COMMIT_MESSAGE = "Automatic sync by gitify"

# C0 controls and space, stripped from both ends of a URL before parsing
URL_STRIP_CHARS = "".join(chr(c) for c in range(0x21))
URL_REMOVED_CHARS_RE = re.compile(r"[\t\n\r]")

HTML_WS_RE = re.compile(r"[\t\n\f\r ]+")
SRCSET_SPLIT_RE = re.compile(r",[\t\n\f\r ]|[\t\n\f\r ],")
SRCSET_URL_RE = re.compile(r"[\t\n\f\r ]*([^\t\n\f\r ]+)")

CSS_COMMENT_RE = re.compile(r"/\*.*?(?:\*/|\Z)", re.DOTALL)
CSS_WS_RE = re.compile(r"[ \t\n\r\f]+")
CSS_URL_RE = re.compile(
    r"""\burl\( ?((?:[^\\ )]|\\.)*|'(?:[^\\']|\\.)*'|"(?:[^\\"]|\\.)*") ?\)""",
    re.DOTALL,
)
CSS_ESCAPE_RE = re.compile(r"\\([0-9A-Fa-f]{1,6}) ?")

JS_COMMENT_RE = re.compile(
    r"/(?:/[^\n\r\u2028\u2029]*|\*.*?(?:\*/|\Z))", re.DOTALL
)
JS_SPACE_RE = re.compile(
    r"[\t\v\f\ufeff \u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]+"
)
JS_LINE_RE = re.compile(r" ?(?:[\n\r\u2028\u2029] ?)+")

_JS_ESCAPED_ID = r"\\u[0-9A-Fa-f]{4}|\\u\{[0-9A-Fa-f]+\}"
_JS_IDENT = (
    rf"(?:(?:[^\W\d]|[$]|{_JS_ESCAPED_ID})"
    rf"(?:[\w$\u200c\u200d]|{_JS_ESCAPED_ID})*)"
)
_JS_STRING = r"""(?:"(?:[^\\"]|\\.)*(?:"|\Z)|'(?:[^\\']|\\.)*(?:'|\Z))"""
_JS_IMPORT_SPECIFIER = (
    rf"(?:{_JS_IDENT}|(?:{_JS_IDENT}[ \n]|{_JS_STRING}[ \n]?)as[ \n]{_JS_IDENT})"
)
# import "m"; import d from "m"; import * as ns from "m";
# import { a, b as c, "s" as d } from "m"; import d, { a } from "m"; ...
JS_IMPORT_RE = re.compile(
    r"(?:\A|(?<=[;\n])) ?import"
    rf"(?:(?:[ \n]{_JS_IDENT}"
    rf"|(?:[ \n]{_JS_IDENT}[ \n]?,)?"
    rf"(?:[ \n]?\*[ \n]?as[ \n]{_JS_IDENT}"
    rf"|[ \n]?\{{(?:[ \n]?{_JS_IMPORT_SPECIFIER}[ \n]?,)*"
    rf"(?:[ \n]?{_JS_IMPORT_SPECIFIER})?[ \n]?\}}))"
    r"(?:[ \n]|\b)from)?"
    rf"[ \n]?({_JS_STRING}) ?(?:\Z|(?=[;\n]))",
    re.DOTALL,
)
# Priority order: "...", '...', `...`, /regexp/
JS_TOKEN_RE = re.compile(
    r'"(?:[^\\"]|\\.)*(?:"|\Z)'
    r"|'(?:[^\\']|\\.)*(?:'|\Z)"
    r"|`(?:[^\\`]|\\.)*(?:`|\Z)"
    r"|/(?:[^\\/\[]|\\.|\[(?:[^\\\]]|\\.)*\])*/",
    re.DOTALL,
)
JS_REGEX_KEYWORDS = (
    "break",
    "case",
    "continue",
    "delete",
    "do",
    "else",
    "finally",
    "in",
    "instanceof",
    "return",
    "throw",
    "try",
    "typeof",
    "void",
)
JS_REGEX_PUNCTUATORS = frozenset("/,*!%&(:;<>?[^{|}~")
JS_FILE_EXT_RE = re.compile(r"\.[0-9A-Za-z]{1,4}\Z")
JS_ESCAPE_RE = re.compile(
    r"\\(?:(?P<oct>[0-3][0-7]{2}|[0-7]{1,2})"
    r"|x(?P<hex>[0-9A-Fa-f]{2})"
    r"|u(?P<unit>[0-9A-Fa-f]{4})"
    r"|u\{(?P<codepoint>[0-9A-Fa-f]+)\}"
    r"|(?P<char>.))",
    re.DOTALL,
)
JS_NAMED_ESCAPES = {
    "\n": "",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}
LONE_SURROGATE_RE = re.compile("[\ud800-\udfff]")
REPLACEMENT_CHAR = "\ufffd"

# -------------------- Errors --------------------


class ConfigError(ValueError):
    """Invalid base URL, root or configuration file."""


class WorkspaceError(RuntimeError):
    """The output workspace is dirty or a git command failed."""


# -------------------- Settings --------------------


@dataclass
class Settings:
    base_url: str = ""
    roots: List[str] = field(default_factory=lambda: [""])
    output_dir: str = "out"
    branch: str = "master"
    use_original_names: bool = False
    no_git_commit: bool = False
    output_manifest: Optional[str] = None
    commit_message: str = COMMIT_MESSAGE

    # HTTP
    timeout: float = 30.0
    retries: int = 0

    verbose: bool = False


# -------------------- Utils --------------------


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def media_type(content_type: Optional[str]) -> Optional[str]:
    if content_type is None:
        return None
    return content_type.split(";")[0].strip().lower()


def decode_body(body: bytes, content_type: Optional[str]) -> str:
    charset = None
    for param in (content_type or "").split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            charset = value.strip().strip("\"'")
    if charset:
        try:
            return body.decode(charset, errors="replace")
        except LookupError:
            logging.debug("unknown charset %r, decoding as utf-8", charset)
    return body.decode("utf-8", errors="replace")


def resolve_url(base: str, ref: str) -> Optional[str]:
    """Resolve *ref* against *base* the way a browser parses an attribute URL.

    Leading and trailing controls/spaces are dropped and embedded tabs and
    newlines removed. Returns ``None`` when the result cannot be parsed.
    """
    ref = URL_REMOVED_CHARS_RE.sub("", ref.strip(URL_STRIP_CHARS))
    try:
        return urljoin(base, ref)
    except ValueError:
        return None


def remove_dot_segments(path: str) -> str:
    segments = path.split("/")
    out: List[str] = []
    for i, seg in enumerate(segments):
        dots = seg.lower().replace("%2e", ".")
        if dots in (".", ".."):
            if dots == ".." and len(out) > 1:
                out.pop()
            if i == len(segments) - 1:
                out.append("")
        else:
            out.append(seg)
    return "/".join(out)


def canonical_url(url: str) -> str:
    """Drop query and fragment and normalise the path of an absolute URL.

    Raises ``ValueError`` for URLs that cannot be split.
    """
    parts = urlsplit(url)
    path = requote_uri(remove_dot_segments(parts.path or "/"))
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def request_url(url: str) -> str:
    # credentials are never sent
    parts = urlsplit(url)
    netloc = parts.netloc.rpartition("@")[2]
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, ""))


def _origin(url: str):
    p = urlsplit(url)
    return (
        p.scheme,
        p.username,
        p.password,
        p.hostname,
        p.port or DEFAULT_PORTS.get(p.scheme),
    )


def relative_path(base_url: str, url: str) -> Optional[str]:
    """Path of *url* relative to *base_url*, or ``None`` if it lies outside."""
    try:
        if _origin(url) != _origin(base_url):
            return None
    except ValueError:
        # invalid port
        return None
    base_path = urlsplit(base_url).path or "/"
    path = urlsplit(url).path or "/"
    if not path.startswith(base_path):
        return None
    return path[len(base_path) :]


def validate_base_url(url: Optional[str]) -> str:
    try:
        parts = urlsplit(url or "")
        parts.port
    except ValueError as e:
        raise ConfigError("Invalid base URL format") from e
    if not parts.scheme or not parts.netloc:
        raise ConfigError("Invalid base URL format")
    if parts.scheme not in HTTP_SCHEMES:
        raise ConfigError("Base URL must be an HTTP URL (http:, https:)")
    path = parts.path or "/"
    if not path.endswith("/"):
        raise ConfigError("Base URL must end in a slash (/)")
    if parts.query:
        raise ConfigError("Base URL must not have query parameters (?)")
    if parts.fragment:
        raise ConfigError("Base URL must not have a fragment identifier (#)")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def build_session(
    settings: Settings, headers: Optional[Dict[str, str]] = None
) -> requests.Session:
    s = requests.Session()
    # connection errors only; HTTP statuses are never retried
    retry = Retry(
        total=settings.retries,
        backoff_factor=0.5,
        allowed_methods={"GET"},
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS if headers is None else headers)
    s.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return s


# -------------------- Escapes --------------------


def _code_point(value: int) -> str:
    if value == 0 or 0xD800 <= value <= 0xDFFF or value > 0x10FFFF:
        return REPLACEMENT_CHAR
    return chr(value)


def unescape_css(value: str) -> str:
    return CSS_ESCAPE_RE.sub(lambda m: _code_point(int(m.group(1), 16)), value)


def _js_escape(m: re.Match) -> str:
    if m.group("oct") is not None:
        return chr(int(m.group("oct"), 8))
    if m.group("hex") is not None:
        return chr(int(m.group("hex"), 16))
    if m.group("unit") is not None:
        # may be half of a surrogate pair, joined in unescape_js
        return chr(int(m.group("unit"), 16))
    if m.group("codepoint") is not None:
        cp = int(m.group("codepoint"), 16)
        return chr(cp) if cp <= 0x10FFFF else REPLACEMENT_CHAR
    char = m.group("char")
    return JS_NAMED_ESCAPES.get(char, char)


def unescape_js(value: str) -> str:
    value = JS_ESCAPE_RE.sub(_js_escape, value)
    if LONE_SURROGATE_RE.search(value):
        value = value.encode("utf-16-le", "surrogatepass").decode(
            "utf-16-le", "surrogatepass"
        )
        value = LONE_SURROGATE_RE.sub(REPLACEMENT_CHAR, value)
    return value


def _quoted_value(token: str) -> Optional[str]:
    """Strip matching quotes; ``None`` when the closing quote is missing."""
    quote = token[:1]
    if quote in ("'", '"'):
        if not token.endswith(quote):
            return None
        return token[1:-1]
    return token


# -------------------- HTML extraction --------------------


class ReferenceKind(enum.Enum):
    SINGLE = "single"
    SPACE_SEPARATED = "space-separated"
    SRCSET = "srcset"
    SINGLE_NEEDS_RESOLVING = "single-needs-resolving"


@dataclass(frozen=True)
class ReferenceRule:
    element: str
    attribute: str
    kind: ReferenceKind


def _rules(kind: ReferenceKind, *pairs: str) -> List[ReferenceRule]:
    out = []
    for pair in pairs:
        element, attribute = pair.split(".")
        out.append(ReferenceRule(element, attribute, kind))
    return out


HTML_REFERENCE_RULES = tuple(
    _rules(
        ReferenceKind.SINGLE,
        "link.href",
        "a.href",
        "area.href",
        "source.src",
        "img.src",
        "iframe.src",
        "embed.src",
        "video.src",
        "video.poster",
        "audio.src",
        "track.src",
        "input.src",
        "script.src",
        "object.data",
        "form.action",
        "button.formaction",
        "blockquote.cite",
        "ins.cite",
        "del.cite",
    )
    + _rules(ReferenceKind.SPACE_SEPARATED, "a.ping", "area.ping")
    + _rules(ReferenceKind.SRCSET, "link.imagesrcset", "source.srcset", "img.srcset")
    # Special case, not a general rule: a third-party versioning.js script
    # stores resource paths in the id attribute of <link> and <script>.
    + _rules(ReferenceKind.SINGLE_NEEDS_RESOLVING, "link.id", "script.id")
)


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml", multi_valued_attributes=None)
    except FeatureNotFound:
        return BeautifulSoup(html, "html.parser", multi_valued_attributes=None)


def effective_base_url(soup: BeautifulSoup, fallback: str) -> str:
    tag = soup.find("base", href=True)
    if tag is not None:
        resolved = resolve_url(fallback, tag["href"])
        if resolved:
            return resolved
    return fallback


def _single(value: str, base: str) -> List[Optional[str]]:
    return [resolve_url(base, value)]


def _single_needs_resolving(value: str, base: str) -> List[Optional[str]]:
    # The id attribute is plain text rather than a URL attribute, so the
    # path it holds is explicitly resolved against the document base URI.
    return [resolve_url(base, value)]


def _space_separated(value: str, base: str) -> List[Optional[str]]:
    return [resolve_url(base, v) for v in HTML_WS_RE.split(value) if v]


def _srcset(value: str, base: str) -> List[Optional[str]]:
    urls = []
    for candidate in SRCSET_SPLIT_RE.split(value):
        m = SRCSET_URL_RE.match(candidate)
        if m:
            urls.append(resolve_url(base, m.group(1)))
    return urls


REFERENCE_HANDLERS: Dict[ReferenceKind, Callable[[str, str], List[Optional[str]]]] = {
    ReferenceKind.SINGLE: _single,
    ReferenceKind.SPACE_SEPARATED: _space_separated,
    ReferenceKind.SRCSET: _srcset,
    ReferenceKind.SINGLE_NEEDS_RESOLVING: _single_needs_resolving,
}


def scan_html(url: str, text: str) -> List[str]:
    # Not scanned: <style> and <script> bodies, style attributes, srcdoc,
    # <meta http-equiv="refresh"> and import maps.
    soup = bs4_parse(text)
    base = effective_base_url(soup, url)
    links: List[str] = []
    for rule in HTML_REFERENCE_RULES:
        handler = REFERENCE_HANDLERS[rule.kind]
        for tag in soup.select(f"{rule.element}[{rule.attribute}]"):
            value = tag.get(rule.attribute)
            if not isinstance(value, str):
                continue
            links.extend(u for u in handler(value, base) if u)
    return links


# -------------------- CSS extraction --------------------


def scan_css(url: str, text: str) -> List[str]:
    # Approximate: comments and whitespace inside strings are normalised too.
    text = CSS_COMMENT_RE.sub(" ", text)
    text = CSS_WS_RE.sub(" ", text)
    links: List[str] = []
    for m in CSS_URL_RE.finditer(text):
        value = _quoted_value(m.group(1))
        if value is None:
            continue
        resolved = resolve_url(url, unescape_css(value))
        if resolved:
            links.append(resolved)
    return links


# -------------------- JavaScript extraction --------------------


def _is_word_char(c: str) -> bool:
    return c.isascii() and (c.isalnum() or c == "_")


def regex_allowed(text: str, index: int) -> bool:
    """Whether the ``/`` at *index* can start a regular expression literal.

    Anything else is treated as division. This is the usual
    preceding-token heuristic and cannot settle every case a parser would.
    """
    starts = [index]
    if index and text[index - 1] in " \n":
        starts.append(index - 1)
    for i in starts:
        if i == 0:
            return True
        prev = text[i - 1]
        if prev in JS_REGEX_PUNCTUATORS:
            return True
        if prev in "+-":
            if i >= 2 and (text[i - 2] in " \n" or _is_word_char(text[i - 2])):
                return True
            continue
        ends = [i]
        if prev in " \n":
            ends.append(i - 1)
        for end in ends:
            for keyword in JS_REGEX_KEYWORDS:
                begin = end - len(keyword)
                if begin < 0 or not text.startswith(keyword, begin):
                    continue
                if begin == 0 or not _is_word_char(text[begin - 1]):
                    return True
    return False


def iter_js_tokens(text: str) -> Iterator[str]:
    """Yield string, template and regular expression literals in order."""
    pos = 0
    while True:
        m = JS_TOKEN_RE.search(text, pos)
        if m is None:
            return
        token = m.group()
        if token.startswith("/") and not regex_allowed(text, m.start()):
            pos = m.start() + 1
            continue
        yield token
        pos = m.end()


def normalize_js(text: str) -> str:
    text = JS_COMMENT_RE.sub(" ", text)
    text = JS_SPACE_RE.sub(" ", text)
    return JS_LINE_RE.sub("\n", text)


def _js_string_value(token: str) -> Optional[str]:
    if token[:1] not in ("'", '"'):
        return None
    value = _quoted_value(token)
    return None if value is None else unescape_js(value)


def scan_javascript(url: str, text: str) -> List[str]:
    # TODO: lex `${...}` inside template literals; a nested string or backtick
    # currently desynchronises both passes.
    text = normalize_js(text)
    links: List[str] = []

    for m in JS_IMPORT_RE.finditer(text):
        value = _js_string_value(m.group(1))
        if value is not None:
            resolved = resolve_url(url, value)
            if resolved:
                links.append(resolved)

    for token in iter_js_tokens(text):
        value = _js_string_value(token)
        if value is None or not JS_FILE_EXT_RE.search(value):
            continue
        resolved = resolve_url(url, value)
        if resolved:
            links.append(resolved)
    return links


SCANNERS: Dict[str, Callable[[str, str], List[str]]] = {
    "text/html": scan_html,
    "text/css": scan_css,
    "application/javascript": scan_javascript,
    "text/javascript": scan_javascript,
}


# -------------------- Frontier --------------------


@dataclass
class PendingLink:
    url: str
    path: str
    # first link of the redirect chain that led here
    original: Optional["PendingLink"] = None


class Frontier:
    def __init__(self, base_url: str):
        self.base_url = canonical_url(base_url)
        self.seen: Set[str] = set()
        self.pending: Deque[PendingLink] = deque()

    def add_link(self, url: str, original: Optional[PendingLink] = None) -> bool:
        """Queue *url* unless it was seen before.

        Returns False only when *url* lies outside the base URL.
        """
        try:
            url = canonical_url(url)
        except ValueError:
            return False
        path = relative_path(self.base_url, url)
        if path is None:
            return False
        if path in self.seen:
            return True
        self.seen.add(path)
        self.pending.append(PendingLink(url, path, original))
        return True

    def add_root(self, root: str) -> None:
        resolved = resolve_url(self.base_url, root)
        if resolved is None or not self.add_link(resolved):
            raise ConfigError(
                f'Specified root "{root}" does not lie under base URL "{self.base_url}"'
            )

    def pop(self) -> PendingLink:
        return self.pending.popleft()

    def __len__(self) -> int:
        return len(self.pending)

    def __bool__(self) -> bool:
        return bool(self.pending)


# -------------------- Output layout --------------------


def output_name(path: str) -> str:
    if not path or path.endswith("/"):
        return path + INDEX_FILE
    return path


def local_path_for(output_root: Path, name: str) -> Optional[Path]:
    local = output_root.joinpath(*name.split("/"))
    if not local.resolve().is_relative_to(output_root.resolve()):
        return None
    return local


def store_resource(output_root: Path, path: str, body: bytes) -> Optional[str]:
    name = output_name(path)
    local = local_path_for(output_root, name)
    if local is None:
        logging.warning("refusing to write outside %s: %s", output_root, name)
        return None
    try:
        ensure_parent_dir(local)
        local.write_bytes(body)
    except (FileExistsError, NotADirectoryError, IsADirectoryError) as e:
        # e.g. "docs" stored as a file and "docs/page.html" needing a directory
        logging.warning("cannot store %s: %s", name, e)
        return None
    return name


def write_manifest(path: Union[str, Path], manifest: List[str]) -> None:
    p = Path(path)
    ensure_parent_dir(p)
    p.write_text("".join(f"{name}\n" for name in sorted(set(manifest))), encoding="utf-8")


# -------------------- Crawl --------------------


def process_link(
    session: requests.Session,
    frontier: Frontier,
    link: PendingLink,
    settings: Settings,
    manifest: List[str],
) -> None:
    try:
        resp = session.get(
            request_url(link.url), allow_redirects=False, timeout=settings.timeout
        )
    except requests.RequestException as e:
        logging.warning("error fetching %s: %s", link.url, e)
        return

    category = resp.status_code // 100
    location = resp.headers.get("Location")
    if category == 3 and location is not None:
        logging.info('Redirect: "%s" -> "%s"', link.url, location)
        target = resolve_url(link.url, location)
        original = link.original if link.original is not None else link
        if target is None or not frontier.add_link(target, original):
            logging.info("redirect leaves base URL, dropped: %s", location)
        return

    if category != 2:
        logging.warning(
            "Bad response fetching %s: %s %s", link.url, resp.status_code, resp.reason
        )
        return

    content_type = resp.headers.get("Content-Type")
    logging.info("%s\t%s", content_type, link.url)
    body = resp.content
    path = (
        link.original.path
        if settings.use_original_names and link.original is not None
        else link.path
    )
    name = store_resource(Path(settings.output_dir), path, body)
    if name is None:
        return
    manifest.append(name)

    if content_type is None:
        logging.info("No content type specified")
        return
    scanner = SCANNERS.get(media_type(content_type))
    if scanner is None:
        logging.debug("not scanning %s (%s)", link.url, content_type)
        return
    try:
        found = scanner(link.url, decode_body(body, content_type))
    except Exception as e:
        logging.warning("failed to scan %s: %s", link.url, e)
        return
    for u in found:
        frontier.add_link(u)


def crawl(
    session: requests.Session, frontier: Frontier, settings: Settings
) -> List[str]:
    manifest: List[str] = []
    while frontier:
        link = frontier.pop()
        process_link(session, frontier, link, settings, manifest)
    return manifest


# -------------------- Git workspace --------------------


class GitWorkspace:
    """Output directory kept as a git working tree on a fixed branch."""

    def __init__(self, path: Union[str, Path], branch: str):
        self.path = Path(path)
        self.branch = branch

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *args], cwd=self.path, capture_output=True, text=True
            )
        except OSError as e:
            raise WorkspaceError(f"failed to run git in {self.path}: {e}") from e

    def _require(self, result: subprocess.CompletedProcess, message: str) -> None:
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise WorkspaceError(f"{message}: {detail}" if detail else message)

    def ensure_clean(self) -> None:
        r = self._git("status", "--porcelain", "--untracked-files=all")
        self._require(r, "Failed to read git status")
        if r.stdout:
            raise WorkspaceError("Target git repository is not clean")

    def prepare(self) -> None:
        self.ensure_clean()
        self._require(
            self._git("checkout", "--quiet", self.branch),
            "Failed to checkout target branch",
        )
        self.ensure_clean()
        self._require(
            self._git("rm", "-r", "-q", "--ignore-unmatch", "."),
            "Failed to delete files in repository",
        )

    def commit(self, message: str) -> None:
        self._require(
            self._git("add", "--all"), "Failed to add updated files to the git index"
        )
        r = self._git("commit", "--all", "--allow-empty", f"--message={message}")
        self._require(r, "Failed to git commit")
        logging.info("git commit succeeded!")
        if r.stdout.strip():
            logging.info(r.stdout.strip())


# -------------------- Main: mirror --------------------


def mirror_site(
    settings: Settings,
    session: Optional[requests.Session] = None,
    workspace: Optional[GitWorkspace] = None,
) -> List[str]:
    base_url = validate_base_url(settings.base_url)
    frontier = Frontier(base_url)
    for root in settings.roots:
        frontier.add_root(root)

    out_root = Path(settings.output_dir)
    if settings.no_git_commit:
        out_root.mkdir(parents=True, exist_ok=True)
    else:
        if workspace is None:
            workspace = GitWorkspace(out_root, settings.branch)
        workspace.prepare()

    if session is None:
        session = build_session(settings)
    manifest = crawl(session, frontier, settings)

    if settings.output_manifest:
        write_manifest(settings.output_manifest, manifest)
        logging.info("manifest written: %s", settings.output_manifest)
    if not settings.no_git_commit:
        workspace.commit(settings.commit_message)

    print("Mirroring complete")
    print(f"Resources saved: {len(manifest)}")
    print(f"Root: {out_root}")
    return manifest


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, Union[str, int, float, bool, List[str]]]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        import tomllib

        with open(p, "rb") as f:
            return tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError("Top-level YAML must be a mapping")
            return data
    else:
        raise ConfigError("Unsupported config format. Use .toml or .yaml")


# -------------------- CLI --------------------


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Mirror a website into a git working tree.",
        add_help=True,
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)

    p.add_argument(
        "-b",
        "--base-url",
        type=str,
        default=None,
        help="http(s) URL ending in '/' that bounds the crawl",
    )
    p.add_argument(
        "-r",
        "--root",
        action="append",
        default=None,
        help="entry page relative to the base URL (repeatable, default: base URL)",
    )
    p.add_argument("-o", "--output-dir", type=str, default="out", help="output directory")
    p.add_argument("-n", "--branch", type=str, default="master", help="git branch")
    p.add_argument(
        "-u",
        "--use-original-names",
        action="store_true",
        help="save redirected resources under their pre-redirect name",
    )
    p.add_argument(
        "-g", "--no-git-commit", action="store_true", help="skip all git interaction"
    )
    p.add_argument(
        "-m",
        "--output-manifest",
        type=str,
        default=None,
        help="write the sorted list of saved paths here",
    )
    p.add_argument(
        "--commit-message", type=str, default=COMMIT_MESSAGE, help="git commit message"
    )
    p.add_argument(
        "--timeout", type=float, default=30.0, help="request timeout seconds"
    )
    p.add_argument(
        "--retries", type=int, default=0, help="retries on connection errors"
    )
    p.add_argument("--verbose", action="store_true", help="debug logging")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        cfg = load_config_file(preliminary.config)
        if isinstance(cfg, dict):
            flat = dict(cfg)
            for g in ("crawl", "output", "git", "general"):
                if isinstance(cfg.get(g), dict):
                    flat.update(cfg[g])
            if isinstance(flat.get("root"), str):
                flat["root"] = [flat["root"]]
            parser.set_defaults(**flat)
    args = parser.parse_args(argv)
    return args


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        base_url=args.base_url or "",
        roots=list(args.root) if args.root else [""],
        output_dir=args.output_dir,
        branch=args.branch,
        use_original_names=args.use_original_names,
        no_git_commit=args.no_git_commit,
        output_manifest=args.output_manifest,
        commit_message=args.commit_message,
        timeout=max(0.1, args.timeout),
        retries=max(0, args.retries),
        verbose=args.verbose,
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = settings_from_args(args)

    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stdout,
    )

    try:
        mirror_site(settings)
    except (ConfigError, WorkspaceError) as e:
        logging.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
