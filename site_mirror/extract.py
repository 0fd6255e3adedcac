"""Pattern scanning of raw page markup.

Nothing here parses the document into a tree: every extractor runs a
case-insensitive regex over the delivered markup, scripts and comments
included, so broken real-world pages still yield candidates. The title is
the one exception and goes through BeautifulSoup.
"""

import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Dict, Iterable, List, Pattern
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from .urls import is_http, normalize_url, should_ignore

LINK_ATTRS = ("href", "action", "formaction", "data-href", "data-url")
ASSET_ATTRS = ("src", "data-src", "poster")
SRCSET_ATTRS = ("srcset", "data-srcset")

IMAGE_EXTS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
    ".svg",
    ".avif",
    ".ico",
    ".bmp",
    ".tiff",
    ".tif",
    ".heic",
    ".heif",
}

ONCLICK_RE = re.compile(r"""\bonclick\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)
SCRIPT_NAV_RE = re.compile(
    r"""(?:document\.location\s*=\s*|location(?:\.href)?\s*=\s*|window\.open\s*\(\s*)"""
    r"""["']([^"']+)["']""",
    re.IGNORECASE,
)
TITLE_WS_RE = re.compile(r"\s+")
SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")

ANCHOR_RE = re.compile(r"<a\b", re.IGNORECASE)
BUTTON_RE = re.compile(r"<button\b", re.IGNORECASE)
ROLE_BUTTON_RE = re.compile(
    r"""\brole\s*=\s*(?:"button"|'button'|button\b)""", re.IGNORECASE
)
ONCLICK_HANDLER_RE = re.compile(r"\bonclick\s*=", re.IGNORECASE)
FORM_RE = re.compile(r"<form\b", re.IGNORECASE)


@dataclass(frozen=True)
class ClickableCounts:
    anchorTags: int = 0
    buttonTags: int = 0
    roleButton: int = 0
    onclickHandlers: int = 0
    formTags: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Extraction:
    """Candidates found on one page, each list sorted and unique."""

    title: str = ""
    links: List[str] = field(default_factory=list)
    assets: List[str] = field(default_factory=list)
    clickable_counts: ClickableCounts = field(default_factory=ClickableCounts)

    @property
    def images(self) -> List[str]:
        return [u for u in self.assets if is_image_url(u)]


def uniq(urls: Iterable[str]) -> List[str]:
    return sorted(set(urls))


# -------------------- Attribute scanning --------------------


@lru_cache(maxsize=None)
def _attr_re(attr: str) -> Pattern[str]:
    return re.compile(
        rf"""(?<![\w-]){re.escape(attr)}\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""",
        re.IGNORECASE,
    )


@lru_cache(maxsize=None)
def _quoted_attr_re(attr: str) -> Pattern[str]:
    return re.compile(
        rf"""(?<![\w-]){re.escape(attr)}\s*=\s*(?:"([^"]*)"|'([^']*)')""",
        re.IGNORECASE,
    )


def _resolve(raw: str, base_url: str) -> str:
    if should_ignore(raw):
        return ""
    normalized = normalize_url(raw, base_url)
    if normalized and is_http(normalized):
        return normalized
    return ""


def extract_attr_urls(html: str, attr_names: Iterable[str], base_url: str) -> List[str]:
    results: List[str] = []
    for attr in attr_names:
        for m in _attr_re(attr).finditer(html):
            raw = next((g for g in m.groups() if g is not None), "")
            u = _resolve(raw, base_url)
            if u:
                results.append(u)
    return results


def parse_srcset(v: str) -> List[str]:
    urls: List[str] = []
    if not v:
        return urls
    for cand in SRCSET_SPLIT_RE.split(v.strip()):
        parts = cand.split()
        if parts:
            urls.append(parts[0])
    return urls


def extract_srcset_urls(html: str, attr_name: str, base_url: str) -> List[str]:
    results: List[str] = []
    for m in _quoted_attr_re(attr_name).finditer(html):
        raw = m.group(1) if m.group(1) is not None else m.group(2)
        for cand in parse_srcset(raw or ""):
            u = _resolve(cand, base_url)
            if u:
                results.append(u)
    return results


def extract_onclick_urls(html: str, base_url: str) -> List[str]:
    # Only literal assignments and window.open calls are recognized.
    results: List[str] = []
    for m in ONCLICK_RE.finditer(html):
        script = m.group(1) if m.group(1) is not None else m.group(2)
        for target in SCRIPT_NAV_RE.finditer(script or ""):
            u = _resolve(target.group(1), base_url)
            if u:
                results.append(u)
    return results


# -------------------- Page signals --------------------


def count_clickables(html: str) -> ClickableCounts:
    return ClickableCounts(
        anchorTags=len(ANCHOR_RE.findall(html)),
        buttonTags=len(BUTTON_RE.findall(html)),
        roleButton=len(ROLE_BUTTON_RE.findall(html)),
        onclickHandlers=len(ONCLICK_HANDLER_RE.findall(html)),
        formTags=len(FORM_RE.findall(html)),
    )


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def extract_title(html: str) -> str:
    soup = bs4_parse(html)
    tag = soup.find("title")
    if tag is None:
        return ""
    return TITLE_WS_RE.sub(" ", tag.get_text()).strip()


def is_image_url(url: str) -> bool:
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    return any(path.endswith(ext) for ext in IMAGE_EXTS)


def extract_page(html: str, base_url: str) -> Extraction:
    links = extract_attr_urls(html, LINK_ATTRS, base_url)
    links += extract_onclick_urls(html, base_url)

    assets = extract_attr_urls(html, ASSET_ATTRS, base_url)
    for attr in SRCSET_ATTRS:
        assets += extract_srcset_urls(html, attr, base_url)

    return Extraction(
        title=extract_title(html),
        links=uniq(links),
        assets=uniq(assets),
        clickable_counts=count_clickables(html),
    )
