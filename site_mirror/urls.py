import re
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from requests.utils import requote_uri

DEFAULT_PORTS = {"http": 80, "https": 443}
IGNORED_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")
SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*):")
HEAD_RE = re.compile(r"^[^?#]*")


# -------------------- Normalize --------------------


def fix_backslashes(raw: str, base: Optional[str] = None) -> str:
    """Read ``\\`` as ``/`` before the query of an http(s) reference."""
    head = HEAD_RE.match(raw).group(0)
    if "\\" not in head:
        return raw
    m = SCHEME_RE.match(raw) or SCHEME_RE.match(base or "")
    if not m or m.group(1).lower() not in DEFAULT_PORTS:
        return raw
    return head.replace("\\", "/") + raw[len(head) :]


def normalize_url(raw: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """Canonical absolute form of ``raw`` resolved against ``base``.

    The fragment and the scheme's default port are dropped, scheme and host
    are lower-cased, non-ASCII hosts become IDNA and unsafe characters are
    percent-encoded. Returns None when the value cannot be parsed as a URL.
    """
    if raw is None:
        return None
    raw = fix_backslashes(raw.strip(), base)
    try:
        joined = urljoin(base, raw) if base else raw
        p = urlsplit(joined)
        port = p.port
        host = p.hostname or ""
    except ValueError:
        return None

    scheme = p.scheme.lower()
    if not scheme:
        return None

    if scheme in DEFAULT_PORTS:
        if not host:
            return None
        if not host.isascii():
            try:
                host = host.encode("idna").decode("ascii")
            except UnicodeError:
                return None
        netloc = f"[{host}]" if ":" in host else host
        if port is not None and port != DEFAULT_PORTS[scheme]:
            netloc = f"{netloc}:{port}"
        userinfo, sep, _ = p.netloc.rpartition("@")
        if sep:
            netloc = f"{userinfo}@{netloc}"
        path = p.path or "/"
    else:
        netloc = p.netloc
        path = p.path

    return requote_uri(urlunsplit((scheme, netloc, path, p.query, "")))


def is_http(url: Optional[str]) -> bool:
    if not url:
        return False
    return url.startswith(("http://", "https://"))


def should_ignore(value: Optional[str]) -> bool:
    if not value:
        return True
    v = value.strip().lower()
    return v == "" or v.startswith(IGNORED_PREFIXES)


# -------------------- Origin --------------------


def url_origin(url: str) -> Optional[str]:
    """``scheme://host[:port]`` of ``url``, or None for non-http(s) URLs."""
    normalized = normalize_url(url)
    if not is_http(normalized):
        return None
    p = urlsplit(normalized)
    netloc = p.netloc.rpartition("@")[2]
    return f"{p.scheme}://{netloc}"


def is_internal(url: str, origin: Optional[str]) -> bool:
    if not origin:
        return False
    return url_origin(url) == origin
