from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .settings import DEFAULT_USER_AGENT

DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


def build_session(
    headers: Optional[Dict[str, str]] = None, pool_size: int = 10
) -> requests.Session:
    # A failed request is terminal for that URL: no retries on any adapter.
    s = requests.Session()
    retry = Retry(total=0, read=False)
    adapter = HTTPAdapter(
        max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size
    )
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS if headers is None else headers)
    return s


def is_html_response(resp: requests.Response) -> bool:
    ct = (resp.headers.get("Content-Type") or "").lower()
    return any(t in ct for t in HTML_CONTENT_TYPES)
