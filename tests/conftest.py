"""Fake HTTP layer shared by the crawler and mirror tests."""

from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional, Union

import pytest
import requests
from requests.structures import CaseInsensitiveDict


class FakeResponse:
    def __init__(
        self,
        url: str,
        body: Union[str, bytes] = b"",
        *,
        status_code: int = 200,
        content_type: str = "text/html; charset=utf-8",
        text_error: Optional[Exception] = None,
    ):
        self.url = url
        self.status_code = status_code
        self.headers = CaseInsensitiveDict({"Content-Type": content_type})
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.text_error = text_error
        self.closed = False

    @property
    def text(self) -> str:
        if self.text_error is not None:
            raise self.text_error
        return self.content.decode("utf-8")

    def close(self) -> None:
        self.closed = True


Route = Union[FakeResponse, Exception]


class FakeSession:
    """Serves canned responses by URL; unknown URLs fail to connect."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.headers: Dict[str, str] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def add_page(self, url: str, html: str, **kwargs) -> None:
        self.routes[url] = FakeResponse(url, html, **kwargs)

    def get(self, url: str, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(route, Exception):
            raise route
        return route


class SlowSession(FakeSession):
    """Answers every URL after a short delay and tracks requests in flight."""

    def __init__(self, delay: float = 0.02):
        super().__init__()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def get(self, url: str, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.delay)
            if url.endswith("/fail"):
                raise requests.Timeout(f"timed out: {url}")
            return FakeResponse(url, b"body", content_type="text/plain")
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()
