import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Set, Union

import requests

from .extract import ClickableCounts, extract_page, uniq
from .session import build_session, is_html_response
from .settings import REPORT_JSON, REPORT_MD, Settings
from .urls import is_http, is_internal, normalize_url, url_origin


def utc_now() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def describe_error(e: BaseException) -> str:
    msg = str(e)
    return f"{e.__class__.__name__}: {msg}" if msg else e.__class__.__name__


# -------------------- Records --------------------


@dataclass(frozen=True)
class PageRecord:
    url: str
    status: int
    title: str = ""
    internal_links: List[str] = field(default_factory=list)
    external_links: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    assets: List[str] = field(default_factory=list)
    clickable_counts: ClickableCounts = field(default_factory=ClickableCounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "title": self.title,
            "internalLinks": list(self.internal_links),
            "externalLinks": list(self.external_links),
            "images": list(self.images),
            "assets": list(self.assets),
            "clickableCounts": self.clickable_counts.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageRecord":
        return cls(
            url=data["url"],
            status=int(data.get("status", 0)),
            title=data.get("title") or "",
            internal_links=list(data.get("internalLinks") or []),
            external_links=list(data.get("externalLinks") or []),
            images=list(data.get("images") or []),
            assets=list(data.get("assets") or []),
            clickable_counts=ClickableCounts(**(data.get("clickableCounts") or {})),
        )


@dataclass
class CrawlReport:
    start_url: str
    origin: str
    started_at: str = field(default_factory=utc_now)
    pages: List[PageRecord] = field(default_factory=list)
    internal_links: List[str] = field(default_factory=list)
    external_links: List[str] = field(default_factory=list)
    action_targets: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    assets: List[str] = field(default_factory=list)
    failures: List[Dict[str, str]] = field(default_factory=list)

    @property
    def totals(self) -> Dict[str, int]:
        return {
            "pagesCrawled": len(self.pages),
            "internalLinksDiscovered": len(self.internal_links),
            "externalLinksDiscovered": len(self.external_links),
            "actionTargetsDiscovered": len(self.action_targets),
            "uniqueImagesDiscovered": len(self.images),
            "uniqueAssetsDiscovered": len(self.assets),
            "failures": len(self.failures),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": self.started_at,
            "startUrl": self.start_url,
            "origin": self.origin,
            "totals": self.totals,
            "pages": [p.to_dict() for p in self.pages],
            "linkInventory": {
                "internal": list(self.internal_links),
                "external": list(self.external_links),
                "actionTargets": list(self.action_targets),
            },
            "imageInventory": list(self.images),
            "assetInventory": list(self.assets),
            "failures": [dict(f) for f in self.failures],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlReport":
        links = data.get("linkInventory") or {}
        return cls(
            start_url=data.get("startUrl", ""),
            origin=data.get("origin", ""),
            started_at=data.get("startedAt") or utc_now(),
            pages=[PageRecord.from_dict(p) for p in data.get("pages") or []],
            internal_links=list(links.get("internal") or []),
            external_links=list(links.get("external") or []),
            action_targets=list(links.get("actionTargets") or []),
            images=list(data.get("imageInventory") or []),
            assets=list(data.get("assetInventory") or []),
            failures=list(data.get("failures") or []),
        )

    def to_markdown(self) -> str:
        t = self.totals
        lines = [
            f"# Crawl Report: {self.start_url}",
            "",
            f"- Pages crawled: {t['pagesCrawled']}",
            f"- Internal links discovered: {t['internalLinksDiscovered']}",
            f"- External links discovered: {t['externalLinksDiscovered']}",
            f"- Action targets discovered: {t['actionTargetsDiscovered']}",
            f"- Unique images discovered: {t['uniqueImagesDiscovered']}",
            f"- Unique assets discovered: {t['uniqueAssetsDiscovered']}",
            f"- Failures: {t['failures']}",
            "",
            "## Pages",
        ]
        lines += [
            f"- {p.url} ({p.status}) - {p.title or 'No title'}" for p in self.pages
        ]
        lines += ["", "## Image Inventory"]
        lines += [f"- {i}" for i in self.images]
        lines.append("")
        return "\n".join(lines)


# -------------------- Frontier --------------------


class Frontier:
    """FIFO of URLs still to fetch plus the set already dequeued."""

    def __init__(self, max_pages: int):
        self.max_pages = max(1, max_pages)
        self.queue: Deque[str] = deque()
        self.queued: Set[str] = set()
        self.visited: Set[str] = set()

    def push(self, url: str) -> bool:
        if url in self.visited or url in self.queued:
            return False
        self.queue.append(url)
        self.queued.add(url)
        return True

    def pop(self) -> Optional[str]:
        while self.queue:
            url = self.queue.popleft()
            self.queued.discard(url)
            if url in self.visited:
                continue
            self.visited.add(url)
            return url
        return None

    def __bool__(self) -> bool:
        return bool(self.queue) and len(self.visited) < self.max_pages

    def __len__(self) -> int:
        return len(self.queue)


# -------------------- Crawler --------------------


class Crawler:
    """Sequential breadth-first crawl of one origin."""

    def __init__(
        self,
        start_url: str,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or Settings(start_url=start_url)
        start = normalize_url(start_url)
        if not is_http(start):
            raise ValueError(f"Invalid URL. Use http:// or https://: {start_url}")
        self.start_url: str = start
        self.origin: str = url_origin(start) or ""
        self.session = session or build_session()
        if session is None:
            self.session.headers["User-Agent"] = self.settings.user_agent

        self.frontier = Frontier(self.settings.max_pages)
        self.pages: Dict[str, PageRecord] = {}
        self.internal_links: Set[str] = set()
        self.external_links: Set[str] = set()
        self.action_targets: Set[str] = set()
        self.images: Set[str] = set()
        self.assets: Set[str] = set()
        self.failures: List[Dict[str, str]] = []

    def is_internal(self, url: str) -> bool:
        return is_internal(url, self.origin)

    def crawl(self) -> CrawlReport:
        started_at = utc_now()
        self.frontier.push(self.start_url)
        while self.frontier:
            url = self.frontier.pop()
            if url is None:
                break
            self._visit(url)
        if self.frontier.queue:
            logging.info("reached page limit of %d", self.frontier.max_pages)
        return self.build_report(started_at)

    def _fail(self, url: str, e: BaseException) -> None:
        logging.warning("failed %s: %s", url, e)
        self.failures.append({"url": url, "error": describe_error(e)})

    def _visit(self, url: str) -> None:
        try:
            resp = self.session.get(
                url, allow_redirects=True, timeout=self.settings.timeout, stream=True
            )
        except requests.RequestException as e:
            self._fail(url, e)
            return
        try:
            self._process(url, resp)
        finally:
            resp.close()

    def _process(self, url: str, resp: requests.Response) -> None:
        final_url = normalize_url(resp.url or url, url) or url

        if not is_html_response(resp):
            logging.debug("asset %s", final_url)
            self.assets.add(final_url)
            return

        try:
            html = resp.text
        except (requests.RequestException, UnicodeDecodeError) as e:
            self._fail(final_url, e)
            return

        if final_url in self.pages:
            logging.debug("already recorded %s (via %s)", final_url, url)
            return

        found = extract_page(html, final_url)
        internal: List[str] = []
        external: List[str] = []
        for link in found.links:
            self.action_targets.add(link)
            if self.is_internal(link):
                internal.append(link)
                self.frontier.push(link)
            else:
                external.append(link)
        self.internal_links.update(internal)
        self.external_links.update(external)

        images = found.images
        self.images.update(images)
        self.assets.update(found.assets)

        self.pages[final_url] = PageRecord(
            url=final_url,
            status=resp.status_code,
            title=found.title,
            internal_links=internal,
            external_links=external,
            images=images,
            assets=found.assets,
            clickable_counts=found.clickable_counts,
        )
        logging.info(
            "crawled %s (%d/%d, queued %d)",
            final_url,
            len(self.frontier.visited),
            self.frontier.max_pages,
            len(self.frontier),
        )

    def build_report(self, started_at: Optional[str] = None) -> CrawlReport:
        return CrawlReport(
            start_url=self.start_url,
            origin=self.origin,
            started_at=started_at or utc_now(),
            pages=sorted(self.pages.values(), key=lambda p: p.url),
            internal_links=uniq(self.internal_links),
            external_links=uniq(self.external_links),
            action_targets=uniq(self.action_targets),
            images=uniq(self.images),
            assets=uniq(self.assets),
            failures=list(self.failures),
        )


def crawl_site(
    start_url: str,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> CrawlReport:
    return Crawler(start_url, settings, session).crawl()


# -------------------- Report IO --------------------


def write_report(report: CrawlReport, output_dir: Union[str, Path]) -> Path:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    json_path = out / REPORT_JSON
    json_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    (out / REPORT_MD).write_text(report.to_markdown(), encoding="utf-8")
    return json_path


def load_report(path: Union[str, Path]) -> CrawlReport:
    with open(path, "r", encoding="utf-8") as f:
        return CrawlReport.from_dict(json.load(f))
