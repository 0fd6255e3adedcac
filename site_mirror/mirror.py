import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote, unquote, urlsplit

import requests

from .crawl import CrawlReport, describe_error, utc_now
from .session import build_session
from .settings import DOWNLOAD_LOG, Settings

INVALID_PATH_CHARS_RE = re.compile(r'[<>:"|?*]')


# -------------------- Local layout --------------------


def sanitize(value: str) -> str:
    return INVALID_PATH_CHARS_RE.sub("_", value)


def sanitize_query(query: str) -> str:
    # Percent-encode everything, then turn the escapes into "_XX".
    return quote(unquote(query), safe="").replace("%", "_")


def local_path_for_url(url: str, mirror_root: Union[str, Path]) -> Path:
    """Where the body fetched from ``url`` is stored under ``mirror_root``.

    ``https://site.test/blog/`` maps to ``site.test/blog/index.html`` and
    ``https://site.test/search?q=a b`` to ``site.test/search.html__q_q_3Da_20b``.
    Pages without an extension get ``.html`` appended; a query string is
    appended after the file name so distinct queries land in distinct files.
    """
    p = urlsplit(url)
    host = sanitize(p.netloc.rpartition("@")[2]) or "host"
    path = unquote(p.path)
    if path == "" or path.endswith("/"):
        path += "index.html"
    segs = [sanitize(s) for s in path.split("/") if s not in ("", ".", "..")]
    if not segs:
        segs = ["index.html"]
    if not PurePosixPath(segs[-1]).suffix:
        segs[-1] += ".html"
    if p.query:
        segs[-1] += f"__q_{sanitize_query(p.query)}"
    return Path(mirror_root).joinpath(host, *segs)


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def collect_targets(report: CrawlReport) -> List[str]:
    urls = {page.url for page in report.pages}
    urls.update(report.assets)
    urls.update(report.action_targets)
    return sorted(urls)


# -------------------- Download log --------------------


@dataclass
class DownloadLog:
    total_requested: int = 0
    downloaded: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    started_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": self.started_at,
            "totalRequested": self.total_requested,
            "downloaded": self.downloaded,
            "failed": self.failed,
            "errors": [dict(e) for e in self.errors],
        }


def write_download_log(log: DownloadLog, output_dir: Union[str, Path]) -> Path:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    path = out / DOWNLOAD_LOG
    path.write_text(json.dumps(log.to_dict(), indent=2), encoding="utf-8")
    return path


# -------------------- Downloader --------------------


class Mirror:
    """Fetch every URL of a crawl report into a host/path file tree."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or Settings()
        self.workers = max(1, int(self.settings.concurrency))
        self.root = self.settings.mirror_path
        self.session = session or build_session(pool_size=self.workers)
        if session is None:
            self.session.headers["User-Agent"] = self.settings.user_agent
        self._lock = Lock()
        self._log = DownloadLog()

    def download_one(self, url: str) -> Path:
        resp = self.session.get(
            url, allow_redirects=True, timeout=self.settings.timeout
        )
        try:
            final_url = resp.url or url
            local_path = local_path_for_url(final_url, self.root)
            ensure_parent_dir(local_path)
            local_path.write_bytes(resp.content)
        finally:
            resp.close()
        logging.debug("downloaded %s -> %s", url, local_path)
        return local_path

    def _work(self, url: str) -> Optional[Path]:
        try:
            path = self.download_one(url)
        except (requests.RequestException, OSError, ValueError) as e:
            logging.warning("error downloading %s: %s", url, e)
            with self._lock:
                self._log.failed += 1
                self._log.errors.append({"url": url, "error": describe_error(e)})
            return None
        with self._lock:
            self._log.downloaded += 1
        return path

    def run(self, report: CrawlReport) -> DownloadLog:
        urls = collect_targets(report)
        self._log = DownloadLog(total_requested=len(urls))
        if not urls:
            return self._log
        logging.info("mirroring %d urls with %d workers", len(urls), self.workers)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._work, u) for u in urls]
            for done, fut in enumerate(as_completed(futures), 1):
                fut.result()
                if done % 100 == 0:
                    logging.info("mirrored %d/%d", done, len(urls))
        return self._log


def mirror_report(
    report: CrawlReport,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> DownloadLog:
    return Mirror(settings, session).run(report)
