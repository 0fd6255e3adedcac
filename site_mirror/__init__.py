"""Crawl a single website breadth-first and mirror everything it references.

    from site_mirror import Crawler, Mirror, Settings

    settings = Settings(start_url="https://example.com", max_pages=200)
    report = Crawler(settings.start_url, settings).crawl()
    log = Mirror(settings).run(report)
"""

from .crawl import (
    CrawlReport,
    Crawler,
    Frontier,
    PageRecord,
    crawl_site,
    load_report,
    write_report,
)
from .extract import ClickableCounts, Extraction, extract_page
from .mirror import (
    DownloadLog,
    Mirror,
    local_path_for_url,
    mirror_report,
    write_download_log,
)
from .settings import Settings
from .urls import is_http, is_internal, normalize_url, should_ignore, url_origin

__all__ = [
    "ClickableCounts",
    "CrawlReport",
    "Crawler",
    "DownloadLog",
    "Extraction",
    "Frontier",
    "Mirror",
    "PageRecord",
    "Settings",
    "crawl_site",
    "extract_page",
    "is_http",
    "is_internal",
    "load_report",
    "local_path_for_url",
    "mirror_report",
    "normalize_url",
    "should_ignore",
    "url_origin",
    "write_download_log",
    "write_report",
]
