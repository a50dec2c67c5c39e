"""Optional second stage: per-thread detail fetch behind a bounded gate."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from bs4 import BeautifulSoup

from group_harvest.errors import HarvestError, ParseError
from group_harvest.models import DiscussionRecord

logger = logging.getLogger("group_harvest.enricher")

CREATED_SELECTOR = ".color-green"
CONTENT_SELECTOR = "#link-report"
FAVOR_SELECTOR = ".fav-num"
CREATED_FORMAT = "%Y-%m-%d %H:%M:%S"
FAVOR_PATTERN = re.compile(r"(\d+)人\s*喜欢")

UrlFetch = Callable[[str], str]


@dataclass(frozen=True)
class DetailFields:
    created_at: datetime
    content: str
    favor_count: int


@dataclass
class EnrichReport:
    enriched: int = 0
    failures: dict[str, str] = field(default_factory=dict)


def parse_favor_count(text: str) -> int:
    match = FAVOR_PATTERN.search(text)
    return int(match.group(1)) if match else 0


def parse_detail(html: str, *, tz: tzinfo | None = None) -> DetailFields:
    soup = BeautifulSoup(html, "html.parser")

    created_node = soup.select_one(CREATED_SELECTOR)
    if created_node is None:
        raise ParseError(f"select no '{CREATED_SELECTOR}' on detail page")
    created_text = created_node.get_text(" ", strip=True)
    try:
        created_at = datetime.strptime(created_text, CREATED_FORMAT)
    except ValueError as exc:
        raise ParseError(f"convert created-time '{created_text}': {exc}") from exc
    if tz is not None:
        created_at = created_at.replace(tzinfo=tz)

    content_node = soup.select_one(CONTENT_SELECTOR)
    if content_node is None:
        raise ParseError(f"select no '{CONTENT_SELECTOR}' on detail page")

    favor_node = soup.select_one(FAVOR_SELECTOR)
    favor_count = parse_favor_count(favor_node.get_text(" ", strip=True)) if favor_node else 0

    return DetailFields(
        created_at=created_at,
        content=content_node.get_text(" ", strip=True),
        favor_count=favor_count,
    )


class DetailEnricher:
    """Fills a record's optional detail fields.

    At most ``max_in_flight`` detail fetches run at once, regardless of how
    many threads call :meth:`enrich`.
    """

    def __init__(self, fetch_url: UrlFetch, *, max_in_flight: int = 4, tz: tzinfo | None = None) -> None:
        if max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")
        self.fetch_url = fetch_url
        self.max_in_flight = max_in_flight
        self.tz = tz
        self._gate = threading.BoundedSemaphore(max_in_flight)

    def _fetch(self, url: str) -> str:
        self._gate.acquire()
        try:
            return self.fetch_url(url)
        finally:
            self._gate.release()

    def enrich(self, record: DiscussionRecord) -> DiscussionRecord:
        html = self._fetch(record.link)
        detail = parse_detail(html, tz=self.tz)
        record.created_at = detail.created_at
        record.content = detail.content
        record.favor_count = detail.favor_count
        return record

    def enrich_all(self, records: list[DiscussionRecord]) -> EnrichReport:
        report = EnrichReport()
        if not records:
            return report

        with ThreadPoolExecutor(max_workers=self.max_in_flight, thread_name_prefix="detail") as pool:
            futures = {pool.submit(self.enrich, record): record for record in records}
            wait(futures)

        for future, record in futures.items():
            exc = future.exception()
            if exc is None:
                report.enriched += 1
            elif isinstance(exc, HarvestError):
                logger.warning("Detail for %s failed: %s", record.link, exc)
                report.failures[record.link] = exc.summary_key()
            else:
                logger.error("Detail for %s failed unexpectedly: %r", record.link, exc)
                report.failures[record.link] = f"{type(exc).__name__}: {exc}"
        return report
