from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from group_harvest.errors import HarvestError

DEFAULT_HOST = "www.douban.com"
PAGE_SIZE = 25


def listing_url(forum_id: str, page_offset: int, host: str = DEFAULT_HOST) -> str:
    return f"https://{host}/group/{forum_id}/discussion?start={page_offset * PAGE_SIZE + 1}"


def derive_record_id(link: str) -> str:
    trimmed = link.rstrip("/")
    return trimmed[trimmed.rfind("/") + 1 :]


@dataclass(frozen=True)
class ListingPageRef:
    forum_id: str
    page_offset: int
    host: str = DEFAULT_HOST

    @property
    def url(self) -> str:
        return listing_url(self.forum_id, self.page_offset, self.host)


@dataclass
class DiscussionRecord:
    title: str
    short_title: str
    link: str
    id: str
    author: str
    reply_count: int
    last_activity: datetime
    # Written only by the detail enricher.
    created_at: datetime | None = None
    content: str | None = None
    favor_count: int | None = None

    @property
    def dedup_key(self) -> str:
        return self.id or self.link

    @property
    def enriched(self) -> bool:
        return self.created_at is not None


@dataclass(frozen=True)
class FetchJob:
    worker_index: int
    page_start: int
    page_end: int

    @property
    def pages(self) -> range:
        return range(self.page_start, self.page_end + 1)

    @property
    def is_empty(self) -> bool:
        return self.page_start > self.page_end


@dataclass(frozen=True)
class WorkerOutcome:
    job: FetchJob
    records: list[DiscussionRecord]
    error: HarvestError | None = None
    pages_done: int = 0


@dataclass(frozen=True)
class AggregateResult:
    records: list[DiscussionRecord]
    error: str | None = None
    error_counts: dict[str, int] = field(default_factory=dict)
    error_pages: dict[str, list[int]] = field(default_factory=dict)
    expected_pages: int = 0
    pages_done: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.records) and self.error is not None


@dataclass(frozen=True)
class PipelineResult:
    total_matched: int
    enriched_count: int
    enrich_failed_count: int
    aggregate: AggregateResult
    summary_text: str

    @property
    def records(self) -> list[DiscussionRecord]:
        return self.aggregate.records
