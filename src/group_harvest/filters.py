from __future__ import annotations

import re
import threading
from collections.abc import Iterable

from group_harvest.models import DiscussionRecord


def parse_patterns(value: str | Iterable[str] | None) -> list[str]:
    if not value:
        return []
    pieces = value.split(";") if isinstance(value, str) else list(value)
    return [item.strip() for item in pieces if item and item.strip()]


def compile_patterns(value: str | Iterable[str] | None) -> list[re.Pattern[str]]:
    raw = parse_patterns(value)
    if not raw:
        raise ValueError("at least one search pattern is required")
    compiled: list[re.Pattern[str]] = []
    for item in raw:
        try:
            compiled.append(re.compile(item))
        except re.error as exc:
            raise ValueError(f"compile search key '{item}' as regexp: {exc}") from exc
    return compiled


def matches_patterns(title: str, patterns: list[re.Pattern[str]]) -> bool:
    return any(pattern.search(title) for pattern in patterns)


class RunContext:
    """Per-run filter and dedup state shared by every worker.

    The dedup set is run-wide: a thread admitted by one worker suppresses the
    same thread seen later by any other. Which duplicate wins when two
    workers race is decided by lock acquisition order and is not stable.
    """

    def __init__(
        self,
        patterns: list[re.Pattern[str]],
        *,
        expected_last_page: int | None = None,
    ) -> None:
        self.patterns = patterns
        self.expected_last_page = expected_last_page
        self.cancelled = threading.Event()
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_search_key(
        cls, search_key: str | Iterable[str], *, expected_last_page: int | None = None
    ) -> RunContext:
        return cls(compile_patterns(search_key), expected_last_page=expected_last_page)

    def matches(self, record: DiscussionRecord) -> bool:
        return matches_patterns(record.title, self.patterns)

    def admit(self, record: DiscussionRecord) -> bool:
        if not self.matches(record):
            return False
        key = record.dedup_key
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
        return True

    def admit_all(self, records: Iterable[DiscussionRecord]) -> list[DiscussionRecord]:
        return [record for record in records if self.admit(record)]

    def is_past_end(self, page_offset: int) -> bool:
        return self.expected_last_page is not None and page_offset > self.expected_last_page

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def seen_count(self) -> int:
        with self._lock:
            return len(self._seen)
