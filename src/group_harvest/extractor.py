"""Structural extraction of discussion records from a listing page.

The listing has no machine-readable schema. Each thread is located by its
title anchor (an ``<a>`` directly inside ``<td class="title">``) and the
remaining columns are recovered relative to that cell by a ``RowStrategy``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Protocol

from bs4 import BeautifulSoup, Tag

from group_harvest.errors import FieldConversionError, NoMatchError, SchemaError
from group_harvest.models import DiscussionRecord, derive_record_id

logger = logging.getLogger("group_harvest.extractor")

LISTING_COLUMNS = ("讨论", "作者", "回应", "最后回应")
HEADER_ROW_CLASS = "th"
TITLE_CELL_CLASS = "title"

_DIGITS = re.compile(r"\d+")


def _clean_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _text(node: Tag) -> str:
    return node.get_text(" ", strip=True)


@dataclass(frozen=True)
class RowCells:
    author: Tag
    reply: Tag
    last_activity: Tag


class RowStrategy(Protocol):
    def check_schema(self, soup: BeautifulSoup, anchors: list[Tag]) -> None: ...

    def locate(self, anchor: Tag) -> RowCells: ...


def _header_labels(anchor: Tag) -> list[str] | None:
    table = anchor.find_parent("table")
    if table is None:
        return None
    header = table.find("tr", class_=HEADER_ROW_CLASS)
    if header is None:
        return None
    return [_clean_spaces(_text(cell)) for cell in header.find_all("td", recursive=False)]


class SiblingOffsetStrategy:
    """Fixed hop-count traversal: every column sits two siblings after the previous one.

    Siblings include the whitespace text nodes between cells, so two hops
    move from one ``<td>`` to the next in the markup the site serves.
    """

    hops = 2

    def __init__(self, expected_columns: tuple[str, ...] = LISTING_COLUMNS) -> None:
        self.expected_columns = expected_columns

    def check_schema(self, soup: BeautifulSoup, anchors: list[Tag]) -> None:
        labels = _header_labels(anchors[0])
        if labels is None:
            return
        if tuple(labels) != self.expected_columns:
            raise SchemaError(
                f"listing columns {labels} do not match expected {list(self.expected_columns)}"
            )

    def _hop(self, node: Tag, field_name: str) -> Tag:
        current = node
        for _ in range(self.hops):
            current = current.next_sibling
            if current is None:
                raise SchemaError(f"{field_name} column missing from row")
        if not isinstance(current, Tag) or current.name != "td":
            raise SchemaError(f"{field_name} column is not a table cell")
        return current

    def locate(self, anchor: Tag) -> RowCells:
        author = self._hop(anchor.parent, "author")
        reply = self._hop(author, "reply-count")
        last_activity = self._hop(reply, "last-activity")
        return RowCells(author=author, reply=reply, last_activity=last_activity)


class HeaderColumnStrategy:
    """Resolves columns by header label instead of by position."""

    def __init__(
        self,
        author_label: str = LISTING_COLUMNS[1],
        reply_label: str = LISTING_COLUMNS[2],
        last_activity_label: str = LISTING_COLUMNS[3],
    ) -> None:
        self.labels = (author_label, reply_label, last_activity_label)

    def _indexes(self, anchor: Tag) -> list[int]:
        labels = _header_labels(anchor)
        if labels is None:
            raise SchemaError("listing table has no header row")
        missing = [label for label in self.labels if label not in labels]
        if missing:
            raise SchemaError(f"listing header lacks columns {missing}")
        return [labels.index(label) for label in self.labels]

    def check_schema(self, soup: BeautifulSoup, anchors: list[Tag]) -> None:
        self._indexes(anchors[0])

    def locate(self, anchor: Tag) -> RowCells:
        indexes = self._indexes(anchor)
        row = anchor.find_parent("tr")
        cells = row.find_all("td", recursive=False) if row is not None else []
        if len(cells) <= max(indexes):
            raise SchemaError(f"row has {len(cells)} cells, header promised {max(indexes) + 1}")
        author, reply, last_activity = (cells[index] for index in indexes)
        return RowCells(author=author, reply=reply, last_activity=last_activity)


def is_title_anchor(node: Tag) -> bool:
    parent = node.parent
    return (
        node.name == "a"
        and isinstance(parent, Tag)
        and parent.name == "td"
        and parent.get("class") == [TITLE_CELL_CLASS]
    )


def find_title_anchors(soup: BeautifulSoup) -> list[Tag]:
    return soup.find_all(is_title_anchor)


def parse_reply_count(text: str) -> int:
    raw = text.strip() or "0"
    if not _DIGITS.fullmatch(raw):
        raise FieldConversionError(f"convert reply-num: invalid literal '{raw}'")
    return int(raw)


def parse_last_activity(text: str, *, now: datetime, tz: tzinfo | None = None) -> datetime:
    """Parse ``YYYY-MM-DD`` (midnight) or ``MM-DD HH:MM`` within ``now``'s year."""
    raw = text.strip()
    try:
        if len(raw) == 10:
            parsed = datetime.strptime(raw, "%Y-%m-%d")
        else:
            parsed = datetime.strptime(f"{now.year}-{raw}", "%Y-%m-%d %H:%M")
    except ValueError as exc:
        raise FieldConversionError(f"convert last-reply-time '{raw}': {exc}") from exc
    return parsed.replace(tzinfo=tz) if tz is not None else parsed


DEFAULT_STRATEGY = SiblingOffsetStrategy()


def extract_records(
    html: str,
    *,
    strategy: RowStrategy | None = None,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[DiscussionRecord]:
    soup = BeautifulSoup(html, "html.parser")
    anchors = find_title_anchors(soup)
    if not anchors:
        raise NoMatchError("blank page matches no discuss link")

    strategy = strategy or DEFAULT_STRATEGY
    strategy.check_schema(soup, anchors)
    current = now or datetime.now(tz)

    records: list[DiscussionRecord] = []
    for anchor in anchors:
        cells = strategy.locate(anchor)
        link = anchor.get("href", "")
        short_title = _text(anchor)
        title = anchor.get("title") or short_title
        try:
            reply_count = parse_reply_count(_text(cells.reply))
            last_activity = parse_last_activity(_text(cells.last_activity), now=current, tz=tz)
        except FieldConversionError as exc:
            raise FieldConversionError(f"{exc.message} for '{title}'") from exc
        records.append(
            DiscussionRecord(
                title=title,
                short_title=short_title,
                link=link,
                id=derive_record_id(link),
                author=_text(cells.author),
                reply_count=reply_count,
                last_activity=last_activity,
            )
        )
    logger.debug("Extracted %d records", len(records))
    return records
