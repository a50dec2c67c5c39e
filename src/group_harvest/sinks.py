from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from group_harvest.config import Settings
from group_harvest.models import DiscussionRecord, PipelineResult

logger = logging.getLogger("group_harvest.sinks")

Sink = Callable[[Settings, PipelineResult], None]


def record_to_dict(record: DiscussionRecord) -> dict:
    payload = asdict(record)
    for key, value in payload.items():
        if isinstance(value, datetime):
            payload[key] = value.isoformat()
    return payload


def report_filename(created_at: datetime, attempt: int = 0) -> str:
    suffix = f"_{attempt}" if attempt else ""
    return f"Rp_{created_at:%Y%m%d_%H%M%S}{suffix}.json"


def write_json_report(settings: Settings, result: PipelineResult, *, now: datetime | None = None) -> Path:
    created_at = now or datetime.now(settings.zone)
    settings.report_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "group": settings.forum_id,
        "max_page": settings.max_page,
        "key": settings.search_key,
        "created": created_at.isoformat(),
        "error": result.aggregate.error,
        "discusses": [record_to_dict(record) for record in result.records],
    }
    body = json.dumps(payload, ensure_ascii=False, indent=2)

    # Existing reports are never overwritten; a same-second run gets a numbered name.
    attempt = 0
    while True:
        path = settings.report_dir / report_filename(created_at, attempt)
        try:
            with path.open("x", encoding="utf-8") as handle:
                handle.write(body)
            break
        except FileExistsError:
            logger.warning("Report file '%s' already exists", path)
            attempt += 1
    logger.info("Report written to newly created file '%s'", path)
    return path


def json_report_sink(settings: Settings, result: PipelineResult) -> None:
    write_json_report(settings, result)


def log_records_sink(settings: Settings, result: PipelineResult) -> None:
    for record in result.records:
        logger.info(
            "[%s] %s (%d replies, last %s) %s",
            record.id,
            record.title,
            record.reply_count,
            f"{record.last_activity:%Y-%m-%d %H:%M}",
            record.link,
        )
