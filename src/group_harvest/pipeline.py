from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from functools import partial

from group_harvest.aggregator import aggregate, error_lines
from group_harvest.config import Settings
from group_harvest.enricher import DetailEnricher, EnrichReport
from group_harvest.extractor import RowStrategy, extract_records
from group_harvest.fetcher import PageFetcher
from group_harvest.filters import RunContext
from group_harvest.models import AggregateResult, PipelineResult
from group_harvest.scheduler import plan_jobs, run_workers
from group_harvest.sinks import Sink

logger = logging.getLogger("group_harvest.pipeline")


def _build_summary_message(
    settings: Settings,
    run_at: datetime,
    result: AggregateResult,
    enrich_report: EnrichReport | None,
) -> str:
    lines = [
        f"[group-harvest] {run_at:%Y-%m-%d %H:%M} ({settings.tz})",
        (
            f"group '{settings.forum_id}' | key '{settings.search_key}' "
            f"| {len(result.records)} discusses found "
            f"| pages {result.pages_done}/{result.expected_pages}"
        ),
    ]
    if enrich_report is not None:
        lines.append(
            f"details enriched {enrich_report.enriched} / failed {len(enrich_report.failures)}"
        )
    if result.error:
        lines.append("")
        lines.append("errors")
        for line in error_lines(result.error_counts, result.error_pages):
            lines.append(f"- {line}")
    return "\n".join(lines)


def run_pipeline(
    settings: Settings,
    *,
    fetcher: PageFetcher | None = None,
    context: RunContext | None = None,
    strategy: RowStrategy | None = None,
    sinks: Sequence[Sink] = (),
    now: datetime | None = None,
) -> PipelineResult:
    tz = settings.zone
    run_at = now or datetime.now(tz)
    context = context or RunContext.from_search_key(
        settings.search_key, expected_last_page=settings.expected_last_page
    )
    jobs = plan_jobs(settings.max_page, settings.worker_count)

    logger.info(
        "Search '%s' from group '%s' in %d pages using %d workers",
        settings.search_key,
        settings.forum_id,
        settings.max_page + 1,
        settings.worker_count,
    )

    owns_fetcher = fetcher is None
    fetcher = fetcher or PageFetcher(settings)
    try:

        def fetch_page(page_offset: int) -> str:
            return fetcher.fetch_listing(fetcher.listing_ref(page_offset))

        outcomes = run_workers(
            jobs,
            fetch_page=fetch_page,
            extract=partial(extract_records, strategy=strategy, now=run_at, tz=tz),
            context=context,
        )
        result = aggregate(outcomes)
        if result.error:
            logger.error("Errors occurred during concurrent search: %s", result.error)
        logger.info(
            "%d discusses found across %d/%d pages",
            len(result.records),
            result.pages_done,
            result.expected_pages,
        )

        enrich_report: EnrichReport | None = None
        if settings.enrich and result.records:
            enricher = DetailEnricher(
                fetcher.fetch_url, max_in_flight=settings.enrich_max_in_flight, tz=tz
            )
            enrich_report = enricher.enrich_all(result.records)
            logger.info(
                "Details enriched for %d/%d discusses",
                enrich_report.enriched,
                len(result.records),
            )
    finally:
        if owns_fetcher:
            fetcher.close()

    pipeline_result = PipelineResult(
        total_matched=len(result.records),
        enriched_count=enrich_report.enriched if enrich_report else 0,
        enrich_failed_count=len(enrich_report.failures) if enrich_report else 0,
        aggregate=result,
        summary_text=_build_summary_message(settings, run_at, result, enrich_report),
    )

    if pipeline_result.records:
        for sink in sinks:
            sink(settings, pipeline_result)
    else:
        logger.info("No result, report skipped")
    return pipeline_result
