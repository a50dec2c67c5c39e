"""Page-range partitioning and the fixed worker pool."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait

from group_harvest.errors import PAGE_ERRORS, HarvestError, NoMatchError
from group_harvest.filters import RunContext
from group_harvest.models import DiscussionRecord, FetchJob, WorkerOutcome

logger = logging.getLogger("group_harvest.scheduler")

PageFetch = Callable[[int], str]
PageExtract = Callable[[str], list[DiscussionRecord]]


def plan_jobs(max_page: int, worker_count: int) -> list[FetchJob]:
    """Split ``[0, max_page]`` into ``worker_count`` contiguous chunks.

    Chunks are ``ceil((max_page + 1) / worker_count)`` pages wide; the last
    non-empty chunk is clipped to ``max_page`` and any chunk starting past it
    is empty.
    """
    if max_page < 0:
        raise ValueError(f"max_page must be >= 0, got {max_page}")
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")

    step = math.ceil((max_page + 1) / worker_count)
    return [
        FetchJob(
            worker_index=index,
            page_start=index * step,
            page_end=min((index + 1) * step - 1, max_page),
        )
        for index in range(worker_count)
    ]


def run_worker(
    job: FetchJob,
    *,
    fetch_page: PageFetch,
    extract: PageExtract,
    context: RunContext,
) -> WorkerOutcome:
    records: list[DiscussionRecord] = []
    pages_done = 0
    for page in job.pages:
        if context.cancelled.is_set():
            logger.info("Worker %d cancelled before page %d", job.worker_index, page)
            break
        try:
            html = fetch_page(page)
            page_records = extract(html)
        except NoMatchError as exc:
            if context.is_past_end(page):
                logger.info("Worker %d reached end of results at page %d", job.worker_index, page)
                break
            exc.page_offset = page
            return WorkerOutcome(job=job, records=records, error=exc, pages_done=pages_done)
        except PAGE_ERRORS as exc:
            exc.page_offset = page
            logger.warning("Worker %d stopped at page %d: %s", job.worker_index, page, exc)
            return WorkerOutcome(job=job, records=records, error=exc, pages_done=pages_done)
        except Exception as exc:
            logger.exception("Worker %d failed unexpectedly at page %d", job.worker_index, page)
            error = HarvestError(f"unexpected error: {exc}", page_offset=page)
            return WorkerOutcome(job=job, records=records, error=error, pages_done=pages_done)
        records.extend(context.admit_all(page_records))
        pages_done += 1

    return WorkerOutcome(job=job, records=records, pages_done=pages_done)


def run_workers(
    jobs: list[FetchJob],
    *,
    fetch_page: PageFetch,
    extract: PageExtract,
    context: RunContext,
) -> list[WorkerOutcome]:
    """Run one thread per job and return once every job has reported."""
    if not jobs:
        return []
    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="harvest") as pool:
        futures = [
            pool.submit(
                run_worker,
                job,
                fetch_page=fetch_page,
                extract=extract,
                context=context,
            )
            for job in jobs
        ]
        try:
            wait(futures)
        except KeyboardInterrupt:
            context.cancel()
            raise
    outcomes = [future.result() for future in futures]
    logger.debug("All %d workers reported", len(outcomes))
    return outcomes
