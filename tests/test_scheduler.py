from datetime import datetime

import pytest

from group_harvest.errors import HTTPStatusError, NoMatchError, SessionError
from group_harvest.filters import RunContext
from group_harvest.models import DiscussionRecord
from group_harvest.scheduler import plan_jobs, run_worker, run_workers


def _record(page: int, index: int) -> DiscussionRecord:
    record_id = f"{page}{index:02d}"
    return DiscussionRecord(
        title=f"整租 p{page} #{index}",
        short_title="整租",
        link=f"https://www.douban.com/group/topic/{record_id}/",
        id=record_id,
        author="someone",
        reply_count=0,
        last_activity=datetime(2026, 1, 1),
    )


def _extract(html: str) -> list[DiscussionRecord]:
    page = int(html)
    return [_record(page, 0), _record(page, 1)]


@pytest.mark.parametrize("max_page", [0, 1, 4, 9, 10, 23, 99])
@pytest.mark.parametrize("worker_count", [1, 2, 3, 4, 7, 12])
def test_chunks_cover_range_exactly_once(max_page: int, worker_count: int) -> None:
    jobs = plan_jobs(max_page, worker_count)

    assert len(jobs) == worker_count
    covered = [page for job in jobs for page in job.pages]
    assert covered == list(range(max_page + 1))


def test_chunk_boundaries_follow_ceiling_step() -> None:
    jobs = plan_jobs(9, 4)
    assert [(job.page_start, job.page_end) for job in jobs] == [(0, 2), (3, 5), (6, 8), (9, 9)]

    trailing = plan_jobs(4, 4)
    assert [(job.page_start, job.page_end) for job in trailing] == [(0, 1), (2, 3), (4, 4), (6, 4)]
    assert trailing[-1].is_empty


def test_plan_rejects_invalid_arguments() -> None:
    with pytest.raises(ValueError):
        plan_jobs(-1, 2)
    with pytest.raises(ValueError):
        plan_jobs(5, 0)


def test_worker_keeps_records_before_first_error() -> None:
    job = plan_jobs(4, 1)[0]
    fetched: list[int] = []

    def fetch_page(page: int) -> str:
        fetched.append(page)
        if page == 2:
            raise HTTPStatusError("https://www.douban.com/x", 403)
        return str(page)

    outcome = run_worker(job, fetch_page=fetch_page, extract=_extract, context=RunContext.from_search_key("整租"))

    assert fetched == [0, 1, 2]
    assert [record.id for record in outcome.records] == ["000", "001", "100", "101"]
    assert isinstance(outcome.error, HTTPStatusError)
    assert outcome.error.page_offset == 2
    assert outcome.pages_done == 2


def test_zero_match_past_known_end_stops_quietly() -> None:
    job = plan_jobs(5, 1)[0]
    context = RunContext.from_search_key("整租", expected_last_page=1)

    def fetch_page(page: int) -> str:
        return str(page)

    def extract(html: str) -> list[DiscussionRecord]:
        if int(html) > 1:
            raise NoMatchError("blank page matches no discuss link")
        return _extract(html)

    outcome = run_worker(job, fetch_page=fetch_page, extract=extract, context=context)

    assert outcome.error is None
    assert len(outcome.records) == 4


def test_unexpected_zero_match_is_reported() -> None:
    job = plan_jobs(5, 1)[0]

    def extract(html: str) -> list[DiscussionRecord]:
        raise NoMatchError("blank page matches no discuss link")

    outcome = run_worker(job, fetch_page=str, extract=extract, context=RunContext.from_search_key("整租"))

    assert isinstance(outcome.error, NoMatchError)
    assert outcome.error.page_offset == 0
    assert outcome.records == []


def test_cancelled_context_stops_before_next_page() -> None:
    job = plan_jobs(3, 1)[0]
    context = RunContext.from_search_key("整租")

    def fetch_page(page: int) -> str:
        context.cancel()
        return str(page)

    outcome = run_worker(job, fetch_page=fetch_page, extract=_extract, context=context)

    assert outcome.error is None
    assert outcome.pages_done == 1


def test_run_workers_returns_one_outcome_per_job() -> None:
    jobs = plan_jobs(9, 3)

    def fetch_page(page: int) -> str:
        if page == 5:
            raise SessionError("response html title is '豆瓣', need to login")
        return str(page)

    outcomes = run_workers(jobs, fetch_page=fetch_page, extract=_extract, context=RunContext.from_search_key("整租"))

    assert [outcome.job for outcome in outcomes] == jobs
    by_worker = {outcome.job.worker_index: outcome for outcome in outcomes}
    assert len(by_worker[0].records) == 8
    assert len(by_worker[1].records) == 2
    assert isinstance(by_worker[1].error, SessionError)
    assert len(by_worker[2].records) == 4


def test_unexpected_page_failure_keeps_records_and_page() -> None:
    job = plan_jobs(3, 1)[0]

    def extract(html: str) -> list[DiscussionRecord]:
        if html == "2":
            raise RuntimeError("parser exploded")
        return _extract(html)

    outcome = run_worker(job, fetch_page=str, extract=extract, context=RunContext.from_search_key("整租"))

    assert [record.id for record in outcome.records] == ["000", "001", "100", "101"]
    assert outcome.error is not None
    assert outcome.error.page_offset == 2
    assert "parser exploded" in outcome.error.message
    assert outcome.pages_done == 2
