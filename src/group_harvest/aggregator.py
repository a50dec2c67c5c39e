from __future__ import annotations

from collections import Counter

from group_harvest.models import AggregateResult, DiscussionRecord, WorkerOutcome


def error_lines(counts: dict[str, int], pages: dict[str, list[int]]) -> list[str]:
    """One line per distinct error, most frequent first."""
    lines = []
    for key, count in Counter(counts).most_common():
        page_list = ", ".join(str(page) for page in sorted(pages.get(key, [])))
        suffix = f" [pages {page_list}]" if page_list else ""
        lines.append(f"{key} (x{count}){suffix}")
    return lines


def summarize_errors(
    outcomes: list[WorkerOutcome],
) -> tuple[str | None, dict[str, int], dict[str, list[int]]]:
    counts: Counter[str] = Counter()
    pages: dict[str, list[int]] = {}
    for outcome in outcomes:
        if outcome.error is None:
            continue
        key = outcome.error.summary_key()
        counts[key] += 1
        if outcome.error.page_offset is not None:
            pages.setdefault(key, []).append(outcome.error.page_offset)

    if not counts:
        return None, {}, {}
    return "; ".join(error_lines(counts, pages)), dict(counts), pages


def aggregate(outcomes: list[WorkerOutcome]) -> AggregateResult:
    """Merge worker outcomes; errors never cause collected records to be dropped."""
    records: list[DiscussionRecord] = [record for outcome in outcomes for record in outcome.records]
    error, error_counts, error_pages = summarize_errors(outcomes)
    return AggregateResult(
        records=records,
        error=error,
        error_counts=error_counts,
        error_pages=error_pages,
        expected_pages=sum(len(outcome.job.pages) for outcome in outcomes),
        pages_done=sum(outcome.pages_done for outcome in outcomes),
    )
