from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from group_harvest.config import assert_required, load_settings, load_settings_file
from group_harvest.pipeline import run_pipeline
from group_harvest.scheduler import plan_jobs
from group_harvest.sinks import json_report_sink, log_records_sink

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="group-harvest")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Harvest, filter and report group discussions")
    run_parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    run_parser.add_argument("--no-enrich", action="store_true", help="Skip detail enrichment")
    run_parser.add_argument("--no-report", action="store_true", help="Log records instead of writing a report")

    plan_parser = subparsers.add_parser("plan", help="Show how pages are split across workers")
    plan_parser.add_argument("--max-page", type=int, required=True)
    plan_parser.add_argument("--workers", type=int, required=True)

    return parser


def _cmd_run(args: argparse.Namespace) -> int:
    settings = load_settings_file(args.config) if args.config else load_settings()
    if args.no_enrich:
        settings = settings.model_copy(update={"enrich": False})
    assert_required(settings)

    sinks = (log_records_sink,) if args.no_report else (json_report_sink,)
    result = run_pipeline(settings, sinks=sinks)

    print(result.summary_text)
    if result.aggregate.error and not result.records:
        return 1
    return 0


def _cmd_plan(args: argparse.Namespace) -> int:
    jobs = plan_jobs(args.max_page, args.workers)
    table = Table(title="Worker chunks", show_header=True, header_style="bold cyan")
    table.add_column("Worker", justify="right")
    table.add_column("Pages")
    table.add_column("Count", justify="right")
    for job in jobs:
        pages = "-" if job.is_empty else f"{job.page_start}..{job.page_end}"
        table.add_row(str(job.worker_index), pages, str(len(job.pages)))
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        if args.command == "run":
            return _cmd_run(args)
        if args.command == "plan":
            return _cmd_plan(args)
    except ValueError as exc:
        print(exc)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
