# =============================================================================
# rca_dashboard/cli/console.py: operator CLI
# =============================================================================
#
# Terminal counterpart of the dashboard pages.
#
#   sync     start an ingestion sync and watch it until it finishes
#   status   one-off status lookup for a sync id
#   search   similar-incident search
#   stats    corpus statistics
#   page         show one ingested page
#   ingest-page  ask the backend to (re)ingest one page
#
# Usage examples:
#   python -m rca_dashboard.cli sync --type INCREMENTAL --spaces "ENG,OPS" --tags rca
#   python -m rca_dashboard.cli sync --type FULL --no-watch
#   python -m rca_dashboard.cli status 6f1c0d9e-...
#   python -m rca_dashboard.cli search "database connection pool exhausted" --top-k 3
#   python -m rca_dashboard.cli stats
#   python -m rca_dashboard.cli ingest-page 123456
#
# Exit codes: 0 success, 1 failed / stalled job or backend error, 2 usage.
# =============================================================================

"""Command-line interface for starting and watching RCA ingestion syncs."""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx

from rca_dashboard.config.settings import Settings
from rca_dashboard.models.job import JobConfig, JobRecord, JobStatus
from rca_dashboard.pipeline.job_tracker import JobTracker
from rca_dashboard.pipeline.poll_scheduler import SchedulerState
from rca_dashboard.providers.backend.http_job_status_client import HttpJobStatusClient
from rca_dashboard.providers.backend.rca_api_client import RcaApiClient
from rca_dashboard.utils.errors import RcaDashboardError, ValidationError
from rca_dashboard.utils.logging import configure_logging


def format_record(record: JobRecord) -> str:
    """One status line, e.g. ``abc12345  RUNNING   40%  4/10 processed, 0 failed``."""
    line = (
        f"{record.job_id[:8]}  {record.status.value:<9} {record.progress_percent:>3}%  "
        f"{record.processed}/{record.discovered} processed, {record.failed} failed"
    )
    if record.message:
        line += f"  ({record.message})"
    return line


def _http_client(app_settings: Settings, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=app_settings.request_timeout_seconds, transport=transport)


def _rca_client(http: httpx.AsyncClient, app_settings: Settings) -> RcaApiClient:
    return RcaApiClient(
        http,
        base_url=app_settings.rca_api_base_url,
        timeout=app_settings.request_timeout_seconds,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sync(
    args: argparse.Namespace,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Start a sync; unless ``--no-watch`` follow it until polling stops."""
    config = JobConfig.from_text(args.type, args.spaces, args.tags, limit=args.limit)

    async with _http_client(app_settings, transport) as http:
        client = HttpJobStatusClient(
            http,
            base_url=app_settings.rca_api_base_url,
            timeout=app_settings.request_timeout_seconds,
        )
        async with JobTracker(
            client,
            interval=app_settings.poll_interval_seconds,
            max_retries=app_settings.poll_max_retries,
            retry_backoff=app_settings.poll_retry_backoff_seconds,
        ) as tracker:
            tracker.subscribe(lambda _job_id, record: print(format_record(record)))
            job_id = await tracker.start_job(config)

            if not args.watch:
                print(f"Sync started: {job_id}")
                return 0

            final_state = await tracker.wait_for(job_id)
            record = tracker.get_job(job_id)

    if final_state is SchedulerState.FAILED:
        print(f"Stopped watching {job_id}: status polling failed; last known state above.",
              file=sys.stderr)
        return 1
    if record is not None and record.status is JobStatus.FAILED:
        return 1
    return 0


async def _handle_status(
    args: argparse.Namespace,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    async with _http_client(app_settings, transport) as http:
        client = HttpJobStatusClient(
            http,
            base_url=app_settings.rca_api_base_url,
            timeout=app_settings.request_timeout_seconds,
        )
        record = await client.poll(args.sync_id)
    print(format_record(record))
    if record.completed_at is not None:
        print(f"  Completed: {record.completed_at.isoformat()}")
    return 0


async def _handle_search(
    args: argparse.Namespace,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    async with _http_client(app_settings, transport) as http:
        client = _rca_client(http, app_settings)
        response = await client.search(args.query, top_k=args.top_k, mode=args.mode)

    if not response.results:
        print("No similar incidents found.")
        return 0

    if response.summary is not None:
        print(f"Suggested root cause ({response.summary.confidence}): "
              f"{response.summary.suggested_root_cause}")
        print()
    for idx, result in enumerate(response.results, start=1):
        print(f"{idx}. {result.title}  [{result.similarity_score:.2f}]")
        if result.url:
            print(f"   {result.url}")
        if result.root_cause:
            print(f"   Root cause: {result.root_cause}")
    return 0


async def _handle_stats(
    args: argparse.Namespace,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    async with _http_client(app_settings, transport) as http:
        client = _rca_client(http, app_settings)
        stats = await client.get_stats()

    print(f"Total pages: {stats.total_pages}")
    for status, count in sorted(stats.pages_by_status.items()):
        print(f"  {status:<9} {count}")
    return 0


async def _handle_page(
    args: argparse.Namespace,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    async with _http_client(app_settings, transport) as http:
        page = await _rca_client(http, app_settings).get_page(args.page_id)

    print(f"{page.page_id}  {page.status:<8} [{page.space_key}] {page.title}")
    if page.url:
        print(f"  {page.url}")
    if page.tags:
        print(f"  Tags: {', '.join(page.tags)}")
    if page.ingested_at is not None:
        print(f"  Ingested: {page.ingested_at.isoformat()}")
    if page.error_message:
        print(f"  Error: {page.error_message}")
    return 1 if page.status == "ERROR" else 0


async def _handle_ingest_page(
    args: argparse.Namespace,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    async with _http_client(app_settings, transport) as http:
        await _rca_client(http, app_settings).ingest_page(args.page_id)
    print(f"Ingestion requested for page {args.page_id}")
    return 0


_HANDLERS = {
    "sync": _handle_sync,
    "status": _handle_status,
    "search": _handle_search,
    "stats": _handle_stats,
    "page": _handle_page,
    "ingest-page": _handle_ingest_page,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rca-dashboard",
        description="Start and watch RCA ingestion syncs, search incidents.",
    )
    parser.add_argument("--log-level", default="WARNING",
                        help="Structured log level (default WARNING keeps progress output readable)")
    sub = parser.add_subparsers(dest="command")

    sync = sub.add_parser("sync", help="Start an ingestion sync")
    sync.add_argument("--type", default="INCREMENTAL", help="FULL or INCREMENTAL")
    sync.add_argument("--spaces", default="", help="Comma-separated space keys, e.g. 'ENG,OPS'")
    sync.add_argument("--tags", default="", help="Comma-separated labels, e.g. 'rca,post-mortem'")
    sync.add_argument("--limit", type=int, default=None, help="Max pages to process")
    sync.add_argument("--no-watch", dest="watch", action="store_false",
                      help="Return as soon as the sync has started")

    status = sub.add_parser("status", help="Show the status of one sync")
    status.add_argument("sync_id")

    search = sub.add_parser("search", help="Search similar incidents")
    search.add_argument("query")
    search.add_argument("--top-k", type=int, default=5)
    search.add_argument("--mode", choices=("all", "symptoms", "root-cause"), default="all")

    sub.add_parser("stats", help="Show corpus statistics")

    page = sub.add_parser("page", help="Show one ingested page")
    page.add_argument("page_id")

    ingest_page = sub.add_parser("ingest-page", help="(Re)ingest one page by id")
    ingest_page.add_argument("page_id")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    app_settings = Settings()
    configure_logging(args.log_level)

    handler = _HANDLERS[args.command]
    try:
        exit_code = asyncio.run(handler(args, app_settings))
    except ValidationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        exit_code = 2
    except RcaDashboardError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
