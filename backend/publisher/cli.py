"""
Command line interface for the publishing pipeline.

Usage:
    python -m publisher run [--preview] [--no-sync] [--limit=N] [--force] [--quiet]
    python -m publisher sync [--preview] [--limit=N] [--force]
    python -m publisher reset-errors [--days=N]
    python -m publisher recover [--minutes=N]
    python -m publisher stats
    python -m publisher serve [--host HOST] [--port PORT]

Exit code is 0 on success (including "nothing to publish"), 1 on failure.
"""

import argparse
import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from publisher.config import Settings, get_settings
from publisher.logging_config import setup_logging
from publisher.models.schemas import PipelineOptions, PipelineStep
from publisher.services.errors import PublisherError
from publisher.services.pipeline import PipelineOrchestrator, ProgressCallback
from publisher.services.run_history import RunHistory

logger = logging.getLogger(__name__)

# Builds an orchestrator context for the given settings
OrchestratorFactory = Callable[[Settings], AbstractAsyncContextManager[PipelineOrchestrator]]


def positive_int(value: str) -> int:
    """argparse type for integers >= 1."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="publisher",
        description="Drive -> Notion -> YouTube publishing pipeline",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Publish the next pending video")
    run.add_argument("--preview", action="store_true", help="Show the next video without changing anything")
    run.add_argument("--no-sync", action="store_true", help="Skip the Drive sync before selecting")
    run.add_argument("--limit", type=positive_int, default=None, help="Register at most N new videos during sync")
    run.add_argument("--force", action="store_true", help="Sync without checking existing records")
    run.add_argument("--quiet", action="store_true", help="Do not print progress")

    sync = commands.add_parser("sync", help="Register new Drive videos in Notion")
    sync.add_argument("--preview", action="store_true", help="Count new videos without creating records")
    sync.add_argument("--limit", type=positive_int, default=None, help="Register at most N new videos")
    sync.add_argument("--force", action="store_true", help="Do not check existing records")
    sync.add_argument("--folder", default=None, help="Drive folder id (default: GOOGLE_DRIVE_FOLDER_ID)")

    reset = commands.add_parser("reset-errors", help="Return old Error records to Pending")
    reset.add_argument("--days", type=int, default=None, help="Minimum error age in days (default: ERROR_RESET_DAYS)")

    recover = commands.add_parser("recover", help="Fail records stuck in Processing")
    recover.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Minimum claim age in minutes (default: STUCK_PROCESSING_MINUTES)",
    )

    commands.add_parser("stats", help="Show record counts per status")

    serve = commands.add_parser("serve", help="Start the HTTP trigger")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=3333)

    return parser


def make_progress_printer() -> ProgressCallback:
    """
    Build a progress callback printing one line per whole percent.

    Updates that do not move the overall percentage within the same
    step are dropped.
    """
    last = {"step": None, "percent": -1}

    async def print_progress(step: PipelineStep, progress: float, message: str) -> None:
        percent = int(progress)
        if step == last["step"] and percent == last["percent"]:
            return
        last["step"], last["percent"] = step, percent
        print(f"  [{step.value}] {percent}% - {message}", flush=True)

    return print_progress


def print_run_result(result) -> None:
    """Print a short summary of a pipeline run."""
    print(f"Step: {result.step.value} ({'ok' if result.success else 'FAILED'})")
    if result.sync is not None:
        sync = result.sync
        print(
            f"Sync: {sync.created} created, {sync.skipped} skipped, "
            f"{sync.errors} error(s), {sync.deferred} deferred"
        )
    if result.record is not None:
        print(f"Video: {result.record.title} ({result.record.record_id})")
    if result.publish is not None:
        print(f"URL: {result.publish.url}")
    if result.error:
        print(f"Error: {result.error}")
    print(f"Duration: {result.duration_seconds}s")


async def run_command(
    args: argparse.Namespace,
    settings: Settings,
    open_orchestrator: OrchestratorFactory,
) -> int:
    """
    Execute a pipeline subcommand.

    Returns:
        Process exit code
    """
    async with open_orchestrator(settings) as orchestrator:
        if args.command == "run":
            options = PipelineOptions(
                preview=args.preview,
                sync=not args.no_sync,
                sync_limit=args.limit,
                force_sync=args.force,
            )
            progress = None if args.quiet or options.preview else make_progress_printer()
            result = await orchestrator.run_pipeline_once(options, progress_callback=progress)
            if not options.preview:
                RunHistory.from_settings(settings).record_run(result)
            print_run_result(result)
            if result.step == PipelineStep.NO_VIDEO:
                print("No pending video to publish")
            return 0 if result.success else 1

        if args.command == "sync":
            sync = await orchestrator.reconciler.reconcile(
                source_folder=args.folder,
                dry_run=args.preview,
                limit=args.limit,
                force=args.force,
            )
            verb = "would be created" if sync.dry_run else "created"
            print(
                f"{sync.created} {verb}, {sync.skipped} skipped, {sync.errors} error(s), "
                f"{sync.deferred} deferred, {sync.total} in Drive"
            )
            for title in sync.created_titles:
                print(f"  + {title}")
            return 1 if sync.errors else 0

        if args.command == "reset-errors":
            count = await orchestrator.lifecycle.reset_stale_errors(args.days)
            print(f"{count} record(s) reset to Pending")
            return 0

        if args.command == "recover":
            count = await orchestrator.lifecycle.recover_stuck_processing(args.minutes)
            print(f"{count} stuck record(s) moved to Error")
            return 0

        if args.command == "stats":
            stats = await orchestrator.selector.stats()
            print(f"Total:      {stats.total}")
            print(f"Pending:    {stats.pending}")
            print(f"Processing: {stats.processing}")
            print(f"Uploaded:   {stats.uploaded}")
            print(f"Error:      {stats.error}")
            last = f"{stats.last_upload:%d/%m/%Y %H:%M}" if stats.last_upload else "-"
            print(f"Last upload: {last}")
            return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(
    argv: list[str] | None = None,
    settings: Settings | None = None,
    open_orchestrator: OrchestratorFactory | None = None,
) -> int:
    """
    CLI entry point.

    Args:
        argv: Arguments (default: sys.argv[1:])
        settings: Application settings (uses defaults if None)
        open_orchestrator: Orchestrator factory (default: real services)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    settings = settings or get_settings()
    setup_logging(settings)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("publisher.main:app", host=args.host, port=args.port)
        return 0

    try:
        return asyncio.run(
            run_command(args, settings, open_orchestrator or PipelineOrchestrator.open)
        )
    except PublisherError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}")
        return 1
