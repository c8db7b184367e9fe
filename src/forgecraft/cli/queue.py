"""CLI command for inspecting and maintaining the generation queue.

Works directly against the SQLite store, so it can be used while the desktop
app is closed (e.g. to retry failed jobs before the next launch).

Usage:
    python -m forgecraft.cli.queue COMMAND [OPTIONS]

Examples:
    # Aggregate counts and the job currently generating
    python -m forgecraft.cli.queue status

    # Failed jobs only
    python -m forgecraft.cli.queue list --status failed

    # Put a failed job back to pending
    python -m forgecraft.cli.queue retry 0b7c5f0e-...

    # Drop a pending job
    python -m forgecraft.cli.queue cancel 0b7c5f0e-...

    # Delete every completed item (history is kept)
    python -m forgecraft.cli.queue clear-completed
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from forgecraft.core import timezone  # noqa: F401
from forgecraft.core.config import Settings, configure_logging
from forgecraft.core.database import create_engine, create_schema, setup_db_session
from forgecraft.models.queue_item import QueueStatus
from forgecraft.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Inspect and maintain the Forgecraft generation queue",
        epilog="Run while the app is closed to avoid racing the queue processor",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show pending/generating/completed/failed counts")

    list_parser = subparsers.add_parser("list", help="List queue items, newest first")
    list_parser.add_argument(
        "--status",
        choices=[status.value for status in QueueStatus],
        help="Only list items in this status",
    )
    list_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of items to show (default: 50)",
    )

    retry_parser = subparsers.add_parser("retry", help="Reset a failed item to pending")
    retry_parser.add_argument("job_id")

    cancel_parser = subparsers.add_parser("cancel", help="Delete a pending item")
    cancel_parser.add_argument("job_id")

    subparsers.add_parser("clear-completed", help="Delete all completed items")

    return parser.parse_args(argv)


async def run_command(args: Namespace, uow_factory) -> int:
    """Execute one queue command.

    Returns:
        Exit code: 0 (success), 1 (command did not apply)
    """
    if args.command == "status":
        async with await uow_factory() as uow:
            summary = await uow.queue.counts_by_status()
        print(f"Pending:    {summary.pending}")
        print(f"Generating: {summary.generating or '-'}")
        print(f"Completed:  {summary.completed}")
        print(f"Failed:     {summary.failed}")
        return 0

    if args.command == "list":
        status = QueueStatus(args.status) if args.status else None
        async with await uow_factory() as uow:
            items = await uow.queue.list(status=status, limit=args.limit)
        for item in items:
            line = f"{item.id}  {item.status.value:<10}  {item.created_at.isoformat()}"
            if item.error:
                line += f"  error={item.error}"
            print(line)
        if not items:
            print("Queue is empty")
        return 0

    if args.command == "retry":
        async with await uow_factory() as uow:
            reset = await uow.queue.reset_to_pending(
                args.job_id, expected_status=QueueStatus.FAILED
            )
        if not reset:
            print(f"Error: {args.job_id} is not a failed queue item", file=sys.stderr)
            return 1
        logger.info("cli.job_retried", job_id=args.job_id)
        print(f"Retrying {args.job_id}")
        return 0

    if args.command == "cancel":
        async with await uow_factory() as uow:
            deleted = await uow.queue.delete(args.job_id, expected_statuses=[QueueStatus.PENDING])
        if not deleted:
            print(f"Error: {args.job_id} is not a pending queue item", file=sys.stderr)
            return 1
        logger.info("cli.job_cancelled", job_id=args.job_id)
        print(f"Cancelled {args.job_id}")
        return 0

    # clear-completed
    async with await uow_factory() as uow:
        cleared = await uow.queue.clear_completed()
    logger.info("cli.completed_cleared", count=cleared)
    print(f"Cleared {cleared} completed item(s)")
    return 0


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    # Initialize settings and logging
    settings = Settings()  # type: ignore[call-arg]

    # Configure logging level
    if args.verbose:
        settings.log_level = "DEBUG"

    configure_logging(settings)

    logger.info("cli.started", command=args.command, data_dir=str(settings.data_dir))

    engine = create_engine(settings.database_url)
    session_factory = setup_db_session(engine)

    try:
        # Schema only: crash recovery belongs to app startup, and the app may
        # be generating an item right now
        await create_schema(engine)
        return await run_command(args, create_uow_factory(session_factory))

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nInterrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await engine.dispose()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
