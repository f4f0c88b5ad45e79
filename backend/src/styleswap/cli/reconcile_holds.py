"""CLI command for settling payment holds whose render never reported back.

Usage:
    python -m styleswap.cli reconcile-holds [OPTIONS]

Examples:
    # Capture or refund every stale hold
    python -m styleswap.cli reconcile-holds

    # List stale holds without touching the gateway
    python -m styleswap.cli reconcile-holds --dry-run

    # Treat holds older than 10 minutes as stale
    python -m styleswap.cli reconcile-holds --older-than 600
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from styleswap.core import timezone  # noqa: F401
from styleswap.core.config import Settings, configure_logging
from styleswap.core.database import setup_db_session
from styleswap.services.wiring import build_services
from styleswap.uow import create_uow_factory
from styleswap.workers.hold_reconciler import reconcile_stale_holds

logger = structlog.get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        prog="python -m styleswap.cli reconcile-holds",
        description="Capture or refund payment holds stuck in authorized/pending",
        epilog="Holds of jobs that succeeded are captured; all others are refunded",
    )

    parser.add_argument(
        "--older-than",
        type=int,
        metavar="SECONDS",
        help="Hold age that counts as stale (default: HOLD_TIMEOUT_SECONDS)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List stale holds without capturing or refunding",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (some holds could not be settled)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]

    if args.verbose:
        settings.log_level = "DEBUG"

    configure_logging(settings)

    hold_timeout = args.older_than if args.older_than is not None else settings.hold_timeout_seconds
    logger.info("cli.started", dry_run=args.dry_run, hold_timeout=hold_timeout)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    services = build_services(settings, uow_factory)

    try:
        result = await reconcile_stale_holds(
            uow_factory,
            services.payments,
            hold_timeout,
            dry_run=args.dry_run,
        )
    except SQLAlchemyError as e:
        logger.error("cli.database_error", error=str(e), error_type=type(e).__name__)
        print(f"\nDatabase error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nReconciliation interrupted by user", file=sys.stderr)
        return 130
    finally:
        await session_factory.kw["bind"].dispose()

    print("\n" + "=" * 60)
    print("Stale Hold Reconciliation Summary")
    print("=" * 60)
    print(f"Stale holds found: {result.found}")
    print(f"Skipped (still rendering): {result.skipped}")
    print(f"Captured: {result.captured}")
    print(f"Refunded: {result.refunded}")
    print(f"Failed: {result.failed}")

    if args.dry_run:
        for payment_id in result.payment_ids:
            print(f"  - {payment_id}")
        print("\n[DRY RUN] No payments were captured or refunded")

    print("=" * 60 + "\n")

    if result.failed:
        logger.warning("cli.partial_success", failed=result.failed)
        return 2
    logger.info("cli.success")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Synchronous entry point for CLI."""
    return asyncio.run(async_main(argv))
