"""Stale hold reconciler.

Finds payments still authorized with a pending render long after the hold
timeout. Their poll loop died with a previous process (restart, crash,
deploy), so nobody will ever capture or refund them. A hold whose job
actually succeeded is captured; every other stale hold has its unfinished
jobs marked timed-out and is refunded.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

import structlog

from styleswap.core.config import Settings
from styleswap.models.generation_job import JobStatus
from styleswap.models.transaction import TransactionRecord
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.hold import PaymentHold, to_minor_units
from styleswap.uow import create_uow_factory

logger = structlog.get_logger()

STALE_HOLD_MESSAGE = "Render abandoned before completion; payment released."


@dataclass
class ReconcileResult:
    """Summary of one reconciliation pass."""

    found: int = 0
    captured: int = 0
    refunded: int = 0
    failed: int = 0
    skipped: int = 0
    payment_ids: list[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def reconcile_stale_holds(
    uow_factory: Callable,
    coordinator: PaymentCoordinator,
    hold_timeout_seconds: int,
    active_job_ids: Optional[set[UUID]] = None,
    dry_run: bool = False,
) -> ReconcileResult:
    """Settle holds whose render will never report back.

    Args:
        uow_factory: Factory producing UnitOfWork instances
        coordinator: Payment coordinator used to capture or refund
        hold_timeout_seconds: Age after which an authorized, pending hold is stale
        active_job_ids: Jobs still polled by this process (never touched)
        dry_run: Report stale holds without settling them

    Returns:
        ReconcileResult with counts per outcome
    """
    active_job_ids = active_job_ids or set()
    cutoff = _utcnow() - timedelta(seconds=hold_timeout_seconds)

    async with await uow_factory() as uow:
        records = await uow.transactions.get_stale_holds(cutoff)

    result = ReconcileResult(found=len(records))
    for record in records:
        await _reconcile_one(uow_factory, coordinator, record, active_job_ids, dry_run, result)

    if result.found:
        logger.info(
            "reconciler.pass_completed",
            found=result.found,
            captured=result.captured,
            refunded=result.refunded,
            failed=result.failed,
            skipped=result.skipped,
            dry_run=dry_run,
        )
    return result


async def _reconcile_one(
    uow_factory: Callable,
    coordinator: PaymentCoordinator,
    record: TransactionRecord,
    active_job_ids: set[UUID],
    dry_run: bool,
    result: ReconcileResult,
) -> None:
    payment_id = record.razorpay_payment_id

    async with await uow_factory() as uow:
        jobs = await uow.jobs.get_by_payment_id(payment_id)

    if any(job.id in active_job_ids for job in jobs):
        result.skipped += 1
        logger.debug("reconciler.hold_active", payment_id=payment_id)
        return

    succeeded = any(job.status == JobStatus.SUCCEEDED for job in jobs)
    result.payment_ids.append(payment_id)

    if dry_run:
        logger.info(
            "reconciler.stale_hold",
            payment_id=payment_id,
            action="capture" if succeeded else "refund",
            created_at=record.created_at.isoformat(),
        )
        return

    hold = PaymentHold(
        payment_id=payment_id,
        amount_minor=to_minor_units(record.amount),
        currency=record.currency,
        job_id=jobs[-1].id if jobs else None,
    )

    if succeeded:
        if await coordinator.capture(hold):
            result.captured += 1
        else:
            result.failed += 1
        return

    async with await uow_factory() as uow:
        for job in jobs:
            if not job.is_terminal:
                job.mark_timed_out(STALE_HOLD_MESSAGE)
                await uow.jobs.save(job)

    if await coordinator.refund(hold):
        result.refunded += 1
    else:
        result.failed += 1


async def run_hold_reconciler(
    session_factory: Callable,
    settings: Settings,
    coordinator: PaymentCoordinator,
    active_jobs: Callable[[], set[UUID]] = set,
) -> None:
    """Main worker loop for stale hold reconciliation.

    Runs one pass immediately (startup recovery), then every
    RECONCILE_INTERVAL_SECONDS.

    Args:
        session_factory: Factory function that creates database sessions
        settings: Application settings (hold timeout, interval)
        coordinator: Payment coordinator used to settle holds
        active_jobs: Returns ids of jobs this process is still polling
    """
    uow_factory = create_uow_factory(session_factory)

    logger.info(
        "worker.started",
        worker="hold_reconciler",
        interval=settings.reconcile_interval_seconds,
        hold_timeout=settings.hold_timeout_seconds,
    )

    try:
        while True:
            try:
                await reconcile_stale_holds(
                    uow_factory,
                    coordinator,
                    settings.hold_timeout_seconds,
                    active_job_ids=active_jobs(),
                )

                await asyncio.sleep(settings.reconcile_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    worker="hold_reconciler",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="hold_reconciler")
        raise
