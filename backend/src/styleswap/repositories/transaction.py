"""TransactionRecord repository.

Writes tolerate deployments whose transactions table predates the
render_status column: the statement is retried without that column and a
warning is logged instead of failing the whole write.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from styleswap.models.transaction import RenderStatus, TransactionRecord, TransactionStatus

logger = structlog.get_logger()

RENDER_STATUS_COLUMN = "render_status"


def _is_missing_render_status(error: DBAPIError) -> bool:
    return RENDER_STATUS_COLUMN in str(error.orig or error)


class TransactionRepository:
    """Repository for TransactionRecord entities.

    Uses Core insert/update statements so a missing optional column can be
    dropped from the statement on retry. Callers should give the repository
    its own session: the retry path rolls the session back.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, record: TransactionRecord) -> None:
        """Insert a new transaction record.

        Args:
            record: TransactionRecord to persist
        """
        values = {
            "id": record.id,
            "razorpay_payment_id": record.razorpay_payment_id,
            "user_email": record.user_email,
            "amount": record.amount,
            "currency": record.currency,
            "items": record.items,
            "status": record.status,
            "render_status": record.render_status,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }
        try:
            await self.session.execute(insert(TransactionRecord).values(**values))
            await self.session.flush()
        except DBAPIError as e:
            if not _is_missing_render_status(e):
                raise
            await self.session.rollback()
            logger.warning(
                "transaction.render_status_column_missing",
                payment_id=record.razorpay_payment_id,
                operation="insert",
            )
            values.pop(RENDER_STATUS_COLUMN)
            await self.session.execute(insert(TransactionRecord).values(**values))
            await self.session.flush()

    async def update_status(
        self,
        payment_id: str,
        status: TransactionStatus | None = None,
        render_status: RenderStatus | None = None,
    ) -> bool:
        """Update payment and/or render status for a gateway payment id.

        Args:
            payment_id: Razorpay payment id
            status: New payment status (unchanged if None)
            render_status: New render status (unchanged if None)

        Returns:
            True if a row was updated, False if no record matched
        """
        changes: dict[str, Any] = {"updated_at": datetime.now(timezone.utc).replace(tzinfo=None)}
        if status is not None:
            changes["status"] = status
        if render_status is not None:
            changes[RENDER_STATUS_COLUMN] = render_status

        stmt = update(TransactionRecord).where(
            TransactionRecord.razorpay_payment_id == payment_id  # type: ignore[arg-type]
        )
        try:
            result = await self.session.execute(stmt.values(**changes))
        except DBAPIError as e:
            if not _is_missing_render_status(e):
                raise
            await self.session.rollback()
            logger.warning(
                "transaction.render_status_column_missing",
                payment_id=payment_id,
                operation="update",
            )
            changes.pop(RENDER_STATUS_COLUMN, None)
            result = await self.session.execute(stmt.values(**changes))
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def get_by_payment_id(self, payment_id: str) -> TransactionRecord | None:
        """Retrieve transaction by gateway payment id."""
        result = await self.session.execute(
            select(TransactionRecord).where(
                TransactionRecord.razorpay_payment_id == payment_id  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def get_stale_holds(self, cutoff: datetime) -> list[TransactionRecord]:
        """Retrieve authorized transactions still pending a render before cutoff.

        Args:
            cutoff: Naive UTC timestamp; records created earlier are stale

        Returns:
            Stale records, oldest first
        """
        result = await self.session.execute(
            select(TransactionRecord)
            .where(
                TransactionRecord.status == TransactionStatus.AUTHORIZED,  # type: ignore[arg-type]
                TransactionRecord.render_status == RenderStatus.PENDING,  # type: ignore[arg-type]
                TransactionRecord.created_at < cutoff,  # type: ignore[arg-type]
            )
            .order_by(TransactionRecord.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
