"""Payment coordinator: hold before rendering, capture on success, refund on failure.

The coordinator owns the money side of a render. It never decides whether a
render succeeded; the orchestrator calls exactly one of capture or refund
per hold. Every capture/refund attempt is mirrored into the TransactionRecord
through its own short unit of work, and a persistence failure is logged
rather than raised so it cannot mask the payment outcome.
"""

from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from styleswap.models.transaction import RenderStatus, TransactionRecord, TransactionStatus
from styleswap.services.exceptions import ConfigurationError, PaymentError
from styleswap.services.payments.hold import (
    HoldState,
    PaymentHold,
    free_payment_id,
    to_minor_units,
)
from styleswap.services.payments.razorpay_client import RazorpayClient

logger = structlog.get_logger()


class PaymentCoordinator:
    """Ties one authorized Razorpay payment to one render."""

    def __init__(
        self,
        gateway: RazorpayClient,
        uow_factory: Callable,
        default_currency: str = "INR",
    ):
        """Initialize coordinator.

        Args:
            gateway: Razorpay client used for capture and refund
            uow_factory: Factory producing UnitOfWork instances
            default_currency: Currency used when authorize() is not given one
        """
        self.gateway = gateway
        self.uow_factory = uow_factory
        self.default_currency = default_currency

    async def authorize(
        self,
        payment_id: Optional[str],
        amount: float,
        currency: Optional[str] = None,
        user_email: str = "",
        items: Optional[list[dict[str, Any]]] = None,
        job_id: Optional[UUID] = None,
    ) -> PaymentHold:
        """Record an authorized payment before rendering starts.

        A zero amount yields a free hold: nothing is written and the gateway
        is never contacted for it.

        Args:
            payment_id: Gateway payment id (ignored for free holds)
            amount: Amount in major units, as charged
            currency: ISO currency code
            user_email: Purchaser email for the audit trail
            items: Line items for the audit trail
            job_id: Render job the hold pays for

        Returns:
            PaymentHold in state authorized
        """
        currency = currency or self.default_currency

        if amount <= 0:
            hold = PaymentHold(
                payment_id=payment_id or free_payment_id(),
                amount_minor=0,
                currency=currency,
                job_id=job_id,
            )
            logger.info("payment.free_hold", payment_id=hold.payment_id, job_id=str(job_id))
            return hold

        if not payment_id:
            raise PaymentError("A payment id is required for a paid render.")

        hold = PaymentHold(
            payment_id=payment_id,
            amount_minor=to_minor_units(amount),
            currency=currency,
            job_id=job_id,
        )
        record = TransactionRecord(
            razorpay_payment_id=payment_id,
            user_email=user_email,
            amount=amount,
            currency=currency,
            items=items or [],
            status=TransactionStatus.AUTHORIZED,
            render_status=RenderStatus.PENDING,
        )

        try:
            async with await self.uow_factory() as uow:
                await uow.transactions.add(record)
        except SQLAlchemyError as e:
            logger.error(
                "payment.record_failed",
                payment_id=payment_id,
                operation="authorize",
                error_type=type(e).__name__,
                error_message=str(e),
            )

        logger.info(
            "payment.authorized",
            payment_id=payment_id,
            amount_minor=hold.amount_minor,
            currency=currency,
            job_id=str(job_id),
        )
        return hold

    async def capture(self, hold: PaymentHold) -> bool:
        """Capture the held amount after a successful render.

        Returns:
            True if the money is captured (now or earlier), False if capture failed
        """
        if hold.is_free:
            return True
        if hold.state == HoldState.CAPTURED:
            logger.info("payment.capture.already_captured", payment_id=hold.payment_id)
            return True
        if hold.state != HoldState.AUTHORIZED:
            logger.error(
                "payment.capture.rejected",
                payment_id=hold.payment_id,
                state=hold.state.value,
            )
            return False

        try:
            await self.gateway.capture(hold.payment_id, hold.amount_minor, hold.currency)
        except (PaymentError, ConfigurationError) as e:
            hold.mark_failed()
            logger.error(
                "payment.capture.failed",
                payment_id=hold.payment_id,
                job_id=str(hold.job_id),
                error_type=type(e).__name__,
                error_message=str(e),
            )
            # The artifact is still delivered; the record flags it for reconciliation
            await self._record(hold.payment_id, TransactionStatus.FAILED, RenderStatus.COMPLETED)
            return False

        hold.mark_captured()
        logger.info("payment.captured", payment_id=hold.payment_id, job_id=str(hold.job_id))
        await self._record(hold.payment_id, TransactionStatus.CAPTURED, RenderStatus.COMPLETED)
        return True

    async def refund(self, hold: PaymentHold) -> bool:
        """Refund the full held amount after a failed render.

        Returns:
            True if the money went back (now or earlier), False if the refund failed

        Raises:
            InvalidStateTransition: Hold was already captured
        """
        if hold.is_free:
            return True
        if hold.state == HoldState.REFUNDED:
            logger.info("payment.refund.already_refunded", payment_id=hold.payment_id)
            return True
        if hold.state == HoldState.FAILED:
            logger.error("payment.refund.rejected", payment_id=hold.payment_id)
            return False

        # Captured holds raise here; capture and refund are exclusive
        if hold.state != HoldState.AUTHORIZED:
            hold.mark_refunded()

        try:
            await self.gateway.refund(hold.payment_id, hold.amount_minor)
        except (PaymentError, ConfigurationError) as e:
            hold.mark_failed()
            logger.error(
                "payment.refund.failed",
                payment_id=hold.payment_id,
                job_id=str(hold.job_id),
                error_type=type(e).__name__,
                error_message=str(e),
            )
            await self._record(
                hold.payment_id, TransactionStatus.REFUND_REQUESTED, RenderStatus.FAILED
            )
            return False

        hold.mark_refunded()
        logger.info("payment.refunded", payment_id=hold.payment_id, job_id=str(hold.job_id))
        await self._record(hold.payment_id, TransactionStatus.REFUNDED, RenderStatus.FAILED)
        return True

    async def _record(
        self, payment_id: str, status: TransactionStatus, render_status: RenderStatus
    ) -> None:
        try:
            async with await self.uow_factory() as uow:
                updated = await uow.transactions.update_status(
                    payment_id, status=status, render_status=render_status
                )
        except SQLAlchemyError as e:
            logger.error(
                "payment.record_failed",
                payment_id=payment_id,
                status=status.value,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return

        if not updated:
            logger.warning("payment.record_missing", payment_id=payment_id, status=status.value)
