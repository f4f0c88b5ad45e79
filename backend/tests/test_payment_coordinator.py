"""Payment coordinator tests.

Tests focus on the money invariants:
- A hold is captured or refunded, never both
- Free holds never reach the gateway
- Gateway failures leave a reconcilable record instead of raising
"""

import httpx
import pytest

from styleswap.models.generation_job import InvalidStateTransition
from styleswap.models.transaction import RenderStatus, TransactionStatus
from styleswap.services.exceptions import PaymentError
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.hold import FREE_PAYMENT_PREFIX, HoldState
from styleswap.services.payments.razorpay_client import RazorpayClient


async def stored(uow_factory, payment_id):
    async with await uow_factory() as uow:
        return await uow.transactions.get_by_payment_id(payment_id)


def coordinator_with(gateway, uow_factory) -> PaymentCoordinator:
    client = RazorpayClient("rzp_test_key", "rzp_test_secret", transport=gateway.transport())
    return PaymentCoordinator(client, uow_factory)


@pytest.mark.asyncio
async def test_authorize_writes_pending_record(payments, uow_factory):
    hold = await payments.authorize(
        "pay_1", 26, user_email="buyer@example.com", items=[{"type": "video"}]
    )

    assert hold.amount_minor == 2600
    assert hold.state == HoldState.AUTHORIZED
    record = await stored(uow_factory, "pay_1")
    assert record.status == TransactionStatus.AUTHORIZED
    assert record.render_status == RenderStatus.PENDING
    assert record.amount == 26


@pytest.mark.asyncio
async def test_authorize_zero_amount_is_free(payments, gateway, uow_factory):
    hold = await payments.authorize(None, 0)

    assert hold.is_free
    assert hold.payment_id.startswith(FREE_PAYMENT_PREFIX)
    assert await payments.capture(hold) is True
    assert gateway.requests == []
    assert await stored(uow_factory, hold.payment_id) is None


@pytest.mark.asyncio
async def test_authorize_paid_without_payment_id_raises(payments):
    with pytest.raises(PaymentError):
        await payments.authorize(None, 20)


@pytest.mark.asyncio
async def test_capture_once(payments, gateway, uow_factory):
    hold = await payments.authorize("pay_1", 20)

    assert await payments.capture(hold) is True
    assert await payments.capture(hold) is True

    assert len(gateway.calls("capture")) == 1
    assert hold.state == HoldState.CAPTURED
    record = await stored(uow_factory, "pay_1")
    assert record.status == TransactionStatus.CAPTURED
    assert record.render_status == RenderStatus.COMPLETED


@pytest.mark.asyncio
async def test_refund_once(payments, gateway, uow_factory):
    hold = await payments.authorize("pay_1", 20)

    assert await payments.refund(hold) is True
    assert await payments.refund(hold) is True

    assert len(gateway.calls("refund")) == 1
    record = await stored(uow_factory, "pay_1")
    assert record.status == TransactionStatus.REFUNDED
    assert record.render_status == RenderStatus.FAILED


@pytest.mark.asyncio
async def test_captured_hold_is_never_refunded(payments, gateway):
    hold = await payments.authorize("pay_1", 20)
    await payments.capture(hold)

    with pytest.raises(InvalidStateTransition):
        await payments.refund(hold)

    assert gateway.calls("refund") == []


@pytest.mark.asyncio
async def test_refunded_hold_is_never_captured(payments, gateway):
    hold = await payments.authorize("pay_1", 20)
    await payments.refund(hold)

    assert await payments.capture(hold) is False
    assert gateway.calls("capture") == []


@pytest.mark.asyncio
async def test_capture_failure_flags_record_for_reconciliation(uow_factory, gateway_recorder):
    gateway = gateway_recorder(
        capture_status=400, capture_body={"error": {"description": "Payment not authorized"}}
    )
    payments = coordinator_with(gateway, uow_factory)
    hold = await payments.authorize("pay_1", 28)

    assert await payments.capture(hold) is False

    assert hold.state == HoldState.FAILED
    record = await stored(uow_factory, "pay_1")
    assert record.status == TransactionStatus.FAILED
    assert record.render_status == RenderStatus.COMPLETED


@pytest.mark.asyncio
async def test_refund_failure_requests_manual_refund(uow_factory, gateway_recorder):
    gateway = gateway_recorder(refund_status=500)
    payments = coordinator_with(gateway, uow_factory)
    hold = await payments.authorize("pay_1", 28)

    assert await payments.refund(hold) is False

    assert hold.state == HoldState.FAILED
    record = await stored(uow_factory, "pay_1")
    assert record.status == TransactionStatus.REFUND_REQUESTED
    # A failed hold is not retried through the gateway
    assert await payments.refund(hold) is False
    assert len(gateway.calls("refund")) == 1


@pytest.mark.asyncio
async def test_refund_with_unreadable_success_body_resolves_hold(uow_factory):
    def handler(request):
        return httpx.Response(200, content=b"")

    client = RazorpayClient("k", "s", transport=httpx.MockTransport(handler))
    payments = PaymentCoordinator(client, uow_factory)
    hold = await payments.authorize("pay_1", 28)

    assert await payments.refund(hold)

    assert hold.state == HoldState.REFUNDED
    record = await stored(uow_factory, "pay_1")
    assert record.status == TransactionStatus.REFUNDED
