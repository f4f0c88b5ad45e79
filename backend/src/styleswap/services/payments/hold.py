"""PaymentHold - money held against a purchase until its render resolves."""

import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from styleswap.models.generation_job import InvalidStateTransition

FREE_PAYMENT_PREFIX = "free_"


class HoldState(str, Enum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


def to_minor_units(amount: float | int | Decimal) -> int:
    """Convert a major-unit amount (rupees) to minor units (paise)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def free_payment_id() -> str:
    """Payment id used for zero-price claims that never touch the gateway."""
    return f"{FREE_PAYMENT_PREFIX}{int(time.time() * 1000)}"


@dataclass
class PaymentHold:
    """Authorized payment awaiting capture or refund.

    Capture and refund are mutually exclusive; re-capturing a captured hold
    is a no-op.
    """

    payment_id: str
    amount_minor: int
    currency: str = "INR"
    job_id: Optional[UUID] = None
    state: HoldState = HoldState.AUTHORIZED

    @property
    def is_free(self) -> bool:
        return self.amount_minor == 0

    @property
    def is_resolved(self) -> bool:
        return self.state != HoldState.AUTHORIZED

    def mark_captured(self) -> None:
        if self.state == HoldState.CAPTURED:
            return
        if self.state != HoldState.AUTHORIZED:
            raise InvalidStateTransition(
                f"Cannot capture hold {self.payment_id} in state {self.state.value}."
            )
        self.state = HoldState.CAPTURED

    def mark_refunded(self) -> None:
        if self.state == HoldState.REFUNDED:
            return
        if self.state != HoldState.AUTHORIZED:
            raise InvalidStateTransition(
                f"Cannot refund hold {self.payment_id} in state {self.state.value}."
            )
        self.state = HoldState.REFUNDED

    def mark_failed(self) -> None:
        """Remote capture/refund failed; the hold needs manual reconciliation."""
        if self.state != HoldState.AUTHORIZED:
            raise InvalidStateTransition(
                f"Cannot fail hold {self.payment_id} in state {self.state.value}."
            )
        self.state = HoldState.FAILED
