"""TransactionRecord entity - audit trail for a purchase and its render."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class TransactionStatus(str, Enum):
    """Payment status as seen by operators."""

    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUND_REQUESTED = "refund_requested"
    REFUNDED = "refunded"


class RenderStatus(str, Enum):
    """Render status of the purchased artifact."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionRecord(SQLModel, table=True):
    """TransactionRecord stores one gateway payment and the state of what it paid for."""

    __tablename__ = "transactions"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    razorpay_payment_id: str = Field(unique=True, index=True, max_length=255)
    user_email: str = Field(default="", max_length=320)
    amount: float = Field(ge=0)  # Major currency units, as charged
    currency: str = Field(default="INR", max_length=8)
    items: list = Field(default_factory=list, sa_column=Column(JSON))
    status: TransactionStatus = Field(default=TransactionStatus.AUTHORIZED, index=True)
    render_status: Optional[RenderStatus] = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
