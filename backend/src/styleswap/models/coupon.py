"""Coupon entity - promo codes applied at checkout."""

from enum import Enum
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(SQLModel, table=True):
    """Coupon discounts a purchase by a percentage or a fixed amount.

    Codes are stored upper-cased; CouponRepository normalizes on write and lookup.
    """

    __tablename__ = "coupons"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    code: str = Field(unique=True, index=True, max_length=64)
    type: CouponType
    value: float = Field(ge=0)
    is_active: bool = Field(default=True)
