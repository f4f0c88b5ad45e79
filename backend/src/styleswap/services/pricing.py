"""Checkout pricing for videos and photo carts.

Video prices round up twice: once after the duration multiplier and once
after the coupon is subtracted. Decimal arithmetic keeps 20 x 1.4 exactly 28.
"""

import math
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog

from styleswap.models.coupon import Coupon, CouponType

logger = structlog.get_logger()

LONG_VIDEO_DURATION = "10"
LONG_VIDEO_SURCHARGE = Decimal("0.4")


def _dec(value: float | int | Decimal) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def duration_multiplier(duration: str) -> Decimal:
    multiplier = Decimal("1.0")
    if duration == LONG_VIDEO_DURATION:
        multiplier += LONG_VIDEO_SURCHARGE
    return multiplier


def quote_video_price(
    base_price: float | int | Decimal,
    duration: str,
    coupon: Optional[Coupon] = None,
) -> int:
    """Price of one video render in major units.

    Args:
        base_price: Configured base price for a 5 second render
        duration: "5" or "10"
        coupon: Active coupon to apply, if any

    Returns:
        Whole-unit price, never negative
    """
    subtotal = Decimal(math.ceil(_dec(base_price) * duration_multiplier(duration)))

    if coupon is not None:
        if coupon.type == CouponType.PERCENTAGE:
            subtotal -= subtotal * _dec(coupon.value) / 100
        else:
            subtotal -= _dec(coupon.value)

    return max(0, math.ceil(subtotal))


def quote_cart_total(
    item_prices: Iterable[float | int | Decimal],
    coupon: Optional[Coupon] = None,
    bundle_price: float | int | Decimal | None = None,
) -> Decimal:
    """Total for a photo cart, optionally with a credit bundle.

    Percentage coupons discount the subtotal; fixed coupons never discount
    more than the subtotal.

    Returns:
        Total in major units, floored at zero
    """
    subtotal = sum((_dec(price) for price in item_prices), Decimal("0"))
    if bundle_price is not None:
        subtotal += _dec(bundle_price)

    discount = Decimal("0")
    if coupon is not None:
        if coupon.type == CouponType.PERCENTAGE:
            discount = subtotal * _dec(coupon.value) / 100
        else:
            discount = min(_dec(coupon.value), subtotal)

    return max(Decimal("0"), subtotal - discount)


async def find_coupon(uow_factory: Callable, code: Optional[str]) -> Optional[Coupon]:
    """Look up an active coupon by user-entered code (None for blank or unknown codes)."""
    if not code or not code.strip():
        return None

    async with await uow_factory() as uow:
        coupon = await uow.coupons.get_active_by_code(code)

    if coupon is None:
        logger.info("coupon.not_found", code=code.strip().upper())
    return coupon
