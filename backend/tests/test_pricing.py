"""Checkout pricing tests."""

from decimal import Decimal

import pytest

from styleswap.models.coupon import Coupon, CouponType
from styleswap.services.pricing import (
    duration_multiplier,
    find_coupon,
    quote_cart_total,
    quote_video_price,
)

TEN_PERCENT = Coupon(code="SAVE10", type=CouponType.PERCENTAGE, value=10)


def test_duration_multiplier():
    assert duration_multiplier("5") == Decimal("1.0")
    assert duration_multiplier("10") == Decimal("1.4")


@pytest.mark.parametrize(
    "duration, coupon, expected",
    [
        ("5", None, 20),
        ("10", None, 28),
        ("10", TEN_PERCENT, 26),
        ("5", Coupon(code="FLAT5", type=CouponType.FIXED, value=5), 15),
        ("10", Coupon(code="FREE", type=CouponType.FIXED, value=100), 0),
        ("10", Coupon(code="ALL", type=CouponType.PERCENTAGE, value=100), 0),
    ],
)
def test_quote_video_price(duration, coupon, expected):
    assert quote_video_price(20, duration, coupon) == expected


def test_quote_video_price_rounds_up_after_multiplier():
    # 15 x 1.4 = 21.0 exactly; 17 x 1.4 = 23.8 rounds up to 24
    assert quote_video_price(15, "10") == 21
    assert quote_video_price(17, "10") == 24


def test_cart_total_with_percentage_coupon_and_bundle():
    total = quote_cart_total([8, 8], coupon=TEN_PERCENT, bundle_price=49)
    assert total == Decimal("58.5")


def test_cart_fixed_coupon_never_exceeds_subtotal():
    coupon = Coupon(code="BIG", type=CouponType.FIXED, value=50)
    assert quote_cart_total([8, 8], coupon=coupon) == Decimal("0")


def test_empty_cart_is_free():
    assert quote_cart_total([]) == Decimal("0")


@pytest.mark.asyncio
async def test_find_coupon(uow_factory):
    async with await uow_factory() as uow:
        await uow.coupons.add(Coupon(code="SAVE10", type=CouponType.PERCENTAGE, value=10))

    assert (await find_coupon(uow_factory, "save10")).code == "SAVE10"
    assert await find_coupon(uow_factory, "NOPE") is None
    assert await find_coupon(uow_factory, "  ") is None
    assert await find_coupon(uow_factory, None) is None
