"""Photo cart and render credit endpoints.

This module implements:
- POST /api/cart/quote - Server-side total for a photo cart (optionally with a credit bundle)
- GET /api/credits - Free claim or credit balance for a guest session or user
- POST /api/credits/bundle - Capture a credit bundle payment and add the credits
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from styleswap.api.dependencies import (
    get_credit_ledger,
    get_payments,
    get_settings,
    get_uow_factory,
)
from styleswap.core.config import Settings
from styleswap.services.credits import CreditLedger
from styleswap.services.exceptions import PaymentError
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.pricing import find_coupon, quote_cart_total

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["checkout"])


# Request/Response Models


class CartQuoteRequest(BaseModel):
    photo_count: int = Field(default=0, ge=0, le=100)
    include_bundle: bool = False
    coupon: Optional[str] = None


class CartQuoteResponse(BaseModel):
    total: float = Field(..., description="Charge in major currency units")
    currency: str
    coupon_applied: bool
    bundle_credits: int = Field(0, description="Credits added by the bundle, if included")


class CreditBalanceResponse(BaseModel):
    balance: int


class BundlePurchaseRequest(BaseModel):
    email: str = Field(..., min_length=3)
    payment_id: Optional[str] = Field(default=None, description="Authorized Razorpay payment id")
    coupon: Optional[str] = None


class BundlePurchaseResponse(BaseModel):
    balance: int
    amount: float
    payment_id: str


# Endpoints


@router.post("/cart/quote", response_model=CartQuoteResponse)
async def quote_cart(
    request: CartQuoteRequest,
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
) -> CartQuoteResponse:
    """Price a photo cart; unknown or inactive coupons are ignored."""
    coupon = await find_coupon(uow_factory, request.coupon)
    total = quote_cart_total(
        [settings.photo_price] * request.photo_count,
        coupon,
        bundle_price=settings.credit_bundle_price if request.include_bundle else None,
    )
    return CartQuoteResponse(
        total=float(total),
        currency=settings.default_currency,
        coupon_applied=coupon is not None,
        bundle_credits=settings.credit_bundle_amount if request.include_bundle else 0,
    )


@router.get("/credits", response_model=CreditBalanceResponse)
async def get_credits(
    email: Optional[str] = Query(default=None),
    session_id: Optional[str] = Query(default=None),
    credits: CreditLedger = Depends(get_credit_ledger),
) -> CreditBalanceResponse:
    """Credits left for a signed-in user, else the guest session's free claim.

    Raises:
        HTTPException: 400 if neither email nor session_id is given
    """
    if email:
        return CreditBalanceResponse(balance=await credits.user_credits(email))
    if session_id:
        return CreditBalanceResponse(balance=await credits.guest_credits(session_id))
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST, detail="email or session_id is required"
    )


@router.post("/credits/bundle", response_model=BundlePurchaseResponse)
async def buy_credit_bundle(
    request: BundlePurchaseRequest,
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
    payments: PaymentCoordinator = Depends(get_payments),
    credits: CreditLedger = Depends(get_credit_ledger),
) -> BundlePurchaseResponse:
    """Capture the bundle payment, then add its credits.

    Credits are added only once the payment is captured.

    Raises:
        HTTPException: 402 if the payment is missing or could not be captured
    """
    coupon = await find_coupon(uow_factory, request.coupon)
    amount = float(quote_cart_total([], coupon, bundle_price=settings.credit_bundle_price))

    try:
        hold = await payments.authorize(
            request.payment_id,
            amount,
            user_email=request.email,
            items=[{"type": "credit_bundle", "credits": settings.credit_bundle_amount}],
        )
    except PaymentError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))

    if not await payments.capture(hold):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="Payment could not be captured.",
        )

    balance = await credits.add_credits(request.email, settings.credit_bundle_amount)
    logger.info(
        "credits.bundle_purchased",
        email=request.email,
        payment_id=hold.payment_id,
        amount=amount,
        balance=balance,
    )
    return BundlePurchaseResponse(balance=balance, amount=amount, payment_id=hold.payment_id)
