"""Style transform and video render API endpoints.

This module implements:
- POST /api/styles - Synchronous face-preserving style transform
- GET /api/videos/quote - Server-side price for a video render
- POST /api/videos - Authorize the payment hold and start a background render
- GET /api/videos/{job_id} - Render progress and outcome
- GET /api/videos/{job_id}/content - Downloaded video bytes (first-party renders)

Prices are always computed here; a client-supplied amount is never trusted.
"""

from typing import Literal, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from styleswap.api.dependencies import (
    get_artifacts,
    get_credit_ledger,
    get_job_runner,
    get_orchestrator,
    get_payments,
    get_settings,
    get_uow_factory,
)
from styleswap.core.config import Settings
from styleswap.models.generation_job import JobStatus, Provider
from styleswap.services.artifacts import ArtifactStore
from styleswap.services.credits import CreditLedger
from styleswap.services.exceptions import PaymentError
from styleswap.services.generation.base import VideoRequest
from styleswap.services.generation.prompts import MAX_PROMPT_LENGTH
from styleswap.services.job_runner import JobAlreadyRunningError, JobRunner
from styleswap.services.orchestrator import RenderOrchestrator, RenderOutcome
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.hold import free_payment_id
from styleswap.services.pricing import find_coupon, quote_video_price

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["generation"])

# Failure type -> HTTP status for synchronous endpoints
ERROR_STATUS_CODES = {
    "ConfigurationError": status.HTTP_503_SERVICE_UNAVAILABLE,
    "QuotaExceededError": status.HTTP_503_SERVICE_UNAVAILABLE,
    "ProviderUnavailableError": status.HTTP_503_SERVICE_UNAVAILABLE,
    "TransientError": status.HTTP_503_SERVICE_UNAVAILABLE,
    "ContentPolicyError": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "ValueError": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


# Request/Response Models


class StyleRequest(BaseModel):
    """Request model for a style transform."""

    image: str = Field(..., min_length=1, description="Source photo, base64 or data URL")
    prompt: str = Field(..., min_length=1, max_length=MAX_PROMPT_LENGTH)
    refinement: Optional[str] = Field(default=None, max_length=MAX_PROMPT_LENGTH)


class StyleResponse(BaseModel):
    job_id: UUID
    image: str = Field(..., description="Generated PNG as a data URL")


class QuoteResponse(BaseModel):
    price: int = Field(..., description="Charge in major currency units")
    currency: str
    duration: str
    coupon_applied: bool


class VideoRenderRequest(BaseModel):
    """Request model for starting a video render."""

    start_image: str = Field(..., min_length=1, description="First frame, base64 or data URL")
    end_image: Optional[str] = Field(default=None, description="Optional last frame")
    prompt: str = Field(default="", max_length=MAX_PROMPT_LENGTH)
    refinement: Optional[str] = Field(default=None, max_length=MAX_PROMPT_LENGTH)
    duration: Literal["5", "10"] = "5"
    aspect_ratio: str = "9:16"
    mode: Literal["std", "pro"] = "std"
    provider: Provider = Provider.THIRD_PARTY_VENDOR
    fast: bool = False
    pre_styled_keyframe: Optional[str] = None
    payment_id: Optional[str] = Field(default=None, description="Authorized Razorpay payment id")
    coupon: Optional[str] = None
    user_email: str = ""
    session_id: Optional[str] = Field(default=None, description="Guest session for the free claim")
    use_credit: bool = False


class VideoRenderResponse(BaseModel):
    job_id: UUID
    amount: int
    currency: str
    payment_id: str


class VideoStatusResponse(BaseModel):
    """Progress and outcome of a render."""

    job_id: UUID
    status: str = Field(..., description="running, succeeded or failed")
    percent: int
    message: str
    video_url: Optional[str] = None
    error_message: Optional[str] = None
    refunded: bool = False
    refund_failed: bool = False


# Endpoints


@router.post("/styles", response_model=StyleResponse)
async def create_style(
    request: StyleRequest,
    orchestrator: RenderOrchestrator = Depends(get_orchestrator),
) -> StyleResponse:
    """Apply a style to a photo while keeping the faces.

    Returns:
        StyleResponse with the generated image

    Raises:
        HTTPException: 422 for content/prompt problems, 503 when the provider
            is busy or unconfigured, 502 for other provider errors
    """
    outcome = await orchestrator.run_style(request.image, request.prompt, request.refinement)
    if not outcome.succeeded or not outcome.image_url:
        status_code = ERROR_STATUS_CODES.get(
            outcome.error_type or "", status.HTTP_502_BAD_GATEWAY
        )
        raise HTTPException(status_code=status_code, detail=outcome.user_message)
    return StyleResponse(job_id=outcome.job_id, image=outcome.image_url)  # type: ignore[arg-type]


@router.get("/videos/quote", response_model=QuoteResponse)
async def quote_video(
    duration: Literal["5", "10"] = Query(default="5"),
    coupon: Optional[str] = Query(default=None),
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
) -> QuoteResponse:
    """Price a video render (unknown or inactive coupons are ignored)."""
    found = await find_coupon(uow_factory, coupon)
    return QuoteResponse(
        price=quote_video_price(settings.video_base_price, duration, found),
        currency=settings.default_currency,
        duration=duration,
        coupon_applied=found is not None,
    )


@router.post(
    "/videos", response_model=VideoRenderResponse, status_code=status.HTTP_202_ACCEPTED
)
async def start_video(
    request: VideoRenderRequest,
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
    payments: PaymentCoordinator = Depends(get_payments),
    credits: CreditLedger = Depends(get_credit_ledger),
    runner: JobRunner = Depends(get_job_runner),
) -> VideoRenderResponse:
    """Record the payment hold and start rendering in the background.

    The render keeps going if the client disconnects; poll
    GET /api/videos/{job_id} for progress.

    Raises:
        HTTPException: 402 if payment or a free credit is required but missing
    """
    if request.use_credit:
        spent = await credits.spend_credit(
            email=request.user_email or None, session_id=request.session_id
        )
        if not spent:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="No free credits left."
            )
        amount = 0
        payment_id = free_payment_id()
    else:
        coupon = await find_coupon(uow_factory, request.coupon)
        amount = quote_video_price(settings.video_base_price, request.duration, coupon)
        payment_id = request.payment_id or (free_payment_id() if amount == 0 else "")
        if not payment_id:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="Payment required."
            )

    try:
        hold = await payments.authorize(
            payment_id,
            amount,
            user_email=request.user_email,
            items=[
                {
                    "type": "video",
                    "duration": request.duration,
                    "provider": request.provider.value,
                    "price": amount,
                }
            ],
        )
    except PaymentError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))

    video_request = VideoRequest(
        start_image=request.start_image,
        end_image=request.end_image,
        prompt=request.prompt,
        refinement=request.refinement,
        duration=request.duration,
        aspect_ratio=request.aspect_ratio,
        mode=request.mode,
        fast=request.fast,
        pre_styled_keyframe=request.pre_styled_keyframe,
    )

    try:
        job_id = runner.start(video_request, hold, provider=request.provider)
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info(
        "video.render_requested",
        job_id=str(job_id),
        provider=request.provider.value,
        amount=amount,
        payment_id=hold.payment_id,
    )
    return VideoRenderResponse(
        job_id=job_id, amount=amount, currency=hold.currency, payment_id=hold.payment_id
    )


@router.get("/videos/{job_id}", response_model=VideoStatusResponse)
async def get_video_status(
    job_id: UUID,
    runner: JobRunner = Depends(get_job_runner),
    uow_factory=Depends(get_uow_factory),
    artifacts: ArtifactStore = Depends(get_artifacts),
) -> VideoStatusResponse:
    """Report render progress from this process, else the persisted job.

    Raises:
        HTTPException: 404 if the job is unknown
    """
    progress = runner.progress(job_id)
    if progress is not None:
        outcome: Optional[RenderOutcome] = progress.outcome
        if outcome is None:
            state = "running"
        else:
            state = "succeeded" if outcome.succeeded else "failed"
        return VideoStatusResponse(
            job_id=job_id,
            status=state,
            percent=progress.percent,
            message=progress.message,
            video_url=outcome.video_url if outcome else None,
            error_message=outcome.user_message if outcome else None,
            refunded=outcome.refunded if outcome else False,
            refund_failed=outcome.refund_failed if outcome else False,
        )

    async with await uow_factory() as uow:
        job = await uow.jobs.get_by_id(job_id)

    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    video_url = None
    if job.status == JobStatus.SUCCEEDED:
        state = "succeeded"
        if artifacts.path_for(job_id) is not None:
            video_url = artifacts.url_for(job_id)
        elif job.provider == Provider.THIRD_PARTY_VENDOR:
            video_url = job.result_url
    elif job.is_terminal:
        state = "failed"
    else:
        state = "running"
    return VideoStatusResponse(
        job_id=job_id,
        status=state,
        percent=100 if state == "succeeded" else 0,
        message=job.status.value,
        video_url=video_url,
        error_message=job.error_message,
    )


@router.get("/videos/{job_id}/content")
async def get_video_content(
    job_id: UUID,
    artifacts: ArtifactStore = Depends(get_artifacts),
) -> FileResponse:
    """Serve a downloaded render.

    Raises:
        HTTPException: 404 if nothing was stored for the job
    """
    path = artifacts.path_for(job_id)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    return FileResponse(path, media_type="video/mp4", filename=f"{job_id}.mp4")
