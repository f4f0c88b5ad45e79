"""Same-origin proxies for the video vendor and the payment gateway.

- POST /api/kling-proxy - Sign and forward submit/poll calls to Kling
- POST /api/razorpay-manage - Forward capture/refund calls to Razorpay

Both proxies sign with the credentials carried in the request body only; the
server's own vendor and gateway keys are never used here. Upstream status codes
and JSON bodies are passed through.
"""

from typing import Any, Literal, Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from styleswap.api.dependencies import get_services
from styleswap.services.generation.kling_client import IMAGE2VIDEO_PATH, KlingClient
from styleswap.services.payments.razorpay_client import RazorpayClient
from styleswap.services.wiring import Services

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["proxy"])


class KlingProxyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    payload: Optional[dict[str, Any]] = None
    task_id: Optional[str] = Field(default=None, alias="taskId")
    access_key: Optional[str] = Field(default=None, alias="accessKey")
    secret_key: Optional[str] = Field(default=None, alias="secretKey")


class RazorpayManageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    payment_id: str = Field(..., min_length=1, alias="paymentId")
    amount: int = Field(..., ge=0, description="Minor currency units (paise)")
    currency: Optional[str] = None
    key_id: Optional[str] = Field(default=None, alias="keyId")
    key_secret: Optional[str] = Field(default=None, alias="keySecret")


def _passthrough(response: httpx.Response) -> JSONResponse:
    try:
        content = response.json()
    except ValueError:
        content = {"error": "Upstream returned a non-JSON body", "details": response.text[:500]}
    return JSONResponse(status_code=response.status_code, content=content)


@router.post("/kling-proxy")
async def kling_proxy(
    request: KlingProxyRequest,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Sign a request with a fresh JWT and forward it to Kling.

    Raises:
        HTTPException: 400 for missing credentials, missing taskId or an unknown action;
            502 when Kling cannot be reached
    """
    settings = services.settings
    if not request.access_key or not request.secret_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="API Credentials (Access/Secret Key) missing",
        )

    client = KlingClient(
        request.access_key,
        request.secret_key,
        base_url=settings.kling_base_url,
        submit_timeout=settings.submit_timeout_seconds,
        transport=services.http_transport,
    )

    try:
        if request.action == "submit":
            logger.info("proxy.kling.submit")
            response = await client.forward(
                "POST",
                IMAGE2VIDEO_PATH,
                json=request.payload or {},
                timeout=settings.submit_timeout_seconds,
            )
        elif request.action == "poll":
            if not request.task_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST, detail="Missing taskId"
                )
            response = await client.forward("GET", f"{IMAGE2VIDEO_PATH}/{request.task_id}")
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid proxy action"
            )
    except httpx.HTTPError as e:
        logger.error("proxy.kling.failed", action=request.action, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return _passthrough(response)


@router.post("/razorpay-manage")
async def razorpay_manage(
    request: RazorpayManageRequest,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Forward a capture or refund to Razorpay.

    Raises:
        HTTPException: 400 for missing credentials or an unknown action;
            502 when Razorpay cannot be reached
    """
    settings = services.settings
    if not request.key_id or not request.key_secret:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Razorpay credentials missing"
        )

    action: Literal["capture", "refund"]
    if request.action == "capture":
        action = "capture"
        body: dict[str, Any] = {
            "amount": request.amount,
            "currency": request.currency or settings.default_currency,
        }
    elif request.action == "refund":
        action = "refund"
        body = {"amount": request.amount, "speed": "normal"}
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")

    client = RazorpayClient(
        request.key_id,
        request.key_secret,
        transport=services.http_transport,
    )

    logger.info("proxy.razorpay", action=action, payment_id=request.payment_id)
    try:
        response = await client.forward(action, request.payment_id, body)
    except httpx.HTTPError as e:
        logger.error("proxy.razorpay.failed", action=action, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return _passthrough(response)
