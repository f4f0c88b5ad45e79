"""Razorpay client for capturing and refunding authorized payments."""

from typing import Any, Optional

import httpx
import structlog

from styleswap.services.exceptions import CaptureError, ConfigurationError, RefundError

logger = structlog.get_logger()

ALREADY_CAPTURED_MARKER = "already been captured"


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error") or {}
        if isinstance(error, dict) and error.get("description"):
            return str(error["description"])
    return str(body)[:500]


def _success_body(response: httpx.Response, payment_id: str) -> dict:
    """A 2xx is a settled call even when its body is empty or not JSON."""
    try:
        body = response.json()
    except ValueError:
        logger.warning("razorpay.unreadable_body", payment_id=payment_id)
        return {"id": payment_id}
    return body if isinstance(body, dict) else {"id": payment_id}


class RazorpayClient:
    """Server-side Razorpay calls signed with HTTP Basic auth (key id : key secret).

    Amounts are always in minor currency units (paise for INR).
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Razorpay client.

        Args:
            key_id: Razorpay key id (RAZORPAY_KEY_ID)
            key_secret: Razorpay key secret (RAZORPAY_KEY_SECRET)
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def forward(self, action: str, payment_id: str, body: dict[str, Any]) -> httpx.Response:
        """POST /payments/{payment_id}/{action} and return the raw response.

        Raises:
            ConfigurationError: Keys missing
            httpx.HTTPError: Network-level failure
        """
        if not self.key_id or not self.key_secret:
            raise ConfigurationError(
                "Razorpay credentials missing. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            auth=(self.key_id, self.key_secret),
        ) as client:
            return await client.post(
                f"{self.base_url}/payments/{payment_id}/{action}",
                json=body,
            )

    async def capture(self, payment_id: str, amount_minor: int, currency: str = "INR") -> dict:
        """Capture an authorized payment.

        A payment the gateway reports as already captured counts as success.

        Returns:
            Gateway payment entity (or a minimal stand-in for the already-captured case)

        Raises:
            CaptureError: Network failure or non-success response
        """
        logger.info("razorpay.capture", payment_id=payment_id, amount=amount_minor)
        try:
            response = await self.forward(
                "capture", payment_id, {"amount": amount_minor, "currency": currency}
            )
        except httpx.HTTPError as e:
            raise CaptureError(f"Network error during capture: {e}") from e

        if response.is_success:
            return _success_body(response, payment_id)

        description = _error_description(response)
        if ALREADY_CAPTURED_MARKER in description.lower():
            logger.info("razorpay.capture.already_captured", payment_id=payment_id)
            return {"id": payment_id, "status": "captured"}

        raise CaptureError(f"Capture failed ({response.status_code}): {description}")

    async def refund(self, payment_id: str, amount_minor: int) -> dict:
        """Refund the full held amount.

        Returns:
            Gateway refund entity

        Raises:
            RefundError: Network failure or non-success response
        """
        logger.info("razorpay.refund", payment_id=payment_id, amount=amount_minor)
        try:
            response = await self.forward(
                "refund", payment_id, {"amount": amount_minor, "speed": "normal"}
            )
        except httpx.HTTPError as e:
            raise RefundError(f"Network error during refund: {e}") from e

        if response.is_success:
            return _success_body(response, payment_id)

        raise RefundError(f"Refund failed ({response.status_code}): {_error_description(response)}")
