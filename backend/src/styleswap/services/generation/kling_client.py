"""Kling image-to-video client (third-party video vendor).

Requests are authorized with a short-lived HS256 JWT derived from the
access/secret key pair: issuer is the access key, valid from 60 seconds in
the past until 30 minutes from now.
"""

import time
from typing import Any, Optional

import httpx
import jwt
import structlog

from styleswap.models.generation_job import Provider
from styleswap.services.exceptions import (
    ConfigurationError,
    ProviderUnavailableError,
    QuotaExceededError,
    SubmissionError,
    TransientError,
)
from styleswap.services.generation.base import (
    PollResult,
    StatusCallback,
    TaskHandle,
    VideoProvider,
    VideoRequest,
    strip_data_url,
)
from styleswap.services.generation.prompts import DEFAULT_NEGATIVE_PROMPT, DEFAULT_VENDOR_PROMPT

logger = structlog.get_logger()

KLING_MODEL = "kling-v1"
TOKEN_TTL_SECONDS = 1800
TOKEN_BACKDATE_SECONDS = 60
IMAGE2VIDEO_PATH = "/v1/videos/image2video"


def generate_token(access_key: str, secret_key: str, now: Optional[int] = None) -> str:
    """Sign a bearer token for the Kling API.

    Args:
        access_key: Kling access key (becomes the iss claim)
        secret_key: Kling secret key (HMAC-SHA256 signing key)
        now: Unix timestamp override for tests

    Returns:
        Compact JWT string
    """
    issued = int(time.time()) if now is None else now
    payload = {
        "iss": access_key,
        "exp": issued + TOKEN_TTL_SECONDS,
        "nbf": issued - TOKEN_BACKDATE_SECONDS,
    }
    return jwt.encode(payload, secret_key, algorithm="HS256", headers={"typ": "JWT"})


def build_payload(request: VideoRequest) -> dict[str, Any]:
    """Translate a VideoRequest into the image2video request body."""
    payload: dict[str, Any] = {
        "model": KLING_MODEL,
        "image": strip_data_url(request.start_image),
        "prompt": request.prompt or DEFAULT_VENDOR_PROMPT,
        "negative_prompt": request.negative_prompt or DEFAULT_NEGATIVE_PROMPT,
        "cfg_scale": 0.7 if request.mode == "pro" else 0.5,
        "duration": request.duration,
        "aspect_ratio": request.aspect_ratio,
        "mode": request.mode,
    }
    if request.end_image:
        payload["last_image"] = strip_data_url(request.end_image)
    return payload


def extract_video_url(data: dict[str, Any]) -> Optional[str]:
    """Find the video URL in any of the response shapes the API has used."""
    resource = data.get("video_resource") or {}
    if resource.get("url"):
        return resource["url"]

    task_result = data.get("task_result") or {}
    if task_result.get("video_url"):
        return task_result["video_url"]

    videos = task_result.get("videos") or []
    if videos and isinstance(videos[0], dict) and videos[0].get("url"):
        return videos[0]["url"]

    return None


class KlingClient(VideoProvider):
    """Video provider backed by the Kling image2video API."""

    provider = Provider.THIRD_PARTY_VENDOR
    progress_span_attempts = 150

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        base_url: str = "https://api.klingai.com",
        submit_timeout: float = 60.0,
        poll_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Kling client.

        Args:
            access_key: Kling access key (KLING_ACCESS_KEY)
            secret_key: Kling secret key (KLING_SECRET_KEY)
            base_url: API origin
            submit_timeout: Timeout for the initial submission in seconds
            poll_timeout: Timeout for each status query in seconds
            transport: Optional httpx transport (tests)
        """
        self.access_key = access_key
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.submit_timeout = submit_timeout
        self.poll_timeout = poll_timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.access_key or not self.secret_key:
            raise ConfigurationError(
                "Kling API credentials are not configured. "
                "Set KLING_ACCESS_KEY and KLING_SECRET_KEY."
            )
        token = generate_token(self.access_key, self.secret_key)
        return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}

    async def forward(
        self, method: str, path: str, json: Optional[dict] = None, timeout: float = 30.0
    ) -> httpx.Response:
        """Send a signed request and return the raw response.

        Raises:
            ConfigurationError: Credentials missing
            httpx.HTTPError: Network-level failure
        """
        headers = self._headers()
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.request(
                method, f"{self.base_url}{path}", headers=headers, json=json
            )

    async def submit(
        self, request: VideoRequest, on_status: Optional[StatusCallback] = None
    ) -> TaskHandle:
        """Submit an image2video task.

        Raises:
            ConfigurationError: Credentials missing
            SubmissionError: Non-success status, vendor error code or missing task id
            QuotaExceededError: Rate limited (429)
            ProviderUnavailableError: Timeout, connection error or 5xx
        """
        payload = build_payload(request)
        if on_status:
            on_status("Waking up AI Engine...")

        try:
            response = await self.forward(
                "POST", IMAGE2VIDEO_PATH, json=payload, timeout=self.submit_timeout
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(
                f"Submission timed out after {self.submit_timeout}s: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(f"Network error during submission: {e}") from e

        if response.status_code == 429:
            raise QuotaExceededError(f"Rate limit exceeded: {response.text}")
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                f"Service unavailable ({response.status_code}): {response.text}"
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success or not isinstance(body, dict):
            logger.error(
                "kling.submit.rejected",
                status_code=response.status_code,
                response_body=response.text[:2000],
            )
            raise SubmissionError(f"Server Error ({response.status_code})")

        if body.get("code") != 0:
            logger.error(
                "kling.submit.rejected", status_code=response.status_code, response_body=body
            )
            raise SubmissionError(
                f"Kling API Error ({body.get('code')}): {body.get('message') or 'Unknown error'}"
            )

        task_id = (body.get("data") or {}).get("task_id")
        if not task_id:
            logger.error("kling.submit.no_task_id", response_body=body)
            raise SubmissionError("No Task ID received. Please try again.")

        logger.info("kling.task.created", task_id=task_id, duration=request.duration)
        return TaskHandle(task_id=str(task_id), provider=self.provider)

    async def poll(self, handle: TaskHandle) -> PollResult:
        """Query task status once.

        Raises:
            TransientError: Network failure, non-2xx status or malformed body
        """
        try:
            response = await self.forward(
                "GET", f"{IMAGE2VIDEO_PATH}/{handle.task_id}", timeout=self.poll_timeout
            )
        except httpx.HTTPError as e:
            raise TransientError(f"Network error during poll: {e}") from e

        if not response.is_success:
            raise TransientError(f"Poll returned {response.status_code}: {response.text[:500]}")

        try:
            body = response.json()
        except ValueError as e:
            raise TransientError(f"Malformed poll response: {response.text[:500]}") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise TransientError(f"Malformed poll response: {body!r}"[:500])

        status = data.get("task_status")
        if status == "succeed":
            return PollResult.succeeded(extract_video_url(data))
        if status == "failed":
            return PollResult.failed(data.get("task_status_msg") or "Rendering engine error.")
        return PollResult.pending()
