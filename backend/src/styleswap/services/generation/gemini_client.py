"""Gemini / Veo client (first-party generation provider) with error classification.

Style transforms are a single synchronous image call. Videos are submitted as
long-running Veo operations and polled through the operations API. Every call
resolves an API key from the credential pool first and reports quota-like
failures back to it.
"""

import base64
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from styleswap.models.generation_job import Provider
from styleswap.services.credentials import CredentialResolver, ResolvedCredential
from styleswap.services.exceptions import (
    ArtifactMissingError,
    ContentPolicyError,
    PermanentError,
    ProviderUnavailableError,
    QuotaExceededError,
    ServiceError,
    SubmissionError,
    TransientError,
)
from styleswap.services.generation.base import (
    Artifact,
    PollResult,
    StatusCallback,
    TaskHandle,
    VideoProvider,
    VideoRequest,
    strip_data_url,
)
from styleswap.services.generation.prompts import compose_movement_prompt, compose_style_prompt

logger = structlog.get_logger()

NO_IMAGE_MESSAGE = "Could not create image. Please try a simpler description."
DOWNLOAD_FAILED_MESSAGE = "Could not download video."


def classify_error(exception: Exception) -> ServiceError:
    """Classify a Gemini SDK or network exception into a service error.

    Classification rules:
        - 429 / RESOURCE_EXHAUSTED / quota → QuotaExceededError
        - 401 / 403 / PERMISSION_DENIED → QuotaExceededError (key unusable)
        - 5xx, timeouts, connection errors → ProviderUnavailableError
        - 400 / safety / blocked → ContentPolicyError
        - Anything else → PermanentError
    """
    if isinstance(exception, ServiceError):
        return exception

    error_message = str(exception)
    error_message_lower = error_message.lower()

    if isinstance(exception, genai_errors.APIError):
        code = exception.code or 0
        status = (exception.status or "").upper()
        if code == 429 or status == "RESOURCE_EXHAUSTED" or "quota" in error_message_lower:
            return QuotaExceededError(f"Rate limit or quota exceeded: {error_message}")
        if code in (401, 403) or status in ("PERMISSION_DENIED", "UNAUTHENTICATED"):
            return QuotaExceededError(f"Permission denied for API key: {error_message}")
        if code >= 500:
            return ProviderUnavailableError(f"Service unavailable ({code}): {error_message}")
        if code == 400 or "safety" in error_message_lower or "blocked" in error_message_lower:
            return ContentPolicyError(f"Request rejected: {error_message}")
        return PermanentError(f"Provider error ({code}): {error_message}")

    if isinstance(exception, (httpx.TimeoutException, TimeoutError)):
        return ProviderUnavailableError(f"Network timeout: {error_message}")

    if isinstance(exception, (httpx.TransportError, ConnectionError, OSError)):
        return ProviderUnavailableError(f"Connection error: {error_message}")

    return PermanentError(f"Unexpected error: {error_message}")


def _to_image(image_b64: str) -> types.Image:
    data = base64.b64decode(strip_data_url(image_b64))
    return types.Image(image_bytes=data, mime_type="image/png")


@dataclass
class VeoTaskContext:
    """Poll state for a Veo operation."""

    operation: Any
    credential: ResolvedCredential
    fast: bool = False


def default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


class GeminiClient(VideoProvider):
    """Style transforms and Veo video generation through the Gemini API."""

    provider = Provider.FIRST_PARTY

    def __init__(
        self,
        resolver: CredentialResolver,
        image_model: str = "gemini-2.5-flash-image",
        video_model: str = "veo-3.1-generate-preview",
        fast_video_model: str = "veo-3.1-fast-generate-preview",
        client_factory: Callable[[str], Any] = default_client_factory,
        download_timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Gemini client.

        Args:
            resolver: Credential resolver consulted before every request
            image_model: Model used for style transforms
            video_model: Veo model for standard renders
            fast_video_model: Veo model for fast renders
            client_factory: Builds an SDK client for an API key (tests inject fakes)
            download_timeout: Timeout for fetching a finished video in seconds
            transport: Optional httpx transport for video downloads (tests)
        """
        self.resolver = resolver
        self.image_model = image_model
        self.video_model = video_model
        self.fast_video_model = fast_video_model
        self.client_factory = client_factory
        self.download_timeout = download_timeout
        self._transport = transport

    async def _fail(self, credential: ResolvedCredential, exception: Exception) -> ServiceError:
        classified = classify_error(exception)
        await credential.report_outcome(classified)
        return classified

    async def generate_style(
        self, image_b64: str, prompt: str, refinement: Optional[str] = None
    ) -> str:
        """Generate a styled image that keeps the subject's face.

        Args:
            image_b64: Source photo (base64, data-URL prefix allowed)
            prompt: Style prompt
            refinement: Optional free-text fixes

        Returns:
            PNG data URL of the generated image

        Raises:
            ConfigurationError: No usable API key
            ContentPolicyError: No image in the response or request rejected
            TransientError: Quota, network or 5xx failure
        """
        credential = await self.resolver.resolve()
        client = self.client_factory(credential.secret)

        try:
            response = await client.aio.models.generate_content(
                model=self.image_model,
                contents=[
                    types.Part.from_bytes(
                        data=base64.b64decode(strip_data_url(image_b64)), mime_type="image/png"
                    ),
                    compose_style_prompt(prompt, refinement),
                ],
            )
        except Exception as e:
            classified = await self._fail(credential, e)
            logger.error(
                "gemini.style.failed",
                error_type=type(classified).__name__,
                error_message=str(classified),
                credential=credential.label,
            )
            raise classified from e

        for candidate in response.candidates or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    data = inline.data
                    if isinstance(data, bytes):
                        data = base64.b64encode(data).decode("ascii")
                    return f"data:image/png;base64,{data}"
            break

        logger.warning("gemini.style.no_image", credential=credential.label)
        raise ContentPolicyError(NO_IMAGE_MESSAGE)

    async def submit(
        self, request: VideoRequest, on_status: Optional[StatusCallback] = None
    ) -> TaskHandle:
        """Style the keyframe(s) if needed, then start a Veo operation.

        Raises:
            ConfigurationError: No usable API key
            SubmissionError: Operation accepted without a name
            ContentPolicyError / TransientError: Classified provider errors
        """
        keyframe = request.pre_styled_keyframe
        if not keyframe:
            if on_status:
                on_status("Matching faces...")
            keyframe = await self.generate_style(request.start_image, request.prompt)

        end_frame = None
        if request.end_image:
            if on_status:
                on_status("Preparing transition...")
            end_frame = await self.generate_style(request.end_image, request.prompt)

        if on_status:
            on_status("Creating your video...")

        credential = await self.resolver.resolve()
        client = self.client_factory(credential.secret)
        model = self.fast_video_model if request.fast else self.video_model

        config_kwargs: dict[str, Any] = {
            "number_of_videos": 1,
            "aspect_ratio": request.aspect_ratio,
        }
        if end_frame:
            config_kwargs["last_frame"] = _to_image(end_frame)
        config = types.GenerateVideosConfig(**config_kwargs)

        try:
            operation = await client.aio.models.generate_videos(
                model=model,
                prompt=compose_movement_prompt(request.prompt),
                image=_to_image(keyframe),
                config=config,
            )
        except Exception as e:
            classified = await self._fail(credential, e)
            logger.error(
                "gemini.video.submit_failed",
                error_type=type(classified).__name__,
                error_message=str(classified),
                credential=credential.label,
            )
            raise classified from e

        task_id = getattr(operation, "name", None)
        if not task_id:
            logger.error("gemini.video.no_operation_name", model=model)
            raise SubmissionError("No Task ID received. Please try again.")

        logger.info("gemini.video.submitted", task_id=task_id, model=model)
        return TaskHandle(
            task_id=task_id,
            provider=self.provider,
            context=VeoTaskContext(operation=operation, credential=credential, fast=request.fast),
        )

    async def poll(self, handle: TaskHandle) -> PollResult:
        """Refresh the Veo operation once.

        Raises:
            TransientError: Any error while refreshing (the poll loop retries)
        """
        context: VeoTaskContext = handle.context
        client = self.client_factory(context.credential.secret)

        try:
            operation = await client.aio.operations.get(context.operation)
        except Exception as e:
            classified = await self._fail(context.credential, e)
            raise TransientError(f"Operation refresh failed: {classified}") from e

        context.operation = operation
        if not operation.done:
            return PollResult.pending()

        if operation.error:
            error = operation.error
            message = error.get("message") if isinstance(error, dict) else str(error)
            return PollResult.failed(message or "Rendering engine error.")

        response = operation.response
        filtered = getattr(response, "rai_media_filtered_reasons", None) if response else None
        if filtered:
            return PollResult.failed("; ".join(filtered))

        videos = getattr(response, "generated_videos", None) or []
        video = getattr(videos[0], "video", None) if videos else None
        return PollResult.succeeded(getattr(video, "uri", None))

    async def retrieve(self, handle: TaskHandle, result_url: str) -> Artifact:
        """Download the Veo file with the resolving API key.

        The key only ever appears on this server-side request; callers get bytes.

        Raises:
            ArtifactMissingError: Network failure, non-2xx status or empty body
        """
        context: VeoTaskContext = handle.context
        url = httpx.URL(result_url).copy_merge_params({"key": context.credential.secret})

        try:
            async with httpx.AsyncClient(
                timeout=self.download_timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(
                "gemini.video.download_failed",
                task_id=handle.task_id,
                error_type=type(e).__name__,
            )
            raise ArtifactMissingError(DOWNLOAD_FAILED_MESSAGE) from e

        if not response.is_success or not response.content:
            logger.error(
                "gemini.video.download_failed",
                task_id=handle.task_id,
                status_code=response.status_code,
            )
            raise ArtifactMissingError(DOWNLOAD_FAILED_MESSAGE)

        logger.info("gemini.video.downloaded", task_id=handle.task_id, size=len(response.content))
        media_type = response.headers.get("content-type", "video/mp4").split(";")[0]
        return Artifact(content=response.content, media_type=media_type)

    def progress_for(self, handle: TaskHandle, attempt: int) -> int:
        context: VeoTaskContext = handle.context
        step = 10 if context.fast else 3
        return min(attempt * step, 99)
