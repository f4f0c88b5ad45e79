"""Render orchestration: submit, poll, then capture or refund exactly once.

RenderOrchestrator is the boundary between provider/payment errors and the
user. Everything raised below it is converted into a RenderOutcome carrying
one user-facing message; nothing propagates to the caller.
"""

from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import SQLAlchemyError

from styleswap.models.generation_job import GenerationJob, JobKind, Provider
from styleswap.services.artifacts import ArtifactStore
from styleswap.services.exceptions import (
    ArtifactMissingError,
    ConfigurationError,
    ContentPolicyError,
    GenerationTimeout,
    ProviderFailure,
    ServiceError,
    SubmissionError,
    TransientError,
)
from styleswap.services.generation.base import VideoProvider, VideoRequest
from styleswap.services.generation.gemini_client import GeminiClient
from styleswap.services.generation.prompts import validate_prompt
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.hold import PaymentHold
from styleswap.services.polling import PollConfig, Poller, ProgressCallback

logger = structlog.get_logger()

CONFIGURATION_MESSAGE = "Video generation is not configured yet. Please contact support."
RETRY_MESSAGE = "Please try again."
CONTENT_MESSAGE = "Could not create image. Please try a simpler description."
BUSY_MESSAGE = "AI is currently busy. Please try in a minute."
TIMEOUT_MESSAGE = "The render took too long. Please check again in a few moments."
ARTIFACT_MISSING_MESSAGE = "The render finished but the video could not be retrieved."
UNEXPECTED_MESSAGE = "Something went wrong. Please try again."
REFUNDED_SUFFIX = "Your payment has been sent back to you."
REFUND_FAILED_SUFFIX = (
    "We could not refund your payment automatically; our team has been notified."
)


def user_message_for(error: BaseException) -> str:
    """Map an error to the one message shown to the user."""
    if isinstance(error, ConfigurationError):
        return CONFIGURATION_MESSAGE
    if isinstance(error, ContentPolicyError):
        return CONTENT_MESSAGE
    if isinstance(error, SubmissionError):
        text = str(error).strip()
        if not text or text.endswith(RETRY_MESSAGE):
            return text or RETRY_MESSAGE
        return f"{text.rstrip('.')}. {RETRY_MESSAGE}"
    if isinstance(error, ArtifactMissingError):
        return ARTIFACT_MISSING_MESSAGE
    if isinstance(error, ProviderFailure):
        return f"Rendering engine error: {error.reason}"
    if isinstance(error, GenerationTimeout):
        return TIMEOUT_MESSAGE
    if isinstance(error, TransientError):
        return BUSY_MESSAGE
    if isinstance(error, ValueError):
        return str(error)
    return UNEXPECTED_MESSAGE


@dataclass
class RenderOutcome:
    """What the user gets back from one render.

    Attributes:
        succeeded: Artifact produced and retrievable
        job_id: Persisted GenerationJob id
        video_url: Downloadable video location (video renders)
        image_url: Generated image data URL (style transforms)
        user_message: Message to show on failure (None on success)
        error_type: Exception class name behind a failure
        captured: Payment captured for this render
        refunded: Payment sent back
        refund_failed: Refund attempted and failed (manual reconciliation needed)
    """

    succeeded: bool
    job_id: Optional[UUID] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    user_message: Optional[str] = None
    error_type: Optional[str] = None
    captured: bool = False
    refunded: bool = False
    refund_failed: bool = False


class RenderOrchestrator:
    """Runs renders end to end against one provider per request."""

    def __init__(
        self,
        providers: dict[Provider, VideoProvider],
        payments: PaymentCoordinator,
        uow_factory: Callable,
        poll_configs: dict[Provider, PollConfig],
        style_provider: Optional[GeminiClient] = None,
        poller_factory: Callable[[PollConfig], Poller] = Poller,
        artifacts: Optional[ArtifactStore] = None,
    ):
        """Initialize orchestrator.

        Args:
            providers: Video backends keyed by provider
            payments: Payment coordinator for capture/refund
            uow_factory: Factory producing UnitOfWork instances
            poll_configs: Poll limits per provider
            style_provider: Backend for synchronous style transforms
            poller_factory: Builds a Poller from a PollConfig (tests inject fast sleeps)
            artifacts: Storage for artifacts the provider only hands out as bytes
        """
        self.providers = providers
        self.payments = payments
        self.uow_factory = uow_factory
        self.poll_configs = poll_configs
        self.style_provider = style_provider
        self.poller_factory = poller_factory
        self.artifacts = artifacts

    async def run_video(
        self,
        request: VideoRequest,
        hold: PaymentHold,
        provider: Provider = Provider.THIRD_PARTY_VENDOR,
        job_id: Optional[UUID] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderOutcome:
        """Render a video and settle its payment.

        The hold is captured only after a successful poll and a retrievable
        artifact, and refunded after any failure, so each hold is resolved
        exactly once.

        Returns:
            RenderOutcome (never raises for provider or payment errors)
        """
        job = GenerationJob(
            id=job_id or uuid4(),
            kind=request.kind,
            provider=provider,
            prompt=request.prompt,
            refinement=request.refinement,
            duration=request.duration,
            payment_id=None if hold.is_free else hold.payment_id,
        )
        hold.job_id = job.id
        log = logger.bind(job_id=str(job.id), provider=provider.value, payment_id=hold.payment_id)
        await self._save(job, created=True)

        def report(percent: int, message: str) -> None:
            if on_progress:
                on_progress(percent, message)

        try:
            request.prompt = validate_prompt(request.prompt)
            backend = self.providers.get(provider)
            if backend is None:
                raise ConfigurationError(f"Provider {provider.value} is not configured.")

            handle = await backend.submit(request, on_status=lambda text: report(0, text))
            job.mark_polling(handle.task_id)
            await self._save(job)
            log.info("job.submitted", task_id=handle.task_id, kind=job.kind.value)

            poller = self.poller_factory(self.poll_configs[provider])
            result = await poller.run(backend, handle, on_progress=report)
            job.poll_attempts = result.attempts

            report(99, "Fetching your video...")
            artifact = await backend.retrieve(handle, result.result_url)
            if artifact.content is not None:
                if self.artifacts is None:
                    raise ConfigurationError("No artifact storage for downloaded videos.")
                video_url = await self.artifacts.save(job.id, artifact.content)
            else:
                video_url = artifact.url
        except Exception as e:
            return await self._fail(job, hold, e, log)

        job.mark_succeeded(result.result_url)
        await self._save(job)
        log.info("job.succeeded", task_id=handle.task_id, attempts=result.attempts)

        captured = await self.payments.capture(hold)
        if not captured:
            # Artifact is delivered anyway; the transaction record flags the capture
            log.error("job.capture_failed_after_success", task_id=handle.task_id)

        report(100, "Done")
        return RenderOutcome(
            succeeded=True,
            job_id=job.id,
            video_url=video_url,
            captured=captured and not hold.is_free,
        )

    async def run_style(
        self, image_b64: str, prompt: str, refinement: Optional[str] = None
    ) -> RenderOutcome:
        """Run a synchronous style transform (no payment involved)."""
        job = GenerationJob(
            kind=JobKind.STYLE_TRANSFORM,
            provider=Provider.FIRST_PARTY,
            prompt=prompt,
            refinement=refinement,
        )
        log = logger.bind(job_id=str(job.id), provider=job.provider.value)
        await self._save(job, created=True)

        try:
            prompt = validate_prompt(prompt)
            if self.style_provider is None:
                raise ConfigurationError("Style transforms need the first-party provider.")
            image_url = await self.style_provider.generate_style(image_b64, prompt, refinement)
        except Exception as e:
            message = user_message_for(e)
            log.warning(
                "job.style.failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            job.mark_failed(str(e) or message)
            await self._save(job)
            return RenderOutcome(
                succeeded=False,
                job_id=job.id,
                user_message=message,
                error_type=type(e).__name__,
            )

        # Data URLs are not persisted; the job only records that it succeeded
        job.mark_succeeded("inline")
        await self._save(job)
        log.info("job.style.succeeded")
        return RenderOutcome(succeeded=True, job_id=job.id, image_url=image_url)

    async def _fail(
        self, job: GenerationJob, hold: PaymentHold, error: Exception, log
    ) -> RenderOutcome:
        message = user_message_for(error)
        if isinstance(error, (ServiceError, ValueError)):
            log.warning(
                "job.failed",
                error_type=type(error).__name__,
                error_message=str(error),
            )
        else:
            log.error(
                "job.failed",
                error_type=type(error).__name__,
                error_message=str(error),
                exc_info=True,
            )

        if isinstance(error, GenerationTimeout):
            job.poll_attempts = error.attempts
            job.mark_timed_out(str(error))
        else:
            job.mark_failed(str(error) or message)
        await self._save(job)

        refunded = False
        refund_failed = False
        if not hold.is_free:
            refunded = await self.payments.refund(hold)
            refund_failed = not refunded
            message = f"{message} {REFUNDED_SUFFIX if refunded else REFUND_FAILED_SUFFIX}"

        return RenderOutcome(
            succeeded=False,
            job_id=job.id,
            user_message=message,
            error_type=type(error).__name__,
            refunded=refunded,
            refund_failed=refund_failed,
        )

    async def _save(self, job: GenerationJob, created: bool = False) -> None:
        try:
            async with await self.uow_factory() as uow:
                if created:
                    await uow.jobs.add(job)
                else:
                    await uow.jobs.save(job)
        except SQLAlchemyError as e:
            logger.error(
                "job.persist_failed",
                job_id=str(job.id),
                status=job.status.value,
                error_type=type(e).__name__,
                error_message=str(e),
            )
