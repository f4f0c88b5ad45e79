"""Builds the service graph from Settings.

Shared by the FastAPI lifespan and the CLI so both run the same providers,
payment coordinator and poll limits.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from styleswap.core.config import Settings
from styleswap.models.generation_job import Provider
from styleswap.services.artifacts import ArtifactStore
from styleswap.services.credentials import CredentialResolver
from styleswap.services.credits import CreditLedger
from styleswap.services.generation.base import VideoProvider
from styleswap.services.generation.gemini_client import GeminiClient, default_client_factory
from styleswap.services.generation.kling_client import KlingClient
from styleswap.services.job_runner import JobRunner
from styleswap.services.orchestrator import RenderOrchestrator
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.razorpay_client import RazorpayClient
from styleswap.services.polling import PollConfig, Poller


@dataclass
class Services:
    """Long-lived service objects for one process."""

    settings: Settings
    uow_factory: Callable
    resolver: CredentialResolver
    gemini: GeminiClient
    kling: KlingClient
    razorpay: RazorpayClient
    payments: PaymentCoordinator
    orchestrator: RenderOrchestrator
    job_runner: JobRunner
    credits: CreditLedger
    artifacts: ArtifactStore
    http_transport: Optional[httpx.AsyncBaseTransport] = None


def poll_configs_from(settings: Settings) -> dict[Provider, PollConfig]:
    return {
        Provider.THIRD_PARTY_VENDOR: PollConfig(
            interval_seconds=settings.poll_interval_seconds,
            max_attempts=settings.vendor_max_poll_attempts,
            artifact_grace_attempts=settings.artifact_grace_attempts,
        ),
        Provider.FIRST_PARTY: PollConfig(
            interval_seconds=settings.poll_interval_seconds,
            max_attempts=settings.first_party_max_poll_attempts,
            artifact_grace_attempts=settings.artifact_grace_attempts,
        ),
    }


def build_services(
    settings: Settings,
    uow_factory: Callable,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    genai_client_factory: Callable[[str], Any] = default_client_factory,
    poller_factory: Callable[[PollConfig], Poller] = Poller,
) -> Services:
    """Wire providers, payments and the job runner.

    Args:
        settings: Application settings
        uow_factory: Factory producing UnitOfWork instances
        http_transport: Optional httpx transport for Kling, Razorpay and Veo downloads (tests)
        genai_client_factory: Builds a Gemini SDK client per API key (tests inject fakes)
        poller_factory: Builds a Poller per PollConfig (tests inject a no-op sleep)
    """
    resolver = CredentialResolver(uow_factory, default_secret=settings.gemini_api_key)
    gemini = GeminiClient(
        resolver,
        image_model=settings.gemini_image_model,
        video_model=settings.veo_model,
        fast_video_model=settings.veo_fast_model,
        client_factory=genai_client_factory,
        download_timeout=settings.download_timeout_seconds,
        transport=http_transport,
    )
    kling = KlingClient(
        settings.kling_access_key,
        settings.kling_secret_key,
        base_url=settings.kling_base_url,
        submit_timeout=settings.submit_timeout_seconds,
        transport=http_transport,
    )
    razorpay = RazorpayClient(
        settings.razorpay_key_id,
        settings.razorpay_key_secret,
        transport=http_transport,
    )
    payments = PaymentCoordinator(razorpay, uow_factory, default_currency=settings.default_currency)

    artifacts = ArtifactStore(settings.artifact_dir)

    providers: dict[Provider, VideoProvider] = {
        Provider.FIRST_PARTY: gemini,
        Provider.THIRD_PARTY_VENDOR: kling,
    }
    orchestrator = RenderOrchestrator(
        providers,
        payments,
        uow_factory,
        poll_configs=poll_configs_from(settings),
        style_provider=gemini,
        poller_factory=poller_factory,
        artifacts=artifacts,
    )

    return Services(
        settings=settings,
        uow_factory=uow_factory,
        resolver=resolver,
        gemini=gemini,
        kling=kling,
        razorpay=razorpay,
        payments=payments,
        orchestrator=orchestrator,
        job_runner=JobRunner(orchestrator),
        credits=CreditLedger(uow_factory),
        artifacts=artifacts,
        http_transport=http_transport,
    )
